"""
Google Cloud Storage archive for exported statements.
Graceful degradation: when GCS is not configured, archiving is skipped and
downloads still work.
"""

import logging
import os
from typing import Optional, Union

log = logging.getLogger('financials')

_client = None
_bucket = None


# ---------------------------------------------------------------------------
# Initialisation
# ---------------------------------------------------------------------------

def init_gcs() -> bool:
    """Initialise GCS client and bucket. Returns True on success."""
    global _client, _bucket

    bucket_name = os.getenv('GCS_BUCKET', '')
    if not bucket_name:
        log.info("GCS_BUCKET not set — statement archive disabled")
        return False

    try:
        from google.cloud import storage as gcs_storage

        creds_path = os.getenv('GOOGLE_APPLICATION_CREDENTIALS', '')
        if creds_path and os.path.isfile(creds_path):
            _client = gcs_storage.Client.from_service_account_json(creds_path)
        else:
            _client = gcs_storage.Client()

        _bucket = _client.bucket(bucket_name)
        _bucket.reload()
        log.info("GCS initialised: bucket=%s", bucket_name)
        return True
    except Exception as e:
        log.warning("GCS unavailable: %s", e)
        _client = None
        _bucket = None
        return False


def is_available() -> bool:
    return _bucket is not None


# ---------------------------------------------------------------------------
# Archive
# ---------------------------------------------------------------------------

def archive_export(entity_type: str, entity_id: str, filename: str,
                   content: Union[str, bytes]) -> Optional[str]:
    """Upload an exported statement. Returns the GCS path, or None when skipped/failed."""
    if _bucket is None:
        return None

    gcs_path = f"statements/{entity_type}/{entity_id}/{filename}"
    if isinstance(content, str):
        content = content.encode('utf-8')
    try:
        blob = _bucket.blob(gcs_path)
        blob.upload_from_string(content, content_type=_guess_content_type(filename))
        log.info("GCS upload: %s (%d bytes)", gcs_path, len(content))
        return gcs_path
    except Exception as e:
        log.warning("GCS archive failed for %s: %s", gcs_path, e)
        return None


def list_entity_exports(entity_type: str, entity_id: str) -> list:
    """GCS paths of all archived statements for an entity."""
    if _bucket is None:
        return []
    prefix = f"statements/{entity_type}/{entity_id}/"
    return [blob.name for blob in _bucket.list_blobs(prefix=prefix)]


def delete_blob(gcs_path: str) -> bool:
    if _bucket is None:
        return False
    try:
        _bucket.blob(gcs_path).delete()
        return True
    except Exception as e:
        log.warning("GCS delete failed for %s: %s", gcs_path, e)
        return False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _guess_content_type(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    return {
        '.xlsx': 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
        '.csv': 'text/csv',
        '.html': 'text/html',
        '.pdf': 'application/pdf',
    }.get(ext, 'application/octet-stream')
