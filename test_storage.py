"""Statement archive on GCS, against an in-process bucket double."""

from types import SimpleNamespace

import pytest

import storage


class FakeBlob:

    def __init__(self, bucket, name):
        self.bucket = bucket
        self.name = name

    def upload_from_string(self, data, content_type=None):
        self.bucket.objects[self.name] = (data, content_type)

    def delete(self):
        if self.name not in self.bucket.objects:
            raise LookupError(f'No such object: {self.name}')
        del self.bucket.objects[self.name]


class FakeBucket:

    def __init__(self):
        self.objects = {}

    def blob(self, name):
        return FakeBlob(self, name)

    def list_blobs(self, prefix=''):
        return [SimpleNamespace(name=n) for n in sorted(self.objects) if n.startswith(prefix)]


@pytest.fixture
def bucket(monkeypatch):
    fake = FakeBucket()
    monkeypatch.setattr(storage, '_bucket', fake)
    return fake


class TestDisabled:

    def test_everything_skipped_without_bucket(self, monkeypatch):
        monkeypatch.setattr(storage, '_bucket', None)
        assert not storage.is_available()
        assert storage.archive_export('advisor', 'a1', 'x.csv', 'data') is None
        assert storage.list_entity_exports('advisor', 'a1') == []
        assert storage.delete_blob('statements/advisor/a1/x.csv') is False

    def test_init_without_bucket_name(self, monkeypatch):
        monkeypatch.delenv('GCS_BUCKET', raising=False)
        assert storage.init_gcs() is False


class TestArchive:

    def test_archive_list_delete(self, bucket):
        path = storage.archive_export('advisor', 'a1', 'statement.csv', 'Gross Revenue,10.00\n')
        storage.archive_export('advisor', 'a2', 'other.csv', 'x')
        assert path == 'statements/advisor/a1/statement.csv'
        assert bucket.objects[path] == (b'Gross Revenue,10.00\n', 'text/csv')

        assert storage.list_entity_exports('advisor', 'a1') == [path]
        assert storage.delete_blob(path) is True
        assert storage.list_entity_exports('advisor', 'a1') == []

    def test_bytes_kept_and_typed(self, bucket):
        path = storage.archive_export('vendor', 'v1', 'statement.xlsx', b'PK\x03\x04')
        assert bucket.objects[path] == (
            b'PK\x03\x04', 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')

    def test_delete_missing_is_false(self, bucket):
        assert storage.delete_blob('statements/advisor/a1/gone.csv') is False

    def test_upload_failure_returns_none(self, bucket, monkeypatch):
        def broken(self, data, content_type=None):
            raise OSError('quota exceeded')
        monkeypatch.setattr(FakeBlob, 'upload_from_string', broken)
        assert storage.archive_export('advisor', 'a1', 'x.html', '<p>') is None
