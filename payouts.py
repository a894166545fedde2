"""
Payout requests: creator-side submission with balance/method validation,
and the admin workflow (approve, reject, process) with requester notifications.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from exporter import format_inr

log = logging.getLogger('financials')

COLLECTION = 'PayoutRequest'

PAYOUT_METHODS = ('bank_transfer', 'upi', 'paypal')
PAYOUT_STATUSES = ('pending', 'approved', 'processed', 'rejected')
BANK_FIELDS = ('account_number', 'ifsc_code', 'account_holder_name')

# current status -> statuses it may move to
TRANSITIONS = {
    'pending': ('approved', 'rejected', 'processed'),
    'approved': ('processed', 'rejected'),
}


class PayoutValidationError(ValueError):
    """Payout request or admin action is missing required input."""


class PayoutTransitionError(Exception):
    """Status change not allowed from the payout's current status."""


# ---------------------------------------------------------------------------
# Submission
# ---------------------------------------------------------------------------

def validate_payout_request(data: dict, available_balance: float) -> dict:
    """Check a payout form and return the clean payload to store."""
    try:
        requested = float(data.get('requested_amount'))
    except (TypeError, ValueError):
        requested = 0.0
    if math.isnan(requested) or requested <= 0:
        raise PayoutValidationError('Please enter a valid amount')
    if requested > available_balance:
        raise PayoutValidationError('Amount exceeds available balance')

    method = data.get('payout_method')
    if not method:
        raise PayoutValidationError('Please select a payout method')
    if method not in PAYOUT_METHODS:
        raise PayoutValidationError(f'Unsupported payout method: {method}')

    bank_details = data.get('bank_details') or {}
    if method == 'bank_transfer' and not all(bank_details.get(k) for k in BANK_FIELDS):
        raise PayoutValidationError('Please fill all bank details')
    if method == 'upi' and not data.get('upi_id'):
        raise PayoutValidationError('Please enter UPI ID')
    if method == 'paypal' and not data.get('paypal_email'):
        raise PayoutValidationError('Please enter PayPal email')

    return {
        'requested_amount': requested,
        'payout_method': method,
        'bank_details': {k: bank_details[k] for k in BANK_FIELDS} if method == 'bank_transfer' else None,
        'upi_id': data.get('upi_id') if method == 'upi' else None,
        'paypal_email': data.get('paypal_email') if method == 'paypal' else None,
    }


def submit_payout_request(store, entity_type: str, entity_id: str, data: dict,
                          available_balance: float, user_id: Optional[str] = None) -> dict:
    """Validate and create a pending PayoutRequest."""
    payload = validate_payout_request(data, available_balance)
    record = store.create(COLLECTION, {
        **payload,
        'user_id': user_id or entity_id,
        'entity_type': entity_type,
        'entity_id': entity_id,
        'available_balance': available_balance,
        'status': 'pending',
    })
    log.info("Payout request %s: %s/%s %.2f via %s", record.get('id'), entity_type,
             entity_id, payload['requested_amount'], payload['payout_method'])
    return record


# ---------------------------------------------------------------------------
# Admin workflow
# ---------------------------------------------------------------------------

def _notify(store, payout: dict, title: str, message: str, kind: str):
    try:
        store.create('Notification', {
            'user_id': payout.get('user_id'),
            'title': title,
            'message': message,
            'type': kind,
            'page': 'general',
        })
    except Exception as e:
        log.warning("Payout %s updated but notification failed: %s", payout.get('id'), e)


def _transition(store, payout_id: str, target: str, changes: dict,
                now: Optional[datetime]) -> dict:
    payout = store.get(COLLECTION, payout_id)
    current = payout.get('status') or 'pending'
    if target not in TRANSITIONS.get(current, ()):
        raise PayoutTransitionError(f"Cannot move payout {payout_id} from {current} to {target}")

    now = now or datetime.utcnow()
    updated = store.update(COLLECTION, payout_id, {
        'status': target,
        'processed_date': now.isoformat(),
        **changes,
    })
    log.info("Payout %s: %s -> %s", payout_id, current, target)
    return updated


def approve_payout(store, payout_id: str, admin_notes: str = '',
                   now: Optional[datetime] = None) -> dict:
    updated = _transition(store, payout_id, 'approved',
                          {'admin_notes': admin_notes or 'Approved by admin'}, now)
    amount = format_inr(updated.get('requested_amount'))
    _notify(store, updated, 'Payout Approved',
            f"Your payout request for ₹{amount} has been approved. "
            "Payment will be processed shortly.", 'info')
    return updated


def reject_payout(store, payout_id: str, reason: str,
                  now: Optional[datetime] = None) -> dict:
    if not (reason or '').strip():
        raise PayoutValidationError('Please provide a reason for rejection')
    updated = _transition(store, payout_id, 'rejected', {'admin_notes': reason}, now)
    amount = format_inr(updated.get('requested_amount'))
    _notify(store, updated, 'Payout Rejected',
            f"Your payout request for ₹{amount} has been rejected. Reason: {reason}",
            'warning')
    return updated


def process_payout(store, payout_id: str, transaction_reference: str, admin_notes: str = '',
                   processed_by: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    """Mark a payout as paid out, recording the bank UTR / gateway reference."""
    if not (transaction_reference or '').strip():
        raise PayoutValidationError('Please enter the transaction reference')
    changes = {
        'transaction_reference': transaction_reference,
        'admin_notes': admin_notes or 'Payment processed manually via bank transfer',
    }
    if processed_by:
        changes['processed_by'] = processed_by
    updated = _transition(store, payout_id, 'processed', changes, now)
    amount = format_inr(updated.get('requested_amount'))
    _notify(store, updated, 'Payout Processed',
            f"Your payout of ₹{amount} has been processed. Reference: "
            f"{transaction_reference}. Funds will be credited within 1-2 business days.",
            'info')
    return updated
