"""
Financial Statement Engine — turns an entity's revenue records and payout
requests into a period statement: normalized line items, payout history and
a summary (gross, commission, net, payouts, available balance).

Collections are fetched in parallel and a failed fetch degrades to an empty
list, so one unavailable collection never aborts the whole statement.
"""

import logging
import math
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional, Tuple

import pandas as pd

from periods import Period, resolve_period

log = logging.getLogger('financials')


class StatementError(Exception):
    """Statement cannot be built for the requested entity."""


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

ENTITY_TYPES = ('finfluencer', 'advisor', 'organizer', 'vendor')

PROCESSED_STATUSES = ('processed',)
PENDING_STATUSES = ('pending', 'approved')

UNKNOWN = 'Unknown'


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass
class LineItem:
    """One normalized earnings (or spend) row."""
    date: Optional[datetime]
    description: str
    gross_amount: float
    commission: float
    net_amount: float
    type: str
    payment_status: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            'date': self.date.isoformat() if self.date else None,
            'description': self.description,
            'gross_amount': self.gross_amount,
            'commission': self.commission,
            'net_amount': self.net_amount,
            'type': self.type,
        }
        if self.payment_status is not None:
            d['payment_status'] = self.payment_status
        return d


@dataclass
class PayoutEntry:
    """One payout request as shown on a statement."""
    date: Optional[datetime]
    amount: float
    status: Optional[str]
    processed_date: Optional[datetime] = None
    method: Optional[str] = None
    reference: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'date': self.date.isoformat() if self.date else None,
            'amount': self.amount,
            'status': self.status,
            'processed_date': self.processed_date.isoformat() if self.processed_date else None,
            'method': self.method,
            'reference': self.reference,
        }


@dataclass
class StatementSummary:
    gross_revenue: float = 0.0
    platform_commission: float = 0.0
    net_earnings: float = 0.0
    total_payouts: float = 0.0
    pending_payouts: float = 0.0
    available_balance: float = 0.0

    def to_dict(self) -> dict:
        return {
            'gross_revenue': self.gross_revenue,
            'platform_commission': self.platform_commission,
            'net_earnings': self.net_earnings,
            'total_payouts': self.total_payouts,
            'pending_payouts': self.pending_payouts,
            'available_balance': self.available_balance,
        }


@dataclass
class Statement:
    entity_type: str
    entity_id: str
    entity_name: str
    period: Period
    summary: StatementSummary
    earnings: List[LineItem] = field(default_factory=list)
    payouts: List[PayoutEntry] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        return {
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'entity_name': self.entity_name,
            'period': self.period.to_dict(),
            'summary': self.summary.to_dict(),
            'earnings': [e.to_dict() for e in self.earnings],
            'payouts': [p.to_dict() for p in self.payouts],
            'generated_at': self.generated_at.isoformat(),
        }


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def parse_timestamp(value) -> Optional[datetime]:
    """Parse a record timestamp to a naive datetime (UTC if the value had an offset).

    Returns None for missing or unparseable values.
    """
    if value is None or isinstance(value, bool):
        return None
    if not isinstance(value, (str, datetime, date, pd.Timestamp)):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    try:
        ts = pd.to_datetime(value, errors='coerce')
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert('UTC').tz_localize(None)
    return ts.to_pydatetime()


def amount(record: dict, key: str) -> float:
    """Numeric field as float; missing, None, non-numeric and NaN all become 0."""
    val = record.get(key) if record else None
    if val is None or isinstance(val, bool):
        return 0.0
    try:
        num = float(val)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(num) or math.isinf(num):
        return 0.0
    return num


def index_by_id(records: Iterable[dict]) -> Dict[str, dict]:
    return {r['id']: r for r in records if r and r.get('id') is not None}


def _title(lookup: Dict[str, dict], key) -> str:
    return (lookup.get(key) or {}).get('title') or UNKNOWN


# ---------------------------------------------------------------------------
# Record filter
# ---------------------------------------------------------------------------

def filter_by_range(records: Iterable[dict], field_name: str,
                    start: datetime, end: datetime) -> List[dict]:
    """Records whose timestamp lies in [start, end], inclusive.

    Records with a missing or malformed timestamp are dropped.
    """
    kept = []
    for r in records or []:
        ts = parse_timestamp((r or {}).get(field_name))
        if ts is not None and start <= ts <= end:
            kept.append(r)
    return kept


# ---------------------------------------------------------------------------
# Line-item normalizers
# ---------------------------------------------------------------------------

def normalize_course_sales(transactions: Iterable[dict], courses: Iterable[dict]) -> List[LineItem]:
    course_map = index_by_id(courses)
    return [LineItem(
        date=parse_timestamp(t.get('created_date')),
        description=f"Course: {_title(course_map, t.get('course_id'))}",
        gross_amount=amount(t, 'gross_amount'),
        commission=amount(t, 'platform_commission'),
        net_amount=amount(t, 'influencer_payout'),
        type='Course Sale',
    ) for t in transactions]


def normalize_event_commissions(commissions: Iterable[dict], events: Iterable[dict]) -> List[LineItem]:
    event_map = index_by_id(events)
    return [LineItem(
        date=parse_timestamp(c.get('created_date')),
        description=f"Event: {_title(event_map, c.get('event_id'))}",
        gross_amount=amount(c, 'gross_revenue'),
        commission=amount(c, 'platform_commission'),
        net_amount=amount(c, 'organizer_payout'),
        type='Event Revenue',
    ) for c in commissions]


def normalize_advisor_commissions(commissions: Iterable[dict]) -> List[LineItem]:
    return [LineItem(
        date=parse_timestamp(c.get('transaction_date')),
        description='Subscription Income',
        gross_amount=amount(c, 'gross_amount'),
        commission=amount(c, 'platform_fee'),
        net_amount=amount(c, 'advisor_payout'),
        type='Subscription',
    ) for c in commissions]


def normalize_vendor_billings(billings: Iterable[dict]) -> List[LineItem]:
    """Vendor ad spend: no commission, net equals gross."""
    items = []
    for b in billings:
        spend = amount(b, 'amount')
        model = (b.get('billing_model') or '').upper()
        items.append(LineItem(
            date=parse_timestamp(b.get('created_date')),
            description=f"Ad Campaign Billing - {model}",
            gross_amount=spend,
            commission=0.0,
            net_amount=spend,
            type='Ad Spend',
            payment_status=b.get('payment_status'),
        ))
    return items


def normalize_payouts(payout_requests: Iterable[dict]) -> List[PayoutEntry]:
    return [PayoutEntry(
        date=parse_timestamp(p.get('created_date')),
        amount=amount(p, 'requested_amount'),
        status=p.get('status'),
        processed_date=parse_timestamp(p.get('processed_date')),
        method=p.get('payout_method'),
        reference=p.get('transaction_reference'),
    ) for p in payout_requests]


# ---------------------------------------------------------------------------
# Summary reducer
# ---------------------------------------------------------------------------

def summarize(earnings: List[LineItem], payouts: List[PayoutEntry]) -> StatementSummary:
    """Sum line items and split payouts into processed vs pending/approved."""
    gross = commission = net = 0.0
    if earnings:
        df = pd.DataFrame([{
            'gross': e.gross_amount, 'commission': e.commission, 'net': e.net_amount,
        } for e in earnings])
        totals = df.fillna(0).sum()
        gross = float(totals['gross'])
        commission = float(totals['commission'])
        net = float(totals['net'])

    total_payouts = pending_payouts = 0.0
    if payouts:
        pdf = pd.DataFrame([{'status': p.status, 'amount': p.amount} for p in payouts])
        pdf['amount'] = pdf['amount'].fillna(0)
        total_payouts = float(pdf.loc[pdf['status'].isin(PROCESSED_STATUSES), 'amount'].sum())
        pending_payouts = float(pdf.loc[pdf['status'].isin(PENDING_STATUSES), 'amount'].sum())

    return StatementSummary(
        gross_revenue=gross,
        platform_commission=commission,
        net_earnings=net,
        total_payouts=total_payouts,
        pending_payouts=pending_payouts,
        available_balance=net - total_payouts - pending_payouts,
    )


# ---------------------------------------------------------------------------
# Fan-out fetch
# ---------------------------------------------------------------------------

def _fetch_one(store, collection: str, query: Optional[dict]) -> List[dict]:
    if query is None:
        return store.list(collection) or []
    return store.filter(collection, query) or []


def fetch_collections(store, fetches: Dict[str, Tuple[str, Optional[dict]]],
                      max_workers: Optional[int] = None) -> Dict[str, List[dict]]:
    """Run independent store reads in parallel and join them.

    fetches maps a result name to (collection, query); a None query lists the
    whole collection. Any failing read yields [] for that name.
    """
    results: Dict[str, List[dict]] = {}
    if not fetches:
        return results

    workers = max_workers or int(os.getenv('FETCH_WORKERS', '6'))
    with ThreadPoolExecutor(max_workers=max(1, min(workers, len(fetches)))) as pool:
        futures = {
            pool.submit(_fetch_one, store, collection, query): name
            for name, (collection, query) in fetches.items()
        }
        for future in as_completed(futures):
            name = futures[future]
            try:
                results[name] = future.result()
            except Exception as e:
                log.warning("Fetch '%s' failed, treating as empty: %s", name, e)
                results[name] = []
    return results


def statement_fetches(entity_type: str, entity_id: str) -> Dict[str, Tuple[str, Optional[dict]]]:
    """Collections a statement needs for the given entity type."""
    if entity_type not in ENTITY_TYPES:
        raise StatementError(f"Unsupported entity type: {entity_type}")

    fetches: Dict[str, Tuple[str, Optional[dict]]] = {
        'payouts': ('PayoutRequest', {'entity_id': entity_id, 'entity_type': entity_type}),
    }
    if entity_type == 'finfluencer':
        fetches['course_sales'] = ('RevenueTransaction', {'influencer_id': entity_id})
        fetches['courses'] = ('Course', {'influencer_id': entity_id})
        fetches['event_commissions'] = ('EventCommissionTracking', {'organizer_id': entity_id})
        fetches['events'] = ('Event', None)
    elif entity_type == 'organizer':
        fetches['event_commissions'] = ('EventCommissionTracking', {'organizer_id': entity_id})
        fetches['events'] = ('Event', None)
    elif entity_type == 'advisor':
        fetches['advisor_commissions'] = ('CommissionTracking', {'advisor_id': entity_id})
    elif entity_type == 'vendor':
        fetches['billings'] = ('CampaignBilling', {'vendor_id': entity_id})
    return fetches


# ---------------------------------------------------------------------------
# Statement assembly
# ---------------------------------------------------------------------------

def build_statement(entity_type: str, entity_id: str, collections: Dict[str, List[dict]],
                    period: Period, entity_name: str = '',
                    generated_at: Optional[datetime] = None) -> Statement:
    """Assemble a statement from already-fetched collections."""
    if entity_type not in ENTITY_TYPES:
        raise StatementError(f"Unsupported entity type: {entity_type}")

    start, end = period.start, period.end
    get = lambda name: collections.get(name) or []

    earnings: List[LineItem] = []
    if entity_type == 'finfluencer':
        sales = filter_by_range(get('course_sales'), 'created_date', start, end)
        earnings += normalize_course_sales(sales, get('courses'))
    if entity_type in ('finfluencer', 'organizer'):
        ev = filter_by_range(get('event_commissions'), 'created_date', start, end)
        earnings += normalize_event_commissions(ev, get('events'))
    if entity_type == 'advisor':
        subs = filter_by_range(get('advisor_commissions'), 'transaction_date', start, end)
        earnings += normalize_advisor_commissions(subs)
    if entity_type == 'vendor':
        bills = filter_by_range(get('billings'), 'created_date', start, end)
        earnings += normalize_vendor_billings(bills)

    payouts = normalize_payouts(filter_by_range(get('payouts'), 'created_date', start, end))

    return Statement(
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name or entity_id,
        period=period,
        summary=summarize(earnings, payouts),
        earnings=earnings,
        payouts=payouts,
        generated_at=generated_at or datetime.now(),
    )


def load_statement(store, entity_type: str, entity_id: str,
                   period_token: Optional[str] = 'current_month', entity_name: str = '',
                   now: Optional[datetime] = None) -> Statement:
    """Fetch, filter, normalize and summarize an entity's statement for a period."""
    period = resolve_period(period_token, now=now)
    collections = fetch_collections(store, statement_fetches(entity_type, entity_id))
    statement = build_statement(entity_type, entity_id, collections, period,
                                entity_name=entity_name, generated_at=now)
    log.info("Statement %s/%s %s: %d earnings, %d payouts, net=%.2f",
             entity_type, entity_id, period.token, len(statement.earnings),
             len(statement.payouts), statement.summary.net_earnings)
    return statement
