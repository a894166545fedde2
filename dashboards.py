"""
Role dashboards: headline stats and payout balances for advisors,
finfluencers, event organizers and ad vendors.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from statement import (amount, fetch_collections, normalize_payouts, parse_timestamp,
                       summarize)

log = logging.getLogger('financials')

DEFAULT_COMMISSION_RATE = 20


# ---------------------------------------------------------------------------
# Shared arithmetic
# ---------------------------------------------------------------------------

def commission_split(gross: float, rate_percent: float) -> Tuple[float, float]:
    """Split a gross amount into (platform commission, creator payout)."""
    platform = round(gross * rate_percent / 100.0, 2)
    return platform, round(gross - platform, 2)


def payout_balance(total_earnings: float, payout_requests: List[dict]) -> dict:
    """Paid-out, pending and available amounts; available is floored at 0 for display."""
    s = summarize([], normalize_payouts(payout_requests))
    return {
        'total_earnings': total_earnings,
        'total_paid_out': s.total_payouts,
        'pending_payouts': s.pending_payouts,
        'available_balance': max(0.0, total_earnings - s.total_payouts - s.pending_payouts),
    }


def _total(records: List[dict], key: str) -> float:
    return sum(amount(r, key) for r in records)


def _payout_query(entity_id: str, entity_type: str) -> Tuple[str, dict]:
    return ('PayoutRequest', {'entity_id': entity_id, 'entity_type': entity_type})


# ---------------------------------------------------------------------------
# Advisor
# ---------------------------------------------------------------------------

def advisor_dashboard(store, advisor_id: str, now: Optional[datetime] = None) -> dict:
    data = fetch_collections(store, {
        'posts': ('AdvisorPost', {'advisor_id': advisor_id}),
        'subscriptions': ('AdvisorSubscription', {'advisor_id': advisor_id}),
        'commissions': ('CommissionTracking', {'advisor_id': advisor_id}),
        'reviews': ('AdvisorReview', {'advisor_id': advisor_id}),
        'payouts': _payout_query(advisor_id, 'advisor'),
    })
    reviews = data['reviews']
    ratings = [amount(r, 'rating') for r in reviews]
    avg_rating = round(sum(ratings) / len(ratings), 1) if ratings and sum(ratings) > 0 else 0

    stats = payout_balance(_total(data['commissions'], 'advisor_payout'), data['payouts'])
    stats.update({
        'total_subscribers': len(data['subscriptions']),
        'active_subscribers': sum(1 for s in data['subscriptions'] if s.get('status') == 'active'),
        'total_posts': len(data['posts']),
        'avg_rating': avg_rating,
        'review_count': len(reviews),
    })
    return stats


# ---------------------------------------------------------------------------
# Finfluencer
# ---------------------------------------------------------------------------

def finfluencer_dashboard(store, influencer_id: str, now: Optional[datetime] = None) -> dict:
    data = fetch_collections(store, {
        'courses': ('Course', {'influencer_id': influencer_id}),
        'sales': ('RevenueTransaction', {'influencer_id': influencer_id}),
        'event_commissions': ('EventCommissionTracking', {'organizer_id': influencer_id}),
        'payouts': _payout_query(influencer_id, 'finfluencer'),
    })
    course_revenue = _total(data['sales'], 'influencer_payout')
    event_revenue = _total(data['event_commissions'], 'organizer_payout')

    sales_by_course: Dict[str, int] = {}
    for t in data['sales']:
        sales_by_course[t.get('course_id')] = sales_by_course.get(t.get('course_id'), 0) + 1

    stats = payout_balance(course_revenue + event_revenue, data['payouts'])
    stats.update({
        'total_courses': len(data['courses']),
        'published_courses': sum(1 for c in data['courses'] if c.get('status') == 'published'),
        'total_sales': len(data['sales']),
        'course_revenue': course_revenue,
        'event_revenue': event_revenue,
        'gross_revenue': _total(data['sales'], 'gross_amount') + _total(data['event_commissions'], 'gross_revenue'),
        'top_courses': sorted(
            [{'course_id': c.get('id'), 'title': c.get('title'), 'sales': sales_by_course.get(c.get('id'), 0)}
             for c in data['courses']],
            key=lambda x: x['sales'], reverse=True)[:5],
    })
    return stats


# ---------------------------------------------------------------------------
# Event organizer
# ---------------------------------------------------------------------------

def organizer_commission_rate(organizer: Optional[dict]) -> float:
    """Organizer's own rate, then the admin override, then the platform default."""
    organizer = organizer or {}
    return (organizer.get('commission_rate')
            or organizer.get('commission_override_rate')
            or DEFAULT_COMMISSION_RATE)


def organizer_dashboard(store, organizer_id: str, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now()
    data = fetch_collections(store, {
        'profile': ('EventOrganizer', {'user_id': organizer_id}),
        'events': ('Event', {'organizer_id': organizer_id}),
        'commissions': ('EventCommissionTracking', {'organizer_id': organizer_id}),
        'payouts': _payout_query(organizer_id, 'organizer'),
    })
    events, commissions = data['events'], data['commissions']
    by_event = {c.get('event_id'): c for c in commissions}

    def _upcoming(e):
        when = parse_timestamp(e.get('event_date'))
        return when is not None and when > now and e.get('status') == 'approved'

    rate = organizer_commission_rate(data['profile'][0] if data['profile'] else None)

    breakdown = []
    for c in commissions:
        event = next((e for e in events if e.get('id') == c.get('event_id')), {})
        gross = amount(c, 'gross_revenue')
        event_rate = (amount(c, 'platform_commission_rate')
                      if c.get('platform_commission_rate') is not None else rate)
        # rows written before settlement only carry gross revenue
        if c.get('platform_commission') is None and c.get('organizer_payout') is None:
            platform, payout = commission_split(gross, event_rate)
        else:
            platform, payout = amount(c, 'platform_commission'), amount(c, 'organizer_payout')
        breakdown.append({
            'event_id': c.get('event_id'),
            'title': event.get('title') or 'Unknown',
            'tickets_sold': int(amount(c, 'total_tickets_sold')),
            'gross_revenue': gross,
            'platform_commission': platform,
            'platform_commission_rate': event_rate,
            'organizer_payout': payout,
        })

    total_revenue = sum(b['organizer_payout'] for b in breakdown)
    stats = payout_balance(total_revenue, data['payouts'])
    stats.update({
        'total_events': len(events),
        'upcoming_events': sum(1 for e in events if _upcoming(e)),
        'completed_events': sum(1 for e in events if e.get('status') == 'completed'),
        'total_revenue': total_revenue,
        'pending_payout_requests': sum(1 for p in data['payouts'] if p.get('status') == 'pending'),
        'total_attendees': sum(int(amount(by_event.get(e.get('id')) or {}, 'total_tickets_sold'))
                               for e in events),
        'commission_rate': rate,
        'event_breakdown': breakdown,
    })
    return stats


# ---------------------------------------------------------------------------
# Ad vendor
# ---------------------------------------------------------------------------

def vendor_dashboard(store, vendor_id: str, now: Optional[datetime] = None) -> dict:
    data = fetch_collections(store, {
        'campaigns': ('AdCampaign', {'vendor_id': vendor_id}),
        'billings': ('CampaignBilling', {'vendor_id': vendor_id}),
    })
    billings = data['billings']
    paid = [b for b in billings if b.get('payment_status') == 'paid']
    total_spend = _total(billings, 'amount')
    paid_spend = _total(paid, 'amount')
    return {
        'total_campaigns': len(data['campaigns']),
        'active_campaigns': sum(1 for c in data['campaigns'] if c.get('status') == 'active'),
        'total_spend': total_spend,
        'paid_spend': paid_spend,
        'outstanding_spend': total_spend - paid_spend,
        'billing_count': len(billings),
    }


ROLE_DASHBOARDS = {
    'advisor': advisor_dashboard,
    'finfluencer': finfluencer_dashboard,
    'organizer': organizer_dashboard,
    'vendor': vendor_dashboard,
}
