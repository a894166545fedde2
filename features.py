"""
Feature registry — the subscription features shown in the Feature Hub.

The registry is an immutable mapping built once at startup and passed to
whatever needs it. Each feature resolves, for a given user tier, to a tagged
view (live / placeholder / locked) that a renderer switch turns into HTML.
Superadmin edits live in the FeatureConfig collection and are merged in by
re-reading the collection, never by patching local copies.
"""

import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Iterable, List, Mapping, Optional, Tuple

from jinja2 import Environment

log = logging.getLogger('financials')

CONFIG_COLLECTION = 'FeatureConfig'

TIERS = ('basic', 'premium', 'vip')
STATUSES = ('live', 'partial', 'placeholder')
TIER_LABELS = {'basic': 'Basic', 'premium': 'Premium', 'vip': 'VIP'}
VISIBILITY_BY_TIER = {
    'basic': ('basic', 'premium', 'vip'),
    'premium': ('premium', 'vip'),
    'vip': ('vip',),
}

# FeatureConfig fields a superadmin may write
EDITABLE_FIELDS = (
    'feature_key', 'feature_name', 'description', 'icon_name', 'tier', 'status',
    'release_date', 'release_quarter', 'visible_to_users', 'page_url',
    'documentation_url', 'priority', 'developer_notes', 'sort_order',
)


@dataclass(frozen=True)
class Feature:
    key: str
    name: str
    description: str
    icon: str
    tier: str
    status: str
    visibility: Tuple[str, ...]
    release_date: Optional[str] = None
    page: Optional[str] = None
    visible_to_users: bool = True
    sort_order: int = 0


@dataclass(frozen=True)
class FeatureView:
    """What a user sees for one feature. kind is 'live', 'placeholder' or 'locked'."""
    kind: str
    key: str
    name: str
    description: str
    icon: str
    tier: str
    page: Optional[str] = None
    release_date: Optional[str] = None
    required_plan: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            'kind': self.kind, 'key': self.key, 'name': self.name,
            'description': self.description, 'icon': self.icon, 'tier': self.tier,
            'page': self.page, 'release_date': self.release_date,
            'required_plan': self.required_plan,
        }


def _f(key, name, description, icon, tier, status, release_date=None, page=None):
    return Feature(key=key, name=name, description=description, icon=icon, tier=tier,
                   status=status, visibility=VISIBILITY_BY_TIER[tier],
                   release_date=release_date, page=page)


DEFAULT_FEATURES = (
    # Basic
    _f('general_chat_access', 'General Chat Rooms', 'Access to community chat rooms for discussions',
       'MessageSquare', 'basic', 'live', page='ChatRooms'),
    _f('basic_stock_discussions', 'Stock Discussions', 'Participate in basic stock market discussions',
       'TrendingUp', 'basic', 'live', page='ChatRooms'),
    _f('community_polls_participation', 'Community Polls', 'Vote and participate in community polls',
       'BarChart3', 'basic', 'live', page='Polls'),
    _f('market_overview_access', 'Market Overview', 'Access daily market summaries and insights',
       'TrendingUp', 'basic', 'live', page='Dashboard'),
    _f('basic_trading_tips', 'Trading Tips', 'Get basic trading guidance and tips',
       'BookOpen', 'basic', 'live', page='Dashboard'),
    # Premium
    _f('premium_chat_rooms', 'Premium Chat Rooms', 'Access exclusive premium chat rooms with verified traders',
       'Crown', 'premium', 'placeholder', release_date='Q2 2025'),
    _f('premium_polls', 'Premium Polls', 'Access advisor-created premium polls and predictions',
       'BarChart3', 'premium', 'live', page='Polls'),
    _f('premium_events', 'Premium Events', 'Attend exclusive premium events and webinars',
       'Calendar', 'premium', 'live', page='Events'),
    _f('admin_recommendations', 'Admin Recommendations', 'Receive stock recommendations from platform administrators',
       'Shield', 'premium', 'live', page='Dashboard'),
    _f('advisor_subscriptions', 'Advisor Subscriptions', 'Subscribe to verified SEBI advisors for personalized guidance',
       'Award', 'premium', 'live', page='Advisors'),
    _f('exclusive_finfluencer_content', 'Finfluencer Content', 'Access exclusive content from top financial influencers',
       'GraduationCap', 'premium', 'live', page='Finfluencers'),
    _f('pledge_participation', 'Pledge Pool', 'Participate in community pledge system for stocks',
       'Target', 'premium', 'live', page='PledgePool'),
    _f('advanced_analytics', 'Advanced Analytics', 'Access advanced technical analysis tools and charts',
       'BarChart3', 'premium', 'placeholder', release_date='Q3 2025'),
    _f('priority_support', 'Priority Support', 'Get priority customer support and faster response times',
       'Zap', 'premium', 'placeholder', release_date='Q2 2025'),
    _f('webinar_access', 'Exclusive Webinars', 'Attend premium webinars hosted by market experts',
       'Calendar', 'premium', 'partial', page='Events'),
    _f('portfolio_tools', 'Portfolio Tracking', 'Track your investment portfolio with advanced tools',
       'TrendingUp', 'premium', 'live', page='MyPortfolio'),
    # VIP
    _f('one_on_one_consultation', 'Direct Admin Consultation', 'Schedule one-on-one sessions with platform administrators',
       'Users', 'vip', 'placeholder', release_date='Q3 2025'),
    _f('personalized_stock_picks', 'Personalized Stock Picks', 'Receive AI-powered personalized stock recommendations',
       'Sparkles', 'vip', 'placeholder', release_date='Q4 2025'),
    _f('advanced_pledge_analytics', 'Advanced Pledge Analytics', 'Deep analytics and insights into pledge performance',
       'BarChart3', 'vip', 'placeholder', release_date='Q3 2025'),
    _f('risk_management_tools', 'Risk Management Tools', 'Advanced tools for portfolio risk assessment and management',
       'Shield', 'vip', 'placeholder', release_date='Q4 2025'),
    _f('market_insider_insights', 'Market Insider Insights', 'Exclusive market insights from industry insiders',
       'TrendingUp', 'vip', 'placeholder', release_date='Q3 2025'),
    _f('one_on_one_trading_sessions', 'Personal Trading Sessions', 'Private trading guidance sessions with expert traders',
       'Users', 'vip', 'placeholder', release_date='Q4 2025'),
    _f('custom_alerts', 'Custom Alerts & Notifications', 'Set up personalized alerts for stocks and market movements',
       'Bell', 'vip', 'partial', page='Alerts'),
    _f('research_reports', 'Premium Research Reports', 'Access in-depth research reports and market analysis',
       'FileText', 'vip', 'placeholder', release_date='Q3 2025'),
    _f('whatsapp_support', 'WhatsApp Support Group', 'Join exclusive WhatsApp group for instant support',
       'Phone', 'vip', 'placeholder', release_date='Q2 2025'),
)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

def build_feature_registry(definitions: Iterable[Feature] = DEFAULT_FEATURES) -> Mapping[str, Feature]:
    """Immutable {key: Feature} mapping. Duplicate keys are an error."""
    features = {}
    for feature in definitions:
        if feature.key in features:
            raise ValueError(f"Duplicate feature key: {feature.key}")
        features[feature.key] = feature
    return MappingProxyType(features)


def get_feature(registry: Mapping[str, Feature], key: str) -> Optional[Feature]:
    return registry.get(key)


def features_by_tier(registry: Mapping[str, Feature], tier: str) -> List[Feature]:
    return [f for f in registry.values() if f.tier == tier]


def status_counts(registry: Mapping[str, Feature]) -> dict:
    counts = {status: 0 for status in STATUSES}
    for f in registry.values():
        counts[f.status] = counts.get(f.status, 0) + 1
    return counts


def visible_features(registry: Mapping[str, Feature], user_tier: str,
                     show_all: bool = False) -> List[Feature]:
    """Features a user tier may see; show_all is the superadmin view."""
    if show_all:
        return list(registry.values())
    return [f for f in registry.values() if f.visible_to_users and user_tier in f.visibility]


# ---------------------------------------------------------------------------
# Tagged views and renderer switch
# ---------------------------------------------------------------------------

def resolve_feature_view(feature: Feature, user_tier: str) -> FeatureView:
    if user_tier not in feature.visibility:
        kind = 'locked'
    elif feature.status == 'placeholder':
        kind = 'placeholder'
    else:
        kind = 'live'
    return FeatureView(
        kind=kind,
        key=feature.key,
        name=feature.name,
        description=feature.description,
        icon=feature.icon,
        tier=feature.tier,
        page=feature.page if kind == 'live' else None,
        release_date=feature.release_date if kind == 'placeholder' else None,
        required_plan=TIER_LABELS.get(feature.tier, feature.tier) if kind == 'locked' else None,
    )


_env = Environment(autoescape=True)

_CARD_TEMPLATES = {
    'live': _env.from_string(
        '<a class="feature-card feature-live" href="/{{ v.page or "" }}">'
        '<div class="icon icon-{{ v.icon }}"></div>'
        '<h3>{{ v.name }}</h3><p>{{ v.description }}</p></a>'),
    'placeholder': _env.from_string(
        '<div class="feature-card feature-placeholder">'
        '<div class="icon icon-{{ v.icon }}"></div>'
        '<h3>{{ v.name }}</h3><p>{{ v.description }}</p>'
        '<span class="badge">Coming Soon{% if v.release_date %} (Est. {{ v.release_date }}){% endif %}</span>'
        '</div>'),
    'locked': _env.from_string(
        '<div class="feature-card feature-locked">'
        '<div class="icon icon-Lock"></div>'
        '<h3>{{ v.name }}</h3><p>{{ v.description }}</p>'
        '<span class="badge">{{ v.required_plan }} Plan Required</span>'
        '<a class="upgrade" href="/Subscription">Upgrade Now</a>'
        '</div>'),
}


def render_feature_card(view: FeatureView) -> str:
    template = _CARD_TEMPLATES.get(view.kind)
    if template is None:
        raise ValueError(f"Unknown feature view kind: {view.kind}")
    return template.render(v=view)


# ---------------------------------------------------------------------------
# FeatureConfig reconciliation
# ---------------------------------------------------------------------------

def registry_to_configs(registry: Mapping[str, Feature]) -> List[dict]:
    """FeatureConfig payloads used to seed an empty collection (hidden until toggled on)."""
    return [{
        'feature_key': f.key,
        'feature_name': f.name,
        'description': f.description,
        'icon_name': f.icon or 'Star',
        'tier': f.tier,
        'status': f.status,
        'release_date': f.release_date,
        'page_url': f.page,
        'visible_to_users': False,
        'sort_order': 0,
    } for f in registry.values()]


def _sorted_configs(configs: List[dict]) -> List[dict]:
    return sorted(configs, key=lambda c: c.get('sort_order') or 0)


def load_feature_configs(store) -> List[dict]:
    return _sorted_configs(store.list(CONFIG_COLLECTION))


def seed_feature_configs(store, registry: Mapping[str, Feature]) -> List[dict]:
    """Create configs from the registry when the collection is empty; return the stored list."""
    configs = store.list(CONFIG_COLLECTION)
    if not configs:
        log.info("Initializing %d feature configs from registry", len(registry))
        store.bulk_create(CONFIG_COLLECTION, registry_to_configs(registry))
        configs = store.list(CONFIG_COLLECTION)
    return _sorted_configs(configs)


def _feature_from_config(cfg: dict, base: Optional[Feature]) -> Optional[Feature]:
    tier = cfg.get('tier') if cfg.get('tier') in TIERS else (base.tier if base else None)
    status = cfg.get('status') if cfg.get('status') in STATUSES else (base.status if base else None)
    if tier is None or status is None:
        log.warning("Skipping feature config %s: invalid tier/status", cfg.get('feature_key'))
        return None

    fields = {
        'name': cfg.get('feature_name') or (base.name if base else cfg['feature_key']),
        'description': cfg.get('description') or (base.description if base else ''),
        'icon': cfg.get('icon_name') or (base.icon if base else 'Star'),
        'tier': tier,
        'status': status,
        'visibility': VISIBILITY_BY_TIER[tier],
        'release_date': cfg.get('release_date') or cfg.get('release_quarter') or (base.release_date if base else None),
        'page': cfg.get('page_url') or (base.page if base else None),
        'visible_to_users': bool(cfg.get('visible_to_users')),
        'sort_order': cfg.get('sort_order') or 0,
    }
    if base is not None:
        return replace(base, **fields)
    return Feature(key=cfg['feature_key'], **fields)


def reconcile_features(registry: Mapping[str, Feature], configs: Iterable[dict]) -> Mapping[str, Feature]:
    """New registry with stored FeatureConfig overrides applied.

    Configs for keys the registry does not know become new features.
    """
    merged = dict(registry)
    for cfg in configs:
        key = cfg.get('feature_key')
        if not key:
            continue
        feature = _feature_from_config(cfg, registry.get(key))
        if feature is not None:
            merged[key] = feature
    ordered = sorted(merged.values(), key=lambda f: f.sort_order)
    return MappingProxyType({f.key: f for f in ordered})


def clean_config_payload(changes: dict) -> dict:
    return {k: changes[k] for k in EDITABLE_FIELDS if k in changes}


def update_feature_config(store, config_id: str, changes: dict) -> List[dict]:
    """Write a config change, then re-read the collection as the source of truth."""
    payload = clean_config_payload(changes)
    if not payload:
        raise ValueError('No editable fields in update')
    store.update(CONFIG_COLLECTION, config_id, payload)
    return load_feature_configs(store)


def toggle_feature_visibility(store, config: dict) -> List[dict]:
    return update_feature_config(store, config['id'],
                                 {'visible_to_users': not config.get('visible_to_users')})


def delete_feature_config(store, config_id: str) -> List[dict]:
    store.delete(CONFIG_COLLECTION, config_id)
    return load_feature_configs(store)
