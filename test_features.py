"""Feature registry, tagged views, card rendering and FeatureConfig reconciliation."""

import pytest

from entity_store import InMemoryEntityStore
from features import (CONFIG_COLLECTION, DEFAULT_FEATURES, Feature, FeatureView,
                      build_feature_registry, delete_feature_config, features_by_tier,
                      get_feature, reconcile_features, render_feature_card,
                      resolve_feature_view, seed_feature_configs, status_counts,
                      toggle_feature_visibility, update_feature_config, visible_features)


@pytest.fixture
def registry():
    return build_feature_registry()


class TestRegistry:

    def test_immutable(self, registry):
        with pytest.raises(TypeError):
            registry['new'] = DEFAULT_FEATURES[0]
        with pytest.raises(Exception):
            registry['general_chat_access'].status = 'placeholder'

    def test_duplicate_keys_rejected(self):
        with pytest.raises(ValueError, match='Duplicate'):
            build_feature_registry([DEFAULT_FEATURES[0], DEFAULT_FEATURES[0]])

    def test_lookup_helpers(self, registry):
        assert len(registry) == len(DEFAULT_FEATURES)
        assert get_feature(registry, 'premium_polls').page == 'Polls'
        assert get_feature(registry, 'nope') is None
        assert {f.tier for f in features_by_tier(registry, 'vip')} == {'vip'}
        assert sum(status_counts(registry).values()) == len(registry)

    def test_visible_features_by_tier(self, registry):
        basic = visible_features(registry, 'basic')
        assert basic and all(f.tier == 'basic' for f in basic)
        vip = visible_features(registry, 'vip')
        assert len(vip) == len(registry)
        assert len(visible_features(registry, 'basic', show_all=True)) == len(registry)


class TestFeatureViews:

    def test_locked_for_lower_tier(self, registry):
        view = resolve_feature_view(registry['premium_polls'], 'basic')
        assert view.kind == 'locked'
        assert view.required_plan == 'Premium'
        assert view.page is None

    def test_placeholder_carries_release_date(self, registry):
        view = resolve_feature_view(registry['advanced_analytics'], 'vip')
        assert view.kind == 'placeholder'
        assert view.release_date == 'Q3 2025'

    def test_partial_is_live(self, registry):
        view = resolve_feature_view(registry['webinar_access'], 'premium')
        assert view.kind == 'live'
        assert view.page == 'Events'

    def test_render_switch(self, registry):
        locked = render_feature_card(resolve_feature_view(registry['custom_alerts'], 'basic'))
        assert 'VIP Plan Required' in locked
        assert 'Upgrade Now' in locked
        placeholder = render_feature_card(resolve_feature_view(registry['priority_support'], 'premium'))
        assert 'Coming Soon (Est. Q2 2025)' in placeholder
        live = render_feature_card(resolve_feature_view(registry['premium_events'], 'vip'))
        assert 'href="/Events"' in live

    def test_render_escapes(self):
        feature = Feature(key='x', name='<img src=x>', description='a & b', icon='Star',
                          tier='basic', status='live', visibility=('basic',))
        html = render_feature_card(resolve_feature_view(feature, 'basic'))
        assert '&lt;img src=x&gt;' in html
        assert 'a &amp; b' in html

    def test_unknown_kind(self):
        view = FeatureView(kind='beta', key='x', name='x', description='', icon='', tier='basic')
        with pytest.raises(ValueError):
            render_feature_card(view)


class CountingStore(InMemoryEntityStore):

    def __init__(self, data=None):
        super().__init__(data)
        self.list_calls = 0

    def list(self, collection, sort=None):
        self.list_calls += 1
        return super().list(collection, sort=sort)


class TestFeatureConfigs:

    def test_seed_once(self, registry):
        store = InMemoryEntityStore()
        configs = seed_feature_configs(store, registry)
        assert len(configs) == len(registry)
        assert not any(c['visible_to_users'] for c in configs)
        assert len(seed_feature_configs(store, registry)) == len(registry)

    def test_reconcile_applies_overrides(self, registry):
        merged = reconcile_features(registry, [
            {'feature_key': 'premium_chat_rooms', 'status': 'live', 'visible_to_users': True,
             'page_url': 'PremiumChat', 'sort_order': 1},
            {'feature_key': 'general_chat_access', 'tier': 'gold', 'visible_to_users': False},
            {'feature_key': 'brand_new', 'feature_name': 'Brand New', 'tier': 'vip',
             'status': 'placeholder', 'visible_to_users': True, 'sort_order': 2},
            {'feature_name': 'no key'},
        ])
        assert merged['premium_chat_rooms'].status == 'live'
        assert merged['premium_chat_rooms'].page == 'PremiumChat'
        assert merged['general_chat_access'].tier == 'basic'
        assert merged['general_chat_access'].visible_to_users is False
        assert merged['brand_new'].visibility == ('vip',)
        assert list(merged)[-2:] == ['premium_chat_rooms', 'brand_new']
        # source registry untouched
        assert registry['premium_chat_rooms'].status == 'placeholder'
        assert 'brand_new' not in registry
        with pytest.raises(TypeError):
            merged['x'] = None

    def test_reconcile_skips_invalid_new_feature(self, registry):
        merged = reconcile_features(registry, [{'feature_key': 'odd', 'tier': 'gold',
                                                'status': 'live'}])
        assert 'odd' not in merged

    def test_update_refetches(self, registry):
        store = CountingStore()
        seed_feature_configs(store, registry)
        target = store.filter(CONFIG_COLLECTION, {'feature_key': 'premium_polls'})[0]
        before = store.list_calls

        configs = update_feature_config(store, target['id'], {'visible_to_users': True,
                                                              'created_date': 'ignored'})
        assert store.list_calls == before + 1
        updated = next(c for c in configs if c['id'] == target['id'])
        assert updated['visible_to_users'] is True
        assert updated['created_date'] != 'ignored'

    def test_update_without_editable_fields(self, registry):
        store = InMemoryEntityStore()
        with pytest.raises(ValueError):
            update_feature_config(store, 'x', {'id': 'y'})

    def test_toggle_and_delete(self, registry):
        store = InMemoryEntityStore()
        [first] = seed_feature_configs(store, registry)[:1]
        configs = toggle_feature_visibility(store, first)
        assert next(c for c in configs if c['id'] == first['id'])['visible_to_users'] is True

        remaining = delete_feature_config(store, first['id'])
        assert len(remaining) == len(registry) - 1
        assert first['id'] not in {c['id'] for c in remaining}
