"""Flask routes exercised through the test client against an in-memory store."""

import io

import openpyxl
import pytest

import app as app_module
from entity_store import InMemoryEntityStore
from features import build_feature_registry


def _records():
    return {
        'Course': [{'id': 'c1', 'influencer_id': 'fin1', 'title': 'Options 101'}],
        'RevenueTransaction': [
            {'influencer_id': 'fin1', 'course_id': 'c1', 'gross_amount': 1000,
             'platform_commission': 100, 'influencer_payout': 900,
             'created_date': '2024-03-05T10:00:00'},
            {'influencer_id': 'fin1', 'course_id': 'c1', 'gross_amount': 2000,
             'platform_commission': 200, 'influencer_payout': 1800,
             'created_date': '2024-03-10T10:00:00'},
        ],
        'PayoutRequest': [
            {'id': 'p1', 'user_id': 'fin1', 'entity_id': 'fin1', 'entity_type': 'finfluencer',
             'status': 'pending', 'requested_amount': 500, 'created_date': '2024-03-14T09:00:00'},
        ],
        'AdvisorSubscription': [{'advisor_id': 'adv1', 'status': 'active'}],
    }


@pytest.fixture
def store():
    return InMemoryEntityStore(_records())


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.delenv('GCS_BUCKET', raising=False)
    flask_app = app_module.create_app(store=store, registry=build_feature_registry())
    flask_app.config['TESTING'] = True
    return flask_app.test_client()


@pytest.fixture
def archived(monkeypatch):
    calls = []
    monkeypatch.setattr(app_module.storage, 'archive_export',
                        lambda *args: calls.append(args) or None)
    return calls


class TestStatementRoutes:

    def test_periods(self, client):
        data = client.get('/api/periods').get_json()
        assert data[0] == {'value': 'current_month', 'label': 'Current Month'}
        assert len(data) == 6

    def test_statement_json(self, client):
        resp = client.get('/api/statements/finfluencer/fin1?period=all_time&name=Priya')
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['entity_name'] == 'Priya'
        assert data['summary']['net_earnings'] == 2700
        assert data['summary']['pending_payouts'] == 500
        assert data['summary']['available_balance'] == 2200
        assert len(data['earnings']) == 2

    def test_unknown_entity_type(self, client):
        resp = client.get('/api/statements/sponsor/x')
        assert resp.status_code == 400
        assert 'Unsupported entity type' in resp.get_json()['error']

    def test_unexpected_error_is_generic(self, client, monkeypatch):
        def boom(*args, **kwargs):
            raise RuntimeError('db exploded')
        monkeypatch.setattr(app_module, 'load_statement', boom)
        resp = client.get('/api/statements/finfluencer/fin1')
        assert resp.status_code == 500
        assert resp.get_json() == {'error': 'Failed to load financial statement'}

    def test_csv_download(self, client, archived):
        resp = client.get('/statements/finfluencer/fin1/download/csv?period=all_time&name=Priya')
        assert resp.status_code == 200
        assert resp.headers['Content-Type'].startswith('text/csv')
        assert 'attachment; filename="financial_statement_Priya_' in resp.headers['Content-Disposition']
        body = resp.get_data(as_text=True)
        assert body.startswith('Financial Statement - Priya\nPeriod: All Time\n')
        assert 'Net Earnings,2700.00' in body
        assert archived[0][:2] == ('finfluencer', 'fin1')
        assert archived[0][2].endswith('.csv')

    def test_xlsx_download(self, client, archived):
        resp = client.get('/statements/finfluencer/fin1/download/xlsx?period=all_time')
        assert resp.status_code == 200
        wb = openpyxl.load_workbook(io.BytesIO(resp.data))
        assert wb.sheetnames == ['Summary', 'Earnings', 'Payouts']
        assert archived[0][2].endswith('.xlsx')

    def test_html_download_is_inline(self, client, archived):
        resp = client.get('/statements/finfluencer/fin1/download/html?period=all_time')
        assert resp.status_code == 200
        assert resp.headers['Content-Type'].startswith('text/html')
        assert 'no-store' in resp.headers['Cache-Control']
        assert 'Print / Save as PDF' in resp.get_data(as_text=True)
        assert len(archived) == 1
        assert archived[0][:2] == ('finfluencer', 'fin1')
        assert archived[0][2].endswith('.html')
        assert 'Print / Save as PDF' in archived[0][3]

    def test_unknown_format(self, client):
        assert client.get('/statements/finfluencer/fin1/download/pdf').status_code == 404

    def test_failed_statement_gives_no_file(self, client, monkeypatch, archived):
        def boom(*args, **kwargs):
            raise RuntimeError('db exploded')
        monkeypatch.setattr(app_module, 'load_statement', boom)
        resp = client.get('/statements/finfluencer/fin1/download/csv')
        assert resp.status_code == 404
        assert resp.get_json() == {'error': 'No data to download'}
        assert archived == []


class TestExportArchiveRoutes:

    def test_list_exports(self, client, monkeypatch):
        monkeypatch.setattr(app_module.storage, 'list_entity_exports',
                            lambda t, i: [f'statements/{t}/{i}/financial_statement_Priya_2024-03-20.csv'])
        resp = client.get('/api/admin/exports/finfluencer/fin1')
        assert resp.status_code == 200
        assert resp.get_json() == ['statements/finfluencer/fin1/financial_statement_Priya_2024-03-20.csv']

    def test_list_empty_without_archive(self, client, monkeypatch):
        monkeypatch.setattr(app_module.storage, '_bucket', None)
        assert client.get('/api/admin/exports/finfluencer/fin1').get_json() == []

    def test_delete_export(self, client, monkeypatch):
        deleted = []
        monkeypatch.setattr(app_module.storage, 'delete_blob',
                            lambda path: deleted.append(path) or True)
        resp = client.delete('/api/admin/exports/statements/finfluencer/fin1/s.csv')
        assert resp.status_code == 200
        assert resp.get_json() == {'deleted': 'statements/finfluencer/fin1/s.csv'}
        assert deleted == ['statements/finfluencer/fin1/s.csv']

    def test_delete_missing_or_foreign_path(self, client, monkeypatch):
        monkeypatch.setattr(app_module.storage, 'delete_blob', lambda path: False)
        assert client.delete('/api/admin/exports/statements/finfluencer/fin1/gone.csv').status_code == 404
        assert client.delete('/api/admin/exports/avatars/u1.png').status_code == 400


class TestPayoutRoutes:

    def test_request_payout(self, client, store):
        resp = client.post('/api/payouts/finfluencer/fin1', json={
            'requested_amount': 1500, 'payout_method': 'upi', 'upi_id': 'priya@upi'})
        assert resp.status_code == 201
        rec = resp.get_json()
        assert rec['status'] == 'pending'
        assert rec['available_balance'] == 2200
        assert len(store.filter('PayoutRequest', {'entity_id': 'fin1'})) == 2

    def test_request_over_balance(self, client):
        resp = client.post('/api/payouts/finfluencer/fin1', json={
            'requested_amount': 2200.01, 'payout_method': 'upi', 'upi_id': 'priya@upi'})
        assert resp.status_code == 400
        assert resp.get_json()['error'] == 'Amount exceeds available balance'

    def test_request_unknown_entity_type(self, client):
        assert client.post('/api/payouts/sponsor/x', json={}).status_code == 400

    def test_admin_workflow(self, client, store):
        resp = client.post('/api/admin/payouts/p1/approve', json={'admin_notes': 'ok'})
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'approved'

        assert client.post('/api/admin/payouts/p1/approve').status_code == 409
        assert client.post('/api/admin/payouts/p1/process', json={}).status_code == 400

        resp = client.post('/api/admin/payouts/p1/process',
                           json={'transaction_reference': 'UTR42'})
        assert resp.get_json()['status'] == 'processed'
        assert len(store.list('Notification')) == 2

    def test_reject_requires_reason(self, client):
        assert client.post('/api/admin/payouts/p1/reject', json={}).status_code == 400
        resp = client.post('/api/admin/payouts/p1/reject', json={'reason': 'KYC pending'})
        assert resp.get_json()['status'] == 'rejected'

    def test_unknown_payout_and_action(self, client):
        assert client.post('/api/admin/payouts/missing/approve').status_code == 404
        assert client.post('/api/admin/payouts/p1/refund').status_code == 404


class TestDashboardRoutes:

    def test_advisor(self, client):
        resp = client.get('/api/dashboards/advisor/adv1')
        assert resp.status_code == 200
        assert resp.get_json()['active_subscribers'] == 1

    def test_finfluencer(self, client):
        data = client.get('/api/dashboards/finfluencer/fin1').get_json()
        assert data['course_revenue'] == 2700
        assert data['available_balance'] == 2200

    def test_unknown_role(self, client):
        assert client.get('/api/dashboards/sponsor/x').status_code == 404


class TestFeatureRoutes:

    def test_defaults_without_configs(self, client):
        views = client.get('/api/features?tier=basic').get_json()
        kinds = {v['key']: v['kind'] for v in views}
        assert kinds['general_chat_access'] == 'live'
        assert kinds['premium_polls'] == 'locked'

    def test_features_page(self, client):
        resp = client.get('/features?tier=premium')
        assert resp.status_code == 200
        html = resp.get_data(as_text=True)
        assert 'Feature Hub' in html
        assert 'VIP Plan Required' in html
        assert 'Coming Soon' in html

    def test_seed_then_toggle(self, client, store):
        seeded = client.post('/api/admin/features/seed').get_json()
        assert len(seeded) == len(build_feature_registry())
        assert client.get('/api/features?tier=vip').get_json() == []
        assert len(client.get('/api/features?tier=vip&all=1').get_json()) == len(seeded)

        target = next(c for c in seeded if c['feature_key'] == 'premium_polls')
        resp = client.patch(f"/api/admin/features/{target['id']}", json={'visible_to_users': True})
        assert resp.status_code == 200
        views = client.get('/api/features?tier=premium').get_json()
        assert [v['key'] for v in views] == ['premium_polls']

        resp = client.delete(f"/api/admin/features/{target['id']}")
        assert len(resp.get_json()) == len(seeded) - 1

    def test_single_feature(self, client):
        resp = client.get('/api/features/premium_polls?tier=vip')
        assert resp.status_code == 200
        assert resp.get_json()['kind'] == 'live'
        assert client.get('/api/features/premium_polls').get_json()['required_plan'] == 'Premium'
        assert client.get('/api/features/nope').status_code == 404

    def test_summary(self, client):
        registry = build_feature_registry()
        data = client.get('/api/admin/features/summary').get_json()
        assert data['total'] == len(registry)
        assert sum(data['by_status'].values()) == len(registry)
        assert sum(data['by_tier'].values()) == len(registry)
        assert set(data['by_tier']) == {'basic', 'premium', 'vip'}

    def test_toggle_visibility(self, client):
        seeded = client.post('/api/admin/features/seed').get_json()
        target = next(c for c in seeded if c['feature_key'] == 'premium_polls')
        assert not target['visible_to_users']

        resp = client.post(f"/api/admin/features/{target['id']}/toggle")
        assert resp.status_code == 200
        toggled = next(c for c in resp.get_json() if c['id'] == target['id'])
        assert toggled['visible_to_users'] is True
        assert [v['key'] for v in client.get('/api/features?tier=premium').get_json()] == ['premium_polls']

        client.post(f"/api/admin/features/{target['id']}/toggle")
        assert client.get('/api/features?tier=premium').get_json() == []

    def test_toggle_missing(self, client):
        assert client.post('/api/admin/features/missing/toggle').status_code == 404

    def test_edit_errors(self, client):
        assert client.patch('/api/admin/features/missing', json={'status': 'live'}).status_code == 404
        assert client.patch('/api/admin/features/missing', json={}).status_code == 400
