"""
Creator Financials - Web API
Flask app serving financial statements (JSON, CSV, Excel, printable HTML),
payout requests and admin payout actions, role dashboards and the feature hub.
"""

import io
import logging
import os
from datetime import datetime

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
_log_dir = os.path.dirname(os.path.abspath(__file__))
_log_handlers = [logging.StreamHandler()]
# Only add file handler when filesystem is writable (local dev, not a managed DB deployment)
if not os.getenv('DB_HOST'):
    try:
        _log_handlers.append(logging.FileHandler(os.path.join(_log_dir, 'app.log'), encoding='utf-8'))
    except OSError:
        pass
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S',
    handlers=_log_handlers,
)
log = logging.getLogger('financials')

from dotenv import load_dotenv
load_dotenv()

from flask import Flask, jsonify, make_response, render_template_string, request, send_file

import features as feature_hub
import storage
from dashboards import ROLE_DASHBOARDS
from entity_store import RecordNotFound, create_store_from_env
from exporter import (ExportError, statement_filename, statement_to_csv, statement_to_excel,
                      statement_to_html)
from payouts import (PayoutTransitionError, PayoutValidationError, approve_payout,
                     process_payout, reject_payout, submit_payout_request)
from periods import PERIOD_OPTIONS
from statement import StatementError, load_statement

app = Flask(__name__)
app.secret_key = os.getenv('FLASK_SECRET_KEY', os.urandom(24).hex())


def create_app(store=None, registry=None):
    """Inject the entity store and feature registry. Missing pieces come from the environment."""
    app.config['ENTITY_STORE'] = store if store is not None else create_store_from_env()
    app.config['FEATURE_REGISTRY'] = (registry if registry is not None
                                      else feature_hub.build_feature_registry())
    app.config['GCS_OK'] = storage.init_gcs()
    return app


def _store():
    if app.config.get('ENTITY_STORE') is None:
        create_app()
    return app.config['ENTITY_STORE']


def _registry():
    if app.config.get('FEATURE_REGISTRY') is None:
        create_app()
    return app.config['FEATURE_REGISTRY']


@app.after_request
def _no_cache(response):
    """Disable caching for HTML responses."""
    if 'text/html' in response.content_type:
        response.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
    return response


@app.errorhandler(404)
def _not_found(e):
    if request.path.startswith('/api/'):
        return jsonify(error='Not found'), 404
    return '<h1>Not Found</h1>', 404


@app.errorhandler(500)
def _internal_error(e):
    log.error("500 Internal Server Error: %s %s — %s", request.method, request.path, e)
    if request.path.startswith('/api/'):
        return jsonify(error='Internal server error', message=str(e)), 500
    return '<h1>Internal Server Error</h1><p>Something went wrong. Check the logs for details.</p>', 500


# ---------------------------------------------------------------------------
# Statements
# ---------------------------------------------------------------------------

def _statement_args():
    return request.args.get('period', 'current_month'), request.args.get('name', '')


@app.route('/api/periods')
def api_periods():
    return jsonify([{'value': value, 'label': label} for value, label in PERIOD_OPTIONS])


@app.route('/api/statements/<entity_type>/<entity_id>')
def api_statement(entity_type, entity_id):
    period, name = _statement_args()
    try:
        statement = load_statement(_store(), entity_type, entity_id, period, entity_name=name)
    except StatementError as e:
        return jsonify(error=str(e)), 400
    except Exception as e:
        log.error("Error loading financial statement for %s/%s: %s",
                  entity_type, entity_id, e, exc_info=True)
        return jsonify(error='Failed to load financial statement'), 500
    return jsonify(statement.to_dict())


@app.route('/statements/<entity_type>/<entity_id>/download/<fmt>')
def download_statement(entity_type, entity_id, fmt):
    """CSV / Excel attachment, or the printable HTML statement."""
    if fmt not in ('csv', 'xlsx', 'html'):
        return 'Unknown export format', 404

    period, name = _statement_args()
    statement = None
    try:
        statement = load_statement(_store(), entity_type, entity_id, period, entity_name=name)
    except StatementError as e:
        return jsonify(error=str(e)), 400
    except Exception as e:
        log.error("Error loading financial statement for %s/%s: %s",
                  entity_type, entity_id, e, exc_info=True)

    try:
        if fmt == 'csv':
            content = statement_to_csv(statement)
        elif fmt == 'xlsx':
            buf = io.BytesIO()
            statement_to_excel(statement, buf)
            content = buf.getvalue()
        else:
            content = statement_to_html(statement)
    except ExportError as e:
        return jsonify(error=str(e)), 404

    filename = statement_filename(statement.entity_name, fmt)
    storage.archive_export(entity_type, entity_id, filename, content)

    if fmt == 'html':
        return make_response(content, 200, {'Content-Type': 'text/html; charset=utf-8'})
    if fmt == 'csv':
        response = make_response(content)
        response.headers['Content-Type'] = 'text/csv; charset=utf-8'
        response.headers['Content-Disposition'] = f'attachment; filename="{filename}"'
        return response
    return send_file(
        io.BytesIO(content), as_attachment=True, download_name=filename,
        mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet',
    )


@app.route('/api/admin/exports/<entity_type>/<entity_id>')
def api_list_exports(entity_type, entity_id):
    """Archived statement files for one entity (empty when GCS is off)."""
    return jsonify(storage.list_entity_exports(entity_type, entity_id))


@app.route('/api/admin/exports/<path:gcs_path>', methods=['DELETE'])
def api_delete_export(gcs_path):
    if not gcs_path.startswith('statements/'):
        return jsonify(error='Not a statement archive path'), 400
    if not storage.delete_blob(gcs_path):
        return jsonify(error='Archived export not found'), 404
    return jsonify(deleted=gcs_path)


# ---------------------------------------------------------------------------
# Payouts
# ---------------------------------------------------------------------------

@app.route('/api/payouts/<entity_type>/<entity_id>', methods=['POST'])
def api_request_payout(entity_type, entity_id):
    """Submit a payout request against the entity's all-time available balance."""
    data = request.get_json(silent=True) or {}
    store = _store()
    try:
        balance = load_statement(store, entity_type, entity_id, 'all_time').summary.available_balance
        record = submit_payout_request(store, entity_type, entity_id, data, balance,
                                       user_id=data.get('user_id'))
    except StatementError as e:
        return jsonify(error=str(e)), 400
    except PayoutValidationError as e:
        return jsonify(error=str(e)), 400
    return jsonify(record), 201


@app.route('/api/admin/payouts/<payout_id>/<action>', methods=['POST'])
def api_payout_action(payout_id, action):
    data = request.get_json(silent=True) or {}
    store = _store()
    try:
        if action == 'approve':
            record = approve_payout(store, payout_id, data.get('admin_notes', ''))
        elif action == 'reject':
            record = reject_payout(store, payout_id, data.get('reason') or data.get('admin_notes', ''))
        elif action == 'process':
            record = process_payout(store, payout_id, data.get('transaction_reference', ''),
                                    admin_notes=data.get('admin_notes', ''),
                                    processed_by=data.get('processed_by'))
        else:
            return jsonify(error=f'Unknown action: {action}'), 404
    except RecordNotFound:
        return jsonify(error='Payout request not found'), 404
    except PayoutValidationError as e:
        return jsonify(error=str(e)), 400
    except PayoutTransitionError as e:
        return jsonify(error=str(e)), 409
    return jsonify(record)


# ---------------------------------------------------------------------------
# Dashboards
# ---------------------------------------------------------------------------

@app.route('/api/dashboards/<role>/<entity_id>')
def api_dashboard(role, entity_id):
    builder = ROLE_DASHBOARDS.get(role)
    if builder is None:
        return jsonify(error=f'Unknown dashboard: {role}'), 404
    try:
        stats = builder(_store(), entity_id, now=datetime.now())
    except Exception as e:
        log.error("Error loading %s dashboard for %s: %s", role, entity_id, e, exc_info=True)
        return jsonify(error='Failed to load dashboard data'), 500
    return jsonify(stats)


# ---------------------------------------------------------------------------
# Feature hub
# ---------------------------------------------------------------------------

def _current_registry():
    """Startup registry with stored FeatureConfig overrides merged in."""
    registry = _registry()
    try:
        configs = feature_hub.load_feature_configs(_store())
    except Exception as e:
        log.warning("Could not load feature configs, using registry defaults: %s", e)
        return registry
    return feature_hub.reconcile_features(registry, configs) if configs else registry


def _feature_views(tier, show_all):
    registry = _current_registry()
    features = (feature_hub.visible_features(registry, tier, show_all=True) if show_all
                else [f for f in registry.values() if f.visible_to_users])
    return [feature_hub.resolve_feature_view(f, tier) for f in features]


@app.route('/api/features')
def api_features():
    tier = request.args.get('tier', 'basic')
    show_all = request.args.get('all') in ('1', 'true')
    return jsonify([v.to_dict() for v in _feature_views(tier, show_all)])


@app.route('/api/features/<key>')
def api_feature(key):
    feature = feature_hub.get_feature(_current_registry(), key)
    if feature is None:
        return jsonify(error=f'Unknown feature: {key}'), 404
    return jsonify(feature_hub.resolve_feature_view(feature, request.args.get('tier', 'basic')).to_dict())


FEATURES_PAGE = """<!DOCTYPE html>
<html><head><meta charset="utf-8"><title>Feature Hub</title></head>
<body>
<h1>Feature Hub <small>({{ tier }})</small></h1>
<div class="feature-grid">
{% for card in cards %}{{ card|safe }}
{% else %}<p>No features available.</p>{% endfor %}
</div>
</body></html>
"""


@app.route('/features')
def features_page():
    tier = request.args.get('tier', 'basic')
    cards = [feature_hub.render_feature_card(v) for v in _feature_views(tier, False)]
    return render_template_string(FEATURES_PAGE, tier=tier, cards=cards)


@app.route('/api/admin/features/seed', methods=['POST'])
def api_seed_features():
    configs = feature_hub.seed_feature_configs(_store(), _registry())
    return jsonify(configs)


@app.route('/api/admin/features/summary')
def api_feature_summary():
    """Feature counts by status and by tier, stored overrides applied."""
    registry = _current_registry()
    return jsonify(
        total=len(registry),
        by_status=feature_hub.status_counts(registry),
        by_tier={tier: len(feature_hub.features_by_tier(registry, tier)) for tier in feature_hub.TIERS},
    )


@app.route('/api/admin/features/<config_id>/toggle', methods=['POST'])
def api_toggle_feature(config_id):
    store = _store()
    try:
        config = store.get(feature_hub.CONFIG_COLLECTION, config_id)
        configs = feature_hub.toggle_feature_visibility(store, config)
    except RecordNotFound:
        return jsonify(error='Feature config not found'), 404
    return jsonify(configs)


@app.route('/api/admin/features/<config_id>', methods=['PATCH', 'DELETE'])
def api_edit_feature(config_id):
    store = _store()
    try:
        if request.method == 'DELETE':
            configs = feature_hub.delete_feature_config(store, config_id)
        else:
            configs = feature_hub.update_feature_config(store, config_id,
                                                        request.get_json(silent=True) or {})
    except RecordNotFound:
        return jsonify(error='Feature config not found'), 404
    except ValueError as e:
        return jsonify(error=str(e)), 400
    return jsonify(configs)


if __name__ == '__main__':
    create_app()
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', '5000')), debug=False)
