from flask import Blueprint, request, jsonify
from debatetab.models import ActivityLog
from debatetab.auth_utils import admin_required
from debatetab.services.tabulation import winners

dashboard_bp = Blueprint('dashboard', __name__)

_MAX_LIMIT = 200
_MIN_LIMIT = 1


@dashboard_bp.route('/winners', methods=['GET'])
def get_winners():
    return jsonify(winners())


@dashboard_bp.route('/logs', methods=['GET'])
@admin_required
def get_logs():
    limit = request.args.get('limit', 50, type=int)
    limit = max(_MIN_LIMIT, min(limit or 50, _MAX_LIMIT))
    logs = ActivityLog.query.order_by(
        ActivityLog.created_at.desc(),
        ActivityLog.id.desc(),
    ).limit(limit).all()
    return jsonify({'logs': [log.to_dict() for log in logs]})
