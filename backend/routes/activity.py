from flask import Blueprint, jsonify, request
from db import get_db
from schema import ActivityLog
from routes.auth import require_role

activity_bp = Blueprint("activity", __name__)


@activity_bp.route("/activity-logs", methods=["GET"])
@require_role("admin")
def list_activity():
    """
    Returns administrative activity, newest first.
    ---
    Input (Query Params):
        - entity_type (str, optional): e.g. 'coupon'
        - entity_id (str, optional)
        - limit (int, optional): Defaults to 50, capped at 500
    Output (200):
        - logs (list): Activity entries
    """
    try:
        limit = min(int(request.args.get("limit", 50)), 500)
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400

    db = next(get_db())
    try:
        query = db.query(ActivityLog)
        if request.args.get("entity_type"):
            query = query.filter_by(entity_type=request.args["entity_type"])
        if request.args.get("entity_id"):
            query = query.filter_by(entity_id=request.args["entity_id"])

        logs = query.order_by(ActivityLog.timestamp.desc()).limit(limit).all()
        return jsonify({"logs": [entry.to_dict() for entry in logs]}), 200
    finally:
        db.close()
