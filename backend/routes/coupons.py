import logging
from flask import Blueprint, request, jsonify, g
from db import get_db
from routes.auth import require_role, require_user
from services.cart import CartPricer
from services.coupons import CouponStore, require_ids
from services.errors import ValidationFailure

logger = logging.getLogger(__name__)

coupons_bp = Blueprint("coupons", __name__)


def _int_arg(name, default):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailure(f"{name} must be an integer")


def _open_db():
    return next(get_db())


@coupons_bp.route("/coupons/validate", methods=["POST"])
@require_user
def validate_coupon(user_id, db):
    """
    Checks a coupon code against a purchase amount without consuming it.
    ---
    Input (JSON):
        - code (str): Coupon code, case-insensitive
        - amount (number): Purchase amount
    Output (200):
        - valid (bool), discount (number), reason (str|null), message (str|null), coupon (obj|null)
    Errors:
        - 400: Missing code or invalid amount
    """
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not code:
        return jsonify({"error": "code is required"}), 400
    if "amount" not in data:
        return jsonify({"error": "amount is required"}), 400

    result = CouponStore(db).validate(code, data.get("amount"))
    return jsonify(result.to_dict()), 200


@coupons_bp.route("/coupons/<code>/redeem", methods=["POST"])
@require_role("admin")
def redeem_coupon(code):
    """
    Records one use of a coupon. Called by checkout once payment succeeds.
    ---
    Output (200):
        - coupon (obj): The coupon with its incremented used_count
    Errors:
        - 404: Coupon not found
        - 400: Usage limit reached
    """
    db = _open_db()
    try:
        coupon = CouponStore(db).apply_coupon(code, actor=g.user_id)
        if coupon is None:
            return jsonify({"error": "Coupon not found"}), 404
        return jsonify(coupon.to_dict()), 200
    finally:
        db.close()


@coupons_bp.route("/coupons", methods=["POST"])
@require_role("admin")
def create_coupon():
    """
    Creates a coupon.
    ---
    Input (JSON):
        - code (str): 3-50 chars of [A-Z0-9_-], stored upper-cased
        - discount_type (str): 'percentage' or 'fixed'
        - value (number): > 0, at most 100 for percentages
        - expires_at (str, optional): ISO 8601 timestamp in the future
        - max_uses (int, optional): 0 means unlimited
        - min_purchase_amount (number, optional)
        - is_active (bool, optional)
    Output (201):
        - The created coupon
    Errors:
        - 400: Invalid payload
        - 409: Duplicate code
    """
    data = request.get_json(silent=True) or {}
    db = _open_db()
    try:
        coupon = CouponStore(db).create(data, actor=g.user_id)
        return jsonify(coupon.to_dict()), 201
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@coupons_bp.route("/coupons", methods=["GET"])
@require_role("admin")
def list_coupons():
    """
    Lists coupons newest first.
    ---
    Input (Query Params):
        - page (int, optional): Defaults to 1
        - limit (int, optional): Defaults to 10
        - search (str, optional): Case-insensitive substring of the code
    """
    page = _int_arg("page", 1)
    limit = _int_arg("limit", 10)
    search = request.args.get("search")

    db = _open_db()
    try:
        result = CouponStore(db).find_all(page=page, limit=limit, search=search)
        result["data"] = [c.to_dict() for c in result["data"]]
        return jsonify(result), 200
    finally:
        db.close()


@coupons_bp.route("/coupons/analytics", methods=["GET"])
@require_role("admin")
def coupon_analytics():
    db = _open_db()
    try:
        stats = CouponStore(db).get_analytics()
        stats["most_used"] = [c.to_dict() for c in stats["most_used"]]
        stats["recent"] = [c.to_dict() for c in stats["recent"]]
        return jsonify(stats), 200
    finally:
        db.close()


@coupons_bp.route("/coupons/bulk-delete", methods=["POST"])
@require_role("admin")
def bulk_delete_coupons():
    data = request.get_json(silent=True) or {}
    ids = require_ids(data.get("ids"))

    db = _open_db()
    try:
        CartPricer(db).detach_coupons(ids)
        return jsonify(CouponStore(db).bulk_delete(ids, actor=g.user_id)), 200
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@coupons_bp.route("/coupons/bulk-toggle", methods=["POST"])
@require_role("admin")
def bulk_toggle_coupons():
    data = request.get_json(silent=True) or {}
    db = _open_db()
    try:
        return jsonify(CouponStore(db).bulk_toggle_status(data.get("ids"), actor=g.user_id)), 200
    finally:
        db.close()


@coupons_bp.route("/coupons/<coupon_id>", methods=["GET"])
@require_role("admin")
def get_coupon(coupon_id):
    db = _open_db()
    try:
        return jsonify(CouponStore(db).find_one(coupon_id).to_dict()), 200
    finally:
        db.close()


@coupons_bp.route("/coupons/<coupon_id>", methods=["PUT"])
@require_role("admin")
def update_coupon(coupon_id):
    """
    Partially updates a coupon. used_count cannot be set through this endpoint.
    ---
    Errors:
        - 400: Invalid payload
        - 404: Coupon not found
        - 409: Code already taken by another coupon
    """
    data = request.get_json(silent=True) or {}
    db = _open_db()
    try:
        coupon = CouponStore(db).update(coupon_id, data, actor=g.user_id)
        return jsonify(coupon.to_dict()), 200
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@coupons_bp.route("/coupons/<coupon_id>/toggle-status", methods=["PATCH"])
@require_role("admin")
def toggle_coupon_status(coupon_id):
    db = _open_db()
    try:
        coupon = CouponStore(db).toggle_status(coupon_id, actor=g.user_id)
        return jsonify(coupon.to_dict()), 200
    finally:
        db.close()


@coupons_bp.route("/coupons/<coupon_id>", methods=["DELETE"])
@require_role("admin")
def delete_coupon(coupon_id):
    """
    Deletes a coupon after detaching it from every cart that references it.
    Prefer toggling is_active for coupons that appear on past orders.
    """
    db = _open_db()
    try:
        store = CouponStore(db)
        store.find_one(coupon_id)
        CartPricer(db, coupons=store).detach_coupons([coupon_id])
        return jsonify(store.remove(coupon_id, actor=g.user_id)), 200
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
