from flask import Blueprint, request, jsonify
from routes.auth import require_user
from services.wishlist import WishlistService

wishlist_bp = Blueprint("wishlist", __name__)


@wishlist_bp.route("/wishlist", methods=["GET"])
@require_user
def get_wishlist(user_id, db):
    return jsonify({"courses": WishlistService(db).list_courses(user_id)}), 200


@wishlist_bp.route("/wishlist/bulk-remove", methods=["POST"])
@require_user
def bulk_remove_from_wishlist(user_id, db):
    """
    Removes several courses at once.
    ---
    Input (JSON):
        - course_ids (list[str])
    Output (200):
        - removed_count (int), courses (list)
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get("course_ids"), list):
        return jsonify({"error": "course_ids must be an array"}), 400
    return jsonify(WishlistService(db).bulk_remove(user_id, data["course_ids"])), 200


@wishlist_bp.route("/wishlist/check/<course_id>", methods=["GET"])
@require_user
def check_wishlist(user_id, db, course_id):
    return jsonify({
        "course_id": course_id,
        "in_wishlist": WishlistService(db).check(user_id, course_id),
    }), 200


@wishlist_bp.route("/wishlist/<course_id>", methods=["POST"])
@require_user
def add_to_wishlist(user_id, db, course_id):
    return jsonify({"courses": WishlistService(db).add(user_id, course_id)}), 200


@wishlist_bp.route("/wishlist/<course_id>", methods=["DELETE"])
@require_user
def remove_from_wishlist(user_id, db, course_id):
    return jsonify({"courses": WishlistService(db).remove(user_id, course_id)}), 200
