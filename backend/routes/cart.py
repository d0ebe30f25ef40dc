from flask import Blueprint, request, jsonify
from routes.auth import require_user
from services.cart import CartPricer

cart_bp = Blueprint("cart", __name__)


@cart_bp.route("/cart", methods=["GET"])
@require_user
def get_cart(user_id, db):
    """
    Returns the caller's cart with catalog details for each line.
    An empty cart is returned when none has been created yet.
    """
    pricer = CartPricer(db)
    return jsonify(pricer.to_payload(pricer.get_cart(user_id), user_id)), 200


@cart_bp.route("/cart/count", methods=["GET"])
@require_user
def get_cart_count(user_id, db):
    return jsonify({"count": CartPricer(db).get_cart_count(user_id)}), 200


@cart_bp.route("/cart/items", methods=["POST"])
@require_user
def add_to_cart(user_id, db):
    """
    Adds an item to the cart, merging with an existing line of the same item.
    ---
    Input (JSON):
        - course_id | product_id | item_id (str): Item to add
        - item_type (str, optional): 'Course' or 'Product'; inferred from course_id/product_id
        - quantity (int, optional): Defaults to 1
        - unit_price (number, optional): Looked up in the catalog when omitted
    Output (200):
        - The updated cart
    Errors:
        - 400: Missing item identifier, bad quantity or price
        - 404: Item not found in the catalog
    """
    data = request.get_json(silent=True) or {}
    item_id = data.get("course_id") or data.get("product_id") or data.get("item_id")
    if not item_id:
        return jsonify({"error": "Either course_id, product_id, or item_id must be provided"}), 400

    item_type = data.get("item_type") or ("Course" if data.get("course_id") else "Product")

    pricer = CartPricer(db)
    cart = pricer.add_item(
        user_id,
        item_id,
        item_type,
        quantity=data.get("quantity", 1),
        unit_price=data.get("unit_price"),
    )
    return jsonify(pricer.to_payload(cart, user_id)), 200


@cart_bp.route("/cart/items/<item_id>", methods=["PATCH"])
@require_user
def update_cart_item(user_id, db, item_id):
    data = request.get_json(silent=True) or {}
    if "quantity" not in data:
        return jsonify({"error": "quantity is required"}), 400

    pricer = CartPricer(db)
    cart = pricer.update_item_quantity(user_id, item_id, data["quantity"])
    return jsonify(pricer.to_payload(cart, user_id)), 200


@cart_bp.route("/cart/items/<item_id>", methods=["DELETE"])
@require_user
def remove_from_cart(user_id, db, item_id):
    pricer = CartPricer(db)
    cart = pricer.remove_item(user_id, item_id)
    return jsonify(pricer.to_payload(cart, user_id)), 200


@cart_bp.route("/cart", methods=["DELETE"])
@require_user
def clear_cart(user_id, db):
    pricer = CartPricer(db)
    cart = pricer.clear_cart(user_id)
    return jsonify(pricer.to_payload(cart, user_id)), 200


@cart_bp.route("/cart/coupon", methods=["POST"])
@require_user
def apply_coupon(user_id, db):
    """
    Attaches a coupon to the cart after validating it against the subtotal.
    ---
    Input (JSON):
        - code (str): Coupon code
    Errors:
        - 400: Missing code, or coupon does not qualify (payload carries 'reason')
        - 404: Cart not found
    """
    data = request.get_json(silent=True) or {}
    code = data.get("code")
    if not code:
        return jsonify({"error": "Coupon code is required"}), 400

    pricer = CartPricer(db)
    cart = pricer.apply_coupon(user_id, code)
    return jsonify(pricer.to_payload(cart, user_id)), 200


@cart_bp.route("/cart/coupon", methods=["DELETE"])
@require_user
def remove_coupon(user_id, db):
    pricer = CartPricer(db)
    cart = pricer.remove_coupon(user_id)
    return jsonify(pricer.to_payload(cart, user_id)), 200
