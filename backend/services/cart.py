import math
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, Optional
from schema import Cart, CartItem
from utils import new_id, utcnow
from services.catalog import CatalogService, normalize_item_type
from services.coupons import CouponStore
from services.errors import BusinessRuleViolation, NotFoundError, ValidationFailure
from services.pricing import PriceQuote, quote, subtotal_of

logger = logging.getLogger(__name__)


def _require_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationFailure("Quantity must be at least 1")
    return quantity


def _require_item_id(item_id) -> str:
    if not isinstance(item_id, str) or not item_id.strip():
        raise ValidationFailure("item_id is required")
    return item_id.strip()


class CartPricer:
    """
    Owns per-user carts and keeps their derived pricing consistent.

    Every mutating operation ends with recompute() before committing, so
    subtotal, discount and total_amount always reflect the current items and
    the current state of the applied coupon.
    """
    def __init__(self, db, coupons: Optional[CouponStore] = None, catalog: Optional[CatalogService] = None):
        self.db = db
        self.coupons = coupons or CouponStore(db)
        self.catalog = catalog or CatalogService(db)

    def _find_cart(self, user_id: str) -> Optional[Cart]:
        return self.db.query(Cart).filter_by(user_id=user_id).first()

    def _require_cart(self, user_id: str) -> Cart:
        cart = self._find_cart(user_id)
        if cart is None:
            raise NotFoundError("Cart not found")
        return cart

    def recompute(self, cart: Cart, now: Optional[datetime] = None) -> PriceQuote:
        """
        Re-derives subtotal, discount and total for the cart in place.

        The applied coupon is re-fetched by id and re-validated against the new
        subtotal. If it no longer qualifies it is dropped silently and the
        discount falls to zero. Idempotent for unchanged inputs.

        Args:
            cart: Cart row to update. The caller owns the commit.
            now: Reference time for the expiry check.

        Returns:
            The PriceQuote that was written onto the cart.
        """
        coupon = self.coupons.get(cart.applied_coupon_id) if cart.applied_coupon_id else None
        result = quote(cart.items, coupon, now)

        if cart.applied_coupon_id and not result.coupon_still_valid:
            logger.info(
                f"Dropping coupon {cart.applied_coupon_id} from cart of {cart.user_id}: "
                f"{result.reason or 'coupon no longer exists'}"
            )
            cart.applied_coupon_id = None

        cart.subtotal = result.subtotal
        cart.discount = result.discount
        cart.total_amount = result.total
        cart.updated_at = utcnow()
        return result

    # ── Mutations ────────────────────────────────────────────────────────────

    def add_item(self, user_id: str, item_id: str, item_type: str, quantity: int = 1,
                 unit_price: Optional[float] = None) -> Cart:
        """
        Adds quantity units of an item, merging with an existing line of the
        same (item_id, item_type). The cart is created on first use.

        Args:
            user_id: Owner of the cart.
            item_id: Catalog identifier of the course or product.
            item_type: 'Course' or 'Product' (case-insensitive).
            quantity: Units to add, at least 1.
            unit_price: Optional price override; resolved from the catalog when omitted.

        Returns:
            The updated Cart.
        """
        item_id = _require_item_id(item_id)
        item_type = normalize_item_type(item_type)
        quantity = _require_quantity(quantity)

        if unit_price is None:
            unit_price = self.catalog.get_price(item_id, item_type)
        elif isinstance(unit_price, bool) or not isinstance(unit_price, (int, float)) \
                or not math.isfinite(unit_price) or unit_price < 0:
            raise ValidationFailure("unit_price must be a non-negative number")

        cart = self._find_cart(user_id)
        if cart is None:
            now = utcnow()
            cart = Cart(cart_id=new_id(), user_id=user_id, created_at=now, updated_at=now)
            self.db.add(cart)

        existing = next(
            (i for i in cart.items if i.item_id == item_id and i.item_type == item_type),
            None,
        )
        if existing:
            existing.quantity += quantity
        else:
            position = max((i.position for i in cart.items), default=-1) + 1
            cart.items.append(CartItem(
                cart_item_id=new_id(),
                position=position,
                item_id=item_id,
                item_type=item_type,
                unit_price=float(unit_price),
                quantity=quantity,
            ))

        self.recompute(cart)
        self.db.commit()
        return cart

    def remove_item(self, user_id: str, item_id: str) -> Cart:
        cart = self._require_cart(user_id)
        item = next((i for i in cart.items if i.item_id == item_id), None)
        if item is None:
            raise NotFoundError("Item not found in cart")

        cart.items.remove(item)
        self.recompute(cart)
        self.db.commit()
        return cart

    def update_item_quantity(self, user_id: str, item_id: str, quantity: int) -> Cart:
        quantity = _require_quantity(quantity)
        cart = self._require_cart(user_id)
        item = next((i for i in cart.items if i.item_id == item_id), None)
        if item is None:
            raise NotFoundError("Item not found in cart")

        item.quantity = quantity
        self.recompute(cart)
        self.db.commit()
        return cart

    def apply_coupon(self, user_id: str, code: str) -> Cart:
        """
        Attaches a coupon after validating it against the current subtotal.

        Attaching does not consume a use; usage is recorded at checkout.

        Raises:
            NotFoundError: The user has no cart.
            BusinessRuleViolation: The coupon does not qualify; the cart is unchanged.
        """
        cart = self._require_cart(user_id)
        result = self.coupons.validate(code, subtotal_of(cart.items))
        if not result.valid:
            raise BusinessRuleViolation(result.message, result.reason)

        cart.applied_coupon_id = result.coupon.coupon_id
        self.recompute(cart)
        self.db.commit()
        logger.info(f"Coupon {result.coupon.code} applied to cart of {user_id}")
        return cart

    def remove_coupon(self, user_id: str) -> Cart:
        cart = self._require_cart(user_id)
        cart.applied_coupon_id = None
        cart.discount = 0.0
        self.recompute(cart)
        self.db.commit()
        return cart

    def clear_cart(self, user_id: str) -> Optional[Cart]:
        cart = self._find_cart(user_id)
        if cart is None:
            return None

        cart.items.clear()
        cart.applied_coupon_id = None
        cart.subtotal = 0.0
        cart.discount = 0.0
        cart.total_amount = 0.0
        cart.updated_at = utcnow()
        self.db.commit()
        logger.info(f"Cart of {user_id} cleared")
        return cart

    def detach_coupons(self, coupon_ids: Iterable[str]) -> int:
        """
        Removes the given coupons from every cart that references them and
        re-prices those carts. Used before coupons are deleted.

        Returns:
            Number of carts touched.
        """
        ids = list(coupon_ids)
        if not ids:
            return 0
        carts = self.db.query(Cart).filter(Cart.applied_coupon_id.in_(ids)).all()
        for cart in carts:
            cart.applied_coupon_id = None
            self.recompute(cart)
        self.db.commit()
        if carts:
            logger.info(f"Detached coupon(s) {ids} from {len(carts)} cart(s)")
        return len(carts)

    # ── Queries ──────────────────────────────────────────────────────────────

    def get_cart(self, user_id: str) -> Optional[Cart]:
        return self._find_cart(user_id)

    def get_cart_count(self, user_id: str) -> int:
        cart = self._find_cart(user_id)
        if cart is None:
            return 0
        return sum(i.quantity for i in cart.items)

    def to_payload(self, cart: Optional[Cart], user_id: str) -> Dict[str, Any]:
        """
        Serializes a cart for API responses, enriching each line with catalog details.
        A missing cart renders as an empty one.
        """
        if cart is None:
            return {
                "cart_id": None,
                "user_id": user_id,
                "items": [],
                "applied_coupon": None,
                "subtotal": 0.0,
                "discount": 0.0,
                "total_amount": 0.0,
            }

        items = []
        for item in cart.items:
            details = self.catalog.describe(item.item_id, item.item_type)
            items.append({
                "item_id": item.item_id,
                "item_type": item.item_type,
                "title": details["title"] if details else None,
                "unit_price": item.unit_price,
                "quantity": item.quantity,
                "line_total": item.line_total,
            })

        applied = None
        if cart.applied_coupon_id:
            coupon = self.coupons.get(cart.applied_coupon_id)
            if coupon is not None:
                applied = {
                    "coupon_id": coupon.coupon_id,
                    "code": coupon.code,
                    "discount_type": coupon.discount_type,
                    "value": coupon.value,
                }

        return {
            "cart_id": cart.cart_id,
            "user_id": cart.user_id,
            "items": items,
            "applied_coupon": applied,
            "subtotal": cart.subtotal,
            "discount": cart.discount,
            "total_amount": cart.total_amount,
            "updated_at": cart.updated_at.isoformat() if cart.updated_at else None,
        }
