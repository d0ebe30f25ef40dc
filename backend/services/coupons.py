import re
import math
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from sqlalchemy import or_
from schema import Coupon
from utils import as_utc, new_id, utcnow, write_activity
from services.errors import BusinessRuleViolation, ConflictError, NotFoundError, ValidationFailure
from services.pricing import DiscountType, REASON_USAGE_LIMIT, ValidationResult, evaluate_coupon

logger = logging.getLogger(__name__)

CODE_PATTERN = re.compile(r"^[A-Z0-9_-]+$")
CODE_MIN_LENGTH = 3
CODE_MAX_LENGTH = 50
MAX_PAGE_SIZE = 100


def normalize_code(code) -> str:
    if not isinstance(code, str) or not code.strip():
        raise ValidationFailure("code is required")
    return code.strip().upper()


def _clean_code(code) -> str:
    normalized = normalize_code(code)
    if not CODE_MIN_LENGTH <= len(normalized) <= CODE_MAX_LENGTH:
        raise ValidationFailure(
            f"code must be between {CODE_MIN_LENGTH} and {CODE_MAX_LENGTH} characters"
        )
    if not CODE_PATTERN.match(normalized):
        raise ValidationFailure(
            "code must be alphanumeric with hyphens or underscores only"
        )
    return normalized


def _parse_discount_type(value) -> str:
    try:
        return DiscountType(str(value).lower()).value
    except ValueError:
        raise ValidationFailure("discount_type must be 'percentage' or 'fixed'")


def _number(data: Dict[str, Any], key: str, minimum: float = 0.0, integer: bool = False):
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ValidationFailure(f"{key} must be a number")
    if integer and int(value) != value:
        raise ValidationFailure(f"{key} must be an integer")
    if value < minimum:
        raise ValidationFailure(f"{key} must be at least {minimum:g}")
    return int(value) if integer else float(value)


def _parse_expiry(value, now: datetime) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = as_utc(value)
    elif isinstance(value, str):
        try:
            parsed = as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            raise ValidationFailure(
                "expires_at must be a valid ISO 8601 date string (e.g., 2024-12-31T23:59:59Z)"
            )
    else:
        raise ValidationFailure("expires_at must be a valid ISO 8601 date string")
    if parsed < now:
        raise ValidationFailure("Expiration date cannot be in the past")
    return parsed


def _check_value(discount_type: str, value: float) -> None:
    if value <= 0:
        raise ValidationFailure("Discount value must be greater than 0")
    if discount_type == DiscountType.PERCENTAGE.value and value > 100:
        raise ValidationFailure("Percentage discount cannot exceed 100%")


class CouponStore:
    """
    Owns coupon records and answers whether a code qualifies for a purchase.

    Validation is side-effect free. The usage counter only moves through
    apply_coupon, which checkout calls once payment succeeds.
    """
    def __init__(self, db):
        self.db = db

    # ── Lookups ──────────────────────────────────────────────────────────────

    def get(self, coupon_id: str) -> Optional[Coupon]:
        return self.db.query(Coupon).filter_by(coupon_id=coupon_id).first()

    def find_one(self, coupon_id: str) -> Coupon:
        coupon = self.get(coupon_id)
        if not coupon:
            raise NotFoundError(f"Coupon with ID {coupon_id} not found")
        return coupon

    def find_by_code(self, code: str) -> Optional[Coupon]:
        return self.db.query(Coupon).filter_by(code=normalize_code(code)).first()

    def find_all(self, page: int = 1, limit: int = 10, search: Optional[str] = None) -> Dict[str, Any]:
        """
        Lists coupons newest first.

        Args:
            page: 1-based page number.
            limit: Page size, at most MAX_PAGE_SIZE.
            search: Optional case-insensitive substring matched against the code.

        Returns:
            A dictionary with 'data' (Coupon rows), 'total', 'page', 'limit' and 'total_pages'.
        """
        if page < 1:
            raise ValidationFailure("page must be at least 1")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationFailure(f"limit must be between 1 and {MAX_PAGE_SIZE}")

        query = self.db.query(Coupon)
        if search:
            term = search.strip().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            query = query.filter(Coupon.code.ilike(f"%{term}%", escape="\\"))

        total = query.count()
        data = (
            query.order_by(Coupon.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return {
            "data": data,
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    # ── Validation & usage ───────────────────────────────────────────────────

    def validate(self, code: str, purchase_amount: float, now: Optional[datetime] = None) -> ValidationResult:
        """
        Checks whether an active coupon with this code qualifies for the amount.

        Args:
            code: Coupon code, matched case-insensitively.
            purchase_amount: Non-negative purchase amount.
            now: Reference time for the expiry check.

        Returns:
            A ValidationResult carrying the discount on success or the reason on failure.
        """
        normalized = normalize_code(code)
        if isinstance(purchase_amount, bool) or not isinstance(purchase_amount, (int, float)) \
                or not math.isfinite(purchase_amount):
            raise ValidationFailure("amount must be a number")
        if purchase_amount < 0:
            raise ValidationFailure("amount must be at least 0")

        coupon = self.db.query(Coupon).filter_by(code=normalized, is_active=True).first()
        result = evaluate_coupon(coupon, purchase_amount, now)
        if not result.valid:
            logger.info(f"Coupon {normalized} rejected for amount {purchase_amount}: {result.reason}")
        return result

    def apply_coupon(self, code: str, actor: str = "system") -> Optional[Coupon]:
        """
        Records one use of the coupon.

        The increment is a single conditional UPDATE so concurrent redemptions
        can never push used_count past max_uses. Callers validate first; this
        path only enforces the usage cap.

        Args:
            code: Coupon code, matched case-insensitively.
            actor: Identifier recorded in the activity log.

        Returns:
            The updated Coupon, or None when no coupon has this code.
        """
        normalized = normalize_code(code)
        updated = (
            self.db.query(Coupon)
            .filter(Coupon.code == normalized)
            .filter(or_(Coupon.max_uses == 0, Coupon.used_count < Coupon.max_uses))
            .update(
                {Coupon.used_count: Coupon.used_count + 1, Coupon.updated_at: utcnow()},
                synchronize_session=False,
            )
        )
        coupon = self.db.query(Coupon).filter_by(code=normalized).first()
        if coupon is None:
            self.db.rollback()
            return None
        if not updated:
            self.db.rollback()
            raise BusinessRuleViolation("Coupon usage limit reached", REASON_USAGE_LIMIT)

        write_activity(self.db, actor, "coupon.redeem", "coupon", coupon.coupon_id, {"code": normalized})
        self.db.commit()
        self.db.refresh(coupon)
        logger.info(f"Coupon {normalized} redeemed ({coupon.used_count}/{coupon.max_uses or 'unlimited'})")
        return coupon

    # ── Administration ───────────────────────────────────────────────────────

    def create(self, data: Dict[str, Any], actor: str = "system") -> Coupon:
        now = utcnow()
        code = _clean_code(data.get("code"))
        discount_type = _parse_discount_type(data.get("discount_type"))
        value = _number(data, "value")
        _check_value(discount_type, value)
        expires_at = _parse_expiry(data.get("expires_at"), now)
        max_uses = _number(data, "max_uses", integer=True) if data.get("max_uses") is not None else 0
        min_purchase = (
            _number(data, "min_purchase_amount")
            if data.get("min_purchase_amount") is not None else 0.0
        )
        is_active = data.get("is_active", True)
        if not isinstance(is_active, bool):
            raise ValidationFailure("is_active must be a boolean")

        if self.db.query(Coupon).filter_by(code=code).first():
            raise ConflictError(f'Coupon code "{code}" already exists')

        coupon = Coupon(
            coupon_id=new_id(),
            code=code,
            discount_type=discount_type,
            value=value,
            is_active=is_active,
            expires_at=expires_at,
            max_uses=max_uses,
            used_count=0,
            min_purchase_amount=min_purchase,
            created_at=now,
            updated_at=now,
        )
        self.db.add(coupon)
        write_activity(self.db, actor, "coupon.create", "coupon", coupon.coupon_id, {"code": code})
        self.db.commit()
        logger.info(f"Coupon {code} created by {actor}")
        return coupon

    def update(self, coupon_id: str, data: Dict[str, Any], actor: str = "system") -> Coupon:
        """
        Applies a partial update. Only keys present in data are touched; an
        explicit null expires_at clears the expiry.
        """
        coupon = self.find_one(coupon_id)
        now = utcnow()

        if "used_count" in data:
            raise ValidationFailure("used_count cannot be set directly")

        changes: Dict[str, Any] = {}
        if "code" in data:
            code = _clean_code(data["code"])
            clash = (
                self.db.query(Coupon)
                .filter(Coupon.code == code, Coupon.coupon_id != coupon_id)
                .first()
            )
            if clash:
                raise ConflictError(f'Coupon code "{code}" already exists')
            changes["code"] = code
        if "discount_type" in data:
            changes["discount_type"] = _parse_discount_type(data["discount_type"])
        if "value" in data:
            changes["value"] = _number(data, "value")
        if "discount_type" in changes or "value" in changes:
            _check_value(
                changes.get("discount_type", coupon.discount_type),
                changes.get("value", coupon.value),
            )
        if "expires_at" in data:
            changes["expires_at"] = _parse_expiry(data["expires_at"], now)
        if "max_uses" in data:
            max_uses = _number(data, "max_uses", integer=True)
            if 0 < max_uses < (coupon.used_count or 0):
                raise ValidationFailure(
                    f"max_uses cannot be lower than the current usage count ({coupon.used_count})"
                )
            changes["max_uses"] = max_uses
        if "min_purchase_amount" in data:
            changes["min_purchase_amount"] = _number(data, "min_purchase_amount")
        if "is_active" in data:
            if not isinstance(data["is_active"], bool):
                raise ValidationFailure("is_active must be a boolean")
            changes["is_active"] = data["is_active"]

        for key, value in changes.items():
            setattr(coupon, key, value)
        coupon.updated_at = now

        write_activity(self.db, actor, "coupon.update", "coupon", coupon.coupon_id, changes)
        self.db.commit()
        logger.info(f"Coupon {coupon.code} updated by {actor}: {sorted(changes)}")
        return coupon

    def toggle_status(self, coupon_id: str, actor: str = "system") -> Coupon:
        coupon = self.find_one(coupon_id)
        coupon.is_active = not coupon.is_active
        coupon.updated_at = utcnow()
        write_activity(
            self.db, actor, "coupon.toggle", "coupon", coupon.coupon_id,
            {"is_active": coupon.is_active},
        )
        self.db.commit()
        logger.info(f"Coupon {coupon.code} {'activated' if coupon.is_active else 'deactivated'} by {actor}")
        return coupon

    def remove(self, coupon_id: str, actor: str = "system") -> Dict[str, str]:
        coupon = self.find_one(coupon_id)
        code = coupon.code
        self.db.delete(coupon)
        write_activity(self.db, actor, "coupon.delete", "coupon", coupon_id, {"code": code})
        self.db.commit()
        logger.info(f"Coupon {code} deleted by {actor}")
        return {"message": "Coupon deleted successfully"}

    def bulk_delete(self, ids: List[str], actor: str = "system") -> Dict[str, Any]:
        ids = require_ids(ids)
        deleted = (
            self.db.query(Coupon)
            .filter(Coupon.coupon_id.in_(ids))
            .delete(synchronize_session=False)
        )
        write_activity(self.db, actor, "coupon.bulk_delete", "coupon", None, {"ids": ids, "deleted": deleted})
        self.db.commit()
        logger.info(f"{deleted} coupon(s) deleted by {actor}")
        return {
            "deleted_count": deleted,
            "message": f"Successfully deleted {deleted} coupon(s)",
        }

    def bulk_toggle_status(self, ids: List[str], actor: str = "system") -> Dict[str, Any]:
        """
        Sets every listed coupon to the opposite of the first coupon's current state.
        """
        ids = require_ids(ids)
        first = self.get(ids[0])
        if not first:
            raise NotFoundError("No coupons found to toggle")

        new_status = not first.is_active
        updated = (
            self.db.query(Coupon)
            .filter(Coupon.coupon_id.in_(ids))
            .update({Coupon.is_active: new_status, Coupon.updated_at: utcnow()}, synchronize_session=False)
        )
        write_activity(
            self.db, actor, "coupon.bulk_toggle", "coupon", None,
            {"ids": ids, "is_active": new_status},
        )
        self.db.commit()
        return {
            "updated_count": updated,
            "is_active": new_status,
            "message": f"Successfully {'activated' if new_status else 'deactivated'} {updated} coupon(s)",
        }

    def get_analytics(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        now = as_utc(now) if now is not None else utcnow()
        coupons = self.db.query(Coupon).all()

        def expired(c):
            return c.expires_at is not None and as_utc(c.expires_at) < now

        def scheduled(c):
            return c.expires_at is not None and as_utc(c.expires_at) > now and not c.is_active

        most_used = sorted(coupons, key=lambda c: c.used_count or 0, reverse=True)[:5]
        recent = sorted(coupons, key=lambda c: as_utc(c.created_at) or now, reverse=True)[:5]

        return {
            "total": len(coupons),
            "active": sum(1 for c in coupons if c.is_active and not expired(c)),
            "inactive": sum(1 for c in coupons if not c.is_active),
            "expired": sum(1 for c in coupons if expired(c)),
            "scheduled": sum(1 for c in coupons if scheduled(c)),
            "total_uses": sum(c.used_count or 0 for c in coupons),
            "most_used": most_used,
            "recent": recent,
        }


def require_ids(ids) -> List[str]:
    if not isinstance(ids, list) or not ids or not all(isinstance(i, str) for i in ids):
        raise ValidationFailure("ids must be a non-empty array of coupon IDs")
    return ids
