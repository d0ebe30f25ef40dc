import pytest
from datetime import timedelta
from sqlalchemy.orm import sessionmaker
from helpers import seed_coupon, seed_expired_coupon
from schema import ActivityLog, Coupon
from services.coupons import CouponStore
from services.errors import BusinessRuleViolation, ConflictError, NotFoundError, ValidationFailure
from utils import as_utc, utcnow


@pytest.fixture
def store(db_session):
    return CouponStore(db_session)


# --- validate ---

def test_validate_is_case_insensitive(db_session, store):
    seed_coupon(db_session, code="SAVE20", value=20)
    lower = store.validate("save20", 100)
    upper = store.validate("SAVE20", 100)
    assert lower.valid is upper.valid is True
    assert lower.discount == upper.discount == 20
    assert lower.coupon.coupon_id == upper.coupon.coupon_id


def test_validate_unknown_code(store):
    result = store.validate("NOPE", 100)
    assert result.valid is False
    assert result.discount == 0
    assert result.reason == "not found"


def test_validate_inactive_coupon_reports_not_found(db_session, store):
    seed_coupon(db_session, code="OFF", is_active=False)
    assert store.validate("OFF", 100).reason == "not found"


def test_validate_expired(db_session, store):
    seed_expired_coupon(db_session)
    result = store.validate("TEST_EXPIRED", 1000)
    assert result.valid is False
    assert result.reason == "expired"


def test_validate_usage_limit(db_session, store):
    seed_coupon(db_session, code="ONCE", max_uses=1, used_count=1)
    result = store.validate("ONCE", 100)
    assert result.valid is False
    assert result.reason == "usage limit reached"


def test_validate_minimum_purchase(db_session, store):
    seed_coupon(db_session, code="TEST_MIN_200", discount_type="fixed", value=50, min_purchase_amount=200)
    result = store.validate("TEST_MIN_200", 100)
    assert result.valid is False
    assert result.reason == "minimum purchase not met"


def test_validate_fixed_discount(db_session, store):
    seed_coupon(db_session, code="FLAT50", discount_type="fixed", value=50, min_purchase_amount=150)
    result = store.validate("FLAT50", 400)
    assert result.valid is True
    assert result.discount == 50


def test_validate_has_no_side_effects(db_session, store):
    coupon = seed_coupon(db_session, code="SAVE20", max_uses=5)
    for _ in range(3):
        store.validate("SAVE20", 100)
    db_session.refresh(coupon)
    assert coupon.used_count == 0


@pytest.mark.parametrize("amount", [-1, "100", None, True])
def test_validate_rejects_bad_amount(db_session, store, amount):
    seed_coupon(db_session)
    with pytest.raises(ValidationFailure):
        store.validate("SAVE20", amount)


def test_validate_rejects_blank_code(store):
    with pytest.raises(ValidationFailure):
        store.validate("   ", 100)


# --- apply_coupon ---

def test_apply_increments_used_count(db_session, store):
    seed_coupon(db_session, code="SAVE20", max_uses=2)
    coupon = store.apply_coupon("save20")
    assert coupon.used_count == 1
    assert store.apply_coupon("SAVE20").used_count == 2


def test_apply_unknown_code_returns_none(store):
    assert store.apply_coupon("MISSING") is None


def test_apply_never_exceeds_max_uses(db_session, store):
    coupon = seed_coupon(db_session, code="ONCE", max_uses=1)
    store.apply_coupon("ONCE")
    with pytest.raises(BusinessRuleViolation) as exc:
        store.apply_coupon("ONCE")
    assert exc.value.reason == "usage limit reached"
    db_session.refresh(coupon)
    assert coupon.used_count == 1


def test_apply_unlimited_coupon(db_session, store):
    seed_coupon(db_session, code="OPEN", max_uses=0, used_count=41)
    assert store.apply_coupon("OPEN").used_count == 42


def test_apply_writes_activity(db_session, store):
    coupon = seed_coupon(db_session, code="SAVE20")
    store.apply_coupon("SAVE20", actor="checkout")
    entry = db_session.query(ActivityLog).filter_by(action="coupon.redeem").one()
    assert entry.entity_id == coupon.coupon_id
    assert entry.actor == "checkout"


# --- create ---

def test_create_normalizes_code(store):
    coupon = store.create({"code": "  summer25 ", "discount_type": "Percentage", "value": 25})
    assert coupon.code == "SUMMER25"
    assert coupon.discount_type == "percentage"
    assert coupon.is_active is True
    assert coupon.max_uses == 0
    assert coupon.used_count == 0
    assert coupon.min_purchase_amount == 0


def test_create_duplicate_code_conflicts(store):
    store.create({"code": "DUP", "discount_type": "fixed", "value": 5})
    with pytest.raises(ConflictError):
        store.create({"code": "dup", "discount_type": "fixed", "value": 5})


@pytest.mark.parametrize("payload", [
    {"code": "AB", "discount_type": "fixed", "value": 5},
    {"code": "HAS SPACE", "discount_type": "fixed", "value": 5},
    {"code": "OK_CODE", "discount_type": "bogo", "value": 5},
    {"code": "OK_CODE", "discount_type": "fixed", "value": 0},
    {"code": "OK_CODE", "discount_type": "fixed", "value": -5},
    {"code": "OK_CODE", "discount_type": "percentage", "value": 101},
    {"code": "OK_CODE", "discount_type": "fixed", "value": "10"},
    {"code": "OK_CODE", "discount_type": "fixed", "value": 5, "max_uses": -1},
    {"code": "OK_CODE", "discount_type": "fixed", "value": 5, "max_uses": 1.5},
    {"code": "OK_CODE", "discount_type": "fixed", "value": 5, "min_purchase_amount": -10},
    {"code": "OK_CODE", "discount_type": "fixed", "value": 5, "expires_at": "not-a-date"},
    {"code": "OK_CODE", "discount_type": "fixed", "value": 5, "expires_at": "2001-01-01T00:00:00Z"},
    {"code": "OK_CODE", "discount_type": "fixed", "value": 5, "is_active": "yes"},
    {"discount_type": "fixed", "value": 5},
])
def test_create_rejects_invalid_payload(db_session, store, payload):
    with pytest.raises(ValidationFailure):
        store.create(payload)
    assert db_session.query(Coupon).count() == 0


def test_create_accepts_future_expiry(store):
    expires = (utcnow() + timedelta(days=7)).isoformat()
    coupon = store.create({"code": "WEEK", "discount_type": "fixed", "value": 5, "expires_at": expires})
    assert as_utc(coupon.expires_at) > utcnow()


# --- update / toggle / remove ---

def test_update_changes_only_given_fields(db_session, store):
    coupon = seed_coupon(db_session, code="SAVE20", value=20, min_purchase_amount=50)
    updated = store.update(coupon.coupon_id, {"value": 30})
    assert updated.value == 30
    assert updated.min_purchase_amount == 50
    assert updated.code == "SAVE20"


def test_update_rejects_used_count(db_session, store):
    coupon = seed_coupon(db_session)
    with pytest.raises(ValidationFailure):
        store.update(coupon.coupon_id, {"used_count": 0})


def test_update_code_clash(db_session, store):
    seed_coupon(db_session, code="TAKEN")
    coupon = seed_coupon(db_session, code="MINE")
    with pytest.raises(ConflictError):
        store.update(coupon.coupon_id, {"code": "taken"})


def test_update_keeping_own_code_is_allowed(db_session, store):
    coupon = seed_coupon(db_session, code="MINE")
    assert store.update(coupon.coupon_id, {"code": "mine"}).code == "MINE"


def test_update_percentage_cap_uses_effective_type(db_session, store):
    coupon = seed_coupon(db_session, code="FLAT", discount_type="fixed", value=150)
    with pytest.raises(ValidationFailure):
        store.update(coupon.coupon_id, {"discount_type": "percentage"})


def test_update_null_expiry_clears_it(db_session, store):
    coupon = seed_coupon(db_session, expires_at=utcnow() + timedelta(days=1))
    assert store.update(coupon.coupon_id, {"expires_at": None}).expires_at is None


def test_update_missing_coupon(store):
    with pytest.raises(NotFoundError):
        store.update("nope", {"value": 5})


def test_toggle_status_flips(db_session, store):
    coupon = seed_coupon(db_session)
    assert store.toggle_status(coupon.coupon_id).is_active is False
    assert store.toggle_status(coupon.coupon_id).is_active is True


def test_remove(db_session, store):
    coupon = seed_coupon(db_session)
    store.remove(coupon.coupon_id)
    assert db_session.query(Coupon).count() == 0
    with pytest.raises(NotFoundError):
        store.remove(coupon.coupon_id)


# --- listing, bulk operations, analytics ---

def test_find_all_paginates_newest_first(db_session, store):
    now = utcnow()
    for i in range(5):
        seed_coupon(db_session, code=f"CODE{i}", created_at=now + timedelta(minutes=i))
    page = store.find_all(page=1, limit=2)
    assert page["total"] == 5
    assert page["total_pages"] == 3
    assert [c.code for c in page["data"]] == ["CODE4", "CODE3"]
    assert [c.code for c in store.find_all(page=3, limit=2)["data"]] == ["CODE0"]


def test_find_all_search_is_case_insensitive(db_session, store):
    seed_coupon(db_session, code="SUMMER25")
    seed_coupon(db_session, code="WINTER10")
    result = store.find_all(search="summer")
    assert [c.code for c in result["data"]] == ["SUMMER25"]


def test_find_all_rejects_bad_paging(store):
    with pytest.raises(ValidationFailure):
        store.find_all(page=0)
    with pytest.raises(ValidationFailure):
        store.find_all(limit=1000)


def test_bulk_delete(db_session, store):
    a = seed_coupon(db_session, code="AAA")
    b = seed_coupon(db_session, code="BBB")
    seed_coupon(db_session, code="CCC")
    result = store.bulk_delete([a.coupon_id, b.coupon_id, "missing"])
    assert result["deleted_count"] == 2
    assert db_session.query(Coupon).count() == 1


def test_bulk_delete_requires_ids(store):
    with pytest.raises(ValidationFailure):
        store.bulk_delete([])


def test_bulk_toggle_follows_first_coupon(db_session, store):
    a = seed_coupon(db_session, code="AAA", is_active=True)
    b = seed_coupon(db_session, code="BBB", is_active=False)
    result = store.bulk_toggle_status([a.coupon_id, b.coupon_id])
    assert result["is_active"] is False
    assert result["updated_count"] == 2
    db_session.expire_all()
    assert store.get(a.coupon_id).is_active is False
    assert store.get(b.coupon_id).is_active is False


def test_bulk_toggle_missing_first(store):
    with pytest.raises(NotFoundError):
        store.bulk_toggle_status(["missing"])


def test_analytics(db_session, store):
    now = utcnow()
    seed_coupon(db_session, code="LIVE", used_count=7)
    seed_coupon(db_session, code="PAUSED", is_active=False, expires_at=now + timedelta(days=3), used_count=2)
    seed_coupon(db_session, code="OLD", expires_at=now - timedelta(days=3), used_count=1)

    stats = store.get_analytics(now)
    assert stats["total"] == 3
    assert stats["active"] == 1
    assert stats["inactive"] == 1
    assert stats["expired"] == 1
    assert stats["scheduled"] == 1
    assert stats["total_uses"] == 10
    assert stats["most_used"][0].code == "LIVE"


# --- non-finite numbers ---

@pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
def test_validate_rejects_non_finite_amount(db_session, store, amount):
    seed_coupon(db_session, code="SAVE20", min_purchase_amount=100)
    with pytest.raises(ValidationFailure):
        store.validate("SAVE20", amount)


@pytest.mark.parametrize("field", ["value", "max_uses", "min_purchase_amount"])
@pytest.mark.parametrize("number", [float("nan"), float("inf")])
def test_create_rejects_non_finite_numbers(db_session, store, field, number):
    payload = {"code": "HUGE", "discount_type": "fixed", "value": 5, field: number}
    with pytest.raises(ValidationFailure):
        store.create(payload)
    assert db_session.query(Coupon).count() == 0


def test_update_rejects_non_finite_value(db_session, store):
    coupon = seed_coupon(db_session, code="FLAT", discount_type="fixed", value=10)
    with pytest.raises(ValidationFailure):
        store.update(coupon.coupon_id, {"value": float("inf")})


# --- concurrent redemption ---

def test_concurrent_redeem_respects_max_uses(engine, db_session):
    coupon = seed_coupon(db_session, code="LAST_ONE", max_uses=1)
    Session = sessionmaker(bind=engine)
    first, second = Session(), Session()
    try:
        # Both checkouts see the coupon with one use left
        assert first.query(Coupon).filter_by(code="LAST_ONE").one().used_count == 0
        assert second.query(Coupon).filter_by(code="LAST_ONE").one().used_count == 0

        assert CouponStore(first).apply_coupon("LAST_ONE").used_count == 1
        with pytest.raises(BusinessRuleViolation) as exc:
            CouponStore(second).apply_coupon("LAST_ONE")
        assert exc.value.reason == "usage limit reached"
    finally:
        first.close()
        second.close()

    db_session.refresh(coupon)
    assert coupon.used_count == coupon.max_uses == 1


# --- search escaping and usage cap updates ---

def test_find_all_search_treats_wildcards_literally(db_session, store):
    seed_coupon(db_session, code="TEST_A")
    seed_coupon(db_session, code="TESTXA")
    seed_coupon(db_session, code="HALF50")
    assert [c.code for c in store.find_all(search="test_")["data"]] == ["TEST_A"]
    assert store.find_all(search="%")["total"] == 0


def test_update_rejects_max_uses_below_used_count(db_session, store):
    coupon = seed_coupon(db_session, code="POPULAR", max_uses=10, used_count=5)
    with pytest.raises(ValidationFailure):
        store.update(coupon.coupon_id, {"max_uses": 3})
    assert store.update(coupon.coupon_id, {"max_uses": 5}).max_uses == 5
    assert store.update(coupon.coupon_id, {"max_uses": 0}).max_uses == 0
