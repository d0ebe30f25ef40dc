import schema
from datetime import timedelta
from utils import new_id, utcnow

def seed_coupon(db, code="SAVE20", discount_type="percentage", value=20, **fields):
    """Inserts a coupon row directly, bypassing create-time validation."""
    now = utcnow()
    coupon = schema.Coupon(
        coupon_id=new_id(),
        code=code,
        discount_type=discount_type,
        value=value,
        is_active=fields.pop("is_active", True),
        expires_at=fields.pop("expires_at", None),
        max_uses=fields.pop("max_uses", 0),
        used_count=fields.pop("used_count", 0),
        min_purchase_amount=fields.pop("min_purchase_amount", 0.0),
        created_at=fields.pop("created_at", now),
        updated_at=now,
    )
    db.add(coupon)
    db.commit()
    return coupon

def seed_expired_coupon(db, code="TEST_EXPIRED", value=20):
    return seed_coupon(db, code=code, discount_type="fixed", value=value,
                       expires_at=utcnow() - timedelta(days=1))

def seed_course(db, course_id="course-1", title="Private Pilot Ground School", price=100.0):
    course = schema.Course(course_id=course_id, title=title, price=price)
    db.add(course)
    db.commit()
    return course

def seed_product(db, product_id="product-1", title="Aviation Headset", price=180.0):
    product = schema.Product(product_id=product_id, title=title, price=price)
    db.add(product)
    db.commit()
    return product

def add_item(client, headers, **payload):
    return client.post("/api/v1/cart/items", json=payload, headers=headers)

def apply_code(client, headers, code):
    return client.post("/api/v1/cart/coupon", json={"code": code}, headers=headers)

def create_coupon(client, headers, **payload):
    body = {"code": "SAVE20", "discount_type": "percentage", "value": 20}
    body.update(payload)
    return client.post("/api/v1/coupons", json=body, headers=headers)
