#!/usr/bin/env python3
import os
import sys
import logging
from datetime import timedelta

# Add the parent directory to sys.path to allow imports from the backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db import SessionLocal, init_db
from schema import Course, Product
from services.coupons import CouponStore
from utils import utcnow

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

COUPONS = [
    {"code": "WELCOME10", "discount_type": "percentage", "value": 10, "max_uses": 100, "min_purchase_amount": 0},
    {"code": "SAVE20", "discount_type": "percentage", "value": 20, "max_uses": 50, "min_purchase_amount": 100},
    {"code": "AVIATOR25", "discount_type": "percentage", "value": 25, "max_uses": 25, "min_purchase_amount": 200},
    {"code": "FLAT50", "discount_type": "fixed", "value": 50, "max_uses": 75, "min_purchase_amount": 150},
    {"code": "NEWYEAR2026", "discount_type": "percentage", "value": 30, "max_uses": 200, "min_purchase_amount": 0},
]

COURSES = [
    {"course_id": "course-ppl-ground", "title": "Private Pilot Ground School", "price": 100.0},
    {"course_id": "course-ifr", "title": "Instrument Rating Fundamentals", "price": 250.0},
    {"course_id": "course-atpl", "title": "ATPL Theory Bundle", "price": 499.0},
]

PRODUCTS = [
    {"product_id": "product-headset", "title": "Aviation Headset", "price": 180.0},
    {"product_id": "product-logbook", "title": "Pilot Logbook", "price": 15.0},
]


def seed(db):
    """
    Inserts demo coupons and catalog rows, skipping anything that already exists.

    Returns:
        Number of rows created.
    """
    created = 0
    store = CouponStore(db)
    expires_at = (utcnow() + timedelta(days=90)).isoformat()

    for data in COUPONS:
        if store.find_by_code(data["code"]):
            logger.info(f"Coupon {data['code']} already exists, skipping")
            continue
        store.create({**data, "expires_at": expires_at}, actor="seed")
        created += 1

    for data in COURSES:
        if not db.query(Course).filter_by(course_id=data["course_id"]).first():
            db.add(Course(**data))
            created += 1
    for data in PRODUCTS:
        if not db.query(Product).filter_by(product_id=data["product_id"]).first():
            db.add(Product(**data))
            created += 1
    db.commit()
    return created


def main():
    init_db()
    db = SessionLocal()
    try:
        created = seed(db)
        logger.info(f"Seeding complete: {created} row(s) created")
    finally:
        db.close()

if __name__ == "__main__":
    main()
