#!/usr/bin/env python3
import os
import sys

# Add the parent directory to sys.path to allow imports from the backend
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect
from sqlalchemy.orm import Session
from db import engine
from schema import ActivityLog, Cart, CartItem, Coupon, Course, Product, WishlistEntry
from utils import clear_database

TABLES = [
    ("coupons", Coupon),
    ("carts", Cart),
    ("cart line items", CartItem),
    ("wishlist entries", WishlistEntry),
    ("courses", Course),
    ("products", Product),
    ("activity log entries", ActivityLog),
]

def row_counts(bind=engine):
    """
    Counts rows per table so the operator can see what a reset will discard.

    Returns:
        A list of (label, count) pairs, or an empty list when the schema has
        not been created yet.
    """
    existing = set(inspect(bind).get_table_names())
    db = Session(bind=bind)
    try:
        return [
            (label, db.query(model).count())
            for label, model in TABLES
            if model.__tablename__ in existing
        ]
    finally:
        db.close()

def main():
    """
    Drops and recreates every table of the store database.

    Redeemed coupon usage counts, open carts with their applied coupons,
    wishlists, the seeded catalog and the admin activity log are all lost.
    Pass --yes to skip the confirmation prompt; run scripts/seed_data.py
    afterwards to restore the demo coupons and catalog.
    """
    counts = row_counts()
    if counts:
        print("Current contents:")
        for label, count in counts:
            print(f"  {label:<22} {count}")
    else:
        print("No store tables found; the schema will be created.")

    if "--yes" not in sys.argv[1:]:
        confirm = input("Reset the store database? Coupon usage and carts cannot be recovered. (y/N): ")
        if confirm.lower() != 'y':
            print("Reset cancelled.")
            return

    try:
        clear_database()
    except Exception as e:
        print(f"Error resetting database: {e}")
        sys.exit(1)
    print("Database reset. Run scripts/seed_data.py to load demo coupons and catalog items.")

if __name__ == "__main__":
    main()
