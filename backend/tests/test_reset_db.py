from sqlalchemy import create_engine
from helpers import seed_coupon, seed_course
from scripts.reset_db import row_counts


def test_row_counts_lists_store_tables(engine, db_session):
    seed_coupon(db_session, code="SAVE20")
    seed_coupon(db_session, code="FLAT50", discount_type="fixed", value=50)
    seed_course(db_session)

    counts = dict(row_counts(engine))
    assert counts["coupons"] == 2
    assert counts["courses"] == 1
    assert counts["carts"] == 0
    assert counts["activity log entries"] == 0


def test_row_counts_without_schema():
    assert row_counts(create_engine("sqlite:///:memory:")) == []
