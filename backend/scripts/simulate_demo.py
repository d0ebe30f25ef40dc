#!/usr/bin/env python3
import requests
import json
import os
import sys
import logging
from datetime import datetime, timedelta, timezone

# Setup logging
LOG_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "logs")
os.makedirs(LOG_DIR, exist_ok=True)
LOG_FILE = os.path.join(LOG_DIR, "demo_output.log")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(LOG_FILE),
        logging.StreamHandler(sys.stdout)
    ]
)
logger = logging.getLogger(__name__)

BASE_URL = os.environ.get("API_BASE_URL", "http://localhost:8000/api/v1")
TEST_CODES = ["TEST_MIN_200", "TEST_MAX_USES", "TEST_VALID_10"]
TEST_PRICE = 100
TEST_ITEM = "demo-course-001"

def print_step(step_name: str):
    """
    Renders a highlighted progression step to the console output.

    Args:
        step_name: Description of the current simulation stage.
    """
    logger.info(f"=== {step_name} ===")

def print_result(res: requests.Response, expected_status: int = None):
    """
    Evaluates the response status and renders a success or failure summary.

    Args:
        res: The response object from a requests call.
        expected_status: Exact status to require; any 2xx when omitted.
    """
    ok = res.status_code == expected_status if expected_status else res.status_code // 100 == 2
    if ok:
        logger.info(f"Success ({res.status_code}): {json.dumps(res.json(), indent=2)[:300]}...")
    else:
        logger.error(f"Failed ({res.status_code}): {res.text}")
        sys.exit(1)

def expect(condition: bool, message: str):
    if not condition:
        logger.error(f"Assertion failed: {message}")
        sys.exit(1)
    logger.info(f"Verified: {message}")

def login(username: str) -> dict:
    res = requests.post(f"{BASE_URL}/auth/login", json={"username": username})
    print_result(res)
    return {"Authorization": f"Bearer {res.json()['token']}"}

def run_demo():
    """
    Walks through the cart and coupon scenarios end to end.

    An admin prepares test coupons, then a student fills a cart with a $100
    course and exercises minimum-purchase rejection, percentage discounts that
    track the live subtotal, and checkout-time redemption of a capped coupon.
    """
    print_step("1. Admin logs in")
    admin = login("admin")

    print_step("2. Admin removes stale test coupons")
    for code in TEST_CODES:
        res = requests.get(f"{BASE_URL}/coupons", params={"search": code}, headers=admin)
        print_result(res)
        for coupon in res.json()["data"]:
            if coupon["code"] == code:
                print_result(requests.delete(f"{BASE_URL}/coupons/{coupon['coupon_id']}", headers=admin))

    print_step("3. Admin creates test coupons")
    tomorrow = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()
    payloads = [
        {"code": "TEST_MIN_200", "discount_type": "fixed", "value": 50, "min_purchase_amount": 200, "expires_at": tomorrow},
        {"code": "TEST_MAX_USES", "discount_type": "fixed", "value": 10, "max_uses": 1, "expires_at": tomorrow},
        {"code": "TEST_VALID_10", "discount_type": "percentage", "value": 10, "expires_at": tomorrow},
    ]
    for payload in payloads:
        print_result(requests.post(f"{BASE_URL}/coupons", json=payload, headers=admin), 201)

    print_step("4. Student logs in and starts from an empty cart")
    student = login("student")
    print_result(requests.delete(f"{BASE_URL}/cart", headers=student))

    print_step(f"5. Student adds a course at ${TEST_PRICE}")
    res = requests.post(f"{BASE_URL}/cart/items", headers=student, json={
        "course_id": TEST_ITEM, "unit_price": TEST_PRICE
    })
    print_result(res)
    expect(res.json()["total_amount"] == 100, "cart total is 100")

    print_step("6. Minimum purchase coupon is rejected")
    res = requests.post(f"{BASE_URL}/cart/coupon", headers=student, json={"code": "TEST_MIN_200"})
    print_result(res, 400)
    expect("minimum purchase" in res.json()["reason"], "rejection reason mentions minimum purchase")

    print_step("7. Valid 10% coupon is applied")
    res = requests.post(f"{BASE_URL}/cart/coupon", headers=student, json={"code": "test_valid_10"})
    print_result(res)
    expect(res.json()["discount"] == 10 and res.json()["total_amount"] == 90, "discount 10, total 90")

    print_step("8. Second unit added; discount follows the subtotal")
    res = requests.post(f"{BASE_URL}/cart/items", headers=student, json={
        "course_id": TEST_ITEM, "unit_price": TEST_PRICE
    })
    print_result(res)
    expect(res.json()["discount"] == 20 and res.json()["total_amount"] == 180, "discount 20, total 180")

    print_step("9. Capped coupon is redeemed once at checkout")
    print_result(requests.post(f"{BASE_URL}/coupons/TEST_MAX_USES/redeem", headers=admin))
    res = requests.post(f"{BASE_URL}/coupons/validate", headers=student, json={"code": "TEST_MAX_USES", "amount": 200})
    print_result(res)
    expect(res.json()["valid"] is False, "exhausted coupon no longer validates")

    print_step("10. Student removes the coupon")
    res = requests.delete(f"{BASE_URL}/cart/coupon", headers=student)
    print_result(res)
    expect(res.json()["total_amount"] == 200, "total back to 200")

    logger.info("Demo simulation completed flawlessly.")

if __name__ == "__main__":
    try:
        run_demo()
    except requests.exceptions.ConnectionError:
        logger.error(f"Connection Error: Is the backend server running at {BASE_URL}?")
        sys.exit(1)
