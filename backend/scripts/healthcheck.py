import os
import sys
import requests
from dotenv import load_dotenv
from sqlalchemy import create_engine, inspect

REQUIRED_TABLES = ['coupons', 'carts', 'cart_items', 'courses', 'products', 'wishlists', 'activity_logs']

def print_status(check_name: str, status: bool, details: str = ""):
    """
    Renders the status of a health system check to the console.

    Args:
        check_name: Human-readable identifier for the check.
        status: Boolean indicating success or failure.
        details: Optional supplementary information (e.g., URLs, table counts).
    """
    color = "\033[92m[OK]\033[0m" if status else "\033[91m[FAIL]\033[0m"
    print(f"{color} {check_name:<30} {details}")

def run_healthcheck():
    """
    Coordinates a verification of the backend environment.

    Validates the .env file, database connectivity and schema, and whether
    the API answers its health endpoint.
    """
    print("\n=== LMS Cart Service Health Verification ===\n")

    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    env_path = os.path.join(base_dir, ".env")

    # 1. Check .env file; defaults apply when absent
    has_env = os.path.exists(env_path)
    print_status(".env file exists", True, env_path if has_env else "not found, using defaults")
    if has_env:
        load_dotenv(env_path)

    # 2. Check Database
    database_url = os.getenv("DATABASE_URL", f"sqlite:///{os.path.join(base_dir, 'lms_cart.db')}")
    try:
        engine = create_engine(database_url)
        tables = inspect(engine).get_table_names()
        missing = [t for t in REQUIRED_TABLES if t not in tables]
        print_status("Database reachable", True, database_url)
        print_status("Database schema initialized", not missing,
                     f"Missing: {', '.join(missing)}" if missing else f"Found {len(tables)} tables")
        if missing:
            sys.exit(1)
    except Exception as e:
        print_status("Database query failed", False, str(e))
        sys.exit(1)

    # 3. API health endpoint
    api_base = os.environ.get("API_BASE_URL", "http://localhost:8000/api/v1")
    try:
        r = requests.get(f"{api_base}/health", timeout=5)
        print_status("API health endpoint", r.status_code == 200, f"HTTP {r.status_code}")
    except Exception as e:
        print_status("API health endpoint", False, str(e))

    print("\nHealth check completed.")

if __name__ == "__main__":
    run_healthcheck()
