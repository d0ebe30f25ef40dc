import os
import logging
from typing import Any
from dotenv import load_dotenv

# Initialize environment configuration from local or project-level .env files
dotenv_paths = [
    os.path.join(os.path.dirname(__file__), '.env'),
    os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env'),
    os.path.join(os.path.dirname(os.path.dirname(__file__)), '.env.example')
]

for path in dotenv_paths:
    if os.path.exists(path):
        load_dotenv(path)
        break

from flask import Flask, jsonify
from flask_cors import CORS
from db import init_db
from routes.auth import auth_bp
from routes.cart import cart_bp
from routes.coupons import coupons_bp
from routes.wishlist import wishlist_bp
from routes.activity import activity_bp
from routes.handlers import register_error_handlers

# Configure high-level logging defaults for the backend application
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
cors_origins = os.environ.get("CORS_ORIGINS", "*")
CORS(app, origins=[o.strip() for o in cors_origins.split(",")] if cors_origins != "*" else "*")

app.register_blueprint(auth_bp, url_prefix="/api/v1")
app.register_blueprint(cart_bp, url_prefix="/api/v1")
app.register_blueprint(coupons_bp, url_prefix="/api/v1")
app.register_blueprint(wishlist_bp, url_prefix="/api/v1")
app.register_blueprint(activity_bp, url_prefix="/api/v1")
register_error_handlers(app)

@app.route("/api/v1/health")
def health() -> Any:
    """
    Verifies the operational status of the Flask application.

    Returns:
        A JSON response indicating the service is healthy.
    """
    return jsonify({"status": "ok"})

if __name__ == "__main__":
    # Ensure the database schema is initialized before accepting requests
    init_db()
    app.run(port=int(os.environ.get("PORT", 8000)), debug=True)
