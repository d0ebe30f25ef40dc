import logging
from flask import jsonify
from services.errors import ServiceError

logger = logging.getLogger(__name__)


def register_error_handlers(app):
    """
    Maps domain errors raised by the services onto JSON error responses.

    Args:
        app: The Flask application to attach the handlers to.
    """
    @app.errorhandler(ServiceError)
    def handle_service_error(err):
        logger.info(f"{type(err).__name__} ({err.status_code}): {err.message}")
        return jsonify(err.to_dict()), err.status_code
