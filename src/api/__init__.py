"""
RevLedger API Package.

This package contains the Flask blueprints for the RevLedger API.

Blueprints:
- core: Health and metrics
- ledger: Collections, distributions, batches, history and reconciliation
"""

from flask import Flask

from api.core import core_bp
from api.ledger import ledger_bp

# List of all blueprints for registration
# Tuple format: (blueprint, url_prefix)
ALL_BLUEPRINTS = [
    (core_bp, ''),      # Health and metrics at root
    (ledger_bp, ''),    # Ledger routes (blueprint paths start with /ledger)
]


def register_blueprints(app):
    """Register all blueprints with the Flask app."""
    for blueprint, url_prefix in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=url_prefix)


def create_app(init: bool = True) -> Flask:
    """
    Build the Flask application.

    Args:
        init: Build ledger services from the environment when none are registered

    Returns:
        Configured Flask app
    """
    from api.state import init_services, services
    from api.utils import register_error_handlers
    from monitoring import setup_request_logging

    app = Flask("revledger")
    app.config["MAX_CONTENT_LENGTH"] = 2 * 1024 * 1024

    setup_request_logging(app)
    register_error_handlers(app)
    register_blueprints(app)

    if init and not services.is_ready():
        init_services()

    return app
