"""
Flask Application Factory.

Creates and configures the auth app with its extensions, services and blueprints.
"""

import logging

from dotenv import load_dotenv
from flask import Flask

from config.settings import get_settings
from core.errors import register_error_handlers
from auth_server.extensions import init_extensions
from auth_server.logging_config import configure_logging
from auth_server.services import build_services

load_dotenv()

logger = logging.getLogger(__name__)


def create_app(config=None, services=None):
    """Create and configure the Flask application.

    Args:
        config: Optional dict of config overrides (e.g. {'TESTING': True}).
        services: Optional prebuilt AuthServices (tests); built from settings otherwise.

    Returns:
        Configured Flask app instance.
    """
    app = Flask(__name__)

    if config:
        app.config.update(config)

    settings = get_settings()

    configure_logging(settings, app)
    init_extensions(app, settings)
    register_error_handlers(app)

    app.extensions["trak_auth"] = services or build_services(settings)

    _register_blueprints(app)

    logger.info("Auth server initialized")
    return app


def _register_blueprints(app):
    """Register all route blueprints."""
    from auth_server.routes.auth_routes import auth_bp
    app.register_blueprint(auth_bp)

    from auth_server.routes.users import users_bp
    app.register_blueprint(users_bp)

    from auth_server.routes.two_factor_routes import two_factor_bp
    app.register_blueprint(two_factor_bp)


if __name__ == '__main__':
    create_app().run(host='0.0.0.0', port=5000)
