"""
Flask extension instances.

Centralized extension objects initialized via init_extensions(app).
Import these objects in blueprints instead of creating new instances.
"""

import logging

from flask import current_app
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

logger = logging.getLogger(__name__)

# Rate limiter (bound to the app in init_extensions)
limiter = Limiter(key_func=get_remote_address, strategy="moving-window")


def auth_rate_limit():
    """Limit string for credential-checking endpoints (login, 2FA code)."""
    return current_app.config["AUTH_RATE_LIMIT"]


def init_extensions(app, settings):
    """Initialize all Flask extensions with the app instance.

    Args:
        app: Flask application instance
        settings: config.settings.AppSettings
    """
    rate_limit = settings.rate_limit
    app.config.setdefault("RATELIMIT_ENABLED", rate_limit.enabled)
    app.config.setdefault("RATELIMIT_STORAGE_URI", rate_limit.storage)
    app.config.setdefault("RATELIMIT_DEFAULT", rate_limit.default)
    app.config.setdefault("AUTH_RATE_LIMIT", rate_limit.auth)
    limiter.init_app(app)

    @app.errorhandler(429)
    def ratelimit_handler(e):
        logger.warning(f"Rate limit exceeded: {e.description}")
        return {
            "error": "Rate limit exceeded",
            "message": str(e.description),
        }, 429
