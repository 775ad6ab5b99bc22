"""
Centralized error handling for the Trak authentication API.

Error Hierarchy:
- APIError (4xx): Expected errors with messages safe to expose to clients
- InternalError (5xx): Programmer/config errors - never expose internal details

Usage:
    from core.errors import safe_error_response, NotFoundError, BadCredentialsError

    # For expected errors (4xx) - raise with safe message
    raise NotFoundError(f"User {user_id} not found")

    # For internal errors (5xx) - use safe_error_response
    except InternalError as e:
        return safe_error_response(e, "create two-factor secret")
"""

import logging
import uuid
from flask import jsonify
from typing import Tuple, Any

logger = logging.getLogger(__name__)


# =============================================================================
# Exception Classes (4xx - Expected Errors)
# =============================================================================

class APIError(Exception):
    """
    Base class for expected API errors (4xx status codes).
    Messages are safe to expose to clients.
    """
    status_code = 400

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class NotFoundError(APIError):
    """Resource not found (404)."""
    status_code = 404


class ValidationError(APIError):
    """Request validation failed (400)."""
    status_code = 400


class PermissionDeniedError(APIError):
    """Permission denied (403)."""
    status_code = 403


class AuthenticationError(APIError):
    """Authentication failed (401)."""
    status_code = 401


class BadCredentialsError(AuthenticationError):
    """Wrong password or two-factor code (401)."""


class InvalidTokenError(AuthenticationError):
    """Token is malformed, expired, badly signed or of the wrong kind (401)."""


class AuthenticationServiceError(AuthenticationError):
    """Authenticated account carries no recognisable role authority (401)."""


class ConflictError(APIError):
    """Resource conflict (409)."""
    status_code = 409


class AlreadyEnabledError(ConflictError):
    """Two-factor enrollment attempted while it is already enabled (409).

    The client must disable two-factor authentication before re-provisioning.
    """


class ConcurrentModificationError(ConflictError):
    """Account was modified by another request since it was loaded (409)."""


# =============================================================================
# Internal Error (5xx - Never Expose)
# =============================================================================

class InternalError(Exception):
    """
    Unexpected internal errors (5xx status codes).
    Message should NEVER be exposed to clients.
    """
    pass


class InvalidStateError(InternalError):
    """Programmer or configuration error, e.g. minting a token for a user with no roles."""


class ProvisioningRenderError(InternalError):
    """The two-factor provisioning QR image could not be rendered."""


# =============================================================================
# Safe Error Response Helper
# =============================================================================

def safe_error_response(
    e: Exception,
    operation: str,
    include_error_id: bool = True
) -> Tuple[Any, int]:
    """
    Create a safe error response for API endpoints.

    For APIError subclasses (expected errors):
        - Returns the error message (safe to expose)
        - Uses the exception's status_code
        - Logs at WARNING level

    For all other exceptions (internal or unexpected errors):
        - Returns generic message (never exposes internal details)
        - Returns 500 status code
        - Logs full exception at ERROR level

    Args:
        e: The exception that was caught
        operation: Human-readable description of what failed (e.g., "create two-factor secret")
        include_error_id: Whether to include error_id for support reference

    Returns:
        Tuple of (json_response, status_code)
    """
    error_id = str(uuid.uuid4())[:8] if include_error_id else None
    log_extra = {'error_id': error_id} if error_id else {}

    if isinstance(e, APIError):
        # Expected error - safe to expose message
        logger.warning(f"{operation}: {e}", extra=log_extra)

        response = {"error": str(e)}
        if error_id:
            response["error_id"] = error_id

        return jsonify(response), e.status_code

    # Internal error - log full details, return generic message
    logger.error(f"{operation} failed", exc_info=e, extra=log_extra)

    response = {"error": f"{operation} failed"}
    if error_id:
        response["error_id"] = error_id

    return jsonify(response), 500


def register_error_handlers(app):
    """
    Register Flask error handlers for the error hierarchy.

    Call this in your Flask app factory:
        from core.errors import register_error_handlers
        register_error_handlers(app)
    """

    @app.errorhandler(APIError)
    def handle_api_error(e):
        """Handle all APIError subclasses."""
        error_id = str(uuid.uuid4())[:8]
        logger.warning(f"API error: {e}", extra={'error_id': error_id})
        return jsonify({
            "error": str(e),
            "error_id": error_id
        }), e.status_code

    @app.errorhandler(InternalError)
    def handle_internal_error(e):
        """Handle InternalError subclasses raised out of a view."""
        error_id = str(uuid.uuid4())[:8]
        logger.error("Internal error", exc_info=e, extra={'error_id': error_id})
        return jsonify({
            "error": "Internal server error",
            "error_id": error_id
        }), 500

    @app.errorhandler(500)
    def handle_server_error(e):
        """Handle unexpected 500 errors."""
        error_id = str(uuid.uuid4())[:8]
        logger.exception("Internal server error", extra={'error_id': error_id})
        return jsonify({
            "error": "Internal server error",
            "error_id": error_id
        }), 500
