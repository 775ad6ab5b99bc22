"""
Flask route decorators for authentication and authorization.

Provides:
- jwt_required: Require a valid access token; passes the decoded claims to
  the view as the `principal` keyword argument
- owner_or_admin_required: Require the principal to own the `user_id` in the
  URL or hold ROLE_ADMIN

The authenticated principal is always handed to the view explicitly; nothing
is stashed on flask.g.
"""
from functools import wraps

from flask import current_app, jsonify

from core.errors import InvalidTokenError, PermissionDeniedError
from .config import ADMIN_ROLE
from .tokens import get_token_from_request
from .types import TokenKind


def jwt_required(f):
    """Decorator to require a valid access token for an endpoint."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = get_token_from_request()

        if not token:
            return jsonify({"error": "Missing authorization token"}), 401

        issuer = current_app.extensions["trak_auth"].token_issuer
        try:
            principal = issuer.decode_token(token, expected_kind=TokenKind.ACCESS)
        except InvalidTokenError:
            return jsonify({"error": "Invalid or expired token"}), 401

        return f(*args, principal=principal, **kwargs)
    return decorated


def owner_or_admin_required(f):
    """Decorator restricting an account route to its owner or an admin.

    Usage:
        @bp.route('/<int:user_id>/2fa', methods=['DELETE'])
        @owner_or_admin_required
        def disable(user_id, principal):
            ...
    """
    @wraps(f)
    @jwt_required
    def decorated(*args, principal, **kwargs):
        user_id = kwargs.get("user_id")
        if principal.user_id != user_id and ADMIN_ROLE not in principal.scopes:
            raise PermissionDeniedError("You may only manage your own account")
        return f(*args, principal=principal, **kwargs)
    return decorated
