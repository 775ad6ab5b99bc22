"""
Token endpoints for the Trak authentication API.

Provides password login, the second step of a two-factor login, and the
refresh-token exchange. Credential-checking endpoints are rate limited.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from auth_server.auth import (
    MAX_PASSWORD_LENGTH,
    MAX_USERNAME_LENGTH,
    authenticate,
    get_token_from_request,
)
from auth_server.extensions import auth_rate_limit, limiter

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _services():
    return current_app.extensions["trak_auth"]


@auth_bp.route('/token', methods=['POST'])
@limiter.limit(auth_rate_limit)
def login():
    """Check username and password, then issue tokens.

    Accounts using 2FA receive a short-lived pending token instead of an
    access token and must complete the login at /token/2fa.
    """
    data = request.get_json(silent=True)

    if not data or not isinstance(data, dict):
        return jsonify({"error": "No credentials provided"}), 400

    username = data.get("username")
    password = data.get("password")

    # Type validation - prevent type confusion attacks
    if not isinstance(username, str) or not isinstance(password, str):
        return jsonify({"error": "Username and password must be strings"}), 400

    if not username or not password:
        return jsonify({"error": "Username and password required"}), 400

    if len(username) > MAX_USERNAME_LENGTH or len(password) > MAX_PASSWORD_LENGTH:
        return jsonify({"error": "Credentials exceed maximum length"}), 400

    services = _services()
    account = authenticate(services.accounts, username, password)
    logger.info(f"Password check passed for user {account.id}")
    payload = services.outcome_handler.handle_success(account)

    return jsonify(payload.to_dict())


@auth_bp.route('/token/2fa', methods=['POST'])
@limiter.limit(auth_rate_limit)
def login_two_factor():
    """Exchange a pending two-factor token and a TOTP code for full tokens."""
    token = get_token_from_request()
    if not token:
        return jsonify({"error": "Missing authorization token"}), 401

    data = request.get_json(silent=True)
    code = data.get("code") if isinstance(data, dict) else None

    if not isinstance(code, str) or not code:
        return jsonify({"error": "2FA code required"}), 400

    payload = _services().outcome_handler.handle_two_factor(token, code)
    return jsonify(payload.to_dict())


@auth_bp.route('/token/refresh', methods=['POST'])
def refresh_access_token():
    """Get a new access token using a refresh token."""
    token = get_token_from_request()
    if not token:
        return jsonify({"error": "Missing authorization token"}), 401

    payload = _services().outcome_handler.handle_refresh(token)
    return jsonify(payload.to_dict())
