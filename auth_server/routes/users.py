"""
Account registration endpoint.

    POST /api/users   create an account with the default user role

Rate limited like the login endpoint.
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from auth_server.auth import (
    MAX_EMAIL_LENGTH,
    MAX_PASSWORD_LENGTH,
    MAX_USERNAME_LENGTH,
    register_account,
)
from auth_server.extensions import auth_rate_limit, limiter

logger = logging.getLogger(__name__)

users_bp = Blueprint('users', __name__, url_prefix='/api/users')


@users_bp.route('', methods=['POST'])
@limiter.limit(auth_rate_limit)
def register():
    """Register a new account. Duplicate usernames are a 409."""
    data = request.get_json(silent=True)

    if not data or not isinstance(data, dict):
        return jsonify({"error": "No account details provided"}), 400

    username = data.get("username")
    password = data.get("password")
    email_address = data.get("email_address")

    # Type validation - prevent type confusion attacks
    if not isinstance(username, str) or not isinstance(password, str):
        return jsonify({"error": "Username and password must be strings"}), 400

    if email_address is not None and not isinstance(email_address, str):
        return jsonify({"error": "Email address must be a string"}), 400

    username = username.strip()
    if not username or not password:
        return jsonify({"error": "Username and password required"}), 400

    if len(username) > MAX_USERNAME_LENGTH or len(password) > MAX_PASSWORD_LENGTH:
        return jsonify({"error": "Credentials exceed maximum length"}), 400

    if email_address and len(email_address) > MAX_EMAIL_LENGTH:
        return jsonify({"error": "Email address exceeds maximum length"}), 400

    accounts = current_app.extensions["trak_auth"].accounts
    account = register_account(accounts, username, password, email_address=email_address or None)
    logger.info(f"Registered user {account.id}")

    return jsonify(account.to_response()), 201
