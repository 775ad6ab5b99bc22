"""
Two-factor authentication management endpoints.

    GET    /api/users/<id>/2fa   current state
    POST   /api/users/<id>/2fa   generate a secret and its QR code
    PUT    /api/users/<id>/2fa   confirm with a code and enable
    DELETE /api/users/<id>/2fa   disable

Only the account owner or an admin may call these.
"""

from flask import Blueprint, Response, current_app, jsonify, request

from auth_server.auth import owner_or_admin_required
from auth_server.extensions import auth_rate_limit, limiter
from core.errors import InternalError, ValidationError, safe_error_response

two_factor_bp = Blueprint('two_factor', __name__, url_prefix='/api/users')


def _coordinator():
    return current_app.extensions["trak_auth"].two_factor


@two_factor_bp.route('/<int:user_id>/2fa', methods=['GET'])
@owner_or_admin_required
def two_factor_status(user_id, principal):
    state = _coordinator().status(user_id)
    return jsonify({"user_id": user_id, "two_factor_state": state.value})


@two_factor_bp.route('/<int:user_id>/2fa', methods=['POST'])
@owner_or_admin_required
def begin_two_factor(user_id, principal):
    """Start enrollment. Returns the QR code as a data URI, or as raw PNG with ?format=png."""
    try:
        result = _coordinator().begin_enrollment(user_id)
    except InternalError as e:
        return safe_error_response(e, "create two-factor secret")

    if request.args.get("format") == "png":
        return Response(result.qr_image, mimetype="image/png")

    return jsonify({
        "user_id": result.account_id,
        "qr_code": result.qr_data_uri(),
        "manual_entry_key": result.manual_key,
        "message": "Scan the QR code with your authenticator app, then confirm with a code",
    }), 201


@two_factor_bp.route('/<int:user_id>/2fa', methods=['PUT'])
@owner_or_admin_required
@limiter.limit(auth_rate_limit)
def confirm_two_factor(user_id, principal):
    data = request.get_json(silent=True)
    code = data.get("code") if isinstance(data, dict) else None

    if not isinstance(code, str) or not code:
        raise ValidationError("2FA code required")

    account = _coordinator().confirm_enrollment(user_id, code)
    return jsonify(account.to_response())


@two_factor_bp.route('/<int:user_id>/2fa', methods=['DELETE'])
@owner_or_admin_required
def disable_two_factor(user_id, principal):
    account = _coordinator().disable(user_id)
    return jsonify(account.to_response())
