from flask import Blueprint, g, request

from ..schemas.subscription_schema import serialize_subscription
from ..schemas.user_schema import serialize_user
from ..services import ledger, user_service
from ..utils.jwt_helper import token_required
from ..utils.response import api_response

user_bp = Blueprint("user", __name__)


@user_bp.route("/users", methods=["POST"])
@token_required
def register(owner_id):
    """Register the token's subject. Email comes from the body, or the token claims."""
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or g.token_claims.get("email") or "").strip()

    user = user_service.register(g.token_claims.get("sub"), email)

    return api_response(True, "User registered", {
        "user": serialize_user(user),
        "subscription": serialize_subscription(ledger.get(user.id)),
    }, status=201)


@user_bp.route("/users/me", methods=["GET"])
@token_required
def me(owner_id):
    user = user_service.get_user(owner_id)
    return api_response(True, "User details", {
        "user": serialize_user(user),
        "subscription": serialize_subscription(ledger.get(owner_id)),
    })


@user_bp.route("/users/me", methods=["DELETE"])
@token_required
def delete_account(owner_id):
    removed = user_service.erase(owner_id)
    return api_response(True, "Account deleted", {"deleted_urls": removed})
