from flask import Blueprint, redirect, request, send_file

from ..errors import ValidationError
from ..schemas.dynamic_url_schema import serialize_dynamic_url
from ..services import ledger, registry, resolver
from ..utils.jwt_helper import token_required
from ..utils.qr_generator import generate_styled_qr
from ..utils.response import api_response

url_bp = Blueprint("url", __name__)


def _target_from_body():
    data = request.get_json(silent=True) or {}
    target_url = (data.get("target_url") or "").strip()
    if not target_url:
        raise ValidationError("target_url is required")
    return target_url


@url_bp.route("/dynamic-urls", methods=["POST"])
@token_required
def create(owner_id):
    entry = registry.create(owner_id, _target_from_body())
    subscription = ledger.get(owner_id)

    return api_response(True, "Dynamic URL created", {
        "dynamic_url": serialize_dynamic_url(entry),
        "usage": {
            "used": subscription.usage_count,
            "limit": subscription.usage_limit,
        },
    }, status=201)


@url_bp.route("/dynamic-urls", methods=["GET"])
@token_required
def my_urls(owner_id):
    entries = registry.list_for_owner(owner_id)
    return api_response(True, "Dynamic URLs", {
        "owner_id": owner_id,
        "urls": [serialize_dynamic_url(e) for e in entries],
    })


@url_bp.route("/dynamic-urls/<server_url>", methods=["GET"])
@token_required
def get_url_details(owner_id, server_url):
    entry = registry.get(server_url, owner_id=owner_id)
    return api_response(True, "Dynamic URL", serialize_dynamic_url(entry))


@url_bp.route("/dynamic-urls/<server_url>", methods=["PUT"])
@token_required
def edit_target(owner_id, server_url):
    entry = registry.update_target(server_url, _target_from_body(), owner_id=owner_id)
    return api_response(True, "Target updated", serialize_dynamic_url(entry))


@url_bp.route("/dynamic-urls/<server_url>", methods=["DELETE"])
@token_required
def delete_url(owner_id, server_url):
    removed = registry.delete(server_url, owner_id=owner_id)
    message = f"Dynamic URL '{server_url}' deleted." if removed else f"Dynamic URL '{server_url}' was already gone."
    return api_response(True, message, {"deleted": removed})


@url_bp.route("/dynamic-urls/<server_url>/qr", methods=["GET"])
@token_required
def qr_code(owner_id, server_url):
    registry.get(server_url, owner_id=owner_id)

    buffer = generate_styled_qr(
        server_url,
        color_dark=request.args.get("color", "#000000"),
        style=request.args.get("style", "square"),
    )
    return send_file(
        buffer,
        mimetype="image/png",
        download_name=f"{server_url}.png",
    )


@url_bp.route("/scan/<server_url>")
def scan(server_url):
    # Public: no auth and no quota check on the redirect path
    target_url = resolver.lookup(server_url)
    return redirect(target_url, code=302)
