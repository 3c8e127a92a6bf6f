from flask import Blueprint, request

from ..errors import NotFound
from ..schemas.subscription_schema import serialize_subscription
from ..services import checkout, ledger
from ..utils.jwt_helper import token_required
from ..utils.response import api_response

subscription_bp = Blueprint("subscription", __name__)


def _flag(name, default=False):
    value = request.args.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@subscription_bp.route("", methods=["GET"])
@token_required
def subscription_status(owner_id):
    subscription = ledger.get(owner_id)
    if subscription is None:
        raise NotFound("No subscription found")

    return api_response(True, "Subscription status fetched", {
        "subscription": serialize_subscription(subscription),
        "is_active": ledger.validate(owner_id),
    })


@subscription_bp.route("/checkout", methods=["POST"])
@token_required
def start_checkout(owner_id):
    data = request.get_json(silent=True) or {}
    result = checkout.start_checkout(owner_id, data.get("tier"))
    return api_response(True, "Checkout session created", result, status=201)


@subscription_bp.route("/cancel", methods=["POST"])
@token_required
def cancel_subscription(owner_id):
    if _flag("immediate"):
        subscription = checkout.cancel_now(
            owner_id,
            prorate=_flag("prorate", default=True),
            invoice_now=_flag("invoice_now"),
        )
        return api_response(True, "Subscription cancelled.", {
            "subscription": serialize_subscription(subscription),
        })

    subscription = checkout.set_cancel_at_period_end(owner_id, True)
    return api_response(True, "Subscription will cancel at the end of the billing period.", {
        "subscription": serialize_subscription(subscription),
    })


@subscription_bp.route("/resume", methods=["POST"])
@token_required
def resume_subscription(owner_id):
    subscription = checkout.set_cancel_at_period_end(owner_id, False)
    return api_response(True, "Subscription resumed.", {
        "subscription": serialize_subscription(subscription),
    })
