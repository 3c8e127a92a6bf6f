import json

import stripe
from flask import current_app

from ..errors import AlreadyConsumed, Conflict, NotFound, ValidationError
from ..models.subscription import Status
from ..schemas.subscription_schema import serialize_subscription
from . import ledger, payment_sessions

# Stripe subscription.status -> ledger status
PROVIDER_STATUS_MAP = {
    "active": Status.ACTIVE,
    "trialing": Status.ACTIVE,
    "past_due": Status.PAST_DUE,
    "unpaid": Status.PAST_DUE,
    "canceled": Status.CANCELED,
}


def verify_webhook_signature(payload_body: str, signature: str, secret: str) -> bool:
    """
    Verify a Stripe-Signature header against the raw request body.

    Returns:
        bool: True if signature is valid, False otherwise
    """
    try:
        stripe.WebhookSignature.verify_header(
            payload_body, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
        )
        return True
    except stripe.SignatureVerificationError as e:
        current_app.logger.warning(f"Webhook signature rejected: {e}")
        return False


def parse_event(payload_body: str) -> dict:
    try:
        event = json.loads(payload_body)
    except json.JSONDecodeError as exc:
        raise ValidationError("Invalid JSON") from exc
    if not isinstance(event, dict) or "type" not in event:
        raise ValidationError("Not a webhook event")
    return event


def _event_object(event_data: dict) -> dict:
    return (event_data.get("data") or {}).get("object") or {}


def process_checkout_completed(event_data):
    """checkout.session.completed: bind the session to the owner's subscription."""
    session_obj = _event_object(event_data)
    session_id = session_obj.get("id")
    if not session_id:
        raise ValidationError("checkout.session.completed without a session id")

    try:
        owner_id, subscription = payment_sessions.resolve(
            session_id,
            provider_subscription_id=session_obj.get("subscription"),
        )
    except AlreadyConsumed as e:
        current_app.logger.info(f"Duplicate delivery for payment session {session_id}, ignoring")
        return "Payment session already applied", e.data
    except NotFound:
        # Answered with 404 so Stripe keeps redelivering
        current_app.logger.error(f"checkout.session.completed for unknown payment session {session_id}")
        raise

    return "Subscription updated", {
        "owner_id": owner_id,
        "subscription": serialize_subscription(subscription),
    }


def process_subscription_changed(event_data, status=None):
    """customer.subscription.updated / .deleted: mirror the provider status."""
    sub_obj = _event_object(event_data)
    provider_id = sub_obj.get("id")
    status = status or PROVIDER_STATUS_MAP.get(sub_obj.get("status"))

    if status is None:
        return f"Provider status {sub_obj.get('status')!r} not tracked", None

    subscription = ledger.get_by_provider_id(provider_id)
    if subscription is None:
        current_app.logger.warning(f"No subscription linked to {provider_id}, ignoring")
        return "Unknown subscription", None

    try:
        subscription = ledger.set_status(subscription.owner_id, status)
    except Conflict as e:
        current_app.logger.warning(f"Ignoring status change for {provider_id}: {e.message}")
        return "Status change ignored", None

    return "Subscription status updated", {"subscription": serialize_subscription(subscription)}


def process_webhook_event(event_data: dict):
    """Dispatch a verified event. Returns (message, data)."""
    event_type = event_data.get("type", "unknown")
    current_app.logger.info(f"Processing webhook event {event_data.get('id')} ({event_type})")

    if event_type == "checkout.session.completed":
        return process_checkout_completed(event_data)
    if event_type == "customer.subscription.updated":
        return process_subscription_changed(event_data)
    if event_type == "customer.subscription.deleted":
        return process_subscription_changed(event_data, status=Status.CANCELED)

    return "Event received", None
