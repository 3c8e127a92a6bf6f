from flask import Blueprint, current_app, request

from ..services.webhook_service import parse_event, process_webhook_event, verify_webhook_signature
from ..utils.response import api_response

webhook_bp = Blueprint("webhook", __name__)


@webhook_bp.route("/webhook", methods=["POST"])
def stripe_webhook():
    """
    Stripe webhook endpoint - NO TOKEN AUTHENTICATION
    Requests are authenticated by the Stripe-Signature header instead.
    """
    # Raw body; the signature covers the exact bytes Stripe sent
    payload_body = request.get_data(as_text=True)

    signature = request.headers.get("Stripe-Signature")
    if not signature:
        current_app.logger.warning("Webhook without Stripe-Signature header")
        return api_response(False, "Missing signature", None, code="ValidationError", status=400)

    webhook_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    if not webhook_secret:
        current_app.logger.error("STRIPE_WEBHOOK_SECRET not configured")
        return api_response(False, "Webhook not configured", None, code="InternalError", status=500)

    if not verify_webhook_signature(payload_body, signature, webhook_secret):
        return api_response(False, "Invalid signature", None, code="Unauthorized", status=401)

    event_data = parse_event(payload_body)

    # NotFound (404) and InternalError (500) propagate so Stripe retries; resolution is idempotent
    message, data = process_webhook_event(event_data)
    current_app.logger.info(f"Webhook processed: {message}")
    return api_response(True, message, data)
