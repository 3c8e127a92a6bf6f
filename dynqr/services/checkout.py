import time

import stripe
from flask import current_app

from ..errors import InternalError, NotFound, ValidationError
from ..models.subscription import Tier
from ..repositories.user_repository import get_user_by_id
from . import ledger, payment_sessions

PRICE_CONFIG_KEYS = {
    Tier.LITE: "STRIPE_PRICE_LITE",
    Tier.PRO: "STRIPE_PRICE_PRO",
}

# Stripe accepts expires_at between 30 minutes and 24 hours after creation
MIN_CHECKOUT_EXPIRY = 30 * 60
MAX_CHECKOUT_EXPIRY = 24 * 3600


def checkout_expiry_seconds() -> int:
    expiry = int(current_app.config.get("CHECKOUT_SESSION_EXPIRY", 3600))
    return min(max(expiry, MIN_CHECKOUT_EXPIRY), MAX_CHECKOUT_EXPIRY)


def _configure():
    secret = current_app.config.get("STRIPE_SECRET_KEY")
    if not secret:
        raise InternalError("Payments are not configured")
    stripe.api_key = secret


def _price_for(tier: Tier) -> str:
    key = PRICE_CONFIG_KEYS.get(tier)
    if key is None:
        raise ValidationError(f"The {tier.value} plan cannot be purchased.")
    price = current_app.config.get(key)
    if not price:
        raise InternalError(f"{key} is not configured")
    return price


def start_checkout(owner_id: str, tier) -> dict:
    """Create a Stripe subscription checkout and open the matching payment session."""
    tier = ledger.parse_tier(tier)
    price = _price_for(tier)

    user = get_user_by_id(owner_id)
    if user is None:
        raise NotFound("Account does not exist. Please register first.")

    _configure()
    try:
        customer = stripe.Customer.create(
            email=user.email,
            metadata={"owner_id": owner_id},
        )
        session = stripe.checkout.Session.create(
            customer=customer.id,
            client_reference_id=owner_id,
            mode="subscription",
            line_items=[{"price": price, "quantity": 1}],
            success_url=current_app.config["CHECKOUT_SUCCESS_URL"],
            cancel_url=current_app.config["CHECKOUT_CANCEL_URL"],
            metadata={"owner_id": owner_id, "tier": tier.value},
            expires_at=int(time.time()) + checkout_expiry_seconds(),
        )
    except stripe.StripeError as exc:
        current_app.logger.error(f"Stripe checkout creation failed for {owner_id}: {exc}")
        raise InternalError("Could not start checkout") from exc

    payment_sessions.open(owner_id, session.id, tier)

    return {
        "session_id": session.id,
        "checkout_url": session.url,
        "tier": tier.value,
    }


def set_cancel_at_period_end(owner_id: str, cancel: bool):
    """Cancel (or resume) the provider subscription at the end of the period.

    The ledger status only changes when the provider confirms through the
    webhook.
    """
    subscription = ledger.get(owner_id)
    if subscription is None or not subscription.provider_subscription_id:
        raise NotFound("No paid subscription found")

    _configure()
    try:
        stripe.Subscription.modify(
            subscription.provider_subscription_id,
            cancel_at_period_end=cancel,
        )
    except stripe.StripeError as exc:
        current_app.logger.error(f"Stripe subscription update failed for {owner_id}: {exc}")
        raise InternalError("Could not update the subscription") from exc

    current_app.logger.info(f"cancel_at_period_end={cancel} for {owner_id}")
    return subscription


def cancel_now(owner_id: str, prorate: bool = True, invoice_now: bool = False):
    """Cancel the provider subscription immediately.

    Stripe answers with customer.subscription.deleted, which moves the ledger
    to Canceled.
    """
    subscription = ledger.get(owner_id)
    if subscription is None or not subscription.provider_subscription_id:
        raise NotFound("No paid subscription found")

    _configure()
    try:
        stripe.Subscription.cancel(
            subscription.provider_subscription_id,
            prorate=prorate,
            invoice_now=invoice_now,
        )
    except stripe.StripeError as exc:
        current_app.logger.error(f"Stripe subscription cancel failed for {owner_id}: {exc}")
        raise InternalError("Could not cancel the subscription") from exc

    current_app.logger.info(f"Immediate cancellation requested for {owner_id}")
    return subscription
