"""Payment session binder.

A session is opened when checkout starts and resolved when the payment
provider reports the checkout as completed. Providers deliver webhooks at
least once, so resolution is claimed with a conditional UPDATE on the
``consumed`` flag: only the first delivery gets to touch the subscription, and
the claim commits together with the subscription write.
"""
import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyConsumed, AlreadyExists, Conflict, NotFound
from ..models.payment_session import PaymentSession
from ..models.subscription import Status
from ..models.user import User
from ..schemas.subscription_schema import serialize_subscription
from ..utils.timeutils import utcnow
from ..utils.transactions import atomic
from . import ledger

# A checkout can complete up to 24 h after it opens, and Stripe keeps
# redelivering an unacknowledged event for up to 3 days after that
MIN_SESSION_RETENTION = datetime.timedelta(days=4)


def get(session_id):
    return PaymentSession.query.filter_by(session_id=session_id).first()


def open(owner_id, session_id, intended_tier):
    tier = ledger.parse_tier(intended_tier)

    with atomic("open payment session") as session:
        if session.get(User, owner_id) is None:
            raise NotFound(f"User {owner_id} is not registered")
        if get(session_id) is not None:
            raise Conflict(f"Payment session {session_id} already exists")

        record = PaymentSession(
            session_id=session_id,
            owner_id=owner_id,
            intended_tier=tier.value,
            consumed=False,
        )
        try:
            with session.begin_nested():
                session.add(record)
        except IntegrityError as exc:
            raise Conflict(f"Payment session {session_id} already exists") from exc

    current_app.logger.info(f"Payment session {session_id} opened for {owner_id} ({tier.value})")
    return record


def _apply(record, provider_subscription_id):
    owner_id = record.owner_id
    existing = ledger.get(owner_id)

    if existing is None:
        try:
            subscription = ledger.create(owner_id, record.intended_tier, Status.ACTIVE)
        except AlreadyExists:
            # Another session for the same owner created it first
            existing = ledger.reload(owner_id)

    if existing is not None:
        if existing.status == Status.ACTIVE.value:
            subscription = ledger.override_tier(owner_id, existing.id, record.intended_tier)
        else:
            subscription = ledger.reinstate(owner_id, record.intended_tier)

    if provider_subscription_id:
        subscription = ledger.set_provider_subscription_id(owner_id, provider_subscription_id)

    return subscription


def resolve(session_id, provider_subscription_id=None):
    """Bind a completed checkout to its owner's subscription, exactly once.

    Returns ``(owner_id, subscription)``. A repeated call raises
    AlreadyConsumed carrying the first call's result and changes nothing.
    """
    with atomic("resolve payment session"):
        claimed = (
            PaymentSession.query
            .filter(
                PaymentSession.session_id == session_id,
                PaymentSession.consumed == False,  # noqa: E712
            )
            .update(
                {PaymentSession.consumed: True, PaymentSession.consumed_at: utcnow()},
                synchronize_session=False,
            )
        )
        record = (
            PaymentSession.query
            .filter_by(session_id=session_id)
            .populate_existing()
            .first()
        )
        if record is None:
            raise NotFound(f"Payment session {session_id} not found")

        if not claimed:
            prior = ledger.get(record.owner_id)
            raise AlreadyConsumed(
                data={"owner_id": record.owner_id, "subscription": serialize_subscription(prior)},
                owner_id=record.owner_id,
                subscription=prior,
            )

        subscription = _apply(record, provider_subscription_id)
        record.subscription_id = subscription.id
        owner_id = record.owner_id

    current_app.logger.info(
        f"Payment session {session_id} resolved: {owner_id} on {subscription.tier}/{subscription.status}"
    )
    return owner_id, subscription


def purge_expired(now=None) -> int:
    """Delete unconsumed sessions older than PAYMENT_SESSION_TTL seconds.

    Sessions younger than MIN_SESSION_RETENTION are kept whatever the setting,
    since Stripe may still report them completed.
    """
    now = now or utcnow()
    ttl = datetime.timedelta(seconds=int(current_app.config.get("PAYMENT_SESSION_TTL", 4 * 24 * 3600)))
    cutoff = now - max(ttl, MIN_SESSION_RETENTION)

    with atomic("purge payment sessions"):
        purged = (
            PaymentSession.query
            .filter(
                PaymentSession.consumed == False,  # noqa: E712
                PaymentSession.created_at < cutoff,
            )
            .delete(synchronize_session=False)
        )

    if purged:
        current_app.logger.info(f"Purged {purged} expired payment sessions")
    return purged
