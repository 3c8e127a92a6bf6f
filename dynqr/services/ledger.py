"""Subscription ledger: tier, status and the usage counter of each owner.

Every counter or status change is a single conditional UPDATE so that the
check and the write happen in one statement. Two request handlers (or two
service instances) racing for the last unit of quota can never both win; the
database decides, and the loser sees ``rowcount == 0``.
"""
from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyExists, Conflict, NotFound, QuotaExceeded, SubscriptionInvalid, ValidationError
from ..models.subscription import Status, Subscription, Tier
from ..models.user import User
from ..utils.timeutils import utcnow
from ..utils.transactions import atomic


# status -> statuses it may move to through set_status
TRANSITIONS = {
    Status.INCOMPLETE: {Status.ACTIVE},
    Status.ACTIVE: {Status.PAST_DUE, Status.CANCELED},
    Status.PAST_DUE: {Status.ACTIVE, Status.CANCELED},
    Status.CANCELED: set(),
}


def parse_tier(value) -> Tier:
    try:
        return Tier.parse(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def parse_status(value) -> Status:
    try:
        return Status.parse(value)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def limit_for(tier) -> int:
    limits = current_app.config["TIER_LIMITS"]
    return int(limits[parse_tier(tier).value])


def usable_statuses() -> list:
    """Statuses that pass validate(); PastDue only under the grace policy."""
    statuses = [Status.ACTIVE.value]
    if current_app.config.get("PAST_DUE_GRACE"):
        statuses.append(Status.PAST_DUE.value)
    return statuses


def reload(owner_id):
    return (
        Subscription.query
        .filter_by(owner_id=owner_id)
        .populate_existing()
        .first()
    )


def get(owner_id):
    return Subscription.query.filter_by(owner_id=owner_id).first()


def get_by_provider_id(provider_subscription_id):
    if not provider_subscription_id:
        return None
    return Subscription.query.filter_by(provider_subscription_id=provider_subscription_id).first()


def create(owner_id, initial_tier, status=Status.ACTIVE):
    tier = parse_tier(initial_tier)
    status = parse_status(status)

    with atomic("create subscription") as session:
        if session.get(User, owner_id) is None:
            raise NotFound(f"User {owner_id} is not registered")
        if get(owner_id) is not None:
            raise AlreadyExists(f"Subscription already exists for {owner_id}")

        subscription = Subscription(
            owner_id=owner_id,
            tier=tier.value,
            status=status.value,
            usage_count=0,
            usage_limit=limit_for(tier),
        )
        # A concurrent create for the same owner trips the unique constraint
        try:
            with session.begin_nested():
                session.add(subscription)
        except IntegrityError as exc:
            raise AlreadyExists(f"Subscription already exists for {owner_id}") from exc

    current_app.logger.info(f"Subscription created for {owner_id}: {tier.value}/{status.value}")
    return subscription


def override_tier(owner_id, subscription_id, new_tier):
    """Move a subscription to another tier.

    Only the limit follows the tier; usage_count and status are left alone even
    when the count now exceeds the new limit.
    """
    tier = parse_tier(new_tier)

    with atomic("override tier"):
        updated = (
            Subscription.query
            .filter(Subscription.owner_id == owner_id, Subscription.id == subscription_id)
            .update(
                {
                    Subscription.tier: tier.value,
                    Subscription.usage_limit: limit_for(tier),
                    Subscription.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if not updated:
            raise NotFound(f"No subscription {subscription_id} for {owner_id}")
        subscription = reload(owner_id)

    current_app.logger.info(f"Tier for {owner_id} set to {tier.value}")
    return subscription


def reinstate(owner_id, tier):
    """Resubscribe on the existing row: new tier, limit and Active status.

    This is the payment-resolution path out of Incomplete, PastDue or
    Canceled; set_status never leaves Canceled.
    """
    tier = parse_tier(tier)

    with atomic("reinstate subscription"):
        updated = (
            Subscription.query
            .filter(Subscription.owner_id == owner_id)
            .update(
                {
                    Subscription.tier: tier.value,
                    Subscription.usage_limit: limit_for(tier),
                    Subscription.status: Status.ACTIVE.value,
                    Subscription.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if not updated:
            raise NotFound(f"No subscription for {owner_id}")
        subscription = reload(owner_id)

    current_app.logger.info(f"Subscription for {owner_id} reinstated on {tier.value}")
    return subscription


def set_status(owner_id, new_status):
    status = parse_status(new_status)
    sources = [source.value for source, targets in TRANSITIONS.items() if status in targets]

    with atomic("set subscription status"):
        updated = 0
        if sources:
            updated = (
                Subscription.query
                .filter(Subscription.owner_id == owner_id, Subscription.status.in_(sources))
                .update(
                    {Subscription.status: status.value, Subscription.updated_at: utcnow()},
                    synchronize_session=False,
                )
            )
        subscription = reload(owner_id)
        if subscription is None:
            raise NotFound(f"No subscription for {owner_id}")
        if not updated and subscription.status != status.value:
            raise Conflict(f"Cannot move subscription from {subscription.status} to {status.value}")

    current_app.logger.info(f"Status for {owner_id} is now {status.value}")
    return subscription


def set_provider_subscription_id(owner_id, provider_subscription_id):
    with atomic("link provider subscription"):
        updated = (
            Subscription.query
            .filter(Subscription.owner_id == owner_id)
            .update(
                {
                    Subscription.provider_subscription_id: provider_subscription_id,
                    Subscription.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if not updated:
            raise NotFound(f"No subscription for {owner_id}")
        return reload(owner_id)


def validate(owner_id) -> bool:
    subscription = get(owner_id)
    return subscription is not None and subscription.status in usable_statuses()


def increment_usage(owner_id):
    """Consume one usage unit, or raise without touching the row."""
    with atomic("increment usage"):
        updated = (
            Subscription.query
            .filter(
                Subscription.owner_id == owner_id,
                Subscription.status.in_(usable_statuses()),
                Subscription.usage_count < Subscription.usage_limit,
            )
            .update(
                {
                    Subscription.usage_count: Subscription.usage_count + 1,
                    Subscription.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        subscription = reload(owner_id)

        if not updated:
            if subscription is None or subscription.status not in usable_statuses():
                current_app.logger.info(f"Usage denied for {owner_id}: subscription not valid")
                raise SubscriptionInvalid()
            current_app.logger.info(
                f"Usage denied for {owner_id}: {subscription.usage_count}/{subscription.usage_limit} used"
            )
            raise QuotaExceeded(
                f"Usage limit reached for the {subscription.tier} plan ({subscription.usage_limit})."
            )

    return subscription


def decrement_usage(owner_id):
    """Release one usage unit; stays at 0 rather than going negative."""
    with atomic("decrement usage"):
        (
            Subscription.query
            .filter(Subscription.owner_id == owner_id, Subscription.usage_count > 0)
            .update(
                {
                    Subscription.usage_count: Subscription.usage_count - 1,
                    Subscription.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        subscription = reload(owner_id)
        if subscription is None:
            raise NotFound(f"No subscription for {owner_id}")

    return subscription
