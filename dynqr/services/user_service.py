from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyExists, NotFound, ValidationError
from ..models.dynamic_url import DynamicUrl
from ..models.subscription import Status, Tier
from ..models.user import User, format_user_id
from ..repositories.user_repository import get_user_by_id
from ..utils.transactions import atomic
from . import ledger, resolver


def register(token_sub: str, email: str) -> User:
    """Create the identity record and its implicit Free subscription together."""
    owner_id = format_user_id(token_sub)
    email = (email or "").strip()
    if not owner_id:
        raise ValidationError("Identity token has no subject")
    if not email or "@" not in email:
        raise ValidationError("A valid email is required")

    with atomic("register user") as session:
        if get_user_by_id(owner_id) is not None:
            raise AlreadyExists(f"User already exists: {owner_id}")

        user = User(id=owner_id, email=email)
        try:
            with session.begin_nested():
                session.add(user)
        except IntegrityError as exc:
            raise AlreadyExists(f"User already exists: {owner_id}") from exc

        ledger.create(owner_id, Tier.FREE, Status.ACTIVE)

    current_app.logger.info(f"Registered user {owner_id}")
    return user


def get_user(owner_id: str) -> User:
    user = get_user_by_id(owner_id)
    if user is None:
        raise NotFound("Account does not exist. Please register first.")
    return user


def erase(owner_id: str) -> int:
    """Delete the account and everything it owns. Returns the URLs removed."""
    with atomic("erase account") as session:
        user = get_user_by_id(owner_id)
        if user is None:
            raise NotFound("Account does not exist.")

        # Bump versions so the redirect tombstones outrank any cached target
        (
            DynamicUrl.query
            .filter(DynamicUrl.owner_id == owner_id)
            .update({DynamicUrl.version: DynamicUrl.version + 1}, synchronize_session=False)
        )
        removed = (
            session.query(DynamicUrl.server_url, DynamicUrl.version)
            .filter(DynamicUrl.owner_id == owner_id)
            .all()
        )
        session.delete(user)

    for server_url, version in removed:
        resolver.tombstone(server_url, version)

    current_app.logger.info(f"Erased user {owner_id} and {len(removed)} dynamic URLs")
    return len(removed)
