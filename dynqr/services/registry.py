"""Dynamic URL registry: server_url -> current target_url, per owner.

Creating a row costs one usage unit and both happen in one transaction, so a
failed insert never leaves quota consumed. Deleting a row gives the unit back.
Updating the target is free and never changes the server_url.
"""
import secrets
import string

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import InternalError, NotFound
from ..models.dynamic_url import DynamicUrl
from ..utils.security import normalize_target_url
from ..utils.timeutils import utcnow
from ..utils.transactions import atomic
from . import ledger, resolver

SERVER_URL_ALPHABET = string.ascii_letters + string.digits


def _generate_server_url(length: int) -> str:
    return "".join(secrets.choice(SERVER_URL_ALPHABET) for _ in range(length))


def _insert(session, owner_id, target_url):
    length = int(current_app.config.get("SERVER_URL_LENGTH", 10))
    attempts = int(current_app.config.get("SERVER_URL_ATTEMPTS", 5))

    for _ in range(attempts):
        server_url = _generate_server_url(length)
        if DynamicUrl.query.filter_by(server_url=server_url).first():
            continue

        entry = DynamicUrl(server_url=server_url, owner_id=owner_id, target_url=target_url)
        try:
            with session.begin_nested():
                session.add(entry)
            return entry
        except IntegrityError:
            # Lost a race for the same code; draw again
            current_app.logger.warning(f"server_url collision on {server_url}, retrying")

    raise InternalError("Could not allocate a unique server URL")


def _owned(query, owner_id):
    if owner_id is not None:
        query = query.filter(DynamicUrl.owner_id == owner_id)
    return query


def create(owner_id, target_url):
    target_url = normalize_target_url(target_url)

    with atomic("create dynamic url") as session:
        ledger.increment_usage(owner_id)
        entry = _insert(session, owner_id, target_url)
        server_url = entry.server_url
        version = entry.version

    resolver.cache_target(server_url, target_url, version)
    current_app.logger.info(f"Dynamic URL {server_url} created for {owner_id}")
    return entry


def get(server_url, owner_id=None):
    entry = _owned(DynamicUrl.query.filter(DynamicUrl.server_url == server_url), owner_id).first()
    if entry is None:
        raise NotFound("URL not found or not yours")
    return entry


def update_target(server_url, new_target_url, owner_id=None):
    """Point server_url at a new target. Last writer wins."""
    target_url = normalize_target_url(new_target_url)

    with atomic("update dynamic url"):
        updated = (
            _owned(DynamicUrl.query.filter(DynamicUrl.server_url == server_url), owner_id)
            .update(
                {
                    DynamicUrl.target_url: target_url,
                    DynamicUrl.version: DynamicUrl.version + 1,
                    DynamicUrl.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        if not updated:
            raise NotFound("URL not found or not yours")
        entry = (
            DynamicUrl.query
            .filter_by(server_url=server_url)
            .populate_existing()
            .one()
        )
        version = entry.version

    resolver.cache_target(server_url, target_url, version)
    return entry


def delete(server_url, owner_id=None) -> bool:
    """Remove a dynamic URL and release its usage unit.

    Deleting something that is already gone succeeds and releases nothing.
    Returns whether a row was removed.
    """
    with atomic("delete dynamic url"):
        entry = _owned(DynamicUrl.query.filter(DynamicUrl.server_url == server_url), owner_id).first()
        if entry is None:
            return False

        entry_owner = entry.owner_id
        # The version bump locks the row; a concurrent delete finds nothing to bump
        claimed = (
            DynamicUrl.query
            .filter(DynamicUrl.id == entry.id)
            .update({DynamicUrl.version: DynamicUrl.version + 1}, synchronize_session=False)
        )
        if not claimed:
            return False
        final_version = (
            DynamicUrl.query
            .with_entities(DynamicUrl.version)
            .filter(DynamicUrl.id == entry.id)
            .scalar()
        )

        DynamicUrl.query.filter(DynamicUrl.id == entry.id).delete(synchronize_session=False)
        ledger.decrement_usage(entry_owner)

    resolver.tombstone(server_url, final_version)
    current_app.logger.info(f"Dynamic URL {server_url} deleted by {entry_owner}")
    return True


def list_for_owner(owner_id):
    return (
        DynamicUrl.query
        .filter_by(owner_id=owner_id)
        .order_by(DynamicUrl.created_at.asc(), DynamicUrl.server_url.asc())
        .all()
    )
