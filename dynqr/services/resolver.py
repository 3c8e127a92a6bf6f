"""Redirect resolver: server_url -> target_url, Redis first.

Cache entries are ``"<version>|<target>"``. Writes go through a compare-and-set
script that only replaces an entry carrying a lower row version, so a lookup
that read the database before an update committed can never put the old
target back over the new one. A deleted row leaves a tombstone (empty target)
at its final version.
"""
import redis
from flask import current_app
from sqlalchemy import select

from .. import extensions
from ..errors import NotFound
from ..extensions import db
from ..models.dynamic_url import DynamicUrl

# KEYS[1] cache key; ARGV: version, target, ttl
CACHE_SET_SCRIPT = """
local current = redis.call('GET', KEYS[1])
if current then
  local cached_version = tonumber(string.match(current, '^(%d+)|'))
  if cached_version and cached_version >= tonumber(ARGV[1]) then
    return 0
  end
end
redis.call('SET', KEYS[1], ARGV[1] .. '|' .. ARGV[2], 'EX', tonumber(ARGV[3]))
return 1
"""


def _cache_key(server_url: str) -> str:
    return f"scan:{server_url}"


def _parse_entry(raw):
    version, sep, target_url = (raw or "").partition("|")
    if not sep or not version.isdigit():
        return None, None
    return int(version), target_url


def cache_target(server_url: str, target_url: str, version: int) -> bool:
    """Store target_url at version unless the cache already holds a newer one."""
    if not extensions.redis_client:
        return False
    try:
        ttl = int(current_app.config.get("REDIS_TTL", 3600))
        stored = extensions.redis_client.eval(
            CACHE_SET_SCRIPT, 1, _cache_key(server_url), int(version), target_url, ttl
        )
        return bool(stored)
    except redis.RedisError as exc:
        current_app.logger.warning(f"Redis SET failed for {server_url}: {exc}")
        return False


def tombstone(server_url: str, version: int) -> None:
    cache_target(server_url, "", version)


def lookup(server_url: str) -> str:
    """Return the current target for a server_url.

    No quota check happens here. A lookup racing an update sees either the old
    or the new target, never a mix: target_url and version are read as one row.
    """
    if extensions.redis_client:
        try:
            _, cached = _parse_entry(extensions.redis_client.get(_cache_key(server_url)))
            if cached:
                return cached
        except redis.RedisError as exc:
            current_app.logger.warning(f"Redis GET failed for {server_url}: {exc}")

    # Plain read on its own connection, outside any write transaction
    with db.engine.connect() as conn:
        row = (
            conn.execution_options(read_only=True)
            .execute(
                select(DynamicUrl.target_url, DynamicUrl.version)
                .where(DynamicUrl.server_url == server_url)
            )
            .first()
        )
    if row is None:
        raise NotFound("URL does not exist")

    cache_target(server_url, row.target_url, row.version)
    return row.target_url
