import random
import threading

import pytest

from dynqr.errors import InternalError, NotFound, QuotaExceeded, SubscriptionInvalid, ValidationError
from dynqr.extensions import db
from dynqr.models.dynamic_url import DynamicUrl
from dynqr.models.subscription import Status, Tier
from dynqr.services import ledger, registry, resolver

from conftest import register


def _usage(owner_id):
    return ledger.get(owner_id).usage_count


def test_free_owner_create_delete_create(ctx):
    owner_id = register()

    first_server_url = registry.create(owner_id, "https://example.com/one").server_url
    assert _usage(owner_id) == 1

    with pytest.raises(QuotaExceeded):
        registry.create(owner_id, "https://example.com/two")
    assert _usage(owner_id) == 1
    assert DynamicUrl.query.filter_by(owner_id=owner_id).count() == 1

    assert registry.delete(first_server_url, owner_id=owner_id) is True
    assert _usage(owner_id) == 0

    second = registry.create(owner_id, "https://example.com/two")
    assert second.server_url != first_server_url
    assert _usage(owner_id) == 1


def test_create_normalizes_target(ctx):
    owner_id = register()

    entry = registry.create(owner_id, "  example.com/menu ")

    assert entry.target_url == "https://example.com/menu"
    assert len(entry.server_url) == 10
    assert entry.server_url.isalnum()


@pytest.mark.parametrize("target", [
    "",
    "ftp://example.com/file",
    "https://",
    "https://qr.example.test/scan/abc",
    "https://cdn.qr.example.test/x",
])
def test_create_rejects_bad_targets_without_consuming_quota(ctx, target):
    owner_id = register()

    with pytest.raises(ValidationError):
        registry.create(owner_id, target)
    assert _usage(owner_id) == 0


def test_create_requires_valid_subscription(ctx):
    owner_id = register()
    ledger.set_status(owner_id, Status.CANCELED)

    with pytest.raises(SubscriptionInvalid):
        registry.create(owner_id, "https://example.com")
    assert DynamicUrl.query.count() == 0


def test_server_url_collision_draws_again(ctx, monkeypatch):
    owner_id = register()
    sub = ledger.get(owner_id)
    ledger.override_tier(owner_id, sub.id, Tier.LITE)

    codes = iter(["AAAAAAAAAA", "AAAAAAAAAA", "BBBBBBBBBB"])
    monkeypatch.setattr(registry, "_generate_server_url", lambda length: next(codes))

    assert registry.create(owner_id, "https://example.com/1").server_url == "AAAAAAAAAA"
    assert registry.create(owner_id, "https://example.com/2").server_url == "BBBBBBBBBB"
    assert _usage(owner_id) == 2


def test_exhausted_allocation_rolls_back_usage(app, ctx, monkeypatch):
    owner_id = register()
    sub = ledger.get(owner_id)
    ledger.override_tier(owner_id, sub.id, Tier.LITE)
    monkeypatch.setattr(registry, "_generate_server_url", lambda length: "SAMECODE00")
    registry.create(owner_id, "https://example.com/1")

    with pytest.raises(InternalError):
        registry.create(owner_id, "https://example.com/2")

    assert _usage(owner_id) == 1
    assert DynamicUrl.query.count() == 1


def test_update_target_keeps_server_url_and_usage(ctx):
    owner_id = register()
    entry = registry.create(owner_id, "https://example.com/old")
    server_url = entry.server_url

    updated = registry.update_target(server_url, "https://example.com/new", owner_id=owner_id)

    assert updated.server_url == server_url
    assert updated.target_url == "https://example.com/new"
    assert resolver.lookup(server_url) == "https://example.com/new"
    assert _usage(owner_id) == 1


def test_update_target_of_other_owner(ctx):
    alice = register()
    entry = registry.create(alice, "https://example.com/alice")
    bob = register("auth0|bob", "bob@example.com")

    with pytest.raises(NotFound):
        registry.update_target(entry.server_url, "https://evil.example.com", owner_id=bob)
    assert resolver.lookup(entry.server_url) == "https://example.com/alice"


def test_update_unknown_server_url(ctx):
    with pytest.raises(NotFound):
        registry.update_target("nope", "https://example.com")


def test_delete_twice_releases_once(ctx):
    owner_id = register()
    entry = registry.create(owner_id, "https://example.com")
    server_url = entry.server_url

    assert registry.delete(server_url, owner_id=owner_id) is True
    assert registry.delete(server_url, owner_id=owner_id) is False
    assert _usage(owner_id) == 0

    with pytest.raises(NotFound):
        resolver.lookup(server_url)


def test_delete_of_other_owner_leaves_row(ctx):
    alice = register()
    entry = registry.create(alice, "https://example.com")
    bob = register("auth0|bob", "bob@example.com")

    assert registry.delete(entry.server_url, owner_id=bob) is False
    assert _usage(alice) == 1
    assert registry.get(entry.server_url).owner_id == alice


def test_list_for_owner(ctx):
    owner_id = register()
    sub = ledger.get(owner_id)
    ledger.override_tier(owner_id, sub.id, Tier.LITE)
    created = [registry.create(owner_id, f"https://example.com/{i}").server_url for i in range(3)]
    register("auth0|bob", "bob@example.com")

    listed = [e.server_url for e in registry.list_for_owner(owner_id)]

    assert sorted(listed) == sorted(created)
    assert registry.list_for_owner("auth0_bob") == []


def test_concurrent_creates_never_exceed_limit(app):
    with app.app_context():
        owner_id = register()
        sub = ledger.get(owner_id)
        ledger.override_tier(owner_id, sub.id, Tier.LITE)  # limit 5
        db.session.remove()

    outcomes = []
    lock = threading.Lock()

    def worker(i):
        with app.app_context():
            try:
                registry.create(owner_id, f"https://example.com/{i}")
                result = "created"
            except QuotaExceeded:
                result = "quota"
            finally:
                db.session.remove()
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(12)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("created") == 5
    assert outcomes.count("quota") == 7
    with app.app_context():
        assert _usage(owner_id) == 5
        assert DynamicUrl.query.filter_by(owner_id=owner_id).count() == 5


def test_concurrent_deletes_release_one_unit(app):
    with app.app_context():
        owner_id = register()
        sub = ledger.get(owner_id)
        ledger.override_tier(owner_id, sub.id, Tier.LITE)
        server_url = registry.create(owner_id, "https://example.com/a").server_url
        registry.create(owner_id, "https://example.com/b")
        db.session.remove()

    results = []
    lock = threading.Lock()

    def worker():
        with app.app_context():
            try:
                removed = registry.delete(server_url, owner_id=owner_id)
            finally:
                db.session.remove()
            with lock:
                results.append(removed)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
    assert results.count(False) == 5
    with app.app_context():
        assert _usage(owner_id) == 1


def test_mixed_create_delete_storm_keeps_count_in_step(app):
    with app.app_context():
        owner_id = register()
        sub = ledger.get(owner_id)
        ledger.override_tier(owner_id, sub.id, Tier.LITE)  # limit 5
        db.session.remove()

    errors = []
    lock = threading.Lock()

    def worker(seed):
        rng = random.Random(seed)
        with app.app_context():
            try:
                for i in range(10):
                    owned = [e.server_url for e in registry.list_for_owner(owner_id)]
                    if owned and rng.random() < 0.5:
                        registry.delete(rng.choice(owned), owner_id=owner_id)
                    else:
                        try:
                            registry.create(owner_id, f"https://example.com/{seed}/{i}")
                        except QuotaExceeded:
                            pass
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    with app.app_context():
        sub = ledger.get(owner_id)
        rows = DynamicUrl.query.filter_by(owner_id=owner_id).count()
        assert sub.usage_count == rows
        assert rows <= sub.usage_limit


def test_unexpected_error_rolls_back_usage(ctx, monkeypatch):
    owner_id = register()

    def broken_insert(session, owner_id, target_url):
        raise KeyError("SERVER_URL_LENGTH")

    monkeypatch.setattr(registry, "_insert", broken_insert)

    with pytest.raises(KeyError):
        registry.create(owner_id, "https://example.com")

    assert not db.session.dirty
    assert _usage(owner_id) == 0
    assert DynamicUrl.query.count() == 0
