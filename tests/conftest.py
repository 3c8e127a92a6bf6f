import hashlib
import hmac
import time

import pytest

from dynqr import create_app, extensions
from dynqr.extensions import db
from dynqr.models.user import User
from dynqr.services import user_service
from dynqr.utils.jwt_helper import encode_token

WEBHOOK_SECRET = "whsec_test_secret"


class InMemoryRedis:
    """Just enough of redis.Redis for the redirect cache."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def eval(self, script, numkeys, key, version, target, ttl):
        # Same rule as the cache script: only a higher version replaces an entry
        current = self.store.get(key)
        if current is not None:
            cached_version = current.partition("|")[0]
            if cached_version.isdigit() and int(cached_version) >= int(version):
                return 0
        self.store[key] = f"{version}|{target}"
        return 1


@pytest.fixture
def app(tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret-key",
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'dynqr.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {
            "connect_args": {"check_same_thread": False, "timeout": 30},
        },
        "BASE_URL": "https://qr.example.test",
        "REDIS_URL": "",
        "JWKS_URL": None,
        "JWT_AUDIENCE": None,
        "JWT_ALGORITHM": "HS256",
        "STRIPE_SECRET_KEY": "sk_test_dummy",
        "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
        "STRIPE_PRICE_LITE": "price_lite",
        "STRIPE_PRICE_PRO": "price_pro",
        "TIER_LIMITS": {"Free": 1, "Lite": 5, "Pro": 250},
        "PAST_DUE_GRACE": False,
    })

    yield app

    extensions.redis_client = None
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def cache():
    fake = InMemoryRedis()
    extensions.redis_client = fake
    yield fake
    extensions.redis_client = None


def register(token_sub="auth0|alice", email="alice@example.com"):
    """Register a user (Free subscription included) and return its owner_id."""
    user = user_service.register(token_sub, email)
    return user.id


def add_bare_user(owner_id="bob", email="bob@example.com"):
    """A user row with no subscription at all."""
    db.session.add(User(id=owner_id, email=email))
    db.session.commit()
    return owner_id


def auth_headers(app, sub="auth0|alice", email="alice@example.com"):
    with app.app_context():
        token = encode_token(sub, email=email)
    return {"Authorization": f"Bearer {token}"}


def stripe_signature(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = hmac.new(
        secret.encode("utf-8"),
        f"{timestamp}.{payload}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()
    return f"t={timestamp},v1={signed}"
