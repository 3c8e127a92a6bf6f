import os
from dotenv import load_dotenv

load_dotenv()


REQUIRED_KEYS = ("SECRET_KEY", "SQLALCHEMY_DATABASE_URI", "BASE_URL")

# Maximum live dynamic URLs per tier
DEFAULT_TIER_LIMITS = {
    "Free": 1,
    "Lite": 25,
    "Pro": 250,
}


def _env_bool(key: str, default: bool = False) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def parse_tier_limits(raw: str | None) -> dict:
    """Parse ``Free=1,Lite=25,Pro=250`` into a dict, keeping defaults for missing tiers."""
    limits = dict(DEFAULT_TIER_LIMITS)
    if not raw:
        return limits

    for part in raw.split(","):
        if not part.strip():
            continue
        name, _, value = part.partition("=")
        limits[name.strip().capitalize()] = int(value)
    return limits


def require_config(config) -> None:
    missing = [key for key in REQUIRED_KEYS if not config.get(key)]
    if missing:
        raise RuntimeError(f"Missing required configuration: {', '.join(missing)}")


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
    BASE_URL = (os.getenv("BASE_URL") or "").rstrip("/")
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_TTL = int(os.getenv("REDIS_TTL", 3600))

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Identity provider
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE")
    JWKS_URL = os.getenv("JWKS_URL")

    # Stripe
    STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
    STRIPE_PRICE_LITE = os.getenv("STRIPE_PRICE_LITE")
    STRIPE_PRICE_PRO = os.getenv("STRIPE_PRICE_PRO")
    CHECKOUT_SUCCESS_URL = os.getenv("CHECKOUT_SUCCESS_URL", "http://localhost:4200/success")
    CHECKOUT_CANCEL_URL = os.getenv("CHECKOUT_CANCEL_URL", "http://localhost:4200/cancel")

    # Subscription policy
    TIER_LIMITS = parse_tier_limits(os.getenv("TIER_LIMITS"))
    PAST_DUE_GRACE = _env_bool("PAST_DUE_GRACE", False)
    # Stripe checkout sessions expire after CHECKOUT_SESSION_EXPIRY (30 min to 24 h);
    # purge keeps unconsumed sessions at least that long plus the redelivery window
    CHECKOUT_SESSION_EXPIRY = int(os.getenv("CHECKOUT_SESSION_EXPIRY", 3600))
    PAYMENT_SESSION_TTL = int(os.getenv("PAYMENT_SESSION_TTL", 4 * 24 * 3600))

    # server_url allocation
    SERVER_URL_LENGTH = int(os.getenv("SERVER_URL_LENGTH", 10))
    SERVER_URL_ATTEMPTS = int(os.getenv("SERVER_URL_ATTEMPTS", 5))
