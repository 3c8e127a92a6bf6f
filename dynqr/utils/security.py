from urllib.parse import urlparse

from flask import current_app

from ..errors import ValidationError

ALLOWED_SCHEMES = ("http", "https")
MAX_TARGET_LENGTH = 2048


def _host(url: str) -> str:
    return (urlparse(url).hostname or "").lower()


def normalize_target_url(url: str | None) -> str:
    """Validate a redirect target and return it in canonical form.

    Scheme-less input gets https://. Targets on our own host are refused so a
    dynamic URL can never point at another dynamic URL.
    """
    url = (url or "").strip()
    if not url:
        raise ValidationError("target_url is required")
    if len(url) > MAX_TARGET_LENGTH:
        raise ValidationError(f"target_url must be at most {MAX_TARGET_LENGTH} characters")

    if "://" not in url:
        url = "https://" + url

    try:
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
    except ValueError as exc:
        raise ValidationError(f"Invalid target_url: {exc}") from exc

    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise ValidationError(f"Unsupported URL scheme: {parsed.scheme}")

    if not host or " " in parsed.netloc:
        raise ValidationError("target_url must include a valid host")

    own_host = _host(current_app.config.get("BASE_URL", ""))
    if own_host and (host == own_host or host.endswith("." + own_host)):
        raise ValidationError("Redirect chains are not supported.")

    return url
