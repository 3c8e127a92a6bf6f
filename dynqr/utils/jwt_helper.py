import datetime
from functools import lru_cache, wraps

import jwt
from flask import current_app, g, request

from ..models.user import format_user_id
from .response import api_response


@lru_cache(maxsize=4)
def _jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


def encode_token(sub: str, email: str | None = None, hours: int = 24) -> str:
    """Issue a locally signed token. Used by tests; production tokens come from the identity provider."""
    payload = {
        "sub": sub,
        "exp": datetime.datetime.now(datetime.timezone.utc) + datetime.timedelta(hours=hours),
    }
    if email:
        payload["email"] = email
    audience = current_app.config.get("JWT_AUDIENCE")
    if audience:
        payload["aud"] = audience

    token = jwt.encode(payload, current_app.config["SECRET_KEY"], algorithm="HS256")
    return token


def decode_token(token: str) -> dict:
    audience = current_app.config.get("JWT_AUDIENCE")
    options = {"require": ["sub", "exp"]}
    if not audience:
        options["verify_aud"] = False

    jwks_url = current_app.config.get("JWKS_URL")
    if jwks_url:
        signing_key = _jwks_client(jwks_url).get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["RS256"],
            audience=audience,
            options=options,
        )

    payload = jwt.decode(
        token,
        current_app.config["SECRET_KEY"],
        algorithms=[current_app.config.get("JWT_ALGORITHM") or "HS256"],
        audience=audience,
        options=options,
    )
    return payload


def _bearer_token():
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        return None
    if " " in auth_header:
        scheme, _, token = auth_header.partition(" ")
        if scheme.lower() != "bearer":
            return None
        return token.strip() or None
    return auth_header


def token_required(f):
    """Authenticate the caller and pass ``owner_id`` as the first argument."""

    @wraps(f)
    def decorated(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return api_response(False, "Token is missing!", None, code="Unauthorized", status=401)

        try:
            claims = decode_token(token)
        except jwt.PyJWTError as e:
            current_app.logger.info(f"Rejected token: {e}")
            return api_response(False, "Invalid or expired token!", None, code="Unauthorized", status=401)

        owner_id = format_user_id(claims.get("sub") or "")
        if not owner_id:
            return api_response(False, "Token has no subject!", None, code="Unauthorized", status=401)

        g.token_claims = claims
        return f(owner_id, *args, **kwargs)

    return decorated
