"""JWT handling for the identity gateway.

Access tokens are issued by the external auth service and signed with the
shared ``auth_secret_key``. This module only verifies them; token creation is
kept for local development and tests.
"""

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from jose import JWTError, jwt

from chirper.config.settings import get_settings


def create_access_token(
    user_id: UUID | str,
    expires_delta: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Create a JWT access token for ``user_id``.

    Token payload includes:
        - sub: user id
        - exp: Expiration timestamp
        - iat: Issued at timestamp
        - type: "access"
    """
    settings = get_settings()

    to_encode = dict(extra_claims or {})
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.auth_access_token_expire_minutes)
    )

    to_encode.update(
        {
            "sub": str(user_id),
            "exp": expire,
            "iat": datetime.now(UTC),
            "type": "access",
        }
    )

    return jwt.encode(
        to_encode,
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type == "access"
    - ``sub`` is a UUID

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    try:
        UUID(str(payload.get("sub")))
    except ValueError as e:
        msg = "Token subject is not a user id"
        raise JWTError(msg) from e

    return payload
