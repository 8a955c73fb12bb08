"""Identity gateway: bearer JWT verification."""

from chirper.auth.dependencies import CurrentUser, get_current_user, get_token_from_header
from chirper.auth.schemas import AuthenticatedUser
from chirper.auth.security import create_access_token, decode_access_token


__all__ = [
    "AuthenticatedUser",
    "CurrentUser",
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "get_token_from_header",
]
