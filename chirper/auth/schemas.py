"""Pydantic schemas for authentication."""

from uuid import UUID

from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    """Identity extracted from a verified bearer token.

    Only the id is trusted; profile data comes from the user directory.
    """

    id: UUID
