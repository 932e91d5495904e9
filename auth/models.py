"""
Authentication models for Bluhatch.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Owner resolved from the bearer token."""
    id: UUID
    email: Optional[str] = None


class AuthToken(BaseModel):
    """JWT token model."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
