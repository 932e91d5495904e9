"""
Authentication module for Bluhatch.

Bearer JWT authentication; every job and evidence operation is scoped to the
user resolved here.
"""

from .models import CurrentUser
from .tokens import create_access_token, decode_access_token, get_current_user

__all__ = [
    "CurrentUser",
    "create_access_token",
    "decode_access_token",
    "get_current_user"
]
