"""Authentication module."""

from opshub.auth.utils import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)

__all__ = [
    "create_access_token",
    "decode_access_token",
    "verify_password",
    "get_password_hash",
]
