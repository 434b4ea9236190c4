"""Invitation token generation."""

import secrets

TOKEN_BYTES = 32


def generate_token() -> str:
    """Generate a new invitation token.

    Returns:
        str: 64-character hex string from 32 random bytes.
    """
    return secrets.token_hex(TOKEN_BYTES)


def regenerate_token(previous: str) -> str:
    """Generate a token that differs from the one being replaced.

    Args:
        previous: Token currently stored on the invitation.

    Returns:
        str: Fresh token.
    """
    token = generate_token()
    while token == previous:
        token = generate_token()
    return token
