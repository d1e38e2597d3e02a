"""
HueSampler ID Utilities
Session tokens and request IDs.
"""
import secrets
import uuid
from datetime import datetime


TOKEN_BYTES = 24


def generate_session_token() -> str:
    """
    Generate an opaque, unguessable session token.

    Returns:
        URL-safe random string carrying 192 bits of entropy
    """
    return secrets.token_urlsafe(TOKEN_BYTES)


def short_token(token: str) -> str:
    """Token prefix that is safe to put in logs."""
    return f"{token[:8]}…" if token else ""


def generate_request_id() -> str:
    """
    Generate a unique request ID for tracking.

    Returns:
        Unique request ID string
    """
    timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
    short_uuid = str(uuid.uuid4())[:8]
    return f"img-{timestamp}-{short_uuid}"
