"""Session identifier generation."""

import secrets

# 128 random bits, URL-safe base64 without padding
SESSION_ID_BYTES = 16
SESSION_ID_LENGTH = 22


def generate_session_id() -> str:
    """
    Generate a new random session identifier.

    Identifiers come from the OS CSPRNG and are never derived from
    session content, so they cannot be guessed from the outside.

    Returns:
        A 22 character URL-safe string.
    """
    return secrets.token_urlsafe(SESSION_ID_BYTES)
