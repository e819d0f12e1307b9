"""
PharmaPOP Entry Security Utilities

Validation of the session JWTs issued by the login service.
"""

from jose import JWTError, jwt

from core.config import get_settings


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a session JWT. Returns None when invalid or expired."""
    runtime_settings = get_settings()
    try:
        return jwt.decode(
            token,
            runtime_settings.jwt_secret,
            algorithms=[runtime_settings.jwt_algorithm],
        )
    except JWTError:
        return None
