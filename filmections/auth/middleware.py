"""
Authentication middleware for validating Supabase JWT tokens.

Players may play anonymously; signing in links completed games to their stats.
Scheduling puzzles and reading stats require a valid token.
"""

import os
from functools import wraps

import jwt
from flask import g, request

from ..services.utils import create_response


def _jwt_secret():
    # Read per call so the secret can come from a .env loaded after import.
    return os.getenv("SUPABASE_JWT_SECRET")


def _decode_bearer_token(auth_header: str) -> dict:
    """
    Decodes "Bearer <token>" with Supabase's HS256 secret.

    :raises jwt.InvalidTokenError: The header is malformed or the token is invalid.
    """
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise jwt.InvalidTokenError("Invalid Authorization header format")

    return jwt.decode(
        parts[1],
        _jwt_secret(),
        algorithms=["HS256"],
        audience="authenticated",
    )


def require_auth(f):
    """
    Decorator that requires a valid Supabase JWT in the Authorization header.

    Stores the token's 'sub' claim in g.user_id. Returns 401 if the token is
    missing, malformed, expired or invalid.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header:
            return create_response(error="Missing Authorization header", status_code=401)

        try:
            payload = _decode_bearer_token(auth_header)
        except jwt.ExpiredSignatureError:
            return create_response(error="Token has expired", status_code=401)
        except jwt.InvalidTokenError as e:
            return create_response(error=f"Invalid token: {str(e)}", status_code=401)

        user_id = payload.get("sub")
        if not user_id:
            return create_response(error="Invalid token: missing user ID", status_code=401)

        g.user_id = user_id
        g.user_email = payload.get("email")
        return f(*args, **kwargs)

    return decorated_function


def get_current_user_id():
    """Returns the authenticated user's ID from Flask's g object, or None."""
    return getattr(g, "user_id", None)


def get_optional_user_id():
    """
    Returns the user ID when a valid token is present, None otherwise.

    Used by routes that work for anonymous players but record stats for
    signed-in ones.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    try:
        return _decode_bearer_token(auth_header).get("sub")
    except jwt.InvalidTokenError:
        return None
