"""
JWT authentication helpers and decorators for the Flask API.

Tokens only carry the caller identity; roles are looked up from the
administrative store on every request that depends on them.
"""

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from flask import jsonify, request

from masterdash.config import SECRET_KEY, TOKEN_EXPIRY_HOURS
from masterdash.errors import StoreUnavailable
from masterdash.models import AccessContext
from masterdash.store import get_user_role


def generate_token(ctx: AccessContext, expires_in: timedelta = None) -> str:
    """Generate a JWT token for an authenticated user."""
    now = datetime.now(timezone.utc)
    payload = {
        "user_id": ctx.user_id,
        "display_name": ctx.display_name,
        "email": ctx.email,
        "iat": now,
        "exp": now + (expires_in or timedelta(hours=TOKEN_EXPIRY_HOURS)),
    }
    return jwt.encode(payload, SECRET_KEY, algorithm="HS256")


def verify_token(token: str) -> Optional[Dict[str, Any]]:
    """Verify a JWT token and return the decoded payload (or None)."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None


def token_required(f):
    """Decorator that protects endpoints with JWT authentication."""
    @wraps(f)
    def decorated(*args, **kwargs):
        token = None

        # Authorization header (Bearer token), then query string
        if "Authorization" in request.headers:
            parts = request.headers["Authorization"].split(" ")
            if len(parts) != 2 or parts[0].lower() != "bearer":
                return jsonify({"error": "Invalid authorization header format"}), 401
            token = parts[1]
        if not token:
            token = request.args.get("token")

        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        payload = verify_token(token)
        if not payload or "user_id" not in payload:
            return jsonify({"error": "Invalid or expired token"}), 401

        request.caller_id = int(payload["user_id"])
        request.token_payload = payload

        return f(*args, **kwargs)

    return decorated


def role_required(engine, role: str):
    """Decorator factory restricting an endpoint to callers holding *role*."""
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            try:
                current = get_user_role(engine, request.caller_id)
            except StoreUnavailable:
                return jsonify({"error": "Internal server error"}), 500
            if current != role:
                return jsonify({"error": "Not authorized"}), 403
            return f(*args, **kwargs)
        return decorated
    return decorator
