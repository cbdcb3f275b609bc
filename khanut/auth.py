import logging
from typing import Optional

import jwt
from fastapi import Request
from pydantic import BaseModel

from .errors import AuthError

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    id: str
    role: str


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization.split(" ", 1)[1].strip() or None


def decode_token(token: str, secret: str) -> dict:
    return jwt.decode(token, secret, algorithms=["HS256"])


def require_customer(request: Request) -> CurrentUser:
    """
    Customers only. The caller id comes out of the signed token,
    so handlers never take a customer id from the request itself.
    """
    token = bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise AuthError(401, "No token provided")

    settings = request.app.state.settings
    try:
        claims = decode_token(token, settings.jwt_secret)
    except jwt.PyJWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        raise AuthError(401, "Invalid or expired token")

    if claims.get("role") != "customer":
        raise AuthError(403, "Access denied. Customers only.")
    if not claims.get("id"):
        raise AuthError(401, "Invalid or expired token")

    return CurrentUser(id=str(claims["id"]), role=claims["role"])
