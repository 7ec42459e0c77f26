# connex/auth.py
from __future__ import annotations

from typing import Optional

import jwt
from fastapi import Header, HTTPException

from .settings import settings


def decode_user_id(token: str) -> Optional[int]:
    """Return the ``id`` claim of a valid token, or None."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError:
        return None
    try:
        return int(payload.get("id"))
    except (TypeError, ValueError):
        return None


def get_current_user_id(authorization: Optional[str] = Header(default=None)) -> int:
    """
    Bearer-token dependency. Tokens are issued by the account service;
    401 when no token is sent, 403 when it does not verify.
    """
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Unauthorized")
    user_id = decode_user_id(token)
    if user_id is None:
        raise HTTPException(status_code=403, detail="Forbidden")
    return user_id
