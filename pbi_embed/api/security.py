from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import logging

import jwt
from fastapi import HTTPException, Header

from pbi_embed.config import cfg
from pbi_embed.schemas.embed import CallerIdentity

logger = logging.getLogger(__name__)


def _get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    lower = authorization.lower()
    if lower.startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return None


def issue_token(caller: CallerIdentity, *, expires_min: Optional[int] = None) -> str:
    """Sign a caller JWT (sub/name/email/role)."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": caller.id,
        "name": caller.name,
        "email": caller.email,
        "role": caller.role,
        "iat": now,
        "exp": now + timedelta(minutes=expires_min if expires_min is not None else cfg.jwt_expires_min),
    }
    return jwt.encode(payload, cfg.jwt_secret, algorithm=cfg.jwt_algorithm)


def decode_token(token: str) -> CallerIdentity:
    """Verify signature/expiry. Raises jwt.PyJWTError."""
    claims = jwt.decode(token, cfg.jwt_secret, algorithms=[cfg.jwt_algorithm])
    sub = claims.get("sub")
    if not sub:
        raise jwt.InvalidTokenError("token has no subject")
    return CallerIdentity(
        id=str(sub),
        name=claims.get("name"),
        email=claims.get("email"),
        role=claims.get("role"),
    )


# FastAPI dependency wrapper (declarative)
def dep_current_caller(authorization: Optional[str] = Header(None)) -> CallerIdentity:
    token = _get_bearer_token(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="Missing token")
    try:
        return decode_token(token)
    except jwt.PyJWTError as e:
        logger.info("rejected bearer token: %s", e)
        raise HTTPException(status_code=401, detail="Invalid or expired token")
