from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import settings

_ALGO = "HS256"
ROLES = ("customer", "chef", "driver", "admin", "system")

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    id: str
    role: str


def create_token(user_id: str, role: str = "customer", ttl_minutes: int = 60) -> str:
    exp = datetime.now(timezone.utc) + timedelta(minutes=ttl_minutes)
    payload = {"sub": user_id, "role": role, "exp": exp}
    return jwt.encode(payload, settings.jwt_secret, algorithm=_ALGO)


def verify_token(token: str) -> Actor:
    payload = jwt.decode(token, settings.jwt_secret, algorithms=[_ALGO])
    role = payload.get("role", "customer")
    if role not in ROLES:
        raise jwt.InvalidTokenError(f"unknown role {role!r}")
    return Actor(id=payload["sub"], role=role)


async def current_actor(
    creds: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> Actor:
    """FastAPI dependency: the verified caller of a write endpoint."""
    if creds is None:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "missing bearer token")
    try:
        return verify_token(creds.credentials)
    except jwt.PyJWTError as exc:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, f"invalid token: {exc}") from exc
