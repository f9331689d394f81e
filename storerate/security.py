"""Bearer token issuance and the role gate placed in front of the directory service."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings
from .database import Database
from .errors import ForbiddenError, UnauthorizedError
from .models import Role, User


@dataclass(frozen=True)
class Principal:
    """Who is calling, as established by a verified token."""

    user_id: int
    role: Role


class TokenCodec:
    """Sign and verify HS256 access tokens carrying ``sub`` and ``role`` claims."""

    def __init__(self, settings: Settings) -> None:
        if not settings.secret_key:
            raise ValueError("A token secret must be configured")
        self._secret = settings.secret_key
        self._algorithm = settings.algorithm
        self._ttl = settings.token_ttl

    def issue(self, user: User, *, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        claims: Dict[str, Any] = {
            "sub": str(user.id),
            "role": user.role.value,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttl).timestamp()),
        }
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> Optional[Principal]:
        try:
            claims = jwt.decode(token, self._secret, algorithms=[self._algorithm])
            return Principal(user_id=int(claims["sub"]), role=Role(claims["role"]))
        except (JWTError, KeyError, TypeError, ValueError):
            return None


def build_auth_dependency(database: Database, codec: TokenCodec) -> Callable[..., Principal]:
    """Return a dependency yielding the caller's :class:`Principal` or raising UnauthorizedError."""

    bearer_security = HTTPBearer(auto_error=False)

    def dependency(
        bearer: HTTPAuthorizationCredentials | None = Depends(bearer_security),
    ) -> Principal:
        if bearer is None or bearer.scheme.lower() != "bearer":
            raise UnauthorizedError("Not authenticated")

        principal = codec.verify(bearer.credentials)
        if principal is None:
            raise UnauthorizedError("Invalid or expired token")

        # Role comes from the current row, not the token.
        user = database.get_user(principal.user_id)
        if user is None:
            raise UnauthorizedError("User no longer exists")
        return Principal(user_id=user.id, role=user.role)

    return dependency


def require_roles(current_user: Callable[..., Principal], *roles: Role) -> Callable[..., Principal]:
    """Dependency factory admitting only callers holding one of ``roles``."""

    allowed = frozenset(roles)

    def dependency(principal: Principal = Depends(current_user)) -> Principal:
        if principal.role not in allowed:
            raise ForbiddenError()
        return principal

    return dependency


__all__ = ["Principal", "TokenCodec", "build_auth_dependency", "require_roles"]
