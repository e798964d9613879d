"""Token minting, password hashing, and request authentication helpers."""

import hashlib
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional, Tuple

import bcrypt
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from warden.core.config import settings
from warden.core.exceptions import ForbiddenError, UnauthorizedError, ValidationError
from warden.db.session import get_db
from warden.schemas.schemas import Principal
from warden.services.permission_service import permission_resolver

# JWT bearer scheme
security_scheme = HTTPBearer(auto_error=False)


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# bcrypt only reads the first 72 bytes and newer releases refuse longer input
BCRYPT_MAX_BYTES = 72


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    pwd_bytes = password.encode("utf-8")
    if len(pwd_bytes) > BCRYPT_MAX_BYTES:
        raise ValidationError(f"Password must be at most {BCRYPT_MAX_BYTES} bytes")
    salt = bcrypt.gensalt()
    hashed = bcrypt.hashpw(pwd_bytes, salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """Verify a password against its hash."""
    if not hashed_password:
        return False
    pwd_bytes = plain_password.encode("utf-8")
    if len(pwd_bytes) > BCRYPT_MAX_BYTES:
        return False
    hashed_bytes = hashed_password.encode("utf-8")
    return bcrypt.checkpw(pwd_bytes, hashed_bytes)


def mint_access_token(
    user_id: int,
    email: str,
    roles: Iterable[str],
    expires_delta: Optional[timedelta] = None,
) -> Tuple[str, datetime]:
    """Create a signed JWT access token.

    The token carries the subject id, the email claim, a unique ``jti``,
    the issue time and the caller's role names. Returns the encoded token
    and its expiry as naive UTC.
    """
    issued_at = datetime.now(timezone.utc)
    expire = issued_at + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRY_MINUTES)
    )
    to_encode = {
        "sub": str(user_id),
        "email": email,
        "jti": str(uuid.uuid4()),
        "iat": int(issued_at.timestamp()),
        "exp": expire,
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "roles": list(roles),
        "type": "access",
    }
    token = jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expire.replace(tzinfo=None)


def mint_refresh_token() -> str:
    """Generate an opaque refresh token from the system CSPRNG."""
    return secrets.token_urlsafe(settings.REFRESH_TOKEN_BYTES)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a refresh token, used for storage and lookup."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def decode_access_token(token: str) -> dict:
    """Decode and validate a JWT access token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        raise UnauthorizedError("Invalid or expired token")
    if payload.get("type") != "access" or payload.get("sub") is None:
        raise UnauthorizedError("Invalid token payload")
    return payload


async def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme),
) -> Principal:
    """Extract the caller's identity and roles from the JWT Bearer token."""
    if credentials is None:
        raise UnauthorizedError("Not authenticated")
    payload = decode_access_token(credentials.credentials)
    return Principal(
        user_id=int(payload["sub"]),
        email=payload.get("email", ""),
        roles=payload.get("roles", []),
    )


async def get_current_user_id(
    principal: Principal = Depends(get_current_principal),
) -> int:
    return principal.user_id


class RequireRole:
    """Dependency that checks the caller holds at least one of the given roles."""

    def __init__(self, *roles: str):
        self.roles = set(roles)

    async def __call__(
        self,
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        if not self.roles.intersection(principal.roles):
            raise ForbiddenError(
                f"Requires one of roles: {', '.join(sorted(self.roles))}"
            )
        return principal


class RequireAction:
    """Dependency that checks the caller's roles may perform an action on a route."""

    def __init__(self, route: str, action_code: str):
        self.route = route
        self.action_code = action_code

    async def __call__(
        self,
        principal: Principal = Depends(get_current_principal),
        db: Session = Depends(get_db),
    ) -> Principal:
        if not permission_resolver.can_perform_action(
            db, principal.roles, self.route, self.action_code
        ):
            raise ForbiddenError(
                f"Action '{self.action_code}' not permitted on {self.route}"
            )
        return principal


# Convenience dependency factories
require_admin = RequireRole(settings.ADMIN_ROLE)

