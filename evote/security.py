"""
Security utilities.

Covers:
  - Password hashing (bcrypt via passlib)
  - Email OTP generation and expiry
  - Bearer tokens (HS256 JWT via python-jose) carrying user id and role
  - Role → permission table used by the per-request permission check
"""

import secrets
from datetime import datetime, timedelta, timezone
from enum import Enum

from jose import jwt, JWTError, ExpiredSignatureError
from passlib.context import CryptContext

from .config import Settings
from .errors import AuthError

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt via passlib."""
    return pwd_context.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return pwd_context.verify(password, hashed)


# ---------------------------------------------------------------------------
# One-time passwords (emailed on registration / unverified login)
# ---------------------------------------------------------------------------

def generate_otp(digits: int = 6) -> str:
    """Return a numeric code without a leading zero, e.g. ``"483920"``."""
    low = 10 ** (digits - 1)
    return str(low + secrets.randbelow(9 * low))


def generate_otp_expiry(minutes: int = 10, now: datetime | None = None) -> datetime:
    return (now or utcnow()) + timedelta(minutes=minutes)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Bearer tokens
# ---------------------------------------------------------------------------

def create_access_token(user_id: int, role: str, settings: Settings) -> str:
    payload = {
        "user_id": user_id,
        "role": role,
        "exp": utcnow() + timedelta(hours=settings.jwt_expiry_hours),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> dict:
    """Return the token claims or raise ``AuthError``."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except ExpiredSignatureError:
        raise AuthError("Token expired")
    except JWTError:
        raise AuthError("Invalid token")
    if "user_id" not in payload or "role" not in payload:
        raise AuthError("Invalid token")
    return payload


# ---------------------------------------------------------------------------
# Roles and permissions
# ---------------------------------------------------------------------------

class UserRole(str, Enum):
    VOTER = "voter"
    ADMIN = "admin"


class Permission(str, Enum):
    VOTE = "vote"
    VIEW_ELECTIONS = "view_elections"
    VIEW_RESULTS = "view_results"
    MANAGE_ELECTIONS = "manage_elections"


ROLE_PERMISSIONS = {
    UserRole.VOTER: {
        Permission.VOTE,
        Permission.VIEW_ELECTIONS,
        Permission.VIEW_RESULTS,
    },
    UserRole.ADMIN: {
        Permission.VOTE,
        Permission.VIEW_ELECTIONS,
        Permission.VIEW_RESULTS,
        Permission.MANAGE_ELECTIONS,
    },
}


def has_permission(role, permission) -> bool:
    try:
        role = UserRole(role)
        permission = Permission(permission)
    except ValueError:
        return False
    return permission in ROLE_PERMISSIONS.get(role, set())
