"""
Bearer-token authentication and the per-request permission check.
"""
from dataclasses import dataclass

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings
from .dependencies import get_settings
from .errors import AuthError, ForbiddenError
from .security import Permission, decode_access_token, has_permission

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    id: int
    role: str


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> CurrentUser:
    if credentials is None or not credentials.credentials:
        raise AuthError("Not authenticated")
    payload = decode_access_token(credentials.credentials, settings)
    return CurrentUser(id=int(payload["user_id"]), role=payload["role"])


def require_permission(permission: Permission):
    """Dependency factory: the caller's role must grant ``permission``."""

    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not has_permission(user.role, permission):
            if permission is Permission.MANAGE_ELECTIONS:
                raise ForbiddenError("Admin access required")
            raise ForbiddenError()
        return user

    return checker
