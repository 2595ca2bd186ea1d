# coursepay/core/security.py
from dataclasses import dataclass
import uuid

from jose import JWTError, jwt

from coursepay.core.config import settings

ADMIN_ROLES = ("admin", "super_admin")


@dataclass(frozen=True)
class CurrentUser:
    id: uuid.UUID
    role: str = "student"

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def decode_access_token(token: str) -> CurrentUser:
    """Decode a bearer token issued by the LMS auth service.

    Raises:
        JWTError: signature, expiry or claim problems
    """
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    subject = payload.get("sub")
    if not subject:
        raise JWTError("Token missing subject")
    try:
        user_id = uuid.UUID(str(subject))
    except ValueError as e:
        raise JWTError("Token subject is not a UUID") from e
    return CurrentUser(id=user_id, role=payload.get("role", "student"))


def require_roles(*allowed: str):
    """
    Dependency factory: ensures current_user.role in allowed.
    """
    from fastapi import Depends, HTTPException, status
    from coursepay.api.dependencies.auth import get_current_user

    def _check(current_user: CurrentUser = Depends(get_current_user)):
        if current_user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions"
            )
        return current_user

    return _check
