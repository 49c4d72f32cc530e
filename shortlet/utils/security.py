from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from ..config import Settings, get_settings
from .logging_config import bind_log_context

bearer_scheme = HTTPBearer(auto_error=False)

GUEST_ROLES = ("tenant", "guest")
HOST_ROLES = ("landlord", "host", "agent")
ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated caller resolved from the bearer token"""
    user_id: str
    role: str
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    @property
    def is_host(self) -> bool:
        return self.role in HOST_ROLES


def create_access_token(data: dict, settings: Settings, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token"""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, settings: Settings) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def get_current_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials, settings)
    if not payload or payload.get("type") != "access" or not payload.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = Principal(
        user_id=str(payload["sub"]),
        role=str(payload.get("role") or "tenant").lower(),
        email=payload.get("email"),
    )
    bind_log_context(user_id=principal.user_id)
    return principal


def require_roles(*roles: str):
    """Dependency factory: the caller's role must be one of ``roles`` (admin always passes)"""
    allowed = {role.lower() for role in roles}

    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.is_admin or principal.role in allowed:
            return principal
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )

    return dependency
