"""Authentication utilities for the Ajira backend."""

from datetime import datetime, timedelta, timezone
from typing import Annotated, Callable, Iterable

import bcrypt
from fastapi import Depends, HTTPException, Request, Response, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings
from .rbac import HasRoles, Role, has_role, is_admin

# Bearer is optional so the session cookie can be used instead
security = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a user password using bcrypt."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(plain: str, hashed: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode(), hashed.encode())
    except ValueError:
        # Malformed hash stored for the user
        return False


def create_access_token(
    user_id: str,
    settings: Settings,
    roles: Iterable[str] = ("customer",),
    email: str | None = None,
    name: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed session token for a user."""
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    to_encode = {
        "sub": user_id,
        "roles": list(roles),
        "exp": expire,
        "iat": now,
        "type": "session",
    }
    if email:
        to_encode["email"] = email
    if name:
        to_encode["name"] = name
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    """Decode and validate a session token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )


def set_session_cookie(response: Response, token: str, settings: Settings) -> None:
    """Attach the session token as an httpOnly cookie."""
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        max_age=settings.jwt_expire_minutes * 60,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response, settings: Settings) -> None:
    response.delete_cookie(key=settings.session_cookie_name, path="/")


class AuthContext:
    """The authenticated user behind a request."""

    def __init__(
        self,
        user_id: str,
        roles: list[str] | None = None,
        email: str | None = None,
        name: str | None = None,
    ):
        self.user_id = user_id
        self.roles = roles or []
        self.email = email
        self.name = name

    @property
    def is_admin(self) -> bool:
        return Role.admin.value in self.roles

    def owns(self, record: dict, field: str = "user_id") -> bool:
        """True if the record's owner field points at this user."""
        return record.get(field) == self.user_id


def context_from_token(token: str, settings: Settings) -> AuthContext:
    """Build an AuthContext from a raw session token."""
    payload = decode_token(token, settings)
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return AuthContext(
        user_id=user_id,
        roles=payload.get("roles") or [],
        email=payload.get("email"),
        name=payload.get("name"),
    )


def _extract_token(
    credentials: HTTPAuthorizationCredentials | None,
    request: Request,
    settings: Settings,
) -> str | None:
    # Authorization header wins over the cookie
    if credentials:
        return credentials.credentials
    return request.cookies.get(settings.session_cookie_name)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext:
    """Get the authenticated user from the bearer token or session cookie."""
    token = _extract_token(credentials, request, settings)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated - provide Authorization header or session cookie",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return context_from_token(token, settings)


async def get_optional_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
    request: Request,
) -> AuthContext | None:
    """Like get_current_user, but anonymous callers get None."""
    token = _extract_token(credentials, request, settings)
    if not token:
        return None
    return context_from_token(token, settings)


def require_roles(*roles: str | Role):
    """Dependency factory: the caller must hold at least one of ``roles``."""

    async def _dependency(
        auth: Annotated[AuthContext, Depends(get_current_user)],
    ) -> AuthContext:
        if not has_role(auth, roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return auth

    return _dependency


def require_role_check(check: Callable[[HasRoles], bool]):
    """Dependency factory: the caller must pass ``check``. Admins always pass."""

    async def _dependency(
        auth: Annotated[AuthContext, Depends(get_current_user)],
    ) -> AuthContext:
        if not (check(auth) or is_admin(auth)):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return auth

    return _dependency


# Type aliases for dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
OptionalUser = Annotated[AuthContext | None, Depends(get_optional_user)]
AdminUser = Annotated[AuthContext, Depends(require_roles(Role.admin))]
