"""Authentication routes: signup, login, logout and the current user."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, EmailStr, Field, field_validator

from ..auth import (
    CurrentUser,
    clear_session_cookie,
    create_access_token,
    hash_password,
    set_session_cookie,
    verify_password,
)
from ..config import Settings, get_settings
from ..database import (
    Database,
    create_user,
    get_user,
    get_user_by_email,
    public_user,
    update_last_login,
)
from ..logging_config import get_logger
from ..loyalty import LoyaltyService
from ..rate_limit import limiter
from ..rbac import RESTRICTED_SIGNUP_ROLES, Role, is_customer, is_service_provider

logger = get_logger("ajira.auth")
router = APIRouter(prefix="/api/auth", tags=["auth"])


# =============================================================================
# Request/Response Models
# =============================================================================


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    roles: list[Role] = Field(default_factory=lambda: [Role.customer])
    phone: str | None = Field(None, max_length=20)
    birthday: date | None = None
    referral_code: str | None = Field(None, max_length=20)

    @field_validator("roles")
    @classmethod
    def roles_not_empty(cls, v: list[Role]) -> list[Role]:
        # Deduplicate, keeping the caller's order
        unique = list(dict.fromkeys(v))
        return unique or [Role.customer]


class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    user: dict
    token: str


# =============================================================================
# Routes
# =============================================================================


@router.post("/signup", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("5/minute")
async def signup(
    request: Request,
    response: Response,
    body: SignupRequest,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Register a user, open their loyalty account and start a session."""
    logger.info(f"POST /auth/signup | email={body.email} | roles={[r.value for r in body.roles]}")

    if RESTRICTED_SIGNUP_ROLES.intersection(body.roles):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Admin accounts cannot be created through signup",
        )

    if await get_user_by_email(db, body.email):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email already exists",
        )

    roles = [r.value for r in body.roles]
    user = await create_user(
        db,
        name=body.name,
        email=body.email,
        password_hash=hash_password(body.password),
        roles=roles,
        phone=body.phone,
        birthday=body.birthday.isoformat() if body.birthday else None,
    )
    if not user:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create account",
        )

    await LoyaltyService.create_account(db, user["id"], referral_code=body.referral_code)

    token = create_access_token(
        user["id"], settings, roles=roles, email=user["email"], name=user["name"]
    )
    set_session_cookie(response, token, settings)
    logger.info(f"User created | id={user['id']}")
    return SessionResponse(user=public_user(user), token=token)


@router.post("/login", response_model=SessionResponse)
@limiter.limit("10/minute")
async def login(
    request: Request,
    response: Response,
    body: LoginRequest,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    """Check credentials and start a session."""
    user = await get_user_by_email(db, body.email)
    if not user or not verify_password(body.password, user.get("password_hash") or ""):
        logger.info(f"POST /auth/login | email={body.email} | result=invalid_credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    if user.get("is_suspended") or not user.get("is_active", True):
        logger.info(f"POST /auth/login | user={user['id']} | result=blocked")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="This account is suspended or inactive",
        )

    await update_last_login(db, user["id"])
    token = create_access_token(
        user["id"],
        settings,
        roles=user.get("roles") or [Role.customer.value],
        email=user["email"],
        name=user.get("name"),
    )
    set_session_cookie(response, token, settings)
    logger.info(f"POST /auth/login | user={user['id']}")
    return SessionResponse(user=public_user(user), token=token)


@router.post("/logout")
async def logout(
    response: Response,
    settings: Annotated[Settings, Depends(get_settings)],
):
    clear_session_cookie(response, settings)
    return {"success": True}


@router.get("/me")
async def me(auth: CurrentUser, db: Database):
    user = await get_user(db, auth.user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return {
        **public_user(user),
        "is_customer": is_customer(auth),
        "is_service_provider": is_service_provider(auth),
    }
