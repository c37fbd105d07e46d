"""
Carbon Survey — Auth API

Signup and login.  Both return the public user record plus a bearer
token; every other endpoint expects that token in ``Authorization``.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from carbonsurvey.database import get_db
from carbonsurvey.models.user import User
from carbonsurvey.schemas.user import AuthResponse, AuthUser, LoginRequest, SignupRequest
from carbonsurvey.utils.security import (
    create_access_token,
    get_current_user,
    hash_password,
    verify_password,
)

logger = structlog.get_logger("carbonsurvey.api.auth")

router = APIRouter()


def _auth_response(user: User) -> AuthResponse:
    return AuthResponse(
        user=AuthUser.model_validate(user),
        token=create_access_token(user),
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST /signup — Create an account
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/signup",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new account",
)
async def signup(
    payload: SignupRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Register a user identified by email or phone.

    The username is the email when given, otherwise the phone number.
    """
    email = str(payload.email).lower() if payload.email else None
    username = email or payload.phone
    log = logger.bind(username=username)
    log.info("signup_start")

    conditions = [User.username == username]
    if email:
        conditions.append(User.email == email)
    if payload.phone:
        conditions.append(User.phone == payload.phone)

    existing = await db.scalar(select(User.id).where(or_(*conditions)))
    if existing is not None:
        log.warning("signup_duplicate")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email or phone already exists.",
        )

    user = User(
        username=username,
        password=hash_password(payload.password),
        name=payload.name,
        email=email,
        phone=payload.phone,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError:
        log.warning("signup_duplicate_race")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="An account with this email or phone already exists.",
        )
    await db.refresh(user)

    log.info("signup_complete", user_id=user.id)
    return _auth_response(user)


# ──────────────────────────────────────────────────────────────────────────────
# POST /login — Exchange credentials for a token
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Log in with email or phone",
)
async def login(
    payload: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Identifiers containing ``@`` are matched against email, anything
    else against phone."""
    identifier = payload.identifier.strip()
    if "@" in identifier:
        stmt = select(User).where(User.email == identifier.lower())
    else:
        stmt = select(User).where(User.phone == identifier)

    user = (await db.execute(stmt)).scalar_one_or_none()

    if user is None or not verify_password(payload.password, user.password):
        logger.warning("login_failed")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    logger.info("login_complete", user_id=user.id)
    return _auth_response(user)


@router.get("/me", response_model=AuthUser, summary="Current user")
async def me(current_user: User = Depends(get_current_user)) -> User:
    return current_user
