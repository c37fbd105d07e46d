from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from carbonsurvey.config import get_settings
from carbonsurvey.database import get_db
from carbonsurvey.models.user import User

logger = structlog.get_logger("carbonsurvey.security")

# Bearer token security; auto_error=False so a missing header becomes a 401
bearer_scheme = HTTPBearer(auto_error=False)


def hash_password(password: str) -> str:
    """Hash a password with bcrypt (BCRYPT_ROUNDS rounds)."""
    # bcrypt only looks at the first 72 bytes
    password_bytes = password.encode("utf-8")[:72]
    hashed = bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=get_settings().BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode("utf-8")[:72]
    try:
        return bcrypt.checkpw(password_bytes, hashed_password.encode("utf-8"))
    except ValueError:
        # stored value is not a bcrypt hash
        return False


def create_access_token(user: User, expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed JWT for ``user``."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(days=settings.JWT_EXPIRES_DAYS)
    )
    claims: Dict[str, Any] = {
        "sub": str(user.id),
        "username": user.username,
        "name": user.name,
        "email": user.email,
        "phone": user.phone,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(claims, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate a JWT, raising 401 when it is invalid or expired."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise _unauthorized("Could not validate credentials")

    if payload.get("type") != "access" or not payload.get("sub"):
        raise _unauthorized("Invalid token type")
    return payload


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the bearer token to a ``User`` row and tag the request with it."""
    if credentials is None:
        raise _unauthorized("Not authenticated")

    payload = decode_token(credentials.credentials)
    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise _unauthorized("Could not validate credentials")

    user = await db.get(User, user_id)
    if user is None:
        logger.warning("token_user_missing", user_id=user_id)
        raise _unauthorized("User no longer exists")

    # picked up by the access log and by every log line in this request
    request.state.user_id = user.id
    structlog.contextvars.bind_contextvars(user_id=user.id)
    return user
