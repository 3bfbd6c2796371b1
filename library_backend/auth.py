import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, Request, HTTPException, status
from jose import jwt, JWTError

from library_backend.config import (
    JWT_SECRET, JWT_ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES, EMAIL_TOKEN_EXPIRE_MINUTES,
)
from library_backend.models.user import Role, ADMIN_ROLES

logger = logging.getLogger(__name__)

EMAIL_VERIFICATION_PURPOSE = "email_verification"


@dataclass(frozen=True)
class CurrentUser:
    id: int
    email: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def hash_password(password: str) -> str:
    """Hash a plain-text password using bcrypt."""
    # Ensure it doesn't exceed 72 bytes to prevent bcrypt ValueError
    pw_bytes = password.encode('utf-8')[:72]
    hashed = bcrypt.hashpw(pw_bytes, bcrypt.gensalt())
    return hashed.decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a plain-text password against a bcrypt hash."""
    try:
        pw_bytes = plain_password.encode('utf-8')[:72]
        hash_bytes = hashed_password.encode('utf-8')
        return bcrypt.checkpw(pw_bytes, hash_bytes)
    except ValueError as e:
        logger.warning("Bcrypt verification error: %s", e)
        return False


def _encode(claims: dict, expires_in: timedelta) -> str:
    to_encode = claims.copy()
    expire = datetime.now(timezone.utc) + expires_in
    to_encode.update({"exp": expire, "jti": str(uuid.uuid4())})
    return jwt.encode(to_encode, JWT_SECRET, algorithm=JWT_ALGORITHM)


def create_access_token(user_id: int, email: str, role: Role) -> str:
    """Create a short-lived access JWT carrying the user's id, email and role."""
    role_value = role.value if isinstance(role, Role) else str(role)
    return _encode(
        {"user_id": user_id, "email": email, "role": role_value},
        timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_email_verification_token(user_id: int, email: str) -> str:
    return _encode(
        {"user_id": user_id, "email": email, "purpose": EMAIL_VERIFICATION_PURPOSE},
        timedelta(minutes=EMAIL_TOKEN_EXPIRE_MINUTES),
    )


def verify_token(token: str) -> dict | None:
    """Decode and verify a JWT token. Returns the payload or None on failure."""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError:
        return None


def verify_email_verification_token(token: str) -> dict | None:
    """Like verify_token, but only accepts tokens issued for email verification."""
    payload = verify_token(token)
    if payload is None or payload.get("purpose") != EMAIL_VERIFICATION_PURPOSE:
        return None
    return payload


async def get_current_user(request: Request) -> CurrentUser:
    """
    FastAPI dependency — extracts the Bearer token from the Authorization
    header, verifies it, and returns the caller's id, email and role.
    Raises HTTP 401 if the token is missing or invalid.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = auth_header.split(" ", 1)[1]
    payload = verify_token(token)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("user_id")
    role = payload.get("role")
    # Email verification tokens carry no role and must not authenticate requests
    if user_id is None or role is None or payload.get("purpose"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token payload missing required claims",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        role = Role(role)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token carries an unknown role",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(id=int(user_id), email=payload.get("email", ""), role=role)


def require_roles(*roles: Role):
    """Dependency factory — allows only callers whose role is in ``roles``."""
    async def checker(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden: Insufficient permissions")
        return user
    return checker
