"""
user_service.py — Accounts & sessions
Registration with email verification, login / refresh / logout, password
reset, profile and role management, profile pictures and the contact form.
"""

import logging
import uuid
from datetime import timedelta

from sqlalchemy import select, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from library_backend.auth import (
    hash_password, verify_password, create_access_token,
    create_email_verification_token, verify_email_verification_token,
)
from library_backend.clock import utcnow
from library_backend.config import REFRESH_TOKEN_EXPIRE_DAYS, PASSWORD_RESET_EXPIRE_MINUTES, SMTP_FROM
from library_backend.errors import (
    BadRequestError, ConflictError, NotFoundError, UnauthorizedError, EmailDeliveryError,
)
from library_backend.models.password_reset_token import PasswordResetToken
from library_backend.models.profile_picture import ProfilePicture
from library_backend.models.refresh_token import RefreshToken
from library_backend.models.user import User, Role
from library_backend.services.email_service import (
    EmailSender, verification_email, password_reset_email, contact_form_email,
)

logger = logging.getLogger(__name__)

MAX_PROFILE_PICTURE_BYTES = 2 * 1024 * 1024


class UserService:
    # ── Registration & verification ─────────────────────────────────
    @staticmethod
    async def register(db: AsyncSession, sender: EmailSender, name: str, email: str,
                       password: str, phone: str) -> User:
        """Create an unverified USER account and mail its verification link."""
        email = email.strip().lower()
        existing = (await db.execute(select(User.id).where(User.email == email))).scalar_one_or_none()
        if existing is not None:
            raise ConflictError("Email already registered")

        user = User(
            name=name,
            email=email,
            password=hash_password(password),
            phone=phone,
            role=Role.USER,
        )
        db.add(user)
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Email already registered")
        await db.refresh(user)

        await UserService._send_verification(sender, user)
        return user

    @staticmethod
    async def _send_verification(sender: EmailSender, user: User) -> None:
        token = create_email_verification_token(user.id, user.email)
        subject, body = verification_email(token)
        try:
            await sender.send(user.email, subject, body)
        except EmailDeliveryError:
            # The account stays usable; the link can be requested again
            logger.warning(f"Verification email for user {user.id} could not be sent")

    @staticmethod
    async def resend_verification(db: AsyncSession, sender: EmailSender, email: str) -> None:
        user = await UserService._get_by_email(db, email)
        if user.is_verified:
            raise BadRequestError("User already verified")
        token = create_email_verification_token(user.id, user.email)
        subject, body = verification_email(token)
        await sender.send(user.email, subject, body)

    @staticmethod
    async def verify_email(db: AsyncSession, token: str) -> dict:
        payload = verify_email_verification_token(token)
        if payload is None:
            raise BadRequestError("Invalid or expired email verification token")

        user = await db.get(User, payload.get("user_id"))
        if user is None:
            raise NotFoundError("User not found")

        if user.is_verified:
            return {"message": "User already verified"}

        user.is_verified = True
        await db.commit()
        return {
            "message": "Email verification successful",
            "access_token": create_access_token(user.id, user.email, user.role),
        }

    # ── Sessions ────────────────────────────────────────────────────
    @staticmethod
    async def login(db: AsyncSession, email: str, password: str) -> dict:
        user = (await db.execute(
            select(User).where(User.email == email.strip().lower())
        )).scalar_one_or_none()
        if user is None or not verify_password(password, user.password):
            raise BadRequestError("Invalid email or password")

        if not user.is_verified:
            raise BadRequestError("Please verify your email before logging in")

        refresh_token = await UserService._replace_refresh_token(db, user.id)
        return {
            "access_token": create_access_token(user.id, user.email, user.role),
            "refresh_token": refresh_token,
            "user": {"id": user.id, "name": user.name, "email": user.email},
        }

    @staticmethod
    async def _replace_refresh_token(db: AsyncSession, user_id: int) -> str:
        await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        token = uuid.uuid4().hex
        db.add(RefreshToken(
            user_id=user_id,
            token=token,
            expires_at=utcnow() + timedelta(days=REFRESH_TOKEN_EXPIRE_DAYS),
        ))
        await db.commit()
        return token

    @staticmethod
    async def refresh_access_token(db: AsyncSession, refresh_token: str) -> str:
        stored = (await db.execute(
            select(RefreshToken).where(RefreshToken.token == refresh_token)
        )).scalar_one_or_none()
        if stored is None or stored.expires_at < utcnow():
            raise UnauthorizedError("Invalid or expired refresh token")

        user = await db.get(User, stored.user_id)
        if user is None:
            raise UnauthorizedError("Invalid or expired refresh token")
        return create_access_token(user.id, user.email, user.role)

    @staticmethod
    async def logout(db: AsyncSession, user_id: int) -> None:
        await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
        await db.commit()

    # ── Password reset ──────────────────────────────────────────────
    @staticmethod
    async def request_password_reset(db: AsyncSession, sender: EmailSender, email: str) -> None:
        user = await UserService._get_by_email(db, email)

        await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user.id))
        token = uuid.uuid4().hex
        db.add(PasswordResetToken(
            user_id=user.id,
            token=token,
            expires_at=utcnow() + timedelta(minutes=PASSWORD_RESET_EXPIRE_MINUTES),
        ))
        await db.commit()

        subject, body = password_reset_email(token)
        await sender.send(user.email, subject, body)

    @staticmethod
    async def reset_password(db: AsyncSession, token: str, new_password: str) -> None:
        reset = (await db.execute(
            select(PasswordResetToken).where(PasswordResetToken.token == token)
        )).scalar_one_or_none()
        if reset is None or reset.expires_at < utcnow():
            raise BadRequestError("Token expired")

        user = await db.get(User, reset.user_id)
        if user is None:
            raise NotFoundError("User not found")

        user.password = hash_password(new_password)
        # Tokens are single use
        await db.delete(reset)
        await db.commit()

    # ── Users ───────────────────────────────────────────────────────
    @staticmethod
    async def _get_by_email(db: AsyncSession, email: str) -> User:
        user = (await db.execute(
            select(User).where(User.email == email.strip().lower())
        )).scalar_one_or_none()
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def get_all(db: AsyncSession) -> list[User]:
        result = await db.execute(select(User).order_by(User.id))
        return list(result.scalars().all())

    @staticmethod
    async def get_by_id(db: AsyncSession, user_id: int) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    async def update_profile(db: AsyncSession, user_id: int, data: dict) -> User:
        user = await UserService.get_by_id(db, user_id)
        if data.get("name"):
            user.name = data["name"]
        if data.get("phone"):
            user.phone = data["phone"]
        if data.get("password"):
            user.password = hash_password(data["password"])
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def update_role(db: AsyncSession, user_id: int, new_role: str, current_user_id: int) -> User:
        if user_id == current_user_id:
            raise BadRequestError("You cannot change your own role")

        try:
            role = Role(new_role.strip().upper())
        except ValueError:
            raise BadRequestError(f"Invalid role: {new_role}")

        user = await UserService.get_by_id(db, user_id)
        user.role = role
        await db.commit()
        await db.refresh(user)
        return user

    @staticmethod
    async def delete(db: AsyncSession, user_id: int) -> None:
        user = await UserService.get_by_id(db, user_id)
        try:
            await db.execute(delete(RefreshToken).where(RefreshToken.user_id == user_id))
            await db.execute(delete(PasswordResetToken).where(PasswordResetToken.user_id == user_id))
            await db.execute(delete(ProfilePicture).where(ProfilePicture.user_id == user_id))
            await db.delete(user)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("User has loan or review history and cannot be deleted")
        logger.info(f"User {user_id} deleted")

    # ── Profile pictures ────────────────────────────────────────────
    @staticmethod
    async def upload_profile_picture(db: AsyncSession, user_id: int, filename: str,
                                     mimetype: str, data: bytes) -> int:
        """Store (or replace) the user's profile picture and return its id."""
        if not (mimetype or "").startswith("image/"):
            raise BadRequestError("Only image files are allowed!")
        if not data:
            raise BadRequestError("No file uploaded")
        if len(data) > MAX_PROFILE_PICTURE_BYTES:
            raise BadRequestError("Profile picture must be 2MB or smaller")

        user = await UserService.get_by_id(db, user_id)
        await db.execute(delete(ProfilePicture).where(ProfilePicture.user_id == user_id))
        picture = ProfilePicture(
            user_id=user_id,
            filename=filename or "profile",
            mimetype=mimetype,
            data=data,
            size=len(data),
            uploaded_at=utcnow(),
        )
        db.add(picture)
        await db.flush()
        user.profile_picture_id = picture.id
        await db.commit()
        return picture.id

    @staticmethod
    async def get_profile_picture(db: AsyncSession, picture_id: int) -> ProfilePicture:
        picture = await db.get(ProfilePicture, picture_id)
        if picture is None:
            raise NotFoundError("Profile picture not found")
        return picture

    # ── Contact form ────────────────────────────────────────────────
    @staticmethod
    async def submit_contact_form(sender: EmailSender, name: str, email: str, message: str) -> None:
        subject, body = contact_form_email(name, email, message)
        await sender.send(SMTP_FROM, subject, body)
