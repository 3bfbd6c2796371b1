"""
User routes — registration, sessions, password reset, profile and
role management.
"""
from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from library_backend.auth import CurrentUser, get_current_user, require_roles
from library_backend.database import get_db
from library_backend.dependencies import get_email_sender
from library_backend.models.user import Role
from library_backend.schemas import (
    RegisterRequest, LoginRequest, RefreshRequest, EmailRequest, ResetPasswordRequest,
    UpdateProfileRequest, UpdateRoleRequest, ContactFormRequest, UserOut,
)
from library_backend.services.email_service import EmailSender
from library_backend.services.user_service import UserService

router = APIRouter(prefix="/user", tags=["Users"])


# ── Registration & sessions ───────────────────────────────────────
@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    user = await UserService.register(db, sender, body.name, body.email, body.password, body.phone)
    return {
        "message": "User registered successfully. Please check your email to verify your account.",
        "user": UserOut.model_validate(user),
    }


@router.get("/verify-email")
async def verify_email(token: str, db: AsyncSession = Depends(get_db)):
    return await UserService.verify_email(db, token)


@router.post("/resend-verification")
async def resend_verification(
    body: EmailRequest,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    await UserService.resend_verification(db, sender, body.email)
    return {"message": "Verification email sent"}


@router.post("/login")
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await UserService.login(db, body.email, body.password)


@router.post("/refresh-token")
async def refresh_token(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    access_token = await UserService.refresh_access_token(db, body.refresh_token)
    return {"access_token": access_token}


@router.post("/logout")
async def logout(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await UserService.logout(db, user.id)
    return {"message": "Logged out successfully"}


# ── Password reset ────────────────────────────────────────────────
@router.post("/request-reset-password")
async def request_reset_password(
    body: EmailRequest,
    db: AsyncSession = Depends(get_db),
    sender: EmailSender = Depends(get_email_sender),
):
    await UserService.request_password_reset(db, sender, body.email)
    return {"message": "Password reset link sent to your email"}


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    await UserService.reset_password(db, body.token, body.new_password)
    return {"message": "Password has been reset successfully"}


# ── Contact ───────────────────────────────────────────────────────
@router.post("/contact")
async def contact(body: ContactFormRequest, sender: EmailSender = Depends(get_email_sender)):
    await UserService.submit_contact_form(sender, body.name, body.email, body.message)
    return {"message": "Your message has been sent"}


# ── Profile ───────────────────────────────────────────────────────
@router.get("/profile", response_model=UserOut)
async def profile(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await UserService.get_by_id(db, user.id)


@router.put("/profile", response_model=UserOut)
async def update_profile(
    body: UpdateProfileRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.update_profile(db, user.id, body.model_dump(exclude_unset=True))


@router.post("/upload-profile-picture", status_code=status.HTTP_201_CREATED)
async def upload_profile_picture(
    profilePicture: UploadFile = File(...),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    data = await profilePicture.read()
    picture_id = await UserService.upload_profile_picture(
        db, user.id, profilePicture.filename, profilePicture.content_type, data
    )
    return {"message": "Profile picture uploaded successfully", "profile_picture_id": picture_id}


@router.get("/profile-picture/{picture_id}")
async def get_profile_picture(
    picture_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    picture = await UserService.get_profile_picture(db, picture_id)
    return Response(
        content=picture.data,
        media_type=picture.mimetype,
        headers={"Content-Disposition": f'inline; filename="{picture.filename}"'},
    )


# ── Administration ────────────────────────────────────────────────
@router.get("", response_model=list[UserOut])
async def list_users(
    admin: CurrentUser = Depends(require_roles(Role.ADMIN, Role.SUPERADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.get_all(db)


@router.get("/{user_id}", response_model=UserOut)
async def get_user(user_id: int, user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await UserService.get_by_id(db, user_id)


@router.patch("/{user_id}/role", response_model=UserOut)
async def update_role(
    user_id: int,
    body: UpdateRoleRequest,
    admin: CurrentUser = Depends(require_roles(Role.SUPERADMIN)),
    db: AsyncSession = Depends(get_db),
):
    return await UserService.update_role(db, user_id, body.role, admin.id)


@router.delete("/{user_id}")
async def delete_user(
    user_id: int,
    admin: CurrentUser = Depends(require_roles(Role.SUPERADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await UserService.delete(db, user_id)
    return {"message": "User deleted successfully"}
