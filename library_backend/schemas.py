"""
Request / response schemas for the library API.

Response models read straight from ORM objects (from_attributes) and expose
camelCase-free snake_case fields, matching the column names.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from library_backend.models.user import Role


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# ── Users ─────────────────────────────────────────────────────────
class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6)
    phone: str = Field(..., min_length=1, max_length=30)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class EmailRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str = Field(..., min_length=6)


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    password: Optional[str] = Field(None, min_length=6)


class UpdateRoleRequest(BaseModel):
    role: str


class ContactFormRequest(BaseModel):
    name: str
    email: EmailStr
    message: str = Field(..., min_length=1)


class UserOut(ORMModel):
    id: int
    name: str
    email: str
    phone: str
    role: Role
    is_verified: bool
    profile_picture_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserSummary(ORMModel):
    id: int
    name: str
    email: str


# ── Books ─────────────────────────────────────────────────────────
class BookCreate(BaseModel):
    title: str
    author: str
    publisher: str
    description: Optional[str] = None
    published_year: int
    stock: int = Field(1, ge=0)


class BookUpdate(BaseModel):
    title: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    published_year: Optional[int] = None
    cover_image: Optional[str] = None
    file_url: Optional[str] = None


class BookOut(ORMModel):
    id: int
    title: str
    author: str
    publisher: str
    description: Optional[str] = None
    published_year: int
    stock: int
    rating: float
    cover_image: Optional[str] = None
    file_url: Optional[str] = None


class BookSummary(ORMModel):
    id: int
    title: str
    author: str


# ── Loans ─────────────────────────────────────────────────────────
class BorrowRequest(BaseModel):
    due_date: datetime


class LoanOut(ORMModel):
    id: int
    book_id: int
    user_id: int
    borrowed_at: datetime
    due_date: datetime
    returned_at: Optional[datetime] = None
    is_overdue_notified: bool


class LoanWithBook(LoanOut):
    book: BookOut


# ── Reviews ───────────────────────────────────────────────────────
class ReviewCreate(BaseModel):
    # Range is checked by ReviewService so out-of-range ratings surface as validation_error
    rating: int
    comment: Optional[str] = None


class ReviewOut(ORMModel):
    id: int
    user_id: int
    book_id: int
    rating: int
    comment: Optional[str] = None
    created_at: Optional[datetime] = None


class ReviewWithUser(ReviewOut):
    user: Optional[UserSummary] = None


class ReviewWithUserAndBook(ReviewWithUser):
    book: Optional[BookSummary] = None
