# Import all models so they register with SQLAlchemy Base.metadata
# This ensures Base.metadata.create_all() creates all tables

from library_backend.models.user import User, Role, ADMIN_ROLES
from library_backend.models.book import Book
from library_backend.models.loan import Loan
from library_backend.models.review import Review
from library_backend.models.refresh_token import RefreshToken
from library_backend.models.password_reset_token import PasswordResetToken
from library_backend.models.profile_picture import ProfilePicture

__all__ = [
    "User",
    "Role",
    "ADMIN_ROLES",
    "Book",
    "Loan",
    "Review",
    "RefreshToken",
    "PasswordResetToken",
    "ProfilePicture",
]
