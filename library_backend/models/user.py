import enum

from sqlalchemy import Column, Integer, String, DateTime, Boolean, Enum
from library_backend.clock import utcnow
from library_backend.database import Base


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


ADMIN_ROLES = (Role.ADMIN, Role.SUPERADMIN)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password = Column(String(255), nullable=False)  # bcrypt hash
    phone = Column(String(30), nullable=False)
    role = Column(Enum(Role, name="user_role"), default=Role.USER, nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    profile_picture_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
