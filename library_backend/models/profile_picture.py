from sqlalchemy import Column, Integer, String, DateTime, LargeBinary, ForeignKey
from library_backend.clock import utcnow
from library_backend.database import Base


class ProfilePicture(Base):
    __tablename__ = "profile_pictures"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)
    filename = Column(String(255), nullable=False)
    mimetype = Column(String(100), nullable=False)
    data = Column(LargeBinary, nullable=False)
    size = Column(Integer, nullable=False)  # bytes
    uploaded_at = Column(DateTime, default=utcnow)
