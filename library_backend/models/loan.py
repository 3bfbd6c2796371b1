from sqlalchemy import Column, Integer, DateTime, Boolean, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from library_backend.clock import utcnow
from library_backend.database import Base


class Loan(Base):
    __tablename__ = "loans"
    __table_args__ = (
        # one active loan per (user, book)
        Index(
            "uq_loans_active_user_book",
            "user_id",
            "book_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    borrowed_at = Column(DateTime, default=utcnow, nullable=False)
    due_date = Column(DateTime, nullable=False)
    returned_at = Column(DateTime, nullable=True)  # null while active
    is_overdue_notified = Column(Boolean, default=False, nullable=False)

    book = relationship("Book", lazy="raise")
    user = relationship("User", lazy="raise")
