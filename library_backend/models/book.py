from sqlalchemy import Column, Integer, String, Text, DateTime, Float, CheckConstraint
from library_backend.clock import utcnow
from library_backend.database import Base


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_books_stock_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(300), nullable=False)
    author = Column(String(200), nullable=False)
    publisher = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    published_year = Column(Integer, nullable=False)
    stock = Column(Integer, default=0, nullable=False)  # available copies, written by LoanService only
    rating = Column(Float, default=0.0, nullable=False)  # mean review rating, written by ReviewService only
    cover_image = Column(String(500), nullable=True)
    file_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
