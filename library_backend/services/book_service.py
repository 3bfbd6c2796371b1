"""
book_service.py — Book catalog
CRUD for books plus cover / PDF uploads. Stock and rating are not editable
here: LoanService owns stock, ReviewService owns rating.
"""

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from library_backend.errors import NotFoundError, ConflictError, BadRequestError
from library_backend.models.book import Book
from library_backend.services.storage_service import FileStorage

logger = logging.getLogger(__name__)

CREATE_FIELDS = ("title", "author", "publisher", "description", "published_year", "stock")
UPDATE_FIELDS = ("title", "author", "publisher", "description", "published_year", "cover_image", "file_url")

MAX_COVER_BYTES = 2 * 1024 * 1024
MAX_BOOK_FILE_BYTES = 100 * 1024 * 1024


class BookService:
    @staticmethod
    async def create(db: AsyncSession, data: dict) -> Book:
        if data.get("stock", 0) < 0:
            raise BadRequestError("Stock cannot be negative")
        book = Book(**{k: v for k, v in data.items() if k in CREATE_FIELDS})
        db.add(book)
        await db.commit()
        await db.refresh(book)
        logger.info(f"Book {book.id} created: {book.title}")
        return book

    @staticmethod
    async def get_all(db: AsyncSession) -> list[Book]:
        result = await db.execute(select(Book).order_by(Book.id))
        return list(result.scalars().all())

    @staticmethod
    async def get_by_id(db: AsyncSession, book_id: int) -> Book:
        book = await db.get(Book, book_id)
        if book is None:
            raise NotFoundError("Book not found")
        return book

    @staticmethod
    async def update(db: AsyncSession, book_id: int, data: dict) -> Book:
        """Update descriptive fields only; anything else in ``data`` is ignored."""
        book = await BookService.get_by_id(db, book_id)
        for key, value in data.items():
            if key in UPDATE_FIELDS:
                setattr(book, key, value)
        await db.commit()
        await db.refresh(book)
        return book

    @staticmethod
    async def delete(db: AsyncSession, book_id: int) -> None:
        book = await BookService.get_by_id(db, book_id)
        try:
            await db.delete(book)
            await db.commit()
        except IntegrityError:
            await db.rollback()
            raise ConflictError("Book has loan or review history and cannot be deleted")
        logger.info(f"Book {book_id} deleted")

    @staticmethod
    async def upload_cover(db: AsyncSession, storage: FileStorage, book_id: int,
                           filename: str, content_type: str, data: bytes) -> Book:
        if not (content_type or "").startswith("image/"):
            raise BadRequestError("Only image files are allowed!")
        if not data:
            raise BadRequestError("No file uploaded")
        if len(data) > MAX_COVER_BYTES:
            raise BadRequestError("Cover image must be 2MB or smaller")

        book = await BookService.get_by_id(db, book_id)
        book.cover_image = await storage.save("covers", f"book-{book_id}", filename, data)
        await db.commit()
        await db.refresh(book)
        return book

    @staticmethod
    async def upload_book_file(db: AsyncSession, storage: FileStorage, book_id: int,
                               filename: str, content_type: str, data: bytes) -> Book:
        if content_type != "application/pdf":
            raise BadRequestError("Only PDF files are allowed!")
        if not data:
            raise BadRequestError("No file uploaded")
        if len(data) > MAX_BOOK_FILE_BYTES:
            raise BadRequestError("Book file must be 100MB or smaller")

        book = await BookService.get_by_id(db, book_id)
        book.file_url = await storage.save("books", f"book-{book_id}", filename, data)
        await db.commit()
        await db.refresh(book)
        return book
