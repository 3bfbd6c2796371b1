"""
review_service.py — Reviews & aggregate ratings
Adds and removes reviews; every mutation recomputes Book.rating in the same
transaction so a committed review is always reflected in the book's rating.
"""

import logging

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from library_backend.errors import NotFoundError, ConflictError, ValidationError, ForbiddenError
from library_backend.models.book import Book
from library_backend.models.review import Review

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


class ReviewService:
    @staticmethod
    async def _recompute_rating(db: AsyncSession, book_id: int) -> float:
        """Mean of the book's remaining ratings, 0 when it has none."""
        avg = await db.scalar(select(func.avg(Review.rating)).where(Review.book_id == book_id))
        rating = float(avg) if avg is not None else 0.0
        await db.execute(
            update(Book)
            .where(Book.id == book_id)
            .values(rating=rating)
        )
        return rating

    @staticmethod
    async def add_review(db: AsyncSession, user_id: int, book_id: int, rating: int, comment: str | None = None) -> Review:
        if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

        book = await db.get(Book, book_id)
        if book is None:
            raise NotFoundError("Book not found")

        existing = (await db.execute(
            select(Review.id).where(Review.user_id == user_id, Review.book_id == book_id)
        )).scalar_one_or_none()
        if existing is not None:
            raise ConflictError("You have already reviewed this book.")

        try:
            review = Review(user_id=user_id, book_id=book_id, rating=rating, comment=comment)
            db.add(review)
            await db.flush()
            new_rating = await ReviewService._recompute_rating(db, book_id)
            await db.commit()
        except IntegrityError:
            # Lost a race with a concurrent review from the same user
            await db.rollback()
            raise ConflictError("You have already reviewed this book.")
        except Exception:
            await db.rollback()
            raise

        await db.refresh(review)
        logger.info(f"Review {review.id} added to book {book_id}, rating now {new_rating:.2f}")
        return review

    @staticmethod
    async def get_reviews_by_book(db: AsyncSession, book_id: int) -> list[Review]:
        book = await db.get(Book, book_id)
        if book is None:
            raise NotFoundError("Book not found")

        result = await db.execute(
            select(Review)
            .options(joinedload(Review.user))
            .where(Review.book_id == book_id)
            .order_by(Review.created_at.desc(), Review.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def get_all_reviews(db: AsyncSession) -> list[Review]:
        result = await db.execute(
            select(Review)
            .options(joinedload(Review.user), joinedload(Review.book))
            .order_by(Review.created_at.desc(), Review.id.desc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def delete_review(db: AsyncSession, user_id: int, review_id: int, is_admin: bool) -> None:
        """Delete a review (author or admin only) and recompute its book's rating."""
        review = await db.get(Review, review_id)
        if review is None:
            raise NotFoundError("Review not found")

        if review.user_id != user_id and not is_admin:
            raise ForbiddenError("Not allowed to delete this review")

        book_id = review.book_id
        try:
            await db.delete(review)
            await db.flush()
            new_rating = await ReviewService._recompute_rating(db, book_id)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        logger.info(f"Review {review_id} deleted from book {book_id}, rating now {new_rating:.2f}")
