"""
loan_service.py — Loan ledger and stock counter
Borrow / return books and list a user's loans. Book.stock is only ever written
here, inside the same transaction as the loan row it accounts for.
"""

import asyncio
import logging
import weakref
from datetime import datetime
from typing import Callable

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from library_backend.clock import utcnow, to_naive_utc
from library_backend.config import MAX_ACTIVE_LOANS
from library_backend.errors import (
    NotFoundError, ConflictError, OutOfStockError, LoanLimitExceededError, ValidationError,
)
from library_backend.models.book import Book
from library_backend.models.loan import Loan
from library_backend.models.user import User

logger = logging.getLogger(__name__)


class LoanService:
    """Borrow/return serialized per user (loan limit) and per book (stock)."""

    def __init__(self, clock: Callable[[], datetime] = utcnow, max_loans: int = MAX_ACTIVE_LOANS):
        self._clock = clock
        self.max_loans = max_loans
        # Lock order is user then book. Entries vanish once no task holds or awaits them.
        self._user_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()
        self._book_locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    @staticmethod
    def _lock_for(locks: weakref.WeakValueDictionary, key: int) -> asyncio.Lock:
        lock = locks.get(key)
        if lock is None:
            lock = locks[key] = asyncio.Lock()
        return lock

    # ------------------------------------------------------------------
    @staticmethod
    def _active_loan_query(user_id: int, book_id: int):
        return select(Loan).where(
            Loan.user_id == user_id,
            Loan.book_id == book_id,
            Loan.returned_at.is_(None),
        )

    # ------------------------------------------------------------------
    async def borrow(self, db: AsyncSession, user_id: int, book_id: int, due_date: datetime) -> Loan:
        """
        Create an active loan and take one copy out of stock.

        Raises ValidationError (due date not in the future), NotFoundError,
        OutOfStockError, LoanLimitExceededError or ConflictError. Nothing is
        written unless every check passes.
        """
        due_date = to_naive_utc(due_date)

        user_lock = self._lock_for(self._user_locks, user_id)
        book_lock = self._lock_for(self._book_locks, book_id)

        async with user_lock, book_lock:
            now = self._clock()
            if due_date <= now:
                raise ValidationError("Due date must be in the future")

            try:
                # Row lock on the book for databases that support it (PostgreSQL)
                book = (await db.execute(
                    select(Book).where(Book.id == book_id).with_for_update()
                )).scalar_one_or_none()
                if book is None:
                    raise NotFoundError("Book not found")

                if book.stock <= 0:
                    raise OutOfStockError("Book out of stock")

                # Holds concurrent borrows by the same user across processes until commit
                borrower = (await db.execute(
                    select(User.id).where(User.id == user_id).with_for_update()
                )).scalar_one_or_none()
                if borrower is None:
                    raise NotFoundError("User not found")

                active_loans = await db.scalar(
                    select(func.count(Loan.id)).where(
                        Loan.user_id == user_id,
                        Loan.returned_at.is_(None),
                    )
                )
                if active_loans >= self.max_loans:
                    raise LoanLimitExceededError(
                        f"You cannot borrow more than {self.max_loans} books at a time."
                    )

                existing = (await db.execute(self._active_loan_query(user_id, book_id))).scalar_one_or_none()
                if existing is not None:
                    raise ConflictError("Book already borrowed")

                loan = Loan(
                    book_id=book_id,
                    user_id=user_id,
                    borrowed_at=now,
                    due_date=due_date,
                )
                db.add(loan)
                await db.flush()

                result = await db.execute(
                    update(Book)
                    .where(Book.id == book_id, Book.stock > 0)
                    .values(stock=Book.stock - 1)
                )
                if result.rowcount != 1:
                    raise OutOfStockError("Book out of stock")

                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise ConflictError("Book already borrowed")
            except Exception:
                await db.rollback()
                raise

        await db.refresh(book)
        logger.info(f"User {user_id} borrowed book {book_id} (loan {loan.id}, stock now {book.stock})")
        return loan

    # ------------------------------------------------------------------
    async def return_book(self, db: AsyncSession, user_id: int, book_id: int) -> Loan:
        """Close the caller's active loan for the book and put the copy back in stock."""
        book_lock = self._lock_for(self._book_locks, book_id)

        async with book_lock:
            try:
                loan = (await db.execute(self._active_loan_query(user_id, book_id))).scalar_one_or_none()
                if loan is None:
                    raise ConflictError("No active loan found for this book.")

                now = self._clock()
                closed = await db.execute(
                    update(Loan)
                    .where(Loan.id == loan.id, Loan.returned_at.is_(None))
                    .values(returned_at=now)
                )
                if closed.rowcount != 1:
                    raise ConflictError("No active loan found for this book.")

                # No ceiling: stock is available copies, the catalog keeps no total
                await db.execute(
                    update(Book)
                    .where(Book.id == book_id)
                    .values(stock=Book.stock + 1)
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

        await db.refresh(loan)
        logger.info(f"User {user_id} returned book {book_id} (loan {loan.id})")
        return loan

    # ------------------------------------------------------------------
    async def list_user_loans(self, db: AsyncSession, user_id: int) -> list[Loan]:
        """All of a user's loans with their book, newest first. Loans pointing at a deleted book are dropped."""
        result = await db.execute(
            select(Loan)
            .options(joinedload(Loan.book))
            .where(Loan.user_id == user_id)
            .order_by(Loan.borrowed_at.desc(), Loan.id.desc())
        )
        loans = list(result.scalars().all())
        valid = [loan for loan in loans if loan.book is not None]

        if len(valid) < len(loans):
            logger.warning(f"{len(loans) - len(valid)} loans of user {user_id} have missing books")

        return valid
