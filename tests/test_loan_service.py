import asyncio
import logging
from datetime import timedelta, timezone

import pytest
from sqlalchemy import delete, select, func

from library_backend.errors import (
    NotFoundError, OutOfStockError, LoanLimitExceededError, ConflictError, ValidationError,
)
from library_backend.models.book import Book
from library_backend.models.loan import Loan

from conftest import NOW

DUE = NOW + timedelta(days=14)


async def count_loans(session_factory, **filters) -> int:
    async with session_factory() as session:
        stmt = select(func.count(Loan.id)).filter_by(**filters)
        return await session.scalar(stmt)


async def test_borrow_creates_loan_and_decrements_stock(db, loan_service, make_user, make_book, fetch):
    user = await make_user()
    book = await make_book(stock=3)

    loan = await loan_service.borrow(db, user.id, book.id, DUE)

    assert loan.id is not None
    assert loan.user_id == user.id
    assert loan.book_id == book.id
    assert loan.borrowed_at == NOW
    assert loan.due_date == DUE
    assert loan.returned_at is None
    assert loan.is_overdue_notified is False
    assert (await fetch(Book, book.id)).stock == 2


async def test_borrow_missing_book_raises_not_found(db, loan_service, make_user):
    user = await make_user()
    with pytest.raises(NotFoundError):
        await loan_service.borrow(db, user.id, 9999, DUE)


async def test_borrow_out_of_stock_changes_nothing(db, loan_service, make_user, make_book, fetch, session_factory):
    user = await make_user()
    book = await make_book(stock=0)

    with pytest.raises(OutOfStockError):
        await loan_service.borrow(db, user.id, book.id, DUE)

    assert (await fetch(Book, book.id)).stock == 0
    assert await count_loans(session_factory, book_id=book.id) == 0


async def test_due_date_must_be_in_the_future(db, loan_service, make_user, make_book, fetch):
    user = await make_user()
    book = await make_book(stock=1)

    with pytest.raises(ValidationError):
        await loan_service.borrow(db, user.id, book.id, NOW - timedelta(days=1))
    with pytest.raises(ValidationError):
        await loan_service.borrow(db, user.id, book.id, NOW)

    assert (await fetch(Book, book.id)).stock == 1


async def test_aware_due_date_is_stored_as_utc(db, loan_service, make_user, make_book):
    user = await make_user()
    book = await make_book(stock=1)
    aware_due = DUE.replace(tzinfo=timezone.utc).astimezone(timezone(timedelta(hours=7)))

    loan = await loan_service.borrow(db, user.id, book.id, aware_due)

    assert loan.due_date == DUE
    assert loan.due_date.tzinfo is None


async def test_loan_limit_and_return_reenables_borrowing(db, loan_service, make_user, make_book):
    user = await make_user()
    books = [await make_book(stock=2) for _ in range(6)]

    for book in books[:5]:
        await loan_service.borrow(db, user.id, book.id, DUE)

    with pytest.raises(LoanLimitExceededError):
        await loan_service.borrow(db, user.id, books[5].id, DUE)

    await loan_service.return_book(db, user.id, books[0].id)
    loan = await loan_service.borrow(db, user.id, books[5].id, DUE)
    assert loan.book_id == books[5].id


async def test_loan_limit_is_per_user(db, loan_service, make_user, make_book):
    first, second = await make_user(), await make_user()
    books = [await make_book(stock=2) for _ in range(5)]
    for book in books:
        await loan_service.borrow(db, first.id, book.id, DUE)

    loan = await loan_service.borrow(db, second.id, books[0].id, DUE)
    assert loan.user_id == second.id


async def test_double_borrow_conflicts_and_decrements_once(db, loan_service, make_user, make_book, fetch):
    user = await make_user()
    book = await make_book(stock=3)

    await loan_service.borrow(db, user.id, book.id, DUE)
    with pytest.raises(ConflictError):
        await loan_service.borrow(db, user.id, book.id, DUE)

    assert (await fetch(Book, book.id)).stock == 2


async def test_return_without_active_loan_conflicts(db, loan_service, make_user, make_book, fetch):
    user = await make_user()
    book = await make_book(stock=4)

    with pytest.raises(ConflictError):
        await loan_service.return_book(db, user.id, book.id)

    assert (await fetch(Book, book.id)).stock == 4


async def test_return_closes_loan_and_restores_stock(db, loan_service, clock, make_user, make_book, fetch):
    user = await make_user()
    book = await make_book(stock=1)
    await loan_service.borrow(db, user.id, book.id, DUE)
    clock.advance(days=3)

    loan = await loan_service.return_book(db, user.id, book.id)

    assert loan.returned_at == NOW + timedelta(days=3)
    assert (await fetch(Book, book.id)).stock == 1

    with pytest.raises(ConflictError):
        await loan_service.return_book(db, user.id, book.id)
    assert (await fetch(Book, book.id)).stock == 1


async def test_borrow_again_after_return(db, loan_service, make_user, make_book, session_factory, fetch):
    user = await make_user()
    book = await make_book(stock=1)

    await loan_service.borrow(db, user.id, book.id, DUE)
    await loan_service.return_book(db, user.id, book.id)
    await loan_service.borrow(db, user.id, book.id, DUE)

    assert await count_loans(session_factory, user_id=user.id, book_id=book.id) == 2
    assert (await fetch(Book, book.id)).stock == 0


async def test_concurrent_borrows_of_last_copy(loan_service, session_factory, make_user, make_book, fetch):
    first, second = await make_user(), await make_user()
    book = await make_book(stock=1)

    async def attempt(user_id):
        async with session_factory() as session:
            return await loan_service.borrow(session, user_id, book.id, DUE)

    results = await asyncio.gather(attempt(first.id), attempt(second.id), return_exceptions=True)

    loans = [r for r in results if isinstance(r, Loan)]
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(loans) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], (OutOfStockError, ConflictError))
    assert (await fetch(Book, book.id)).stock == 0


async def test_concurrent_double_borrow_by_same_user(loan_service, session_factory, make_user, make_book, fetch):
    user = await make_user()
    book = await make_book(stock=5)

    async def attempt():
        async with session_factory() as session:
            return await loan_service.borrow(session, user.id, book.id, DUE)

    results = await asyncio.gather(attempt(), attempt(), attempt(), return_exceptions=True)

    assert sum(isinstance(r, Loan) for r in results) == 1
    assert all(isinstance(r, ConflictError) for r in results if not isinstance(r, Loan))
    assert (await fetch(Book, book.id)).stock == 4


async def test_concurrent_borrows_of_different_books_respect_loan_limit(loan_service, session_factory, make_user,
                                                                         make_book, fetch):
    user = await make_user()
    books = [await make_book(stock=1) for _ in range(10)]

    async def attempt(book_id):
        async with session_factory() as session:
            return await loan_service.borrow(session, user.id, book_id, DUE)

    results = await asyncio.gather(*(attempt(book.id) for book in books), return_exceptions=True)

    assert sum(isinstance(r, Loan) for r in results) == 5
    assert all(isinstance(r, LoanLimitExceededError) for r in results if not isinstance(r, Loan))
    assert await count_loans(session_factory, user_id=user.id, returned_at=None) == 5
    stocks = [(await fetch(Book, book.id)).stock for book in books]
    assert sorted(stocks) == [0] * 5 + [1] * 5


async def test_idle_locks_are_released(db, loan_service, make_user, make_book):
    user = await make_user()
    books = [await make_book(stock=2) for _ in range(3)]

    for book in books:
        await loan_service.borrow(db, user.id, book.id, DUE)
        await loan_service.return_book(db, user.id, book.id)

    assert len(loan_service._book_locks) == 0
    assert len(loan_service._user_locks) == 0


async def test_concurrent_returns_restock_once(loan_service, session_factory, db, make_user, make_book, fetch):
    user = await make_user()
    book = await make_book(stock=1)
    await loan_service.borrow(db, user.id, book.id, DUE)

    async def attempt():
        async with session_factory() as session:
            return await loan_service.return_book(session, user.id, book.id)

    results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

    assert sum(isinstance(r, Loan) for r in results) == 1
    assert (await fetch(Book, book.id)).stock == 1


async def test_stock_never_negative_over_mixed_sequence(db, loan_service, make_user, make_book, fetch):
    users = [await make_user() for _ in range(4)]
    book = await make_book(stock=2)

    for user in users:
        try:
            await loan_service.borrow(db, user.id, book.id, DUE)
        except OutOfStockError:
            pass
        assert (await fetch(Book, book.id)).stock >= 0

    await loan_service.return_book(db, users[0].id, book.id)
    await loan_service.borrow(db, users[3].id, book.id, DUE)
    assert (await fetch(Book, book.id)).stock == 0


async def test_list_user_loans_newest_first(db, loan_service, clock, make_user, make_book):
    user = await make_user()
    first, second = await make_book(stock=1), await make_book(stock=1)

    await loan_service.borrow(db, user.id, first.id, DUE)
    clock.advance(hours=1)
    await loan_service.borrow(db, user.id, second.id, DUE)

    loans = await loan_service.list_user_loans(db, user.id)

    assert [loan.book_id for loan in loans] == [second.id, first.id]
    assert loans[0].book.title == second.title


async def test_list_user_loans_drops_loans_of_deleted_books(db, loan_service, make_user, make_book, session_factory, caplog):
    user = await make_user()
    kept, removed = await make_book(stock=1), await make_book(stock=1)
    await loan_service.borrow(db, user.id, kept.id, DUE)
    await loan_service.borrow(db, user.id, removed.id, DUE)

    async with session_factory() as session:
        await session.execute(delete(Book).where(Book.id == removed.id))
        await session.commit()

    with caplog.at_level(logging.WARNING, logger="library_backend.services.loan_service"):
        async with session_factory() as session:
            loans = await loan_service.list_user_loans(session, user.id)

    assert [loan.book_id for loan in loans] == [kept.id]
    assert "1 loans of user" in caplog.text


async def test_list_user_loans_only_returns_own_loans(db, loan_service, make_user, make_book):
    me, other = await make_user(), await make_user()
    book = await make_book(stock=2)
    await loan_service.borrow(db, other.id, book.id, DUE)

    assert await loan_service.list_user_loans(db, me.id) == []
