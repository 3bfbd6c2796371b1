"""
overdue_service.py — Overdue loan reminders
Scheduled sweep over active loans past their due date. Each loan is mailed at
most once: the is_overdue_notified flag is set only after a successful send,
so a failed send or a failed flag write is retried on the next run.
"""

import logging
from datetime import datetime
from typing import Callable, NamedTuple

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import joinedload

from library_backend.clock import utcnow
from library_backend.models.loan import Loan
from library_backend.services.email_service import EmailSender, overdue_email

logger = logging.getLogger(__name__)


class Reminder(NamedTuple):
    loan_id: int
    email: str
    user_name: str
    book_title: str
    due_date: datetime


class OverdueService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        sender: EmailSender,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._sender = sender
        self._clock = clock

    async def check_overdue_loans(self) -> int:
        """Notify every overdue, not-yet-notified active loan. Returns how many were sent."""
        reminders = await self._pending_reminders(self._clock())
        logger.info(f"Checking overdue books: {len(reminders)} pending reminder(s)")
        sent = 0

        for reminder in reminders:
            subject, body = overdue_email(reminder.user_name, reminder.book_title, reminder.due_date)
            try:
                await self._sender.send(reminder.email, subject, body)
            except Exception:
                # Flag stays false so the next sweep retries this loan
                logger.exception(f"Overdue reminder for loan {reminder.loan_id} failed, will retry next run")
                continue

            if not await self._mark_notified(reminder.loan_id):
                continue
            sent += 1
            logger.info(f"Reminder email sent to {reminder.email}")

        logger.info(f"Overdue check finished: {sent} reminder(s) sent")
        return sent

    async def _pending_reminders(self, now: datetime) -> list[Reminder]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Loan)
                .options(joinedload(Loan.user), joinedload(Loan.book))
                .where(
                    Loan.due_date < now,
                    Loan.returned_at.is_(None),
                    Loan.is_overdue_notified.is_(False),
                )
                .order_by(Loan.due_date, Loan.id)
            )
            reminders = []
            for loan in result.scalars().all():
                if loan.user is None or loan.book is None:
                    logger.warning(f"Skipping overdue loan {loan.id}: user or book no longer exists")
                    continue
                reminders.append(Reminder(loan.id, loan.user.email, loan.user.name, loan.book.title, loan.due_date))
            return reminders

    async def _mark_notified(self, loan_id: int) -> bool:
        async with self._session_factory() as db:
            try:
                await db.execute(
                    update(Loan)
                    .where(Loan.id == loan_id)
                    .values(is_overdue_notified=True)
                )
                await db.commit()
            except SQLAlchemyError:
                await db.rollback()
                logger.exception(f"Could not flag loan {loan_id} as notified, it will be mailed again next run")
                return False
        return True
