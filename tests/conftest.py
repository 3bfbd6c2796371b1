import itertools
from datetime import datetime, timedelta

import pytest

import library_backend.models  # noqa: F401  (register tables)
from library_backend.auth import hash_password, create_access_token
from library_backend.database import Base, build_engine, build_session_factory
from library_backend.errors import EmailDeliveryError
from library_backend.models.book import Book
from library_backend.models.user import User, Role
from library_backend.services.loan_service import LoanService

NOW = datetime(2026, 1, 15, 9, 0, 0)
PASSWORD = "secret123"
PASSWORD_HASH = hash_password(PASSWORD)


class FakeClock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeEmailSender:
    """Records outgoing mail; addresses in ``failing`` raise like a broken SMTP server."""

    def __init__(self):
        self.sent: list[dict] = []
        self.failing: set[str] = set()

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if to in self.failing:
            raise EmailDeliveryError("Failed to send email")
        self.sent.append({"to": to, "subject": subject, "html": html_body})

    def to(self, address: str) -> list[dict]:
        return [m for m in self.sent if m["to"] == address]


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def loan_service(clock):
    return LoanService(clock=clock)


@pytest.fixture
def make_user(session_factory):
    counter = itertools.count(1)

    async def _make(role: Role = Role.USER, verified: bool = True, **overrides) -> User:
        n = next(counter)
        fields = {
            "name": f"Reader {n}",
            "email": f"reader{n}@example.com",
            "password": PASSWORD_HASH,
            "phone": "08123456789",
            "role": role,
            "is_verified": verified,
        }
        fields.update(overrides)
        async with session_factory() as session:
            user = User(**fields)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make


@pytest.fixture
def make_book(session_factory):
    counter = itertools.count(1)

    async def _make(stock: int = 1, **overrides) -> Book:
        n = next(counter)
        fields = {
            "title": f"Book {n}",
            "author": "Pramoedya Ananta Toer",
            "publisher": "Hasta Mitra",
            "published_year": 1980,
            "stock": stock,
        }
        fields.update(overrides)
        async with session_factory() as session:
            book = Book(**fields)
            session.add(book)
            await session.commit()
            await session.refresh(book)
            return book

    return _make


@pytest.fixture
def fetch(session_factory):
    """Read a row in a fresh session, so assertions see committed state only."""
    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)
    return _fetch


def auth_header(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.email, user.role)}"}
