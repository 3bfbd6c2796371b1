import os
import logging

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from library_backend.config import DATABASE_URL

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str = DATABASE_URL):
    """Create the async engine, with pool settings for PostgreSQL and a lock wait for SQLite.

    SQLite keeps its default of unenforced foreign keys, so deleting a book or
    user leaves their loans behind; readers of loans skip those rows.
    """
    engine_args = {}
    if not url.startswith("sqlite"):
        engine_args.update({
            "pool_size": 5,
            "max_overflow": 10,
            "pool_timeout": 30,
            "pool_recycle": 1800,
        })

    engine = create_async_engine(url, echo=False, **engine_args)

    if url.startswith("sqlite"):
        @event.listens_for(engine.sync_engine, "connect")
        def _sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA busy_timeout=5000")
            cursor.close()

    return engine


def build_session_factory(engine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False: committed objects are read after the session's IO is done
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


engine = build_engine()
SessionLocal = build_session_factory(engine)


async def get_db():
    """FastAPI dependency — yields a database session and closes it after use."""
    async with SessionLocal() as db:
        yield db


async def init_db(bind=None):
    """Create the data/ directory for SQLite, then create all tables."""
    bind = bind or engine
    db_path = bind.url.database
    if bind.url.get_backend_name() == "sqlite" and db_path and db_path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(db_path)), exist_ok=True)

    # Import all models so they register with Base.metadata
    import library_backend.models  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized successfully.")
