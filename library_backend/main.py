import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from library_backend.clock import utcnow
from library_backend.config import CORS_ORIGINS, SCHEDULER_ENABLED
from library_backend.database import SessionLocal, init_db
from library_backend.errors import LibraryError
from library_backend.routes.book_routes import router as book_router
from library_backend.routes.review_routes import router as review_router
from library_backend.routes.user_routes import router as user_router
from library_backend.scheduler import build_scheduler
from library_backend.services.email_service import EmailSender
from library_backend.services.loan_service import LoanService
from library_backend.services.overdue_service import OverdueService
from library_backend.services.storage_service import FileStorage, PUBLIC_PREFIX

logger = logging.getLogger(__name__)


async def library_error_handler(request: Request, exc: LibraryError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


def create_app(
    session_factory=SessionLocal,
    email_sender: EmailSender | None = None,
    file_storage: FileStorage | None = None,
    clock=utcnow,
    enable_scheduler: bool = SCHEDULER_ENABLED,
    init_database: bool = True,
) -> FastAPI:
    """Build the API with its long-lived collaborators attached to app.state."""
    email_sender = email_sender or EmailSender()
    file_storage = file_storage or FileStorage()
    overdue_service = OverdueService(session_factory, email_sender, clock=clock)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if init_database:
            await init_db()
        scheduler = build_scheduler(overdue_service) if enable_scheduler else None
        if scheduler:
            scheduler.start()
        try:
            yield
        finally:
            if scheduler:
                scheduler.shutdown(wait=False)

    app = FastAPI(title="Library Management API", lifespan=lifespan)

    app.state.loan_service = LoanService(clock=clock)
    app.state.overdue_service = overdue_service
    app.state.email_sender = email_sender
    app.state.file_storage = file_storage

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(LibraryError, library_error_handler)

    @app.get("/api/v1/health-check")
    async def health():
        return {"status": "ok", "message": "Backend is alive!"}

    app.include_router(user_router)
    app.include_router(book_router)
    app.include_router(review_router)

    app.mount(PUBLIC_PREFIX, StaticFiles(directory=file_storage.root, check_dir=False), name="uploads")

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("library_backend.main:app", host="0.0.0.0", port=8000, reload=True)
