from fastapi import Request

from library_backend.services.email_service import EmailSender
from library_backend.services.loan_service import LoanService
from library_backend.services.overdue_service import OverdueService
from library_backend.services.storage_service import FileStorage


# Long-lived collaborators are built once in create_app() and kept on app.state
def get_loan_service(request: Request) -> LoanService:
    return request.app.state.loan_service


def get_overdue_service(request: Request) -> OverdueService:
    return request.app.state.overdue_service


def get_email_sender(request: Request) -> EmailSender:
    return request.app.state.email_sender


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.file_storage
