from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_backend.auth import CurrentUser, get_current_user, require_roles
from library_backend.database import get_db
from library_backend.dependencies import get_file_storage, get_loan_service, get_overdue_service
from library_backend.models.user import Role
from library_backend.schemas import BookCreate, BookUpdate, BookOut, BorrowRequest, LoanOut, LoanWithBook
from library_backend.services.book_service import BookService
from library_backend.services.loan_service import LoanService
from library_backend.services.overdue_service import OverdueService
from library_backend.services.storage_service import FileStorage

router = APIRouter(prefix="/books", tags=["Books"])

require_admin = require_roles(Role.ADMIN, Role.SUPERADMIN)


# ── Loans ─────────────────────────────────────────────────────────
@router.get("/user/loans", response_model=list[LoanWithBook])
async def list_my_loans(
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    """The caller's loans, newest first."""
    return await loans.list_user_loans(db, user.id)


@router.post("/loans/check-overdue")
async def run_overdue_check(
    admin: CurrentUser = Depends(require_admin),
    overdue: OverdueService = Depends(get_overdue_service),
):
    """Admin only: run the overdue reminder sweep now instead of waiting for the schedule."""
    sent = await overdue.check_overdue_loans()
    return {"status": "success", "sent": sent}


@router.post("/{book_id}/borrow", status_code=status.HTTP_201_CREATED)
async def borrow_book(
    book_id: int,
    body: BorrowRequest,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    loan = await loans.borrow(db, user.id, book_id, body.due_date)
    return {"message": "Book borrowed successfully", "loan": LoanOut.model_validate(loan)}


@router.post("/{book_id}/return")
async def return_book(
    book_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    loans: LoanService = Depends(get_loan_service),
):
    loan = await loans.return_book(db, user.id, book_id)
    return {"message": "Book returned successfully", "loan": LoanOut.model_validate(loan)}


# ── Catalog ───────────────────────────────────────────────────────
@router.post("", response_model=BookOut, status_code=status.HTTP_201_CREATED)
async def create_book(
    body: BookCreate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await BookService.create(db, body.model_dump())


@router.get("", response_model=list[BookOut])
async def list_books(user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await BookService.get_all(db)


@router.get("/{book_id}", response_model=BookOut)
async def get_book(book_id: int, user: CurrentUser = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await BookService.get_by_id(db, book_id)


@router.put("/{book_id}", response_model=BookOut)
async def update_book(
    book_id: int,
    body: BookUpdate,
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await BookService.update(db, book_id, body.model_dump(exclude_unset=True))


@router.delete("/{book_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_book(book_id: int, admin: CurrentUser = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    await BookService.delete(db, book_id)


@router.post("/{book_id}/upload-cover", response_model=BookOut)
async def upload_cover(
    book_id: int,
    cover: UploadFile = File(...),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
):
    data = await cover.read()
    return await BookService.upload_cover(db, storage, book_id, cover.filename, cover.content_type, data)


@router.post("/{book_id}/upload-book-file", response_model=BookOut)
async def upload_book_file(
    book_id: int,
    bookFile: UploadFile = File(...),
    admin: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_file_storage),
):
    data = await bookFile.read()
    return await BookService.upload_book_file(db, storage, book_id, bookFile.filename, bookFile.content_type, data)
