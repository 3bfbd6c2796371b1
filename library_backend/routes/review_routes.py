from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from library_backend.auth import CurrentUser, get_current_user
from library_backend.database import get_db
from library_backend.schemas import ReviewCreate, ReviewOut, ReviewWithUser, ReviewWithUserAndBook
from library_backend.services.review_service import ReviewService

router = APIRouter(prefix="/reviews", tags=["Reviews"])


@router.get("", response_model=list[ReviewWithUserAndBook])
async def list_reviews(db: AsyncSession = Depends(get_db)):
    return await ReviewService.get_all_reviews(db)


@router.get("/{book_id}", response_model=list[ReviewWithUser])
async def list_book_reviews(book_id: int, db: AsyncSession = Depends(get_db)):
    return await ReviewService.get_reviews_by_book(db, book_id)


@router.post("/{book_id}", response_model=ReviewOut, status_code=status.HTTP_201_CREATED)
async def add_review(
    book_id: int,
    body: ReviewCreate,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await ReviewService.add_review(db, user.id, book_id, body.rating, body.comment)


@router.delete("/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_review(
    review_id: int,
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Authors may delete their own review; ADMIN and SUPERADMIN may delete any."""
    await ReviewService.delete_review(db, user.id, review_id, user.is_admin)
