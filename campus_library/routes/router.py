from fastapi import APIRouter, Depends, Query, status
from typing import List, Literal, Optional

from campus_library.models.models import User
from campus_library.routes.dependencies import (
    get_borrowing,
    get_catalog,
    get_current_user,
)
from campus_library.schemas.schemas import (
    BookOut,
    BookRequest,
    BorrowRequestOut,
    LoanOut,
)
from campus_library.services.borrowing import BorrowingService
from campus_library.services.catalog import CatalogService

router = APIRouter()


@router.get("/books", response_model=List[BookOut])
def get_books(
    q: Optional[str] = None,
    author: Optional[str] = None,
    subject: Optional[str] = None,
    only_available: bool = False,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    """
    Retrieves the books in the library, ordered by title.

    Parameters:
        q (str): Matches title, author or subject, case-insensitively.
        author (str): Restricts to authors containing this text.
        subject (str): Restricts to subjects containing this text.
        only_available (bool): Only books with a copy on the shelf.

    Returns:
        List[BookOut]: The matching books.
    """
    return catalog.list_books(
        q=q, author=author, subject=subject, only_available=only_available
    )


@router.get("/books/{book_id}", response_model=BookOut)
def get_book(
    book_id: int,
    current_user: User = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog),
):
    return catalog.get_book(book_id)


@router.get("/books/{book_id}/my-request", response_model=Optional[BorrowRequestOut])
def get_my_request(
    book_id: int,
    current_user: User = Depends(get_current_user),
    borrowing: BorrowingService = Depends(get_borrowing),
):
    """Latest request the caller made for this book, or null."""
    return borrowing.request_for(current_user.id, book_id)


@router.post(
    "/requests", status_code=status.HTTP_201_CREATED, response_model=BorrowRequestOut
)
def submit_request(
    request: BookRequest,
    current_user: User = Depends(get_current_user),
    borrowing: BorrowingService = Depends(get_borrowing),
):
    """
    Submits a borrow request for a specific book on behalf of the caller.

    Parameters:
        request (BookRequest): The book and, optionally, the title to record.
        current_user (User): The currently authenticated user.

    Returns:
        BorrowRequestOut: The pending request.

    Raises:
        LibraryError: DuplicateRequest, AlreadyBorrowed, NotFound or Unavailable.
    """
    return borrowing.submit_request(current_user.id, request.book_id, request.title)


@router.get("/loans/me", response_model=List[LoanOut])
def view_my_loans(
    status_filter: Literal["all", "returned", "not-returned"] = Query("all", alias="status"),
    current_user: User = Depends(get_current_user),
    borrowing: BorrowingService = Depends(get_borrowing),
):
    """
    Retrieves the caller's loans, open ones first, with fines projected to today.
    """
    return borrowing.loans_for_user(current_user.id, status_filter)
