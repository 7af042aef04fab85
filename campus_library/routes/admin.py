from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Literal

from campus_library.config.db import get_db
from campus_library.routes.dependencies import (
    get_accounts,
    get_borrowing,
    get_catalog,
    require_librarian,
)
from campus_library.schemas.schemas import (
    BookIn,
    BookOut,
    BorrowRequestRow,
    DashboardStats,
    LoanOut,
    LoanRow,
    Message,
    UserCreate,
    UserOut,
)
from campus_library.services.accounts import AccountService, dashboard_stats
from campus_library.services.borrowing import BorrowingService
from campus_library.services.catalog import CatalogService

router = APIRouter(prefix="/admin", dependencies=[Depends(require_librarian)])


@router.get("/users", response_model=List[UserOut])
def view_users(accounts: AccountService = Depends(get_accounts)):
    """Students registered with the library, ordered by name."""
    return accounts.list_users()


@router.post("/users", status_code=status.HTTP_201_CREATED, response_model=UserOut)
def create_user(user: UserCreate, accounts: AccountService = Depends(get_accounts)):
    """
    Creates a new library member.

    Parameters:
        user (UserCreate): The data for creating the new user.

    Returns:
        UserOut: The created user.

    Raises:
        LibraryError: InvalidEmail if the address is not a university email,
                      DuplicateUser if it is already registered.
    """
    return accounts.create_user(user.email, user.name, user.phone, user.role)


@router.post("/books", status_code=status.HTTP_201_CREATED, response_model=BookOut)
def add_book(book: BookIn, catalog: CatalogService = Depends(get_catalog)):
    return catalog.add_book(
        book.title, book.author, book.edition, book.subject, book.total_copies
    )


@router.put("/books/{book_id}", response_model=BookOut)
def update_book(
    book_id: int, book: BookIn, catalog: CatalogService = Depends(get_catalog)
):
    """
    Replaces a book's details.

    Raises:
        LibraryError: NotFound, or CopiesInUse when the new total is lower
                      than the number of copies currently lent out.
    """
    return catalog.update_book(
        book_id, book.title, book.author, book.edition, book.subject, book.total_copies
    )


@router.delete("/books/{book_id}", response_model=Message)
def delete_book(book_id: int, catalog: CatalogService = Depends(get_catalog)):
    catalog.delete_book(book_id)
    return {"message": "Book deleted successfully"}


@router.get("/requests", response_model=List[BorrowRequestRow])
def view_borrow_requests(
    status_filter: Literal["all", "pending", "approved"] = Query("all", alias="status"),
    borrowing: BorrowingService = Depends(get_borrowing),
):
    """
    Retrieves borrow requests, newest first, with the requester's name and email.

    Parameters:
        status_filter (str): "pending", "approved" or "all".

    Returns:
        List[BorrowRequestRow]: The matching requests.
    """
    return borrowing.list_requests(status_filter)


@router.put("/requests/{request_id}/approve", response_model=LoanOut)
def approve_request(
    request_id: int, borrowing: BorrowingService = Depends(get_borrowing)
):
    """
    Approves a pending request: the request is kept as approved, a loan is
    issued for the lending period and one copy leaves the shelf, all in one
    transaction.

    Returns:
        LoanOut: The issued loan.

    Raises:
        LibraryError: NotFound, AlreadyProcessed or Unavailable.
    """
    loan = borrowing.approve(request_id)
    return borrowing.describe(loan)


@router.put("/requests/{request_id}/deny", response_model=Message)
def deny_request(
    request_id: int, borrowing: BorrowingService = Depends(get_borrowing)
):
    borrowing.deny(request_id)
    return {"message": "Request denied successfully"}


@router.get("/loans", response_model=List[LoanRow])
def view_loans(
    status_filter: Literal["all", "returned", "not-returned"] = Query(
        "all", alias="status"
    ),
    borrowing: BorrowingService = Depends(get_borrowing),
):
    """
    Retrieves every loan, open ones first, with fines projected to today.
    """
    return borrowing.all_loans(status_filter)


@router.put("/loans/{loan_id}/return", response_model=LoanOut)
def mark_returned(loan_id: int, borrowing: BorrowingService = Depends(get_borrowing)):
    """
    Marks a loan returned, finalizing its fine and restocking the copy.

    Raises:
        LibraryError: NotFound or AlreadyReturned.
    """
    loan = borrowing.mark_returned(loan_id)
    return borrowing.describe(loan)


@router.get("/dashboard", response_model=DashboardStats)
def view_dashboard(
    db: Session = Depends(get_db),
    borrowing: BorrowingService = Depends(get_borrowing),
):
    return dashboard_stats(db, borrowing)
