"""Borrowing lifecycle: request, approve, deny, return.

Keeps four records consistent: a book's available copy count, borrow
requests, loans, and the fines on those loans. Every mutating operation runs
in one transaction on the injected session; if anything fails the whole
operation is rolled back before the error reaches the caller.
"""

import logging
from datetime import timedelta

from sqlalchemy import false, true
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from campus_library.config.db import transaction
from campus_library.config.settings import settings
from campus_library.models.models import Book, BorrowRequest, Loan, User
from campus_library.services.errors import (
    AlreadyBorrowed,
    AlreadyProcessed,
    AlreadyReturned,
    DuplicateRequest,
    NotFound,
    Unavailable,
)
from campus_library.services.fines import compute_fine, is_overdue, project_fine, utcnow

logger = logging.getLogger(__name__)


class BorrowingService:
    def __init__(
        self,
        db: Session,
        clock=utcnow,
        loan_period_days: int = settings.loan_period_days,
        fine_per_day: int = settings.fine_per_day,
    ):
        self.db = db
        self.clock = clock
        self.loan_period = timedelta(days=loan_period_days)
        self.fine_per_day = fine_per_day

    def submit_request(self, user_id: int, book_id: int, title: str = None) -> BorrowRequest:
        """
        Files a pending borrow request for ``user_id``.

        Copies are not reserved here; several users may hold pending requests
        for the last copy and approval decides who gets it.

        Raises:
            DuplicateRequest: the user already has a pending request for the book.
            AlreadyBorrowed: the user holds an unreturned loan of the book.
            NotFound: the book does not exist.
            Unavailable: no copies are on the shelf.
        """
        try:
            with transaction(self.db):
                if self._pending_request(user_id, book_id):
                    raise DuplicateRequest()

                if self._open_loan(user_id, book_id):
                    raise AlreadyBorrowed()

                book = self.db.query(Book).filter(Book.id == book_id).first()
                if not book:
                    raise NotFound("Book not found")
                if book.available_copies <= 0:
                    raise Unavailable()

                borrow_request = BorrowRequest(
                    user_id=user_id,
                    book_id=book_id,
                    book_title=title or book.title,
                    approved=False,
                    created_at=self.clock(),
                )
                self.db.add(borrow_request)
                self.db.flush()
        except IntegrityError as exc:
            # an identical request or the book's deletion committed first
            if self.db.query(Book.id).filter(Book.id == book_id).first() is None:
                raise NotFound("Book not found") from exc
            logger.warning("Request by user %s for book %s lost to a duplicate", user_id, book_id)
            raise DuplicateRequest() from exc

        logger.info(
            "Request %s filed: user=%s book=%s", borrow_request.id, user_id, book_id
        )
        return borrow_request

    def approve(self, request_id: int) -> Loan:
        """
        Approves a pending request and issues the loan.

        The availability check and the decrement are a single conditional
        UPDATE, so two approvals racing for the last copy cannot both win.

        Raises:
            NotFound: the request does not exist.
            AlreadyProcessed: the request was approved before.
            Unavailable: the book has no copies left (or is gone).
        """
        with transaction(self.db):
            borrow_request = (
                self.db.query(BorrowRequest)
                .filter(BorrowRequest.id == request_id)
                .first()
            )
            if not borrow_request:
                raise NotFound("Request not found")
            if borrow_request.approved:
                raise AlreadyProcessed()

            claimed = (
                self.db.query(BorrowRequest)
                .filter(BorrowRequest.id == request_id, BorrowRequest.approved == false())
                .update({BorrowRequest.approved: True}, synchronize_session=False)
            )
            if not claimed:
                raise AlreadyProcessed()

            taken = (
                self.db.query(Book)
                .filter(Book.id == borrow_request.book_id, Book.available_copies > 0)
                .update(
                    {Book.available_copies: Book.available_copies - 1},
                    synchronize_session=False,
                )
            )
            if not taken:
                logger.warning(
                    "Request %s not approved: book %s has no copies left",
                    request_id,
                    borrow_request.book_id,
                )
                raise Unavailable("Book is no longer available")

            now = self.clock()
            loan = Loan(
                user_id=borrow_request.user_id,
                book_id=borrow_request.book_id,
                book_title=borrow_request.book_title,
                issue_date=now,
                due_date=now + self.loan_period,
                fine=0,
                returned=False,
            )
            self.db.add(loan)

        logger.info(
            "Request %s approved: loan %s due %s",
            request_id,
            loan.id,
            loan.due_date.isoformat(),
        )
        return loan

    def deny(self, request_id: int) -> None:
        """
        Deletes a pending request. Nothing was reserved for it, so no
        counters change.

        Raises:
            NotFound: the request does not exist.
            AlreadyProcessed: the request is approved and kept as history.
        """
        with transaction(self.db):
            borrow_request = (
                self.db.query(BorrowRequest)
                .filter(BorrowRequest.id == request_id)
                .first()
            )
            if not borrow_request:
                raise NotFound("Request not found")
            if borrow_request.approved:
                raise AlreadyProcessed("Approved requests cannot be denied")
            self.db.delete(borrow_request)

        logger.info("Request %s denied", request_id)

    def mark_returned(self, loan_id: int) -> Loan:
        """
        Closes a loan, settles its fine and puts the copy back on the shelf.

        Raises:
            NotFound: the loan does not exist.
            AlreadyReturned: the loan was closed before.
        """
        with transaction(self.db):
            loan = self.db.query(Loan).filter(Loan.id == loan_id).first()
            if not loan:
                raise NotFound("Borrowed book record not found")
            if loan.returned:
                raise AlreadyReturned()

            now = self.clock()
            fine = compute_fine(loan.due_date, now, self.fine_per_day)
            closed = (
                self.db.query(Loan)
                .filter(Loan.id == loan_id, Loan.returned == false())
                .update(
                    {Loan.returned: True, Loan.returned_at: now, Loan.fine: fine},
                    synchronize_session=False,
                )
            )
            if not closed:
                raise AlreadyReturned()

            restocked = (
                self.db.query(Book)
                .filter(Book.id == loan.book_id)
                .update(
                    {Book.available_copies: Book.available_copies + 1},
                    synchronize_session=False,
                )
            )
            if not restocked:
                logger.warning("Loan %s returned for missing book %s", loan_id, loan.book_id)

        logger.info("Loan %s returned, fine=%s", loan_id, fine)
        return loan

    def request_for(self, user_id: int, book_id: int):
        """Most recent request of the user for the book, or None."""
        return (
            self.db.query(BorrowRequest)
            .filter(BorrowRequest.user_id == user_id, BorrowRequest.book_id == book_id)
            .order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc())
            .first()
        )

    def list_requests(self, status: str = "all"):
        query = self.db.query(BorrowRequest, User).join(User, BorrowRequest.user_id == User.id)
        if status == "pending":
            query = query.filter(BorrowRequest.approved == false())
        elif status == "approved":
            query = query.filter(BorrowRequest.approved == true())
        rows = query.order_by(BorrowRequest.created_at.desc(), BorrowRequest.id.desc()).all()
        return [
            {
                "id": req.id,
                "user_id": req.user_id,
                "book_id": req.book_id,
                "book_title": req.book_title,
                "approved": req.approved,
                "created_at": req.created_at,
                "user_name": user.name,
                "user_email": user.email,
            }
            for req, user in rows
        ]

    def loans_for_user(self, user_id: int, status: str = "all"):
        query = self.db.query(Loan).filter(Loan.user_id == user_id)
        loans = self._ordered(self._filter_status(query, status)).all()
        now = self.clock()
        return [self.describe(loan, now) for loan in loans]

    def all_loans(self, status: str = "all"):
        query = self.db.query(Loan, User).join(User, Loan.user_id == User.id)
        rows = self._ordered(self._filter_status(query, status)).all()
        now = self.clock()
        return [
            dict(self.describe(loan, now), user_name=user.name, user_email=user.email)
            for loan, user in rows
        ]

    def describe(self, loan: Loan, now=None) -> dict:
        """Loan as a dict with the fine projected to ``now``."""
        now = now or self.clock()
        return {
            "id": loan.id,
            "user_id": loan.user_id,
            "book_id": loan.book_id,
            "book_title": loan.book_title,
            "issue_date": loan.issue_date,
            "due_date": loan.due_date,
            "returned": loan.returned,
            "returned_at": loan.returned_at,
            "fine": project_fine(loan, now, self.fine_per_day),
            "overdue": is_overdue(loan, now),
        }

    def outstanding_fines(self) -> int:
        now = self.clock()
        open_loans = self.db.query(Loan).filter(Loan.returned == false()).all()
        return sum(compute_fine(loan.due_date, now, self.fine_per_day) for loan in open_loans)

    def _pending_request(self, user_id, book_id):
        return (
            self.db.query(BorrowRequest)
            .filter(
                BorrowRequest.user_id == user_id,
                BorrowRequest.book_id == book_id,
                BorrowRequest.approved == false(),
            )
            .first()
        )

    def _open_loan(self, user_id, book_id):
        return (
            self.db.query(Loan)
            .filter(
                Loan.user_id == user_id,
                Loan.book_id == book_id,
                Loan.returned == false(),
            )
            .first()
        )

    @staticmethod
    def _filter_status(query, status):
        if status == "returned":
            return query.filter(Loan.returned == true())
        if status == "not-returned":
            return query.filter(Loan.returned == false())
        return query

    @staticmethod
    def _ordered(query):
        return query.order_by(Loan.returned.asc(), Loan.due_date.asc(), Loan.id.asc())
