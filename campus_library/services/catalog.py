import logging

from sqlalchemy import exists, false, or_, true
from sqlalchemy.orm import Session

from campus_library.config.db import transaction
from campus_library.models.models import Book, BorrowRequest, Loan
from campus_library.services.errors import BookInUse, CopiesInUse, NotFound

logger = logging.getLogger(__name__)


class CatalogService:
    """Book inventory maintained by librarians and browsed by students."""

    def __init__(self, db: Session):
        self.db = db

    def list_books(self, q=None, author=None, subject=None, only_available=False):
        query = self.db.query(Book)
        if q:
            query = query.filter(
                or_(
                    Book.title.icontains(q, autoescape=True),
                    Book.author.icontains(q, autoescape=True),
                    Book.subject.icontains(q, autoescape=True),
                )
            )
        if author:
            query = query.filter(Book.author.icontains(author, autoescape=True))
        if subject:
            query = query.filter(Book.subject.icontains(subject, autoescape=True))
        if only_available:
            query = query.filter(Book.available_copies > 0)
        return query.order_by(Book.title, Book.id).all()

    def get_book(self, book_id: int) -> Book:
        book = self.db.query(Book).filter(Book.id == book_id).first()
        if not book:
            raise NotFound("Book not found")
        return book

    def add_book(self, title, author, edition, subject, total_copies) -> Book:
        with transaction(self.db):
            book = Book(
                title=title,
                author=author,
                edition=edition,
                subject=subject,
                total_copies=total_copies,
                available_copies=total_copies,  # every copy starts on the shelf
            )
            self.db.add(book)
        logger.info("Book %s added: %r x%s", book.id, title, total_copies)
        return book

    def update_book(self, book_id, title, author, edition, subject, total_copies) -> Book:
        """
        Replaces a book's details. Copies on loan stay on loan: the available
        count moves by the same amount as the total.

        The new count is derived from the stored row within one conditional
        UPDATE.

        Raises:
            NotFound: the book does not exist.
            CopiesInUse: the new total is below the number of copies lent out.
        """
        shift = total_copies - Book.total_copies
        with transaction(self.db):
            updated = (
                self.db.query(Book)
                .filter(Book.id == book_id, Book.available_copies + shift >= 0)
                .update(
                    {
                        Book.title: title,
                        Book.author: author,
                        Book.edition: edition,
                        Book.subject: subject,
                        Book.total_copies: total_copies,
                        Book.available_copies: Book.available_copies + shift,
                    },
                    synchronize_session=False,
                )
            )
            if not updated:
                self.get_book(book_id)
                raise CopiesInUse()
        logger.info("Book %s updated", book_id)
        return self.get_book(book_id)

    def delete_book(self, book_id: int) -> None:
        """
        Removes a book together with its returned loans and approved requests.

        The book row is only deleted while no copy is out and no request is
        pending; that test is part of the DELETE itself.

        Raises:
            NotFound: the book does not exist.
            BookInUse: a copy is still out, or a request is still pending.
        """
        open_loans = exists().where(Loan.book_id == book_id, Loan.returned == false())
        pending = exists().where(
            BorrowRequest.book_id == book_id, BorrowRequest.approved == false()
        )
        with transaction(self.db):
            self.get_book(book_id)
            self.db.query(Loan).filter(
                Loan.book_id == book_id, Loan.returned == true()
            ).delete(synchronize_session=False)
            self.db.query(BorrowRequest).filter(
                BorrowRequest.book_id == book_id, BorrowRequest.approved == true()
            ).delete(synchronize_session=False)

            deleted = (
                self.db.query(Book)
                .filter(Book.id == book_id, ~open_loans, ~pending)
                .delete(synchronize_session=False)
            )
            if not deleted:
                if self.db.query(open_loans).scalar():
                    raise BookInUse()
                raise BookInUse("Cannot delete book that has pending requests")
        logger.info("Book %s deleted", book_id)
