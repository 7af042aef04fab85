from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    func,
    text,
)
from sqlalchemy.orm import relationship
from campus_library.config.db import *

STUDENT = "student"
LIBRARIAN = "librarian"
ROLES = (STUDENT, LIBRARIAN)


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False)
    phone = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default=STUDENT)  # student or librarian

    @property
    def is_librarian(self):
        return self.role == LIBRARIAN


class Book(Base):
    __tablename__ = "books"
    __table_args__ = (
        CheckConstraint(
            "available_copies >= 0 AND available_copies <= total_copies",
            name="ck_books_available_within_total",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String, nullable=False, index=True)
    author = Column(String, nullable=False)
    edition = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    total_copies = Column(Integer, nullable=False, default=1)
    available_copies = Column(Integer, nullable=False, default=1)


class BorrowRequest(Base):
    __tablename__ = "borrow_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    book_title = Column(String, nullable=False)  # snapshot at request time
    approved = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    user = relationship("User")
    book = relationship("Book")


class Loan(Base):
    __tablename__ = "loans"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    book_title = Column(String, nullable=False)  # copied from the request
    issue_date = Column(DateTime, nullable=False)
    due_date = Column(DateTime, nullable=False)
    fine = Column(Integer, nullable=False, default=0)  # final only once returned
    returned = Column(Boolean, nullable=False, default=False)
    returned_at = Column(DateTime, nullable=True)

    user = relationship("User")
    book = relationship("Book")


# One pending request and one open loan per (user, book). Partial indexes are
# only emitted where the dialect supports a WHERE clause on them.
Index(
    "uq_borrow_requests_pending",
    BorrowRequest.user_id,
    BorrowRequest.book_id,
    unique=True,
    sqlite_where=text("approved = 0"),
    postgresql_where=text("approved = false"),
).ddl_if(dialect=("sqlite", "postgresql"))

Index(
    "uq_loans_open",
    Loan.user_id,
    Loan.book_id,
    unique=True,
    sqlite_where=text("returned = 0"),
    postgresql_where=text("returned = false"),
).ddl_if(dialect=("sqlite", "postgresql"))
