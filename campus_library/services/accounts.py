import logging

from sqlalchemy import false, func, true
from sqlalchemy.orm import Session

from campus_library.config.db import transaction
from campus_library.config.settings import settings
from campus_library.models.models import STUDENT, Book, BorrowRequest, Loan, User
from campus_library.services.borrowing import BorrowingService
from campus_library.services.errors import DuplicateUser, InvalidEmail

logger = logging.getLogger(__name__)


class AccountService:
    def __init__(self, db: Session, email_domain: str = settings.university_email_domain):
        self.db = db
        self.email_domain = email_domain

    def list_users(self, role: str = STUDENT):
        return self.db.query(User).filter(User.role == role).order_by(User.name, User.id).all()

    def create_user(self, email: str, name: str, phone: str = "", role: str = STUDENT) -> User:
        """
        Registers a library member.

        Raises:
            InvalidEmail: the address is not on the university domain.
            DuplicateUser: the address is already registered.
        """
        email = email.strip().lower()
        if not email.endswith(self.email_domain):
            raise InvalidEmail()

        with transaction(self.db):
            existing = self.db.query(User).filter(User.email == email).first()
            if existing:
                raise DuplicateUser()
            user = User(email=email, name=name, phone=phone, role=role)
            self.db.add(user)

        logger.info("User %s created (%s)", user.id, role)
        return user


def dashboard_stats(db: Session, borrowing: BorrowingService) -> dict:
    """Counters for the librarian dashboard."""
    total_copies, available_copies = db.query(
        func.coalesce(func.sum(Book.total_copies), 0),
        func.coalesce(func.sum(Book.available_copies), 0),
    ).one()
    collected = (
        db.query(func.coalesce(func.sum(Loan.fine), 0))
        .filter(Loan.returned == true())
        .scalar()
    )
    return {
        "total_books": total_copies,
        "available_books": available_copies,
        "total_users": db.query(User).filter(User.role == STUDENT).count(),
        "pending_requests": db.query(BorrowRequest)
        .filter(BorrowRequest.approved == false())
        .count(),
        "pending_returns": db.query(Loan).filter(Loan.returned == false()).count(),
        "outstanding_fines": borrowing.outstanding_fines(),
        "collected_fines": collected,
    }
