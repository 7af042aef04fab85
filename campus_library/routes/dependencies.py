from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional

from campus_library.config.db import get_db
from campus_library.models.models import User
from campus_library.services.accounts import AccountService
from campus_library.services.borrowing import BorrowingService
from campus_library.services.catalog import CatalogService
from campus_library.services.fines import utcnow


def get_clock():
    return utcnow


def get_borrowing(db: Session = Depends(get_db), clock=Depends(get_clock)):
    return BorrowingService(db, clock=clock)


def get_catalog(db: Session = Depends(get_db)):
    return CatalogService(db)


def get_accounts(db: Session = Depends(get_db)):
    return AccountService(db)


def get_current_user(
    x_user_id: Optional[str] = Header(None), db: Session = Depends(get_db)
):
    """
    Resolves the caller from the ``X-User-Id`` header set by the upstream
    identity provider. The value is trusted; only its existence is checked.

    Raises:
        HTTPException: 401 if the header is missing, malformed, or names no user.
    """
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Authentication required",
    )
    if not x_user_id or not x_user_id.isdigit():
        raise unauthorized
    user = db.query(User).filter(User.id == int(x_user_id)).first()
    if not user:
        raise unauthorized
    return user


def require_librarian(current_user: User = Depends(get_current_user)):
    if not current_user.is_librarian:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Access denied"
        )
    return current_user
