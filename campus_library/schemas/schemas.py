from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
import datetime


class UserCreate(BaseModel):
    email: str
    name: str = Field(min_length=1)
    phone: str = ""
    role: str = Field("student", pattern="^(student|librarian)$")


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    phone: str
    role: str


class BookIn(BaseModel):
    title: str = Field(min_length=1)
    author: str = Field(min_length=1)
    edition: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    total_copies: int = Field(gt=0)


class BookOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    author: str
    edition: str
    subject: str
    total_copies: int
    available_copies: int


class BookRequest(BaseModel):
    book_id: int
    title: Optional[str] = None


class BorrowRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    book_id: int
    book_title: str
    approved: bool
    created_at: datetime.datetime


class BorrowRequestRow(BorrowRequestOut):
    user_name: str
    user_email: str


class LoanOut(BaseModel):
    id: int
    user_id: int
    book_id: int
    book_title: str
    issue_date: datetime.datetime
    due_date: datetime.datetime
    returned: bool
    returned_at: Optional[datetime.datetime] = None
    fine: int
    overdue: bool


class LoanRow(LoanOut):
    user_name: str
    user_email: str


class DashboardStats(BaseModel):
    total_books: int
    available_books: int
    total_users: int
    pending_requests: int
    pending_returns: int
    outstanding_fines: int
    collected_fines: int


class Message(BaseModel):
    message: str
