"""Caller-facing error taxonomy.

Every business rule violation raised by the services derives from
``LibraryError``. The API layer turns them into a JSON body of the form
``{"detail": <message>, "code": <code>}`` with ``status_code``.
"""

from fastapi import status


class LibraryError(Exception):
    code = "library_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Request could not be completed"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(LibraryError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


class DuplicateRequest(LibraryError):
    code = "duplicate_request"
    default_message = "You have already requested this book"


class AlreadyBorrowed(LibraryError):
    code = "already_borrowed"
    default_message = "You have already borrowed this book"


class Unavailable(LibraryError):
    code = "unavailable"
    default_message = "This book is currently unavailable"


class AlreadyReturned(LibraryError):
    code = "already_returned"
    default_message = "Book has already been returned"


class AlreadyProcessed(LibraryError):
    code = "already_processed"
    default_message = "Request already processed"


class CopiesInUse(LibraryError):
    code = "copies_in_use"
    default_message = "Cannot reduce copies below the number currently borrowed"


class BookInUse(LibraryError):
    code = "book_in_use"
    default_message = "Cannot delete book that is currently borrowed"


class InvalidEmail(LibraryError):
    code = "invalid_email"
    default_message = "Invalid email format. Must be a university email."


class DuplicateUser(LibraryError):
    code = "duplicate_user"
    default_message = "User already exists"
