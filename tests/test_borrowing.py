from datetime import timedelta

import pytest

from campus_library.models.models import Book, BorrowRequest, Loan
from campus_library.services.borrowing import BorrowingService
from campus_library.services.errors import (
    AlreadyBorrowed,
    AlreadyProcessed,
    AlreadyReturned,
    DuplicateRequest,
    NotFound,
    Unavailable,
)


def available(db, book_id):
    db.expire_all()
    return db.query(Book).filter(Book.id == book_id).one().available_copies


def test_submit_request_creates_pending_request_without_reserving(db, borrowing, people, make_book):
    book_id = make_book(total=1)

    req = borrowing.submit_request(people["alice"], book_id, "Computer Networks")

    assert req.id is not None
    assert req.approved is False
    assert req.book_title == "Computer Networks"
    assert available(db, book_id) == 1


def test_submit_request_defaults_title_to_book_title(borrowing, people, make_book):
    book_id = make_book(title="Discrete Mathematics")

    req = borrowing.submit_request(people["alice"], book_id)

    assert req.book_title == "Discrete Mathematics"


def test_second_pending_request_is_a_duplicate(db, borrowing, people, make_book):
    book_id = make_book(total=2)
    borrowing.submit_request(people["alice"], book_id)

    with pytest.raises(DuplicateRequest):
        borrowing.submit_request(people["alice"], book_id)

    assert db.query(BorrowRequest).count() == 1


def test_request_while_holding_the_book_is_rejected(borrowing, people, make_book):
    book_id = make_book(total=2)
    req = borrowing.submit_request(people["alice"], book_id)
    borrowing.approve(req.id)

    with pytest.raises(AlreadyBorrowed):
        borrowing.submit_request(people["alice"], book_id)


def test_request_for_missing_book(borrowing, people):
    with pytest.raises(NotFound):
        borrowing.submit_request(people["alice"], 999)


def test_request_for_book_with_no_copies(borrowing, people, make_book):
    book_id = make_book(total=1, available=0)

    with pytest.raises(Unavailable):
        borrowing.submit_request(people["alice"], book_id)


def test_duplicate_is_checked_before_availability(borrowing, people, make_book):
    book_id = make_book(total=1)
    borrowing.submit_request(people["alice"], book_id)
    other = borrowing.submit_request(people["bob"], book_id)
    borrowing.approve(other.id)

    with pytest.raises(DuplicateRequest):
        borrowing.submit_request(people["alice"], book_id)


def test_approve_issues_loan_and_takes_a_copy(db, borrowing, people, make_book, clock):
    book_id = make_book(total=3)
    req = borrowing.submit_request(people["alice"], book_id)

    loan = borrowing.approve(req.id)

    assert loan.issue_date == clock.now
    assert loan.due_date == clock.now + timedelta(days=30)
    assert loan.fine == 0
    assert loan.returned is False
    assert loan.book_title == req.book_title
    assert available(db, book_id) == 2
    db.expire_all()
    assert db.query(BorrowRequest).filter(BorrowRequest.id == req.id).one().approved is True


def test_approve_missing_request(borrowing):
    with pytest.raises(NotFound):
        borrowing.approve(42)


def test_approve_twice_is_rejected(db, borrowing, people, make_book):
    book_id = make_book(total=3)
    req = borrowing.submit_request(people["alice"], book_id)
    borrowing.approve(req.id)

    with pytest.raises(AlreadyProcessed):
        borrowing.approve(req.id)

    assert db.query(Loan).count() == 1
    assert available(db, book_id) == 2


def test_approve_without_copies_changes_nothing(db, borrowing, people, make_book):
    book_id = make_book(total=1)
    req = borrowing.submit_request(people["alice"], book_id)
    db.query(Book).filter(Book.id == book_id).update({Book.available_copies: 0})
    db.commit()

    with pytest.raises(Unavailable):
        borrowing.approve(req.id)

    db.expire_all()
    assert db.query(BorrowRequest).filter(BorrowRequest.id == req.id).one().approved is False
    assert db.query(Loan).count() == 0
    assert available(db, book_id) == 0


def test_deny_deletes_pending_request(db, borrowing, people, make_book):
    book_id = make_book(total=1)
    req = borrowing.submit_request(people["alice"], book_id)

    borrowing.deny(req.id)

    assert db.query(BorrowRequest).count() == 0
    assert available(db, book_id) == 1
    # the user may ask again afterwards
    borrowing.submit_request(people["alice"], book_id)


def test_deny_missing_request(borrowing):
    with pytest.raises(NotFound):
        borrowing.deny(7)


def test_deny_keeps_approved_history(db, borrowing, people, make_book):
    book_id = make_book(total=1)
    req = borrowing.submit_request(people["alice"], book_id)
    borrowing.approve(req.id)

    with pytest.raises(AlreadyProcessed):
        borrowing.deny(req.id)

    assert db.query(BorrowRequest).count() == 1


def test_return_on_time_restores_copy_without_fine(db, borrowing, people, make_book, clock):
    book_id = make_book(total=2)
    loan = borrowing.approve(borrowing.submit_request(people["alice"], book_id).id)
    assert available(db, book_id) == 1

    clock.advance(days=10)
    returned = borrowing.mark_returned(loan.id)

    assert returned.returned is True
    assert returned.returned_at == clock.now
    assert returned.fine == 0
    assert available(db, book_id) == 2


def test_return_twice_is_rejected(db, borrowing, people, make_book):
    book_id = make_book(total=1)
    loan = borrowing.approve(borrowing.submit_request(people["alice"], book_id).id)
    borrowing.mark_returned(loan.id)

    with pytest.raises(AlreadyReturned):
        borrowing.mark_returned(loan.id)

    assert available(db, book_id) == 1


def test_return_missing_loan(borrowing):
    with pytest.raises(NotFound):
        borrowing.mark_returned(3)


def test_user_can_borrow_again_after_returning(borrowing, people, make_book):
    book_id = make_book(total=1)
    loan = borrowing.approve(borrowing.submit_request(people["alice"], book_id).id)
    borrowing.mark_returned(loan.id)

    again = borrowing.submit_request(people["alice"], book_id)
    second = borrowing.approve(again.id)

    assert second.id != loan.id


def test_projected_fine_on_open_loans(borrowing, people, make_book, clock):
    book_id = make_book(total=2)
    late = borrowing.approve(borrowing.submit_request(people["alice"], book_id).id)
    clock.advance(days=6)
    early = borrowing.approve(borrowing.submit_request(people["bob"], book_id).id)

    # alice's loan is now due exactly 5 days ago, bob's is due tomorrow
    clock.advance(days=29)
    rows = {row["id"]: row for row in borrowing.all_loans()}

    assert rows[late.id]["fine"] == 5
    assert rows[late.id]["overdue"] is True
    assert rows[early.id]["fine"] == 0
    assert rows[early.id]["overdue"] is False


def test_projection_does_not_touch_stored_fine(db, borrowing, people, make_book, clock):
    book_id = make_book(total=1)
    loan = borrowing.approve(borrowing.submit_request(people["alice"], book_id).id)
    clock.advance(days=40)

    assert borrowing.loans_for_user(people["alice"])[0]["fine"] == 10
    db.expire_all()
    assert db.query(Loan).filter(Loan.id == loan.id).one().fine == 0


def test_loan_listing_order_and_filters(borrowing, people, make_book, clock):
    first = make_book(title="A", total=1)
    second = make_book(title="B", total=1)
    done = borrowing.approve(borrowing.submit_request(people["alice"], first).id)
    clock.advance(days=1)
    open_loan = borrowing.approve(borrowing.submit_request(people["alice"], second).id)
    borrowing.mark_returned(done.id)

    ids = [row["id"] for row in borrowing.loans_for_user(people["alice"])]
    assert ids == [open_loan.id, done.id]
    assert [r["id"] for r in borrowing.loans_for_user(people["alice"], "returned")] == [done.id]
    assert [r["id"] for r in borrowing.all_loans("not-returned")] == [open_loan.id]
    assert borrowing.loans_for_user(people["bob"]) == []


def test_request_listing(borrowing, people, make_book, clock):
    book_id = make_book(total=2)
    first = borrowing.submit_request(people["alice"], book_id)
    clock.advance(minutes=5)
    second = borrowing.submit_request(people["bob"], book_id)
    borrowing.approve(first.id)

    rows = borrowing.list_requests()
    assert [row["id"] for row in rows] == [second.id, first.id]
    assert rows[0]["user_name"] == "Bob"
    assert [row["id"] for row in borrowing.list_requests("pending")] == [second.id]
    assert [row["id"] for row in borrowing.list_requests("approved")] == [first.id]


def test_request_for_returns_latest(borrowing, people, make_book, clock):
    book_id = make_book(total=1)
    assert borrowing.request_for(people["alice"], book_id) is None

    req = borrowing.submit_request(people["alice"], book_id)

    assert borrowing.request_for(people["alice"], book_id).id == req.id
    assert borrowing.request_for(people["bob"], book_id) is None


def test_single_copy_contention_is_settled_at_approval(db, borrowing, people, make_book, clock):
    book_id = make_book(total=1)

    a_request = borrowing.submit_request(people["alice"], book_id)
    assert available(db, book_id) == 1
    # the copy is not reserved, so a second student can ask for it too
    b_request = borrowing.submit_request(people["bob"], book_id)

    a_loan = borrowing.approve(a_request.id)
    assert available(db, book_id) == 0
    assert a_loan.due_date - a_loan.issue_date == timedelta(days=30)

    with pytest.raises(Unavailable):
        borrowing.approve(b_request.id)
    assert available(db, book_id) == 0
    assert db.query(Loan).count() == 1

    clock.advance(days=33)
    returned = borrowing.mark_returned(a_loan.id)
    assert returned.fine == 3
    assert available(db, book_id) == 1

    # bob's request is still pending and can now be approved
    assert borrowing.approve(b_request.id).user_id == people["bob"]


@pytest.fixture
def elsewhere(session_factory, clock):
    """Runs a borrowing call in a separate session that commits on its own."""

    def _run(method, *args):
        session = session_factory()
        try:
            service = BorrowingService(session, clock=clock, loan_period_days=30, fine_per_day=1)
            return getattr(service, method)(*args)
        finally:
            session.close()

    return _run


def test_approval_claimed_by_another_session_is_rejected(db, borrowing, people, make_book, elsewhere):
    book_id = make_book(total=2)
    req = borrowing.submit_request(people["alice"], book_id)
    assert req.approved is False  # loaded before the other librarian acts

    elsewhere("approve", req.id)

    with pytest.raises(AlreadyProcessed):
        borrowing.approve(req.id)
    assert db.query(Loan).count() == 1
    assert available(db, book_id) == 1


def test_two_approvals_racing_for_the_last_copy(db, borrowing, people, make_book, elsewhere):
    book_id = make_book(total=1)
    a_request = borrowing.submit_request(people["alice"], book_id)
    b_request = borrowing.submit_request(people["bob"], book_id)

    elsewhere("approve", a_request.id)

    with pytest.raises(Unavailable, match="no longer available"):
        borrowing.approve(b_request.id)

    db.expire_all()
    assert db.query(Loan).one().user_id == people["alice"]
    assert available(db, book_id) == 0
    assert db.query(BorrowRequest).filter(BorrowRequest.id == b_request.id).one().approved is False


def test_return_closed_by_another_session_is_rejected(db, borrowing, people, make_book, elsewhere):
    book_id = make_book(total=1)
    loan = borrowing.approve(borrowing.submit_request(people["alice"], book_id).id)
    assert loan.returned is False

    elsewhere("mark_returned", loan.id)

    with pytest.raises(AlreadyReturned):
        borrowing.mark_returned(loan.id)
    assert available(db, book_id) == 1


def test_request_losing_to_an_identical_one_is_a_duplicate(
    db, borrowing, people, make_book, elsewhere, monkeypatch
):
    book_id = make_book(total=1)

    def filed_meanwhile(user_id, book_id):
        elsewhere("submit_request", user_id, book_id)
        return None

    monkeypatch.setattr(borrowing, "_pending_request", filed_meanwhile)

    with pytest.raises(DuplicateRequest):
        borrowing.submit_request(people["alice"], book_id)

    db.expire_all()
    assert db.query(BorrowRequest).count() == 1
