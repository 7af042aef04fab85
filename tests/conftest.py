from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from campus_library.config.db import Base, get_db, make_engine
from campus_library.main import app
from campus_library.models.models import LIBRARIAN, STUDENT, Book, User
from campus_library.routes.dependencies import get_clock
from campus_library.services.borrowing import BorrowingService


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 9, 0, 0))


@pytest.fixture
def session_factory():
    # Every test gets its own in-memory database shared across connections
    engine = make_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def borrowing(db, clock):
    return BorrowingService(db, clock=clock, loan_period_days=30, fine_per_day=1)


@pytest.fixture
def people(db):
    alice = User(email="alice@srmap.edu.in", name="Alice", phone="1", role=STUDENT)
    bob = User(email="bob@srmap.edu.in", name="Bob", phone="2", role=STUDENT)
    librarian = User(email="lib@srmap.edu.in", name="Librarian", role=LIBRARIAN)
    db.add_all([alice, bob, librarian])
    db.commit()
    return {"alice": alice.id, "bob": bob.id, "librarian": librarian.id}


@pytest.fixture
def make_book(db):
    def _make(title="Computer Networks", total=1, available=None, **kwargs):
        book = Book(
            title=title,
            author=kwargs.get("author", "Andrew S. Tanenbaum"),
            edition=kwargs.get("edition", "5th Edition"),
            subject=kwargs.get("subject", "Networking"),
            total_copies=total,
            available_copies=total if available is None else available,
        )
        db.add(book)
        db.commit()
        return book.id

    return _make


@pytest.fixture
def client(session_factory, clock):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
