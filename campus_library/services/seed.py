import logging

from sqlalchemy.orm import Session

from campus_library.config.db import transaction
from campus_library.models.models import LIBRARIAN, STUDENT, Book, User

logger = logging.getLogger(__name__)

SAMPLE_USERS = [
    ("student1@srmap.edu.in", "John Doe", "9876543210", STUDENT),
    ("student2@srmap.edu.in", "Jane Smith", "9876543211", STUDENT),
    ("admin1@srmap.edu.in", "Librarian One", "", LIBRARIAN),
    ("admin2@srmap.edu.in", "Librarian Two", "", LIBRARIAN),
]

# title, author, edition, subject, copies
SAMPLE_BOOKS = [
    ("Data Structures and Algorithms", "Thomas H. Cormen", "3rd Edition", "Computer Science", 5),
    ("Introduction to Machine Learning", "Andrew Ng", "2nd Edition", "Artificial Intelligence", 3),
    ("Fundamentals of Database Systems", "Ramez Elmasri", "7th Edition", "Database Management", 4),
    ("Computer Networks", "Andrew S. Tanenbaum", "5th Edition", "Networking", 3),
    ("Operating System Concepts", "Abraham Silberschatz", "10th Edition", "Operating Systems", 6),
    ("Artificial Intelligence: A Modern Approach", "Stuart Russell", "4th Edition", "Artificial Intelligence", 2),
    ("Software Engineering", "Ian Sommerville", "10th Edition", "Software Development", 4),
    ("Computer Organization and Architecture", "William Stallings", "11th Edition", "Computer Architecture", 3),
    ("Introduction to Algorithms", "Thomas H. Cormen", "4th Edition", "Computer Science", 5),
    ("Discrete Mathematics", "Kenneth H. Rosen", "8th Edition", "Mathematics", 4),
]


def seed_sample_data(db: Session) -> None:
    """Fill empty user and book tables with a small demo data set."""
    with transaction(db):
        if not db.query(User).first():
            db.add_all(
                User(email=email, name=name, phone=phone, role=role)
                for email, name, phone, role in SAMPLE_USERS
            )
            logger.info("Sample users added")
        if not db.query(Book).first():
            db.add_all(
                Book(
                    title=title,
                    author=author,
                    edition=edition,
                    subject=subject,
                    total_copies=copies,
                    available_copies=copies,
                )
                for title, author, edition, subject, copies in SAMPLE_BOOKS
            )
            logger.info("Sample books added")
