"""Pytest configuration for backend tests."""
import sys
import os
from datetime import datetime, timedelta
from pathlib import Path
import pytest
from sqlalchemy.orm import sessionmaker, Session

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Keep the app's default engine away from any real database
os.environ.setdefault("DATABASE_URL", "sqlite:///" + str(backend_dir / ".pytest_libris.db"))

from libris.database import Base, build_engine  # noqa: E402

# Import the entire models module to ensure all models are registered with Base.metadata
import libris.models  # noqa: E402,F401
from libris.models import (  # noqa: E402
    Book,
    BookStatus,
    Bookmark,
    InteractionEventType,
    LoanTransaction,
    Note,
    PersonalLibraryEntry,
    TransactionStatus,
    User,
    UserInteraction,
)

# Optional: point at a Postgres test database. Defaults to a throwaway SQLite file per test.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

NOW = datetime(2026, 5, 1, 12, 0, 0)


@pytest.fixture
def now() -> datetime:
    """Fixed 'current time' so time-decay windows are deterministic."""
    return NOW


@pytest.fixture(scope="function")
def engine(tmp_path):
    """
    Create a test database engine with all tables.

    The recommendation engine reads through its own sessions on worker threads,
    so test data must be committed and visible across connections; a fresh
    SQLite file per test gives that plus isolation.
    """
    url = TEST_DATABASE_URL or f"sqlite:///{tmp_path / 'test_libris.db'}"
    test_engine = build_engine(url)

    if not Base.metadata.tables:
        raise RuntimeError(
            "No tables registered in Base.metadata. "
            "Did you import libris.models? All model classes must be imported before create_all()."
        )

    Base.metadata.create_all(bind=test_engine)
    yield test_engine

    if TEST_DATABASE_URL:
        Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def db(session_factory) -> Session:
    """Session for arranging test data. Tests commit so the engine's sessions can see it."""
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def make_user(db: Session):
    def _make(email: str = "reader@test.com", **kwargs) -> User:
        user = User(email=email, name=kwargs.pop("name", email.split("@")[0]), **kwargs)
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def make_book(db: Session):
    def _make(title: str, **kwargs) -> Book:
        kwargs.setdefault("status", BookStatus.AVAILABLE)
        kwargs.setdefault("popularity_score", 0.0)
        book = Book(title=title, **kwargs)
        db.add(book)
        db.commit()
        return book
    return _make


@pytest.fixture
def make_interaction(db: Session, now: datetime):
    """Record an interaction with a snapshot of `book` taken `days_ago` days before NOW."""
    def _make(user: User, event_type: InteractionEventType, book: Book = None, days_ago: float = 1, **kwargs) -> UserInteraction:
        interaction = UserInteraction(
            user_id=user.id,
            event_type=event_type,
            timestamp=now - timedelta(days=days_ago),
            **kwargs,
        )
        if book is not None:
            interaction.book_id = book.id
            interaction.book_title = book.title
            interaction.book_categories = list(book.categories)
            interaction.book_tags = list(book.tags)
            interaction.book_author = book.author
            interaction.book_publisher = book.publisher
            interaction.book_format = book.format
            interaction.book_year = book.year
        db.add(interaction)
        db.commit()
        return interaction
    return _make


@pytest.fixture
def make_transaction(db: Session, now: datetime):
    def _make(user: User, book: Book, status: TransactionStatus, days_ago: float = 5) -> LoanTransaction:
        transaction = LoanTransaction(
            user_id=user.id,
            book_id=book.id,
            book_title=book.title,
            book_categories=list(book.categories),
            book_tags=list(book.tags),
            book_author=book.author,
            status=status,
            borrowed_at=now - timedelta(days=days_ago),
            returned_at=now if status == TransactionStatus.RETURNED else None,
        )
        db.add(transaction)
        db.commit()
        return transaction
    return _make


@pytest.fixture
def add_to_library(db: Session):
    def _add(user: User, title: str = None, isbn: str = None, author: str = None) -> PersonalLibraryEntry:
        entry = PersonalLibraryEntry(user_id=user.id, title=title, isbn=isbn, author=author)
        db.add(entry)
        db.commit()
        return entry
    return _add


@pytest.fixture
def add_bookmark(db: Session):
    def _add(user: User, book: Book) -> Bookmark:
        bookmark = Bookmark(user_id=user.id, book_id=book.id)
        db.add(bookmark)
        db.commit()
        return bookmark
    return _add


@pytest.fixture
def add_note(db: Session):
    def _add(user: User, book: Book, content: str = "Great chapter") -> Note:
        note = Note(user_id=user.id, book_id=book.id, content=content)
        db.add(note)
        db.commit()
        return note
    return _add


@pytest.fixture
def client(session_factory):
    """TestClient wired to the per-test database."""
    from fastapi.testclient import TestClient
    from libris.database import get_db, get_session_factory
    from libris.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from libris.core.security import create_access_token

    def _headers(email: str = "reader@test.com") -> dict:
        return {"Authorization": f"Bearer {create_access_token({'email': email})}"}
    return _headers
