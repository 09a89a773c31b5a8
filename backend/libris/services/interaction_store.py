"""
Read access to the behavioral store for the recommendation engine.

Every read opens its own short-lived session on a worker thread, so independent
reads (the four profile inputs, the two exclusion lookups) run concurrently.
Each batch is bounded by STORE_TIMEOUT_SECONDS; timeouts and database errors
surface as RecommendationUnavailable.
"""
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Set, Tuple
from uuid import UUID
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from libris.core.config import settings
from libris.models import (
    Book,
    Bookmark,
    LoanTransaction,
    Note,
    PersonalLibraryEntry,
    TransactionStatus,
    User,
    UserInteraction,
)
from libris.utils.timing import time_operation

logger = logging.getLogger(__name__)

MAX_CONCURRENT_READS = 4
SLOW_READ_WARN_MS = 500.0

# Loans that mean the user currently has, or is about to get, the book
ACTIVE_TRANSACTION_STATUSES = (
    TransactionStatus.PENDING_APPROVAL,
    TransactionStatus.BORROWED,
    TransactionStatus.RETURN_REQUESTED,
)
# Loans that count as reading history
HISTORY_TRANSACTION_STATUSES = (
    TransactionStatus.BORROWED,
    TransactionStatus.RETURNED,
)


class RecommendationUnavailable(Exception):
    """Raised when the store cannot be read (error or timeout)."""
    pass


@dataclass(frozen=True)
class BookRecord:
    """Immutable snapshot of a catalog book, safe to use after its session closes."""
    id: UUID
    title: str
    isbn: Optional[str] = None
    author: Optional[str] = None
    publisher: Optional[str] = None
    format: Optional[str] = None
    year: Optional[int] = None
    categories: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    popularity_score: float = 0.0
    status: str = "available"
    cover_image_url: Optional[str] = None

    @classmethod
    def from_model(cls, book: Book) -> "BookRecord":
        status = book.status.value if hasattr(book.status, "value") else str(book.status)
        return cls(
            id=book.id,
            title=book.title,
            isbn=book.isbn,
            author=book.author,
            publisher=book.publisher,
            format=book.format,
            year=book.year,
            categories=tuple(book.categories),
            tags=tuple(book.tags),
            popularity_score=book.popularity_score or 0.0,
            status=status,
            cover_image_url=book.cover_image_url,
        )


@dataclass
class ProfileInputs:
    interactions: List[UserInteraction] = field(default_factory=list)
    transactions: List[LoanTransaction] = field(default_factory=list)
    bookmarks: List[Bookmark] = field(default_factory=list)
    notes: List[Note] = field(default_factory=list)


@dataclass
class ExclusionSets:
    """Books a user must never be recommended."""
    isbns: Set[str] = field(default_factory=set)
    titles: Set[str] = field(default_factory=set)
    book_ids: Set[UUID] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.isbns or self.titles or self.book_ids)


class StoreReader:
    """
    Runs read callables of the form `fn(session, *args)` against fresh sessions.

    Use as a context manager so the worker pool is released with the request.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        timeout: Optional[float] = None,
        lookback_days: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.timeout = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
        self.lookback_days = lookback_days if lookback_days is not None else settings.RECOMMENDATION_LOOKBACK_DAYS
        self._executor: Optional[ThreadPoolExecutor] = None

    def __enter__(self) -> "StoreReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def close(self) -> None:
        if self._executor is not None:
            # Don't block the caller on a read that already timed out
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _read(self, fn: Callable[..., Any], *args: Any) -> Any:
        with self._session_factory() as session:
            return fn(session, *args)

    def gather(self, label: str, *calls: Tuple[Callable[..., Any], ...]) -> List[Any]:
        """
        Run independent reads concurrently and return their results in order.

        Each call is a tuple `(fn, *args)`.
        """
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=MAX_CONCURRENT_READS,
                thread_name_prefix="libris-store",
            )

        with time_operation(f"store.{label}", warn_ms=SLOW_READ_WARN_MS):
            futures = [self._executor.submit(self._read, call[0], *call[1:]) for call in calls]
            _, not_done = wait(futures, timeout=self.timeout)
            if not_done:
                for future in not_done:
                    future.cancel()
                logger.error("Store read '%s' timed out after %.1fs", label, self.timeout)
                raise RecommendationUnavailable(f"store read '{label}' timed out after {self.timeout}s")

            results = []
            for future in futures:
                try:
                    results.append(future.result())
                except SQLAlchemyError as exc:
                    logger.error("Store read '%s' failed: %s", label, exc)
                    raise RecommendationUnavailable(f"store read '{label}' failed") from exc
            return results

    def run(self, label: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run a single read with the same timeout and error handling as gather()."""
        return self.gather(label, (fn, *args))[0]

    # ------------------------------------------------------------------
    # Reads used by the engine
    # ------------------------------------------------------------------

    def find_user_id(self, email: str) -> Optional[UUID]:
        return self.run("find_user", _query_user_id, email)

    def load_profile_inputs(self, user_id: UUID, now: datetime) -> ProfileInputs:
        """Interactions and loans from the lookback window, all-time bookmarks and notes."""
        since = now - timedelta(days=self.lookback_days)
        interactions, transactions, bookmarks, notes = self.gather(
            "profile_inputs",
            (_query_interactions, user_id, since),
            (_query_history_transactions, user_id, since),
            (_query_bookmarks, user_id),
            (_query_notes, user_id),
        )
        return ProfileInputs(
            interactions=interactions,
            transactions=transactions,
            bookmarks=bookmarks,
            notes=notes,
        )

    def load_exclusions(self, user_id: Optional[UUID], extra_book_ids: Optional[List[UUID]] = None) -> ExclusionSets:
        exclusions = ExclusionSets(book_ids=set(extra_book_ids or []))
        if user_id is None:
            return exclusions

        library, active_book_ids = self.gather(
            "exclusions",
            (_query_personal_library, user_id),
            (_query_active_book_ids, user_id),
        )
        for isbn, title in library:
            if isbn:
                exclusions.isbns.add(isbn)
            if title:
                exclusions.titles.add(title)
        exclusions.book_ids.update(active_book_ids)
        return exclusions


def _query_user_id(session: Session, email: str) -> Optional[UUID]:
    row = session.query(User.id).filter(User.email == email).first()
    return row[0] if row else None


def _query_interactions(session: Session, user_id: UUID, since: datetime) -> List[UserInteraction]:
    return (
        session.query(UserInteraction)
        .filter(
            UserInteraction.user_id == user_id,
            UserInteraction.timestamp >= since,
        )
        .order_by(UserInteraction.timestamp.desc())
        .all()
    )


def _query_history_transactions(session: Session, user_id: UUID, since: datetime) -> List[LoanTransaction]:
    return (
        session.query(LoanTransaction)
        .filter(
            LoanTransaction.user_id == user_id,
            LoanTransaction.status.in_(HISTORY_TRANSACTION_STATUSES),
            LoanTransaction.borrowed_at >= since,
        )
        .all()
    )


def _query_bookmarks(session: Session, user_id: UUID) -> List[Bookmark]:
    return session.query(Bookmark).filter(Bookmark.user_id == user_id).all()


def _query_notes(session: Session, user_id: UUID) -> List[Note]:
    return session.query(Note).filter(Note.user_id == user_id).all()


def _query_personal_library(session: Session, user_id: UUID) -> List[Tuple[Optional[str], Optional[str]]]:
    rows = (
        session.query(PersonalLibraryEntry.isbn, PersonalLibraryEntry.title)
        .filter(PersonalLibraryEntry.user_id == user_id)
        .all()
    )
    return [(isbn, title) for isbn, title in rows]


def _query_active_book_ids(session: Session, user_id: UUID) -> List[UUID]:
    rows = (
        session.query(LoanTransaction.book_id)
        .filter(
            LoanTransaction.user_id == user_id,
            LoanTransaction.status.in_(ACTIVE_TRANSACTION_STATUSES),
        )
        .all()
    )
    return [row[0] for row in rows]
