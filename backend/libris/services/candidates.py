"""
Candidate generation for personalized recommendations.

Five strategies are OR'd into one catalog query: content match (category, tag,
author), collaborative filtering, publisher affinity, format affinity and year
proximity. The result is AND'd with availability and the user's exclusions.
"""
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy import distinct, func, or_
from sqlalchemy.orm import Session

from libris.core.config import settings
from libris.models import Book, BookCategory, BookStatus, BookTag, LoanTransaction
from libris.services.interaction_store import (
    HISTORY_TRANSACTION_STATUSES,
    BookRecord,
    ExclusionSets,
    StoreReader,
)
from libris.services.user_profile import UserProfile

logger = logging.getLogger(__name__)

YEAR_PROXIMITY = 10

# Collaborative filtering
MIN_SHARED_BOOKS = 2
MAX_NEIGHBORS = 10
MIN_NEIGHBOR_BORROWERS = 2
MAX_COLLABORATIVE_BOOKS = 20


def exclusion_filters(exclusions: ExclusionSets) -> list:
    filters = []
    if exclusions.isbns:
        # Books without an ISBN can't match the library by ISBN
        filters.append(or_(Book.isbn.is_(None), Book.isbn.notin_(sorted(exclusions.isbns))))
    if exclusions.titles:
        filters.append(Book.title.notin_(sorted(exclusions.titles)))
    if exclusions.book_ids:
        filters.append(Book.id.notin_(list(exclusions.book_ids)))
    return filters


def strategy_filters(profile: UserProfile, collaborative_book_ids: List[UUID]) -> list:
    """One filter per strategy that has signal; empty when the profile has none."""
    strategies = []

    content = []
    if profile.top_categories:
        content.append(Book.category_links.any(BookCategory.name.in_(profile.top_categories)))
    if profile.top_tags:
        content.append(Book.tag_links.any(BookTag.name.in_(profile.top_tags)))
    if profile.top_authors:
        content.append(Book.author.in_(profile.top_authors))
    if content:
        strategies.append(or_(*content))

    if collaborative_book_ids:
        strategies.append(Book.id.in_(collaborative_book_ids))

    if profile.top_publishers:
        strategies.append(Book.publisher.in_(profile.top_publishers))

    if profile.top_formats:
        strategies.append(Book.format.in_(profile.top_formats))

    if profile.avg_preferred_year is not None:
        strategies.append(
            Book.year.between(
                profile.avg_preferred_year - YEAR_PROXIMITY,
                profile.avg_preferred_year + YEAR_PROXIMITY,
            )
        )

    return strategies


def _query_books(session: Session, match_any: list, exclude: list, limit: int) -> List[BookRecord]:
    query = session.query(Book).filter(or_(*match_any), Book.status == BookStatus.AVAILABLE)
    for condition in exclude:
        query = query.filter(condition)
    books = (
        query.order_by(Book.popularity_score.desc(), Book.title, Book.id)
        .limit(limit)
        .all()
    )
    return [BookRecord.from_model(book) for book in books]


def _query_collaborative_book_ids(session: Session, user_id: UUID) -> List[UUID]:
    """
    Books co-borrowed by the user's neighbors.

    Neighbors are other users sharing at least MIN_SHARED_BOOKS borrowed books
    with the user (top MAX_NEIGHBORS by overlap). A book qualifies when at
    least MIN_NEIGHBOR_BORROWERS neighbors borrowed it and the user hasn't.
    """
    own_rows = (
        session.query(distinct(LoanTransaction.book_id))
        .filter(
            LoanTransaction.user_id == user_id,
            LoanTransaction.status.in_(HISTORY_TRANSACTION_STATUSES),
        )
        .all()
    )
    own_book_ids = [row[0] for row in own_rows]
    if not own_book_ids:
        return []

    shared = func.count(distinct(LoanTransaction.book_id))
    neighbors = (
        session.query(LoanTransaction.user_id, shared)
        .filter(
            LoanTransaction.book_id.in_(own_book_ids),
            LoanTransaction.user_id != user_id,
            LoanTransaction.status.in_(HISTORY_TRANSACTION_STATUSES),
        )
        .group_by(LoanTransaction.user_id)
        .having(shared >= MIN_SHARED_BOOKS)
        .order_by(shared.desc(), LoanTransaction.user_id)
        .limit(MAX_NEIGHBORS)
        .all()
    )
    if not neighbors:
        return []

    neighbor_ids = [row[0] for row in neighbors]
    borrowers = func.count(distinct(LoanTransaction.user_id))
    rows = (
        session.query(LoanTransaction.book_id, borrowers)
        .filter(
            LoanTransaction.user_id.in_(neighbor_ids),
            LoanTransaction.status.in_(HISTORY_TRANSACTION_STATUSES),
            LoanTransaction.book_id.notin_(own_book_ids),
        )
        .group_by(LoanTransaction.book_id)
        .having(borrowers >= MIN_NEIGHBOR_BORROWERS)
        .order_by(borrowers.desc(), LoanTransaction.book_id)
        .limit(MAX_COLLABORATIVE_BOOKS)
        .all()
    )
    return [row[0] for row in rows]


def find_collaborative_book_ids(reader: StoreReader, user_id: UUID) -> List[UUID]:
    return reader.run("collaborative", _query_collaborative_book_ids, user_id)


def generate_candidates(
    reader: StoreReader,
    profile: UserProfile,
    user_id: UUID,
    exclusions: ExclusionSets,
    limit: Optional[int] = None,
) -> List[BookRecord]:
    """
    Up to `limit` available books matching at least one strategy.

    Returns [] when no strategy has signal; the caller falls back to popular books.
    """
    limit = limit or settings.RECOMMENDATION_CANDIDATE_LIMIT

    collaborative_ids = find_collaborative_book_ids(reader, user_id)
    strategies = strategy_filters(profile, collaborative_ids)
    if not strategies:
        logger.info("No usable profile signal for user %s; skipping candidate query", user_id)
        return []

    candidates = reader.run("candidates", _query_books, strategies, exclusion_filters(exclusions), limit)
    logger.debug(
        "Candidates for user %s: %d (strategies=%d, collaborative=%d)",
        user_id,
        len(candidates),
        len(strategies),
        len(collaborative_ids),
    )
    return candidates


def find_similar_candidates(
    reader: StoreReader,
    source: BookRecord,
    exclusions: ExclusionSets,
    limit: int,
) -> List[BookRecord]:
    """Available books sharing author, a category, a tag or the publisher with `source`."""
    match_any = []
    if source.author:
        match_any.append(Book.author == source.author)
    if source.categories:
        match_any.append(Book.category_links.any(BookCategory.name.in_(list(source.categories))))
    if source.tags:
        match_any.append(Book.tag_links.any(BookTag.name.in_(list(source.tags))))
    if source.publisher:
        match_any.append(Book.publisher == source.publisher)
    if not match_any:
        return []

    exclude = [Book.id != source.id] + exclusion_filters(exclusions)
    return reader.run("similar_candidates", _query_books, match_any, exclude, limit)
