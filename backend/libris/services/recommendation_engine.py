"""
Personalized book recommendations.

Pipeline: build the user's profile -> generate candidates -> score -> apply the
diversity filter. Popular books back-stop every path that comes up empty
(unknown user, no history, no candidates, nothing above the score cutoff).
Given a book_id the engine switches to similar-items mode and scores against
that book instead of a profile.

The engine only reads; store failures raise RecommendationUnavailable so the
caller can tell "nothing to suggest" apart from "try again".
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Union
from uuid import UUID
import logging

from sqlalchemy.orm import Session, sessionmaker

from libris.models import Book, BookStatus, PersonalLibraryEntry
from libris.schemas.recommendation import ProfileSummary, ScoredRecommendation
from libris.services.candidates import (
    exclusion_filters,
    find_similar_candidates,
    generate_candidates,
)
from libris.services.interaction_store import (
    BookRecord,
    ExclusionSets,
    RecommendationUnavailable,  # noqa: F401
    StoreReader,
)
from libris.services.scoring import ScoredBook, score_candidates, score_similar
from libris.services.user_profile import UserProfile, build_user_profile

logger = logging.getLogger(__name__)

SOURCE_PERSONALIZED = "personalized"
SOURCE_SIMILAR = "similar"
SOURCE_FALLBACK = "fallback"

FALLBACK_SCORE = 50
FALLBACK_RECENT_YEAR = 2023
FALLBACK_POPULAR_THRESHOLD = 150

DIVERSITY_MIN_ITEMS = 6
DIVERSITY_STRICT_THRESHOLD = 0.7
DIVERSITY_OVERRIDE_SCORE = 90

SIMILAR_CANDIDATE_FACTOR = 3


@dataclass
class RecommendationResult:
    recommendations: List[ScoredRecommendation] = field(default_factory=list)
    profile: ProfileSummary = field(default_factory=ProfileSummary)
    source: str = SOURCE_FALLBACK


def apply_diversity_filter(scored: List[ScoredBook], diversity_score: float) -> List[ScoredBook]:
    """
    Cap how many books one author or one primary category can take.

    Users with eclectic taste (diversity > 0.7) get tighter caps. A book
    scoring 90+ is always kept. Lists shorter than six pass through untouched.
    """
    if len(scored) < DIVERSITY_MIN_ITEMS:
        return list(scored)

    strict = diversity_score > DIVERSITY_STRICT_THRESHOLD
    max_per_author = 2 if strict else 3
    max_per_category = 3 if strict else 4

    ordered = sorted(scored, key=lambda item: item.relevance_score, reverse=True)
    author_counts: Dict[str, int] = {}
    category_counts: Dict[str, int] = {}
    kept: List[ScoredBook] = []

    for item in ordered:
        author = item.book.author or "Unknown"
        primary_category = item.book.categories[0] if item.book.categories else "Uncategorized"

        author_ok = author_counts.get(author, 0) < max_per_author
        category_ok = category_counts.get(primary_category, 0) < max_per_category

        if (author_ok and category_ok) or item.relevance_score >= DIVERSITY_OVERRIDE_SCORE:
            kept.append(item)
            author_counts[author] = author_counts.get(author, 0) + 1
            category_counts[primary_category] = category_counts.get(primary_category, 0) + 1

    return kept


def fallback_reason(index: int, book: BookRecord) -> str:
    if index == 0:
        return "Most popular"
    if book.year and book.year >= FALLBACK_RECENT_YEAR:
        return "Recently published"
    if book.popularity_score > FALLBACK_POPULAR_THRESHOLD:
        return "Popular with students"
    return "Trending now"


def _query_popular(session: Session, exclude: list, limit: int) -> List[BookRecord]:
    query = session.query(Book).filter(Book.status == BookStatus.AVAILABLE)
    for condition in exclude:
        query = query.filter(condition)
    books = (
        query.order_by(
            Book.popularity_score.desc(),
            Book.year.desc().nulls_last(),
            Book.title,
            Book.id,
        )
        .limit(limit)
        .all()
    )
    return [BookRecord.from_model(book) for book in books]


def get_popular_recommendations(
    reader: StoreReader,
    limit: int,
    exclusions: Optional[ExclusionSets] = None,
) -> List[ScoredRecommendation]:
    """Non-personalized list: most popular available books, flat score of 50."""
    books = reader.run("popular", _query_popular, exclusion_filters(exclusions or ExclusionSets()), limit)
    return [
        to_recommendation(ScoredBook(book=book, relevance_score=FALLBACK_SCORE, match_reasons=[fallback_reason(i, book)]))
        for i, book in enumerate(books)
    ]


def to_recommendation(item: ScoredBook) -> ScoredRecommendation:
    book = item.book
    return ScoredRecommendation(
        book_id=str(book.id),
        title=book.title,
        author=book.author,
        isbn=book.isbn,
        publisher=book.publisher,
        format=book.format,
        year=book.year,
        categories=list(book.categories),
        tags=list(book.tags),
        popularity_score=book.popularity_score,
        cover_image_url=book.cover_image_url,
        relevance_score=item.relevance_score,
        match_reasons=item.match_reasons,
    )


def summarize_profile(profile: UserProfile) -> ProfileSummary:
    return ProfileSummary(
        total_interactions=profile.total_interactions,
        top_categories=profile.top_categories[:3],
        top_tags=profile.top_tags[:5],
        top_authors=profile.top_authors[:3],
        diversity_score=round(profile.diversity_score * 100),
        engagement_level=profile.engagement_level.value,
    )


def _parse_book_id(value: Union[str, UUID, None]) -> Optional[UUID]:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        logger.warning("Ignoring malformed book id: %r", value)
        return None


def _parse_book_ids(values: Optional[Iterable[Union[str, UUID]]]) -> List[UUID]:
    parsed = (_parse_book_id(value) for value in (values or []))
    return [value for value in parsed if value is not None]


def _fallback_result(reader: StoreReader, limit: int, exclusions: ExclusionSets, reason: str) -> RecommendationResult:
    logger.info("Falling back to popular recommendations: %s", reason)
    return RecommendationResult(
        recommendations=get_popular_recommendations(reader, limit, exclusions),
        profile=ProfileSummary(total_interactions=0),
        source=SOURCE_FALLBACK,
    )


def _get_source_book(session: Session, book_id: UUID, user_id: UUID) -> Optional[BookRecord]:
    """Catalog book by id, else a book from the user's own library (e.g. scanned by barcode)."""
    book = session.query(Book).filter(Book.id == book_id).first()
    if book:
        return BookRecord.from_model(book)

    entry = (
        session.query(PersonalLibraryEntry)
        .filter(PersonalLibraryEntry.id == book_id, PersonalLibraryEntry.user_id == user_id)
        .first()
    )
    if entry is None:
        return None
    return BookRecord(id=entry.id, title=entry.title or "", isbn=entry.isbn, author=entry.author)


def get_similar_recommendations(
    reader: StoreReader,
    user_id: UUID,
    book_id: Union[str, UUID],
    limit: int,
    exclusions: ExclusionSets,
) -> RecommendationResult:
    """More-like-this: score catalog books against one source book."""
    source_id = _parse_book_id(book_id)
    source = reader.run("source_book", _get_source_book, source_id, user_id) if source_id else None
    if source is None:
        return _fallback_result(reader, limit, exclusions, f"source book {book_id} not found")

    # Never suggest the book the user is looking at
    exclusions.book_ids.add(source.id)

    if not (source.author or source.categories or source.tags or source.publisher):
        return _fallback_result(reader, limit, exclusions, f"source book {source.id} has nothing to match on")

    candidates = find_similar_candidates(reader, source, exclusions, limit * SIMILAR_CANDIDATE_FACTOR)
    scored = score_similar(candidates, source)
    if not scored:
        logger.info("No similar books cleared the cutoff for %s; using popular books", source.id)
        return RecommendationResult(
            recommendations=get_popular_recommendations(reader, limit, exclusions),
            profile=ProfileSummary(based_on=source.title, is_fallback=True),
            source=SOURCE_FALLBACK,
        )

    return RecommendationResult(
        recommendations=[to_recommendation(item) for item in scored[:limit]],
        profile=ProfileSummary(based_on=source.title, is_fallback=False),
        source=SOURCE_SIMILAR,
    )


def get_recommendations(
    session_factory: sessionmaker,
    user_id: Optional[str],
    limit: int = 10,
    exclude_book_ids: Optional[Iterable[Union[str, UUID]]] = None,
    context: str = "browse",
    book_id: Union[str, UUID, None] = None,
    now: Optional[datetime] = None,
) -> RecommendationResult:
    """
    Recommend up to `limit` books for the user identified by `user_id` (email).

    `context` is accepted for caller bookkeeping and does not affect scoring.
    Raises RecommendationUnavailable if the store errors or times out.
    """
    now = now or datetime.utcnow()
    extra_exclusions = _parse_book_ids(exclude_book_ids)

    with StoreReader(session_factory) as reader:
        internal_id = reader.find_user_id(user_id) if user_id else None
        logger.debug("get_recommendations user=%s context=%s book_id=%s", user_id, context, book_id)

        if internal_id is None:
            return _fallback_result(reader, limit, ExclusionSets(book_ids=set(extra_exclusions)), f"unknown user {user_id}")

        if book_id is not None:
            exclusions = reader.load_exclusions(internal_id, extra_exclusions)
            return get_similar_recommendations(reader, internal_id, book_id, limit, exclusions)

        inputs = reader.load_profile_inputs(internal_id, now)
        exclusions = reader.load_exclusions(internal_id, extra_exclusions)
        profile = build_user_profile(inputs, now)

        if profile.is_empty:
            return _fallback_result(reader, limit, exclusions, f"no history for user {user_id}")

        candidates = generate_candidates(reader, profile, internal_id, exclusions)
        if not candidates:
            return _fallback_result(reader, limit, exclusions, f"no candidates for user {user_id}")

        scored = score_candidates(candidates, profile)
        if not scored:
            return _fallback_result(reader, limit, exclusions, f"no candidate above cutoff for user {user_id}")

        diverse = apply_diversity_filter(scored, profile.diversity_score)
        final = diverse or scored

        logger.info(
            "Recommendations for user %s: candidates=%d scored=%d diverse=%d returned=%d",
            user_id,
            len(candidates),
            len(scored),
            len(diverse),
            min(len(final), limit),
        )
        return RecommendationResult(
            recommendations=[to_recommendation(item) for item in final[:limit]],
            profile=summarize_profile(profile),
            source=SOURCE_PERSONALIZED,
        )
