"""
Heuristic relevance scoring.

Scores are additive, clamped to 0-100, and come with up to three short
human-readable match reasons. Two weight tables exist: one scoring against a
user profile, one scoring against a single source book (similar items).
"""
from dataclasses import dataclass, field
from typing import List, Optional, Sequence
import logging
import math

from libris.core.config import settings
from libris.services.interaction_store import BookRecord
from libris.services.user_profile import EngagementLevel, UserProfile

logger = logging.getLogger(__name__)

MAX_SCORE = 100
MAX_REASONS = 3

# Profile scoring weights
CATEGORY_TIERS = (40, 70, 90)  # 1, 2, 3+ overlapping categories
TAG_TIERS = (30, 50, 70)
AUTHOR_TOP_SCORE = 50
AUTHOR_RANK_STEP = 5
PUBLISHER_MATCH = 20
FORMAT_MATCH = 15
YEAR_WINDOW = 15
YEAR_MAX = 25
POPULARITY_FACTOR = 10
POPULARITY_MAX = 35
DIVERSITY_BONUS = 15
DIVERSITY_BONUS_THRESHOLD = 0.6
RECENCY_MIN_INTERACTIONS = 5
RECENCY_FACTOR = 1.5
RECENCY_MAX = 20

ENGAGEMENT_BOOSTS = {
    EngagementLevel.POWER: 20,
    EngagementLevel.HIGH: 15,
    EngagementLevel.MEDIUM: 10,
    EngagementLevel.LOW: 5,
}

# Similar-items weights
SIMILAR_AUTHOR_MATCH = 70
SIMILAR_PUBLISHER_MATCH = 20
SIMILAR_YEAR_WINDOW = 10
SIMILAR_YEAR_MAX = 20
SIMILAR_POPULARITY_FACTOR = 8
SIMILAR_POPULARITY_MAX = 25

# Reason thresholds
POPULAR_WITH_STUDENTS = 150
TRENDING = 100
RECENT_YEAR = 2020


@dataclass
class ScoredBook:
    book: BookRecord
    relevance_score: int
    match_reasons: List[str] = field(default_factory=list)


def count_matches(values: Sequence[str], reference: Sequence[str]) -> int:
    reference_set = set(reference)
    return sum(1 for value in values if value in reference_set)


def tiered(matches: int, tiers: Sequence[int]) -> int:
    if matches <= 0:
        return 0
    return tiers[min(matches, len(tiers)) - 1]


def clamp_score(raw: float) -> int:
    return max(0, min(int(math.floor(raw + 0.5)), MAX_SCORE))


def popularity_points(popularity: float, factor: float, cap: float) -> float:
    if not popularity or popularity <= 0:
        return 0.0
    return min(math.log10(popularity + 1) * factor, cap)


def _first_match(values: Sequence[str], reference: Sequence[str]) -> Optional[str]:
    return next((value for value in values if value in reference), None)


def _category_reason(category: str, rank: int) -> str:
    if rank == 0:
        return f"You love {category}"
    if rank <= 2:
        return f"You like {category}"
    return f"Try {category}"


def _tag_reason(tag: str, rank: int) -> str:
    if rank == 0:
        return f"Your favorite topic: {tag}"
    if rank <= 2:
        return f"Interested in {tag}"
    return f"Exploring {tag}"


def _profile_fallback_reason(book: BookRecord) -> str:
    if book.popularity_score > TRENDING:
        return "Popular with students"
    if book.popularity_score > 50:
        return "Trending now"
    if book.year and book.year >= RECENT_YEAR:
        return "Recently published"
    return "Recommended for you"


def score_book(
    book: BookRecord,
    profile: UserProfile,
    weak_match_multiplier: Optional[float] = None,
) -> ScoredBook:
    if weak_match_multiplier is None:
        weak_match_multiplier = settings.RECOMMENDATION_WEAK_MATCH_MULTIPLIER

    score = 0.0
    reasons: List[str] = []

    category_matches = count_matches(book.categories, profile.top_categories)
    if category_matches:
        score += tiered(category_matches, CATEGORY_TIERS)
        matched = _first_match(book.categories, profile.top_categories)
        reasons.append(_category_reason(matched, profile.top_categories.index(matched)))

    tag_matches = count_matches(book.tags, profile.top_tags)
    if tag_matches:
        score += tiered(tag_matches, TAG_TIERS)
        matched = _first_match(book.tags, profile.top_tags)
        reasons.append(_tag_reason(matched, profile.top_tags.index(matched)))

    author_rank = profile.top_authors.index(book.author) if book.author in profile.top_authors else -1
    if author_rank >= 0:
        score += AUTHOR_TOP_SCORE - AUTHOR_RANK_STEP * author_rank
        if author_rank == 0:
            reasons.append(f"By {book.author} (your favorite)")
        else:
            reasons.append(f"By {book.author}")

    if book.publisher and book.publisher in profile.top_publishers:
        score += PUBLISHER_MATCH

    if book.format and book.format in profile.top_formats:
        score += FORMAT_MATCH

    if book.year and profile.avg_preferred_year is not None:
        year_diff = abs(book.year - profile.avg_preferred_year)
        if year_diff <= YEAR_WINDOW:
            score += max(YEAR_MAX - year_diff, 0)

    score += popularity_points(book.popularity_score, POPULARITY_FACTOR, POPULARITY_MAX)
    if book.popularity_score > POPULAR_WITH_STUDENTS:
        reasons.append("Popular with students")
    elif book.popularity_score > TRENDING:
        reasons.append("Trending now")

    score += ENGAGEMENT_BOOSTS[profile.engagement_level]

    if profile.diversity_score > DIVERSITY_BONUS_THRESHOLD and category_matches:
        top_three = profile.top_categories[:3]
        if any(category not in top_three for category in book.categories):
            score += DIVERSITY_BONUS

    if profile.recent_interactions > RECENCY_MIN_INTERACTIONS:
        score += min(profile.recent_interactions * RECENCY_FACTOR, RECENCY_MAX)

    # Publisher/format/year/popularity alone shouldn't carry a recommendation
    if not category_matches and not tag_matches and author_rank < 0:
        score *= weak_match_multiplier

    if not reasons:
        reasons.append(_profile_fallback_reason(book))

    return ScoredBook(book=book, relevance_score=clamp_score(score), match_reasons=reasons[:MAX_REASONS])


def score_candidates(
    candidates: Sequence[BookRecord],
    profile: UserProfile,
    min_score: Optional[int] = None,
    weak_match_multiplier: Optional[float] = None,
) -> List[ScoredBook]:
    """Score every candidate, drop those at or below `min_score`, best first."""
    if min_score is None:
        min_score = settings.RECOMMENDATION_MIN_SCORE

    scored = [score_book(book, profile, weak_match_multiplier) for book in candidates]
    kept = [item for item in scored if item.relevance_score > min_score]
    kept.sort(key=lambda item: item.relevance_score, reverse=True)
    logger.debug("Scored %d candidates, %d above cutoff %d", len(scored), len(kept), min_score)
    return kept


def score_similar_book(book: BookRecord, source: BookRecord) -> ScoredBook:
    score = 0.0
    reasons: List[str] = []

    if book.author and book.author == source.author:
        score += SIMILAR_AUTHOR_MATCH
        reasons.append(f"Also by {book.author}")

    category_matches = count_matches(book.categories, source.categories)
    if category_matches:
        score += tiered(category_matches, CATEGORY_TIERS)
        reasons.append(f"Similar: {_first_match(book.categories, source.categories)}")

    tag_matches = count_matches(book.tags, source.tags)
    if tag_matches:
        score += tiered(tag_matches, TAG_TIERS)
        reasons.append(f"Related topic: {_first_match(book.tags, source.tags)}")

    if book.publisher and book.publisher == source.publisher:
        score += SIMILAR_PUBLISHER_MATCH
        reasons.append(book.publisher)

    if book.year and source.year:
        year_diff = abs(book.year - source.year)
        if year_diff <= SIMILAR_YEAR_WINDOW:
            score += max(SIMILAR_YEAR_MAX - year_diff, 0)
            if year_diff <= 2:
                reasons.append(f"Published {book.year}")

    score += popularity_points(book.popularity_score, SIMILAR_POPULARITY_FACTOR, SIMILAR_POPULARITY_MAX)
    if book.popularity_score > TRENDING:
        reasons.append("Popular with students")

    if not reasons:
        reasons.append("Recommended" if book.popularity_score > 50 else "You might like this")

    return ScoredBook(book=book, relevance_score=clamp_score(score), match_reasons=reasons[:MAX_REASONS])


def score_similar(
    candidates: Sequence[BookRecord],
    source: BookRecord,
    min_score: Optional[int] = None,
) -> List[ScoredBook]:
    if min_score is None:
        min_score = settings.RECOMMENDATION_MIN_SCORE

    scored = [score_similar_book(book, source) for book in candidates]
    kept = [item for item in scored if item.relevance_score > min_score]
    kept.sort(key=lambda item: item.relevance_score, reverse=True)
    return kept
