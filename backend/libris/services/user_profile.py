"""
Builds a user's reading-preference profile from their recent behavior.

The profile is recomputed on every recommendation request and never stored.
Each interaction contributes a weight (event weight x time decay) to the values
found in its book snapshot; each field is then reduced to its top-N values.
"""
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
import enum
import logging
import math

from libris.models import InteractionEventType, TransactionStatus
from libris.services.interaction_store import ProfileInputs

logger = logging.getLogger(__name__)


class EngagementLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    POWER = "power"


# Every event type must have an entry; types that only mirror another
# signal (returns, removals, note edits) count like a view.
EVENT_WEIGHTS: Dict[InteractionEventType, float] = {
    InteractionEventType.COMPLETE: 10.0,
    InteractionEventType.BORROW: 8.0,
    InteractionEventType.NOTE_CREATE: 6.0,
    InteractionEventType.BOOKMARK_ADD: 5.0,
    InteractionEventType.VIEW: 1.0,
    InteractionEventType.SEARCH: 0.5,
    InteractionEventType.RETURN: 1.0,
    InteractionEventType.BOOKMARK_REMOVE: 1.0,
    InteractionEventType.NOTE_UPDATE: 1.0,
}

TRANSACTION_WEIGHTS: Dict[TransactionStatus, int] = {
    TransactionStatus.RETURNED: 12,
    TransactionStatus.BORROWED: 8,
}

# Time decay: (max age, multiplier), checked in order
RECENT_WINDOW = timedelta(days=7)
MEDIUM_WINDOW = timedelta(days=30)
DECAY_RECENT = 3.0
DECAY_MEDIUM = 2.0
DECAY_OLD = 1.5

TOP_CATEGORIES = 10
TOP_TAGS = 12
TOP_AUTHORS = 8
TOP_PUBLISHERS = 5
TOP_FORMATS = 3

NEUTRAL_DIVERSITY = 0.5

# Engagement score thresholds (exclusive), highest first
ENGAGEMENT_THRESHOLDS = (
    (100, EngagementLevel.POWER),
    (50, EngagementLevel.HIGH),
    (20, EngagementLevel.MEDIUM),
)


@dataclass
class UserProfile:
    top_categories: List[str] = field(default_factory=list)
    top_tags: List[str] = field(default_factory=list)
    top_authors: List[str] = field(default_factory=list)
    top_publishers: List[str] = field(default_factory=list)
    top_formats: List[str] = field(default_factory=list)
    avg_preferred_year: Optional[int] = None
    diversity_score: float = NEUTRAL_DIVERSITY
    total_interactions: int = 0
    recent_interactions: int = 0
    borrow_count: int = 0
    bookmark_count: int = 0
    note_count: int = 0
    engagement_score: int = 0
    engagement_level: EngagementLevel = EngagementLevel.LOW
    unique_books_interacted: int = 0

    @property
    def is_empty(self) -> bool:
        return self.total_interactions == 0


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _event_type(value) -> Optional[InteractionEventType]:
    if isinstance(value, InteractionEventType):
        return value
    try:
        return InteractionEventType(value)
    except ValueError:
        return None


def time_decay(timestamp: datetime, now: datetime) -> float:
    """Multiplier favoring recent activity: x3 within 7 days, x2 within 30, x1.5 older."""
    age = now - timestamp
    if age <= RECENT_WINDOW:
        return DECAY_RECENT
    if age <= MEDIUM_WINDOW:
        return DECAY_MEDIUM
    return DECAY_OLD


def interaction_weight(event_type, timestamp: datetime, now: datetime) -> int:
    """Total weight of one interaction: round(event weight x time decay)."""
    resolved = _event_type(event_type)
    event_weight = EVENT_WEIGHTS[resolved] if resolved is not None else 1.0
    return _round_half_up(event_weight * time_decay(timestamp, now))


def engagement_level_for(score: int) -> EngagementLevel:
    for threshold, level in ENGAGEMENT_THRESHOLDS:
        if score > threshold:
            return level
    return EngagementLevel.LOW


def top_values(counter: Counter, n: int) -> List[str]:
    """Top-N values by accumulated weight; ties keep first-seen order."""
    return [value for value, _ in counter.most_common(n)]


def _add(counter: Counter, values: Optional[Iterable[str]], weight: int) -> None:
    if not values or weight <= 0:
        return
    for value in values:
        if value:
            counter[value] += weight


def calculate_diversity_score(categories: Counter, tags: Counter, authors: Counter) -> float:
    """
    Distinct values over total weighted occurrences across categories, tags
    and authors, capped at 1. No data gives the neutral 0.5.
    """
    total = sum(categories.values()) + sum(tags.values()) + sum(authors.values())
    if total == 0:
        return NEUTRAL_DIVERSITY
    unique = len(categories) + len(tags) + len(authors)
    return min(unique / total, 1.0)


def build_user_profile(inputs: ProfileInputs, now: datetime) -> UserProfile:
    categories: Counter = Counter()
    tags: Counter = Counter()
    authors: Counter = Counter()
    publishers: Counter = Counter()
    formats: Counter = Counter()
    year_weight_sum = 0
    year_total = 0
    book_ids = set()

    for interaction in inputs.interactions:
        weight = interaction_weight(interaction.event_type, interaction.timestamp, now)

        if interaction.book_id:
            book_ids.add(str(interaction.book_id))

        _add(categories, interaction.book_categories, weight)
        _add(tags, interaction.book_tags, weight)
        if interaction.book_author:
            _add(authors, [interaction.book_author], weight)
        if interaction.book_publisher:
            _add(publishers, [interaction.book_publisher], weight)
        if interaction.book_format:
            _add(formats, [interaction.book_format], weight)
        if interaction.book_year and weight > 0:
            year_total += interaction.book_year * weight
            year_weight_sum += weight

    # Loan history is an independent, additive signal
    for transaction in inputs.transactions:
        weight = TRANSACTION_WEIGHTS.get(transaction.status, 0)
        _add(categories, transaction.book_categories, weight)
        if transaction.book_author:
            _add(authors, [transaction.book_author], weight)

    recent_since = now - RECENT_WINDOW
    recent_interactions = sum(1 for i in inputs.interactions if i.timestamp >= recent_since)

    interaction_count = len(inputs.interactions)
    borrow_count = len(inputs.transactions)
    bookmark_count = len(inputs.bookmarks)
    note_count = len(inputs.notes)
    engagement_score = borrow_count * 3 + bookmark_count * 2 + note_count * 2 + interaction_count

    avg_year = _round_half_up(year_total / year_weight_sum) if year_weight_sum else None

    profile = UserProfile(
        top_categories=top_values(categories, TOP_CATEGORIES),
        top_tags=top_values(tags, TOP_TAGS),
        top_authors=top_values(authors, TOP_AUTHORS),
        top_publishers=top_values(publishers, TOP_PUBLISHERS),
        top_formats=top_values(formats, TOP_FORMATS),
        avg_preferred_year=avg_year,
        diversity_score=calculate_diversity_score(categories, tags, authors),
        total_interactions=interaction_count + borrow_count,
        recent_interactions=recent_interactions,
        borrow_count=borrow_count,
        bookmark_count=bookmark_count,
        note_count=note_count,
        engagement_score=engagement_score,
        engagement_level=engagement_level_for(engagement_score),
        unique_books_interacted=len(book_ids),
    )
    logger.debug(
        "Built profile: interactions=%d loans=%d categories=%s engagement=%s diversity=%.2f",
        interaction_count,
        borrow_count,
        profile.top_categories[:3],
        profile.engagement_level.value,
        profile.diversity_score,
    )
    return profile
