"""Tests for profile building: event weights, time decay, top-N cutoffs, engagement."""
from datetime import datetime, timedelta

from libris.models import InteractionEventType, LoanTransaction, TransactionStatus, UserInteraction
from libris.services.interaction_store import ProfileInputs
from libris.services.user_profile import (
    EVENT_WEIGHTS,
    EngagementLevel,
    build_user_profile,
    engagement_level_for,
    interaction_weight,
    time_decay,
)

NOW = datetime(2026, 5, 1, 12, 0, 0)


def _interaction(event_type, days_ago=1, **snapshot) -> UserInteraction:
    return UserInteraction(event_type=event_type, timestamp=NOW - timedelta(days=days_ago), **snapshot)


def _transaction(status, **snapshot) -> LoanTransaction:
    return LoanTransaction(status=status, borrowed_at=NOW - timedelta(days=3), **snapshot)


def test_every_event_type_has_a_weight():
    """No event type may be silently ignored."""
    for event_type in InteractionEventType:
        assert event_type in EVENT_WEIGHTS


def test_time_decay_windows():
    assert time_decay(NOW - timedelta(days=2), NOW) == 3.0
    assert time_decay(NOW - timedelta(days=7), NOW) == 3.0
    assert time_decay(NOW - timedelta(days=8), NOW) == 2.0
    assert time_decay(NOW - timedelta(days=30), NOW) == 2.0
    assert time_decay(NOW - timedelta(days=45), NOW) == 1.5


def test_interaction_weight_rounds_half_up():
    """Weight is round(event weight x decay)."""
    assert interaction_weight(InteractionEventType.COMPLETE, NOW - timedelta(days=1), NOW) == 30
    assert interaction_weight(InteractionEventType.BORROW, NOW - timedelta(days=2), NOW) == 24
    assert interaction_weight(InteractionEventType.VIEW, NOW - timedelta(days=10), NOW) == 2
    assert interaction_weight(InteractionEventType.VIEW, NOW - timedelta(days=40), NOW) == 2
    assert interaction_weight(InteractionEventType.SEARCH, NOW - timedelta(days=40), NOW) == 1
    assert interaction_weight(InteractionEventType.SEARCH, NOW - timedelta(days=1), NOW) == 2
    assert interaction_weight(InteractionEventType.BOOKMARK_ADD, NOW - timedelta(days=40), NOW) == 8


def test_interaction_weight_accepts_raw_strings():
    assert interaction_weight("borrow", NOW - timedelta(days=1), NOW) == 24


def test_recent_view_outweighs_old_view():
    """Same event, same book shape: the recent one must rank first."""
    inputs = ProfileInputs(
        interactions=[
            _interaction(InteractionEventType.VIEW, days_ago=40, book_author="Old Author"),
            _interaction(InteractionEventType.VIEW, days_ago=2, book_author="New Author"),
        ]
    )
    profile = build_user_profile(inputs, NOW)
    assert profile.top_authors == ["New Author", "Old Author"]


def test_top_categories_cutoff_keeps_first_seen_order_on_ties():
    inputs = ProfileInputs(
        interactions=[
            _interaction(InteractionEventType.VIEW, book_categories=[f"C{i}"]) for i in range(12)
        ]
    )
    profile = build_user_profile(inputs, NOW)
    assert profile.top_categories == [f"C{i}" for i in range(10)]


def test_top_n_cutoffs_per_field():
    interactions = [
        _interaction(
            InteractionEventType.VIEW,
            book_tags=[f"T{i}"],
            book_author=f"A{i}",
            book_publisher=f"P{i}",
            book_format=f"F{i}",
        )
        for i in range(15)
    ]
    profile = build_user_profile(ProfileInputs(interactions=interactions), NOW)
    assert len(profile.top_tags) == 12
    assert len(profile.top_authors) == 8
    assert len(profile.top_publishers) == 5
    assert len(profile.top_formats) == 3


def test_transactions_feed_categories_and_authors_only():
    """Returned loans (12) outweigh active loans (8); tags are untouched."""
    inputs = ProfileInputs(
        transactions=[
            _transaction(TransactionStatus.BORROWED, book_categories=["Poetry"], book_tags=["verse"], book_author="Rumi"),
            _transaction(TransactionStatus.RETURNED, book_categories=["History"], book_tags=["war"], book_author="Tuchman"),
        ]
    )
    profile = build_user_profile(inputs, NOW)
    assert profile.top_categories == ["History", "Poetry"]
    assert profile.top_authors == ["Tuchman", "Rumi"]
    assert profile.top_tags == []
    assert profile.total_interactions == 2


def test_avg_preferred_year_is_weighted():
    inputs = ProfileInputs(
        interactions=[
            _interaction(InteractionEventType.COMPLETE, days_ago=1, book_year=2020),
            _interaction(InteractionEventType.VIEW, days_ago=40, book_year=1990),
        ]
    )
    profile = build_user_profile(inputs, NOW)
    # (2020*30 + 1990*2) / 32 = 2018.125
    assert profile.avg_preferred_year == 2018


def test_avg_preferred_year_absent_without_years():
    inputs = ProfileInputs(interactions=[_interaction(InteractionEventType.VIEW, book_categories=["Art"])])
    assert build_user_profile(inputs, NOW).avg_preferred_year is None


def test_diversity_score_ratio():
    inputs = ProfileInputs(
        interactions=[
            _interaction(InteractionEventType.VIEW, book_categories=["Art"], book_tags=["color"], book_author="Itten"),
        ]
    )
    profile = build_user_profile(inputs, NOW)
    # 3 distinct values over 3 + 3 + 3 weighted occurrences
    assert abs(profile.diversity_score - 1 / 3) < 1e-9


def test_empty_inputs_give_neutral_profile():
    profile = build_user_profile(ProfileInputs(), NOW)
    assert profile.is_empty
    assert profile.total_interactions == 0
    assert profile.diversity_score == 0.5
    assert profile.avg_preferred_year is None
    assert profile.engagement_level == EngagementLevel.LOW


def test_recent_interactions_counts_last_week_only():
    inputs = ProfileInputs(
        interactions=[
            _interaction(InteractionEventType.VIEW, days_ago=1),
            _interaction(InteractionEventType.VIEW, days_ago=6),
            _interaction(InteractionEventType.VIEW, days_ago=12),
        ]
    )
    assert build_user_profile(inputs, NOW).recent_interactions == 2


def test_engagement_level_thresholds_are_exclusive():
    assert engagement_level_for(101) == EngagementLevel.POWER
    assert engagement_level_for(100) == EngagementLevel.HIGH
    assert engagement_level_for(51) == EngagementLevel.HIGH
    assert engagement_level_for(50) == EngagementLevel.MEDIUM
    assert engagement_level_for(21) == EngagementLevel.MEDIUM
    assert engagement_level_for(20) == EngagementLevel.LOW


def test_engagement_score_combines_all_sources():
    inputs = ProfileInputs(
        interactions=[_interaction(InteractionEventType.VIEW) for _ in range(10)],
        transactions=[_transaction(TransactionStatus.RETURNED) for _ in range(3)],
        bookmarks=[object(), object()],
        notes=[object()],
    )
    profile = build_user_profile(inputs, NOW)
    # 3*3 + 2*2 + 1*2 + 10
    assert profile.engagement_score == 25
    assert profile.engagement_level == EngagementLevel.MEDIUM
    assert profile.total_interactions == 13
