"""
Records user behavior for the recommendation engine.

Book metadata is snapshotted into each interaction at write time, so later
catalog edits never change a user's history.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from libris.models import Book, InteractionEventType, User, UserInteraction

logger = logging.getLogger(__name__)


def track_interaction(
    db: Session,
    user_email: str,
    event_type: InteractionEventType,
    book: Optional[Book] = None,
    search_query: Optional[str] = None,
    search_filters: Optional[Dict[str, Any]] = None,
    timestamp: Optional[datetime] = None,
) -> bool:
    """
    Record one interaction for the user with the given email.

    Returns False (and records nothing) when the user doesn't exist.
    Database errors roll back and propagate to the caller.
    """
    user = db.query(User).filter(User.email == user_email).first()
    if not user:
        logger.warning(f"User not found for interaction tracking: {user_email}")
        return False

    interaction = UserInteraction(
        user_id=user.id,
        event_type=event_type,
        search_query=search_query,
        search_filters=search_filters,
        timestamp=timestamp or datetime.utcnow(),
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

    try:
        db.add(interaction)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.debug(f"Interaction tracked: user={user_email}, event={event_type.value}, book={interaction.book_id}")
    return True


def get_user_interaction_summary(
    db: Session,
    user_email: str,
    days: int = 90,
    now: Optional[datetime] = None,
) -> Optional[Dict[str, int]]:
    """Count the user's interactions per event type over the last `days` days."""
    user = db.query(User).filter(User.email == user_email).first()
    if not user:
        return None

    since = (now or datetime.utcnow()) - timedelta(days=days)
    rows = (
        db.query(UserInteraction.event_type, func.count(UserInteraction.id))
        .filter(
            UserInteraction.user_id == user.id,
            UserInteraction.timestamp >= since,
        )
        .group_by(UserInteraction.event_type)
        .all()
    )
    return {event_type.value: count for event_type, count in rows}
