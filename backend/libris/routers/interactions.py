"""
Interaction tracking endpoints (views, searches, bookmarks, completions...).
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Any, Dict, Optional
from uuid import UUID
import logging

from libris.database import get_db
from libris.core.auth import get_current_user_email
from libris.models import Book, InteractionEventType
from libris.services.interaction_tracker import track_interaction, get_user_interaction_summary

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/interactions", tags=["interactions"])


class InteractionRequest(BaseModel):
    """Request body for recording an interaction."""
    event_type: InteractionEventType
    book_id: Optional[UUID] = None
    search_query: Optional[str] = None
    search_filters: Optional[Dict[str, Any]] = None


@router.post("", status_code=status.HTTP_204_NO_CONTENT)
def record_interaction(
    payload: InteractionRequest,
    user_email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
):
    book = None
    if payload.book_id is not None:
        book = db.query(Book).filter(Book.id == payload.book_id).first()
        if book is None:
            raise HTTPException(status_code=404, detail="Book not found")
    elif payload.event_type != InteractionEventType.SEARCH:
        raise HTTPException(status_code=422, detail="book_id is required for this event type")

    recorded = track_interaction(
        db,
        user_email=user_email,
        event_type=payload.event_type,
        book=book,
        search_query=payload.search_query,
        search_filters=payload.search_filters,
    )
    if not recorded:
        raise HTTPException(status_code=404, detail="User not found")
    return None


@router.get("/summary")
def interaction_summary(
    days: int = Query(90, ge=1, le=365),
    user_email: str = Depends(get_current_user_email),
    db: Session = Depends(get_db),
):
    summary = get_user_interaction_summary(db, user_email, days=days)
    if summary is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"days": days, "counts": summary}
