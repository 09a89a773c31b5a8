from typing import List, Optional
import uuid as uuid_lib

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import sessionmaker
import logging

from libris.database import get_session_factory
from libris.services import recommendation_engine
from libris.services.recommendation_engine import RecommendationUnavailable
from libris.schemas.recommendation import RecommendationsResponse
from libris.core.auth import get_current_user_email
from libris.utils.timing import now_ms, log_elapsed
from libris.core.config import settings

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recommendations"])


@router.get("/recommendations", response_model=RecommendationsResponse)
def get_recommendations(
    limit: int = Query(10, ge=1, le=100),
    context: str = Query("browse", max_length=50),
    book_id: Optional[str] = Query(None, description="Recommend books similar to this one"),
    exclude: Optional[List[str]] = Query(None, description="Book ids to leave out"),
    user_email: str = Depends(get_current_user_email),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    t0 = now_ms()
    request_id = str(uuid_lib.uuid4())

    # Hard clamp to the configured maximum
    limit = min(limit, settings.RECOMMENDATION_MAX_LIMIT)

    try:
        result = recommendation_engine.get_recommendations(
            session_factory=session_factory,
            user_id=user_email,
            limit=limit,
            exclude_book_ids=exclude,
            context=context,
            book_id=book_id,
        )
    except RecommendationUnavailable:
        logger.exception(
            "[GET /api/recommendations UNAVAILABLE] req_id=%s user=%s book_id=%s",
            request_id,
            user_email,
            book_id,
        )
        raise HTTPException(status_code=503, detail="recommendations_unavailable")

    log_elapsed(
        t0,
        f"req_id={request_id} user={user_email} source={result.source} count={len(result.recommendations)}",
        logger.debug,
    )
    return RecommendationsResponse(
        request_id=request_id,
        source=result.source,
        recommendations=result.recommendations,
        profile=result.profile,
    )
