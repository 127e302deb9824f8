"""Dead-letter log endpoints."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from api.schemas.trigger import DeadLetterResponse
from app.dependencies import get_dead_letters
from services.dead_letter_service import DeadLetterService

router = APIRouter(tags=["dead-letters"])


@router.get("", response_model=List[DeadLetterResponse])
async def list_dead_letters(
    limit: int = Query(default=50, ge=1, le=500),
    source_type: Optional[str] = Query(default=None),
    dead_letters: DeadLetterService = Depends(get_dead_letters),
) -> List[DeadLetterResponse]:
    """Newest dead letters first."""
    entries = await dead_letters.list_recent(limit=limit, source_type=source_type)
    return [DeadLetterResponse.model_validate(e) for e in entries]
