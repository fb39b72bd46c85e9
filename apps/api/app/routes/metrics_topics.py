from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from apps.api.app.db import get_db
from apps.api.app.queries import get_topics

router = APIRouter()


@router.get("/api/topics")
def metrics_topics(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    """
    Per-entity totals with positive/neutral/negative split, largest first.
    """
    return get_topics(db, limit=limit)
