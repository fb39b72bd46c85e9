from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from apps.api.app.db import get_db
from apps.api.app.queries import get_trends

router = APIRouter()


@router.get("/api/trends")
def metrics_trend(
    months: int = Query(6, ge=1, le=120),
    db: Session = Depends(get_db),
) -> List[Dict[str, Any]]:
    """
    Trend buckets by *review date* (not upload time).

    One bucket per calendar month in the trailing window, current month
    included, oldest first:
      [{ month: "YYYY-MM", count, positive, neutral, negative }, ...]
    """
    return get_trends(db, months=months)
