from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from apps.api.app.db import get_db
from apps.api.app.queries import get_summary

router = APIRouter()


@router.get("/api/summary")
def metrics_summary(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Sentiment counts, net sentiment (% of positive minus negative),
    average score and the latest upload time over all stored reviews.
    """
    return get_summary(db)
