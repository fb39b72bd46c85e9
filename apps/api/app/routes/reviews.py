from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from apps.api.app.db import get_db
from apps.api.app.queries import clear_all, get_summary, list_reviews, to_review_dict

router = APIRouter()

@router.get("/api/data")
def list_data(
    sentiment: Optional[str] = Query(None),  # positive | neutral | negative, anything else = no filter
    limit: Optional[int] = Query(None, ge=1, le=10000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    rows = list_reviews(db, sentiment=sentiment, limit=limit, offset=offset)
    return {
        "count": len(rows),
        "filters": {"sentiment": sentiment, "limit": limit, "offset": offset},
        "reviews": [to_review_dict(r) for r in rows],
        "summary": get_summary(db),
    }

@router.delete("/api/data")
def clear_data(db: Session = Depends(get_db)):
    clear_all(db)
    return {"message": "All data cleared."}
