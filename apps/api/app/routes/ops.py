from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from apps.api.app.db import get_db

router = APIRouter()


@router.get("/health")
def health(db: Session = Depends(get_db)) -> Dict[str, Any]:
    """
    Basic liveness + DB connectivity.
    """
    db.execute(text("SELECT 1"))
    return {
        "status": "ok",
        "time_utc": datetime.now(timezone.utc).isoformat(),
    }
