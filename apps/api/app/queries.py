import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import case, delete, func, select, text
from sqlalchemy.orm import Session

from apps.api.app.models import StoredReview
from jobs.schemas import SENTIMENTS

logger = logging.getLogger(__name__)


def _count_sentiment(value: str):
    return func.sum(case((StoredReview.sentiment == value, 1), else_=0))


def _iso_utc(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def window_start(today: date, months: int) -> date:
    """First day of the oldest calendar month in a trailing window of `months` months."""
    y, m = today.year, today.month - (months - 1)
    while m <= 0:
        m += 12
        y -= 1
    return date(y, m, 1)


def get_summary(db: Session) -> Dict[str, Any]:
    stmt = select(
        func.count(StoredReview.id).label("total"),
        _count_sentiment("positive").label("positive"),
        _count_sentiment("neutral").label("neutral"),
        _count_sentiment("negative").label("negative"),
        func.avg(StoredReview.score).label("avg_score"),
        func.max(StoredReview.uploaded_at).label("last_updated"),
    )
    r = db.execute(stmt).one()

    total = int(r.total or 0)
    positive = int(r.positive or 0)
    neutral = int(r.neutral or 0)
    negative = int(r.negative or 0)
    net = round((positive - negative) / total * 100, 1) if total else 0.0

    return {
        "total": total,
        "total_positive": positive,
        "total_neutral": neutral,
        "total_negative": negative,
        "net_sentiment": net,
        "avg_score": round(float(r.avg_score), 4) if total else 0.0,
        "last_updated": _iso_utc(r.last_updated),
    }


def get_topics(db: Session, limit: int = 5) -> List[Dict[str, Any]]:
    total = func.count(StoredReview.id).label("total")
    stmt = (
        select(
            StoredReview.entity,
            total,
            _count_sentiment("positive").label("positive"),
            _count_sentiment("neutral").label("neutral"),
            _count_sentiment("negative").label("negative"),
        )
        .group_by(StoredReview.entity)
        .order_by(total.desc(), StoredReview.entity.asc())
        .limit(limit)
    )
    return [
        {
            "entity": r.entity,
            "total": int(r.total),
            "positive": int(r.positive or 0),
            "neutral": int(r.neutral or 0),
            "negative": int(r.negative or 0),
        }
        for r in db.execute(stmt).all()
    ]


def get_trends(db: Session, months: int = 6, today: Optional[date] = None) -> List[Dict[str, Any]]:
    """
    Monthly buckets ("YYYY-MM") over the trailing `months` calendar months,
    current month included, oldest first. Rows whose date is not ISO-shaped
    are left out.
    """
    today = today or datetime.now(timezone.utc).date()
    since = window_start(today, months).isoformat()

    month = func.substr(StoredReview.date, 1, 7).label("month")
    stmt = (
        select(
            month,
            func.count(StoredReview.id).label("count"),
            _count_sentiment("positive").label("positive"),
            _count_sentiment("neutral").label("neutral"),
            _count_sentiment("negative").label("negative"),
        )
        .where(StoredReview.date >= since)
        .where(StoredReview.date.like("____-__-__%"))
        .group_by(month)
        .order_by(month.asc())
    )
    return [
        {
            "month": r.month,
            "count": int(r.count),
            "positive": int(r.positive or 0),
            "neutral": int(r.neutral or 0),
            "negative": int(r.negative or 0),
        }
        for r in db.execute(stmt).all()
    ]


def list_reviews(
    db: Session,
    sentiment: Optional[str] = None,
    limit: Optional[int] = None,
    offset: int = 0,
) -> List[StoredReview]:
    stmt = select(StoredReview).order_by(StoredReview.date.desc(), StoredReview.id.asc())
    # Unknown sentiment values mean "no filter".
    if sentiment in SENTIMENTS:
        stmt = stmt.where(StoredReview.sentiment == sentiment)
    if offset:
        stmt = stmt.offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return db.execute(stmt).scalars().all()


def to_review_dict(r: StoredReview) -> Dict[str, Any]:
    return {
        "id": r.id,
        "platform": r.platform,
        "content": r.content,
        "date": r.date,
        "sentiment": r.sentiment,
        "entity": r.entity,
        "score": r.score,
        "uploaded_at": _iso_utc(r.uploaded_at),
    }


def clear_all(db: Session) -> None:
    """Delete every stored review and restart the id sequence at 1."""
    table = StoredReview.__tablename__
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        db.execute(text(f"TRUNCATE TABLE {table} RESTART IDENTITY"))
    else:
        db.execute(delete(StoredReview))
        if dialect == "sqlite":
            db.execute(text("DELETE FROM sqlite_sequence WHERE name = :name"), {"name": table})
    db.commit()
    logger.info("All stored reviews cleared")
