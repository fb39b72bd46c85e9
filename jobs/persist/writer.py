import logging
from datetime import datetime, timezone
from typing import Optional, Sequence, Tuple

from sqlalchemy.exc import DataError, DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from apps.api.app.models import StoredReview
from jobs.schemas import NormalizedReview, SentimentResult

logger = logging.getLogger(__name__)


class StorageUnavailableError(Exception):
    pass


def to_stored_review(
    review: NormalizedReview,
    result: SentimentResult,
    uploaded_at: datetime,
) -> StoredReview:
    return StoredReview(
        platform=review.source,
        content=review.content,
        date=review.date,
        sentiment=result.sentiment,
        entity=result.entity,
        score=result.score,
        uploaded_at=uploaded_at,
    )


def write_reviews(
    db: Session,
    pairs: Sequence[Tuple[NormalizedReview, SentimentResult]],
    uploaded_at: Optional[datetime] = None,
) -> int:
    """
    Insert one upload inside a single outer transaction.

    Each row gets its own SAVEPOINT: a row the store rejects
    (constraint or data error) is logged and rolled back alone, the rest
    still commit together. Returns the number of rows stored.
    Failure to open or commit the outer transaction raises
    StorageUnavailableError and nothing from the upload is kept.
    """
    uploaded_at = uploaded_at or datetime.now(timezone.utc)
    stored = 0

    try:
        with db.begin():
            # Sessions connect lazily; an unopenable store must fail here.
            db.connection()
            for review, result in pairs:
                try:
                    with db.begin_nested():
                        db.add(to_stored_review(review, result, uploaded_at))
                except (IntegrityError, DataError) as e:
                    logger.error("Failed to insert %s, skipping: %s", review.id, e.orig)
                    continue
                stored += 1
    except DBAPIError as e:
        raise StorageUnavailableError(f"Storage unavailable: {e.orig}") from e

    logger.info("Stored %d/%d reviews", stored, len(pairs))
    return stored
