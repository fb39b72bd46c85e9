import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from jobs.analyze.batcher import BatchScheduler
from jobs.analyze.classifier import SentimentClassifier
from jobs.clock import Clock, SystemClock
from jobs.ingest.csv_stream import FIELD_SIZE_LIMIT, CSVIngestor
from jobs.persist.writer import write_reviews
from jobs.schemas import NormalizedReview, SentimentResult, default_result

logger = logging.getLogger(__name__)


@dataclass
class UploadReport:
    platform: str
    rows: int
    analyzed: int
    stored: int


def merge_results(
    reviews: List[NormalizedReview],
    results: List[SentimentResult],
) -> List[Tuple[NormalizedReview, SentimentResult]]:
    by_id = {}
    for r in results:
        by_id.setdefault(r.mention_id, r)
    return [(review, by_id.get(review.id) or default_result(review.id)) for review in reviews]


class UploadPipeline:
    """CSV byte stream -> normalized reviews -> batched classification -> storage."""

    def __init__(
        self,
        classifier: SentimentClassifier,
        batch_size: int = 15,
        delay_seconds: float = 12.0,
        clock: Optional[Clock] = None,
        field_size_limit: int = FIELD_SIZE_LIMIT,
    ):
        self.classifier = classifier
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.clock = clock or SystemClock()
        self.field_size_limit = field_size_limit

    async def run(self, chunks: AsyncIterable[bytes], platform: str, db: Session) -> UploadReport:
        outcome = await CSVIngestor(platform, field_size_limit=self.field_size_limit).collect(chunks)
        if not outcome.ok:
            raise outcome.error

        reviews = outcome.reviews
        logger.info("Found %d valid rows for platform=%s. Starting batch analysis...", len(reviews), platform)

        scheduler = BatchScheduler(
            self.classifier.classify,
            batch_size=self.batch_size,
            delay_seconds=self.delay_seconds,
            clock=self.clock,
        )
        results = await scheduler.run(reviews)
        pairs = merge_results(reviews, results)

        logger.info("Analysis complete. Storing %d results...", len(pairs))
        stored = await asyncio.to_thread(write_reviews, db, pairs) if pairs else 0

        return UploadReport(platform=platform, rows=outcome.rows, analyzed=len(results), stored=stored)
