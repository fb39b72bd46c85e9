from dataclasses import dataclass
from typing import List, Literal

Sentiment = Literal["positive", "neutral", "negative"]

SENTIMENTS = ("positive", "neutral", "negative")
ENTITIES = ("Quality", "Service", "Price", "Ambiance", "Location", "General")

DEFAULT_SENTIMENT: Sentiment = "neutral"
DEFAULT_SCORE = 0.5
DEFAULT_ENTITY = "General"


@dataclass(frozen=True)
class NormalizedReview:
    id: str
    content: str
    date: str  # YYYY-MM-DD
    source: str


@dataclass(frozen=True)
class SentimentResult:
    mention_id: str
    sentiment: Sentiment
    score: float
    entity: str


def default_result(mention_id: str) -> SentimentResult:
    return SentimentResult(
        mention_id=mention_id,
        sentiment=DEFAULT_SENTIMENT,
        score=DEFAULT_SCORE,
        entity=DEFAULT_ENTITY,
    )


def default_results(reviews: List[NormalizedReview]) -> List[SentimentResult]:
    return [default_result(r.id) for r in reviews]
