"""
Decoding of untrusted model output.

Stage 1 (`parse_json_array`) is a best-effort structural parse that returns
None instead of raising. Stage 2 (`reconcile`) coerces every field into the
closed domains and guarantees one result per input review.
"""

import json
import math
import re
from typing import Any, Dict, List, Optional

from jobs.schemas import (
    DEFAULT_ENTITY,
    DEFAULT_SCORE,
    DEFAULT_SENTIMENT,
    ENTITIES,
    SENTIMENTS,
    NormalizedReview,
    SentimentResult,
    default_result,
    default_results,
)

_FENCE = re.compile(r"```(?:json)?", flags=re.IGNORECASE)
_ENTITY_LOOKUP = {e.lower(): e for e in ENTITIES}


def strip_code_fences(s: str) -> str:
    return _FENCE.sub("", s).strip()


def _extract_json_array(s: str) -> str:
    """
    Best-effort: slice from the first '[' to the last ']'.
    Handles commentary before/after the JSON.
    """
    i = s.find("[")
    j = s.rfind("]")
    if i == -1 or j == -1 or j <= i:
        return s
    return s[i : j + 1]


def _cleanup_common_json_issues(s: str) -> str:
    # trailing commas before } or ]
    return re.sub(r",(\s*[}\]])", r"\1", s).strip()


def parse_json_array(text: Any) -> Optional[List[Any]]:
    if not isinstance(text, str) or not text.strip():
        return None

    cleaned = strip_code_fences(text)
    for candidate in (cleaned, _cleanup_common_json_issues(_extract_json_array(cleaned))):
        try:
            value = json.loads(candidate)
        except ValueError:
            continue
        return value if isinstance(value, list) else None
    return None


def coerce_sentiment(value: Any) -> str:
    if isinstance(value, str):
        v = value.strip().lower()
        if v in SENTIMENTS:
            return v
    return DEFAULT_SENTIMENT


def coerce_score(value: Any) -> float:
    if isinstance(value, bool):
        return DEFAULT_SCORE
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return DEFAULT_SCORE
    if not isinstance(value, (int, float)) or not math.isfinite(value):
        return DEFAULT_SCORE
    return min(1.0, max(0.0, float(value)))


def coerce_entity(value: Any) -> str:
    if isinstance(value, str):
        return _ENTITY_LOOKUP.get(value.strip().lower(), DEFAULT_ENTITY)
    return DEFAULT_ENTITY


def coerce_result(mention_id: str, item: Dict[str, Any]) -> SentimentResult:
    return SentimentResult(
        mention_id=mention_id,
        sentiment=coerce_sentiment(item.get("sentiment")),
        score=coerce_score(item.get("score")),
        entity=coerce_entity(item.get("entity")),
    )


def reconcile(reviews: List[NormalizedReview], parsed: Optional[List[Any]]) -> List[SentimentResult]:
    """One result per review, in review order. Duplicate mentionIds: first wins."""
    if parsed is None:
        return default_results(reviews)

    by_id: Dict[str, Dict[str, Any]] = {}
    for item in parsed:
        if not isinstance(item, dict):
            continue
        mention_id = item.get("mentionId")
        if isinstance(mention_id, str) and mention_id not in by_id:
            by_id[mention_id] = item

    return [
        coerce_result(r.id, by_id[r.id]) if r.id in by_id else default_result(r.id)
        for r in reviews
    ]
