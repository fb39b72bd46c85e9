import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from jinja2 import Template

from jobs.analyze.model_client import ModelClient, ModelClientError, RateLimitError
from jobs.analyze.response import parse_json_array, reconcile
from jobs.clock import Clock, SystemClock
from jobs.schemas import NormalizedReview, SentimentResult, default_results

logger = logging.getLogger(__name__)

PROMPTS_DIR = Path(__file__).parent / "prompts"
TEMPLATE_PATH = PROMPTS_DIR / "classify_batch.jinja"
RUBRIC_PATH = PROMPTS_DIR / "rubric.yml"


def load_rubric(path: Path = RUBRIC_PATH) -> Dict[str, Any]:
    return yaml.safe_load(path.read_text(encoding="utf-8"))


def render_prompt(template_path: Path, context: Dict[str, Any]) -> str:
    tmpl = Template(template_path.read_text(encoding="utf-8"))
    return tmpl.render(**context)


class SentimentClassifier:
    """
    Classifies one batch of reviews with a single model call.

    Never raises for model faults: rate limits are retried with exponential
    backoff (backoff_seconds, x2 per retry, up to max_retries), everything
    else degrades the batch to neutral / 0.5 / General.
    """

    def __init__(
        self,
        client: ModelClient,
        clock: Optional[Clock] = None,
        brand: str = "Kana Coffee",
        backoff_seconds: float = 15.0,
        max_retries: int = 3,
        template_path: Path = TEMPLATE_PATH,
        rubric: Optional[Dict[str, Any]] = None,
    ):
        self.client = client
        self.clock = clock or SystemClock()
        self.brand = brand
        self.backoff_seconds = backoff_seconds
        self.max_retries = max_retries
        self.template_path = template_path
        self.rubric = rubric if rubric is not None else load_rubric()

    def build_prompt(self, reviews: List[NormalizedReview]) -> str:
        return render_prompt(
            self.template_path,
            {"brand": self.brand, "reviews": reviews, "rubric": self.rubric},
        )

    def backoff_delay(self, retry: int) -> float:
        return self.backoff_seconds * (2 ** retry)

    async def classify(self, reviews: List[NormalizedReview]) -> List[SentimentResult]:
        if not reviews:
            return []

        prompt = self.build_prompt(reviews)
        raw = await self._generate_with_retry(prompt, len(reviews))
        if raw is None:
            return default_results(reviews)

        logger.debug("Model batch response: %s", raw[:300])
        parsed = parse_json_array(raw)
        if parsed is None:
            logger.warning("Failed to parse batch response, using fallback for %d reviews", len(reviews))
            return default_results(reviews)

        results = reconcile(reviews, parsed)
        logger.info("Parsed batch results: %d reviews analyzed", len(results))
        return results

    async def _generate_with_retry(self, prompt: str, size: int) -> Optional[str]:
        retry = 0
        while True:
            try:
                return await asyncio.to_thread(self.client.generate, prompt)
            except RateLimitError:
                if retry >= self.max_retries:
                    logger.error("Rate limit persisted after %d retries; batch of %d degraded", retry, size)
                    return None
                delay = self.backoff_delay(retry)
                retry += 1
                logger.warning("Rate limit hit, retrying batch in %.0fs (retry %d/%d)", delay, retry, self.max_retries)
                await self.clock.sleep(delay)
            except ModelClientError as e:
                logger.error("Error analyzing batch of %d: %s", size, e)
                return None
            except Exception:
                logger.exception("Unexpected error analyzing batch of %d", size)
                return None
