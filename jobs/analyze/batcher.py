import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from jobs.clock import Clock, SystemClock
from jobs.schemas import NormalizedReview, SentimentResult

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClassifyFn = Callable[[List[NormalizedReview]], Awaitable[List[SentimentResult]]]


class BatchState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    WAITING = "waiting"
    DONE = "done"


@dataclass(frozen=True)
class Transition:
    state: BatchState
    batch_index: Optional[int] = None
    until: Optional[float] = None


def partition(items: Sequence[T], size: int) -> List[List[T]]:
    if size < 1:
        raise ValueError("batch size must be >= 1")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


class BatchScheduler:
    """
    Idle -> Dispatching(i) -> Waiting(until) -> Dispatching(i+1) -> ... -> Done

    Batches run strictly one after another. The cooldown starts when a batch
    finishes and is skipped after the last one. One scheduler serves one upload.
    """

    def __init__(
        self,
        classify: ClassifyFn,
        batch_size: int = 15,
        delay_seconds: float = 12.0,
        clock: Optional[Clock] = None,
    ):
        self.classify = classify
        self.batch_size = batch_size
        self.delay_seconds = delay_seconds
        self.clock = clock or SystemClock()
        self.state = BatchState.IDLE
        self.batch_index: Optional[int] = None
        self.wait_until: Optional[float] = None
        self.history: List[Transition] = []

    def _enter(self, state: BatchState, batch_index: Optional[int] = None, until: Optional[float] = None) -> None:
        self.state = state
        self.batch_index = batch_index
        self.wait_until = until
        self.history.append(Transition(state, batch_index, until))

    async def run(self, reviews: Sequence[NormalizedReview]) -> List[SentimentResult]:
        if self.state is not BatchState.IDLE:
            raise RuntimeError(f"BatchScheduler already {self.state.value}")

        batches = partition(reviews, self.batch_size)
        results: List[SentimentResult] = []

        for i, batch in enumerate(batches):
            if i > 0:
                until = self.clock.now() + self.delay_seconds
                self._enter(BatchState.WAITING, i - 1, until)
                logger.info("Waiting %.0fs before next batch...", self.delay_seconds)
                await self.clock.sleep(max(0.0, until - self.clock.now()))

            self._enter(BatchState.DISPATCHING, i)
            logger.info("Analyzing batch %d/%d (%d reviews)...", i + 1, len(batches), len(batch))
            results.extend(await self.classify(batch))

        self._enter(BatchState.DONE)
        return results
