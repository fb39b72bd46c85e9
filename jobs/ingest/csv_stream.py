import codecs
import csv
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterable, AsyncIterator, Dict, List, Optional, Tuple

from jobs.ingest.normalize import normalize_csv_row
from jobs.schemas import NormalizedReview

logger = logging.getLogger(__name__)

# csv raises this (strict mode) when input ends inside a quoted field.
_UNTERMINATED = "unexpected end of data"

# Largest single field accepted. csv.field_size_limit is process-wide.
FIELD_SIZE_LIMIT = 1024 * 1024


class IngestError(Exception):
    """Upload could not be read to the end; nothing from it may be persisted."""


class IngestParseError(IngestError):
    pass


class IngestStreamError(IngestError):
    pass


class StreamingCSVParser:
    """
    Incremental CSV parser fed with raw byte chunks.

    Only the current partial line (or the lines of one record with an open
    quoted field) is buffered, so memory does not grow with the upload.
    The first record is the header; every later record is returned as
    (1-based row ordinal, dict keyed by header column). Blank lines are
    skipped and do not consume an ordinal. A field longer than
    `field_size_limit` characters is a parse error.
    """

    def __init__(self, encoding: str = "utf-8-sig", field_size_limit: int = FIELD_SIZE_LIMIT):
        csv.field_size_limit(field_size_limit)
        self._decoder = codecs.getincrementaldecoder(encoding)()
        self._buffer = ""
        self._pending: List[str] = []
        self.header: Optional[List[str]] = None
        self.line_number = 0
        self.rows = 0

    def feed(self, chunk: bytes) -> List[Tuple[int, Dict[str, str]]]:
        self._buffer += self._decode(chunk, final=False)
        *lines, self._buffer = self._buffer.split("\n")

        out: List[Tuple[int, Dict[str, str]]] = []
        for line in lines:
            out.extend(self._consume(line + "\n"))
        return out

    def close(self) -> List[Tuple[int, Dict[str, str]]]:
        self._buffer += self._decode(b"", final=True)
        out: List[Tuple[int, Dict[str, str]]] = []
        if self._buffer:
            line, self._buffer = self._buffer, ""
            out.extend(self._consume(line))

        if self._pending:
            raise IngestParseError(f"Unterminated quoted field starting near line {self.line_number}")
        if self.header is None:
            raise IngestParseError("CSV header row is missing")
        return out

    def _decode(self, chunk: bytes, final: bool) -> str:
        try:
            return self._decoder.decode(chunk, final)
        except UnicodeDecodeError as e:
            raise IngestParseError(f"Invalid text encoding near line {self.line_number + 1}: {e.reason}") from e

    def _consume(self, line: str) -> List[Tuple[int, Dict[str, str]]]:
        self.line_number += 1
        self._pending.append(line)

        if not "".join(self._pending).strip("\r\n"):
            self._pending = []
            return []

        try:
            records = list(csv.reader(self._pending, strict=True))
        except csv.Error as e:
            if str(e) == _UNTERMINATED:
                return []
            self._pending = []
            raise IngestParseError(f"Malformed CSV at line {self.line_number}: {e}") from e

        self._pending = []
        if len(records) != 1:
            raise IngestParseError(f"Malformed CSV at line {self.line_number}: unexpected line break")
        fields = records[0]

        if self.header is None:
            if not any(name.strip() for name in fields):
                raise IngestParseError("CSV header row is empty")
            self.header = fields
            return []

        if len(fields) != len(self.header):
            raise IngestParseError(
                f"Row {self.rows + 1} (line {self.line_number}) has {len(fields)} fields, "
                f"expected {len(self.header)}"
            )
        self.rows += 1
        return [(self.rows, dict(zip(self.header, fields)))]


@dataclass
class IngestOutcome:
    ok: bool
    rows: int
    reviews: List[NormalizedReview] = field(default_factory=list)
    error: Optional[IngestError] = None


class CSVIngestor:
    """
    Turns an uploaded byte stream into NormalizedReview records.

    `stream()` is lazy and raises IngestError on the first fault; `collect()`
    drains it and reports success or failure as an IngestOutcome.
    """

    def __init__(
        self,
        platform: str,
        now: Optional[datetime] = None,
        field_size_limit: int = FIELD_SIZE_LIMIT,
    ):
        self.platform = platform
        self.now = now
        self.parser = StreamingCSVParser(field_size_limit=field_size_limit)

    @property
    def rows(self) -> int:
        return self.parser.rows

    async def stream(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[NormalizedReview]:
        iterator = chunks.__aiter__()
        while True:
            try:
                chunk = await iterator.__anext__()
            except StopAsyncIteration:
                break
            except Exception as e:
                raise IngestStreamError(f"Upload stream failed: {str(e) or type(e).__name__}") from e

            for ordinal, row in self.parser.feed(chunk):
                review = normalize_csv_row(row, self.platform, ordinal, now=self.now)
                if review is not None:
                    yield review

        for ordinal, row in self.parser.close():
            review = normalize_csv_row(row, self.platform, ordinal, now=self.now)
            if review is not None:
                yield review

    async def collect(self, chunks: AsyncIterable[bytes]) -> IngestOutcome:
        reviews: List[NormalizedReview] = []
        try:
            async for review in self.stream(chunks):
                reviews.append(review)
        except IngestError as e:
            logger.error("CSV ingestion failed after %d rows: %s", self.rows, e)
            return IngestOutcome(ok=False, rows=self.rows, error=e)

        logger.info("CSV parsing complete. rows=%d valid=%d", self.rows, len(reviews))
        return IngestOutcome(ok=True, rows=self.rows, reviews=reviews)