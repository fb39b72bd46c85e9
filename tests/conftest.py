import os
import tempfile

# Configure an isolated writable test database BEFORE importing the app.
# Use a temp file so parallel runs / reruns don't collide.
_tmp_db_path = os.path.join(tempfile.gettempdir(), f"kana_insights_test_{os.getpid()}.db")
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp_db_path}"
os.environ["LLM_PROVIDER"] = "gemini"
os.environ["GEMINI_API_KEY"] = ""
if os.path.exists(_tmp_db_path):
    os.remove(_tmp_db_path)

import csv
import json
import re
from io import StringIO

import pytest
from fastapi.testclient import TestClient

from apps.api.app.db import SessionLocal, engine
from apps.api.app.deps import get_clock, get_model_client
from apps.api.app.main import app
from apps.api.app.models import Base
from apps.api.app.queries import clear_all

Base.metadata.create_all(bind=engine)

NEGATIVE_CUES = ("lelet", "lambat", "lama", "jelek", "mahal", "kecewa", "buruk")
POSITIVE_CUES = ("enak", "mantap", "bagus", "puas", "oke", "love", "suka")
ENTITY_CUES = [
    ("Service", ("pelayanan", "lelet", "lambat", "kasir", "staff")),
    ("Price", ("harga", "mahal", "murah")),
    ("Ambiance", ("tempat", "cozy", "suasana")),
    ("Location", ("lokasi", "parkir")),
    ("Quality", ("enak", "rasa", "kopi")),
]


def keyword_model(prompt: str) -> str:
    """Stands in for the LLM: follows the rubric's keyword cues, answers in a fenced block."""
    items = []
    for mention_id, content in re.findall(r'^ID: (\S+)\nReview: "(.*)"$', prompt, flags=re.M):
        text = content.lower()
        if any(w in text for w in NEGATIVE_CUES):
            sentiment, score = "negative", 0.2
        elif any(w in text for w in POSITIVE_CUES):
            sentiment, score = "positive", 0.8
        else:
            sentiment, score = "neutral", 0.5
        entity = next((e for e, cues in ENTITY_CUES if any(c in text for c in cues)), "General")
        items.append({"mentionId": mention_id, "sentiment": sentiment, "score": score, "entity": entity})
    return "```json\n" + json.dumps(items) + "\n```"


class ScriptedModelClient:
    """Pops queued responses (str or exception); falls back to `handler`."""

    def __init__(self, responses=None, handler=keyword_model):
        self.responses = list(responses or [])
        self.handler = handler
        self.prompts = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.responses:
            item = self.responses.pop(0)
            if isinstance(item, BaseException):
                raise item
            return item
        return self.handler(prompt)

    def close(self):
        pass


class FakeClock:
    """Records sleeps and advances virtual time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.t = start
        self.sleeps = []

    def now(self) -> float:
        return self.t

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.t += seconds


def make_csv(rows, header=("content", "date")) -> bytes:
    buf = StringIO()
    writer = csv.writer(buf)
    writer.writerow(header)
    writer.writerows(rows)
    return buf.getvalue().encode("utf-8")


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def model_client():
    return ScriptedModelClient()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        with SessionLocal() as s:
            clear_all(s)


@pytest.fixture
def client(model_client, fake_clock):
    app.dependency_overrides[get_model_client] = lambda: model_client
    app.dependency_overrides[get_clock] = lambda: fake_clock
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    with SessionLocal() as s:
        clear_all(s)
