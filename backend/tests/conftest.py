import os
import tempfile

# Keep the app's default engine away from the working directory
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(tempfile.mkdtemp(prefix="learnboost-"), "app.db")
os.environ.pop("GEMINI_API_KEY", None)

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from learnboost import models  # noqa: F401  registers the knowledge_tests table
from learnboost.db import Base, make_engine, make_session_factory
from learnboost.main import app
from learnboost.routers.knowledge_tests import get_gemini_client, get_store
from learnboost.schemas import Question, Test
from learnboost.store import PassageStore


class StubGemini:
    """Stands in for GeminiClient: replays canned model output in order."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.prompts = []
        self.token_budgets = []

    def queue(self, *responses):
        self.responses.extend(responses)

    async def generate(self, prompt, *, max_output_tokens=800, temperature=0.2):
        self.prompts.append(prompt)
        self.token_budgets.append(max_output_tokens)
        reply = self.responses.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_test(questions, test_id="test_fixture"):
    return Test(
        id=test_id,
        name="Fixture",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        source_text="The sun is a star.",
        questions=questions,
        results=[],
    )


def two_questions():
    return [
        Question(id="q1", prompt="What is the sun?", choices=["planet", "star", "moon", "comet"], correct_index=1),
        Question(id="q2", prompt="Is it hot?", choices=["yes", "no", "maybe", "never"], correct_index=0),
    ]


@pytest.fixture
def store(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'kt.db'}")
    Base.metadata.create_all(bind=engine)
    yield PassageStore(make_session_factory(engine))
    engine.dispose()


@pytest.fixture
def gemini():
    return StubGemini()


@pytest.fixture
def client(store, gemini):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gemini_client] = lambda: gemini
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
