"""Shared fixtures for MemoryOS tests."""

from datetime import datetime, timedelta, timezone

import pytest

from memoryos.core.engine import MemoryEngine
from memoryos.llm.client import CompletionError
from memoryos.llm.service import ResponseGenerator
from memoryos.memory.embedding_model import HashingEmbedder
from memoryos.memory.models import SHARED_USER_ID, Memory
from memoryos.memory.storage import InMemoryStorage
from memoryos.retrieval.retriever import RankingConfig


BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


class FakeCompletionClient:
    """Records requests and replays a scripted reply or error."""

    def __init__(self, reply="OK", error=None):
        self.reply = reply
        self.error = error
        self.requests = []

    def complete(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.reply


@pytest.fixture
def embedder():
    return HashingEmbedder()


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def make_memory(embedder):
    """Build a memory; `age` orders creation times (larger is older)."""

    def _make(title, content, type="note", tags=None, user_id=SHARED_USER_ID,
              age=0, embed=True, **extra):
        return Memory(
            user_id=user_id,
            title=title,
            content=content,
            type=type,
            tags=tags or [],
            embedding=embedder.encode(f"{title} {content}") if embed else None,
            created_at=BASE_TIME - timedelta(minutes=age),
            updated_at=BASE_TIME - timedelta(minutes=age),
            **extra,
        )

    return _make


@pytest.fixture
def ranking():
    return RankingConfig()


@pytest.fixture
def engine(storage, embedder, ranking):
    return MemoryEngine(
        storage=storage,
        generator=ResponseGenerator(client=None),
        embedder=embedder,
        ranking=ranking,
    )


@pytest.fixture
def failing_client():
    return FakeCompletionClient(error=CompletionError("boom"))
