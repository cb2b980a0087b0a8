"""
Shared pytest fixtures.

External services are never contacted: the embedder and language model are
small fakes, and storage uses the in-process backend or a MagicMock.
"""

import itertools
from typing import List
from unittest.mock import MagicMock

import pytest

from agent_memory.models.core import Memory, MemoryContent
from agent_memory.services.memory_store import MemoryStore
from agent_memory.utils.local_store import InMemoryStorageBackend

DIMENSION = 8


class FakeEmbedder:
    """Deterministic embedder: character histogram folded into DIMENSION buckets."""

    def __init__(self, dimension: int = DIMENSION):
        self.dimension = dimension
        self.calls: List[str] = []
        self.query_calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        vector = [1.0] * self.dimension
        for ch in text:
            vector[ord(ch) % self.dimension] += 1.0
        return vector

    def embed_query(self, text: str) -> List[float]:
        self.query_calls.append(text)
        return self.embed(text)


class FakeLLM:
    """Returns canned responses and records the prompts it was given."""

    def __init__(self, response: str = '```json\n[]\n```'):
        self.response = response
        self.calls = []

    def complete(self, prompt: str, system_prompt: str) -> str:
        self.calls.append({'prompt': prompt, 'system_prompt': system_prompt})
        return self.response


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def backend() -> InMemoryStorageBackend:
    return InMemoryStorageBackend(dedup_threshold=0.95)


@pytest.fixture
def store(backend, embedder) -> MemoryStore:
    return MemoryStore('messages', backend=backend, embedder=embedder, dimension=DIMENSION)


@pytest.fixture
def mock_backend() -> MagicMock:
    return MagicMock()


@pytest.fixture
def mock_store(mock_backend, embedder) -> MemoryStore:
    return MemoryStore('messages', backend=mock_backend, embedder=embedder, dimension=DIMENSION)


@pytest.fixture
def make_memory():
    """Factory for memories of a fixed user."""

    def _make(text: str = 'I like green tea', user_id: str = 'user-1', action=None, embedding=None) -> Memory:
        return Memory(user_id=user_id, content=MemoryContent(content=text, action=action), embedding=embedding)

    return _make


@pytest.fixture
def names():
    """Name generator cycling through a fixed cast."""
    return itertools.cycle(['Alice', 'Bob', 'Carol', 'Dave', 'Erin'])
