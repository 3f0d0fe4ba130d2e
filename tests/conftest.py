"""
Shared fixtures for the KimbleAI test suite.
Run with: python -m pytest tests/ -v
(No API calls are made: Claude is a MagicMock and embeddings come from a
tiny bag-of-words model, so tests run offline against an in-memory Chroma.)
"""

import os
import random
import sys
import uuid
from unittest.mock import MagicMock

import chromadb
import pytest

# Add project root to path so kimble can be imported without installing it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kimble.embeddings import Embedder  # noqa: E402
from kimble.knowledge import KnowledgeRetriever, KnowledgeStore  # noqa: E402

VOCAB = ["dragon", "recipe", "garden", "taxes", "school", "music", "travel", "soccer"]


class FakeEmbedModel:
    """Counts vocabulary words; the trailing constant keeps every vector non-zero."""

    def __init__(self):
        self.calls = 0

    def _vector(self, text):
        self.calls += 1
        words = text.lower().split()
        return [float(sum(1 for w in words if w.startswith(v))) for v in VOCAB] + [0.1]

    def get_text_embedding(self, text):
        return self._vector(text)

    def get_query_embedding(self, text):
        return self._vector(text)


class BrokenEmbedModel:
    def get_text_embedding(self, text):
        raise RuntimeError("embedding service unavailable")

    get_query_embedding = get_text_embedding


def make_claude_response(text):
    response = MagicMock()
    response.content = [MagicMock(text=text)]
    return response


@pytest.fixture
def embedder():
    return Embedder(model=FakeEmbedModel(), timeout=5.0)


@pytest.fixture
def store(embedder):
    client = chromadb.EphemeralClient()
    # Ephemeral clients share one in-memory system per process; isolate by name.
    return KnowledgeStore(client=client, collection_name=f"test_{uuid.uuid4().hex}", embedder=embedder)


@pytest.fixture
def retriever(store):
    return KnowledgeRetriever(store)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def claude():
    client = MagicMock()
    client.messages.create.return_value = make_claude_response("Here is what I found.")
    return client
