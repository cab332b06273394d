"""Shared fixtures: fake embedding client, fake extractor, engine factory."""
import asyncio
import re
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from ragengine.config import RAGSettings
from ragengine.embedding_client import EmbeddingClient
from ragengine.errors import EmbeddingTimeoutError, ExtractionError
from ragengine.rag.engine import RAGEngine
from ragengine.rag.vector_index import BruteForceIndex

VOCABULARY = ["alpha", "beta", "gamma", "delta", "epsilon", "fox", "sunny", "rain"]


class FakeEmbeddingClient(EmbeddingClient):
    """Bag-of-words embeddings over a fixed vocabulary.

    Dimension 0 is a constant bias so no vector is ever all zeros.
    """

    def __init__(
        self,
        vocabulary: List[str] = None,
        fail_when: Optional[Callable[[str], bool]] = None,
        error_factory: Callable[[], Exception] = lambda: EmbeddingTimeoutError("timed out"),
    ):
        super().__init__(base_url="http://embeddings.test", model="fake-embed")
        self.vocabulary = vocabulary or VOCABULARY
        self.fail_when = fail_when
        self.error_factory = error_factory
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None

    def vectorize(self, text: str) -> List[float]:
        tokens = re.findall(r"[a-z]+", text.lower())
        return [1.0] + [float(tokens.count(word)) for word in self.vocabulary]

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_when is not None and self.fail_when(text):
            raise self.error_factory()
        return self.vectorize(text)


class FakeExtractor:
    def __init__(self, text: str = None):
        self.text = text

    async def extract(self, path: Path) -> str:
        if self.text is None:
            raise ExtractionError(f"pdftotext is not installed (needed for {path.name})")
        return self.text


def make_sentence(word: str, length: int = 120) -> str:
    """A sentence of exactly ``length`` characters mentioning ``word`` once."""
    body = (f"Topic {word} " + "lorem " * 40)[: length - 1]
    return body + "."


@pytest.fixture
def fake_client() -> FakeEmbeddingClient:
    return FakeEmbeddingClient()


@pytest.fixture
def settings() -> RAGSettings:
    return RAGSettings(chunk_size=128, chunk_overlap=0, top_k=3, index_backend="exact")


@pytest.fixture
def make_engine(settings, fake_client):
    def _make(**overrides) -> RAGEngine:
        return RAGEngine(
            settings=overrides.pop("settings", settings),
            embedding_client=overrides.pop("embedding_client", fake_client),
            extractor=overrides.pop("extractor", FakeExtractor()),
            index=overrides.pop("index", BruteForceIndex()),
        )

    return _make


@pytest.fixture
def five_sentence_file(tmp_path) -> Path:
    words = ["alpha", "beta", "gamma", "delta", "epsilon"]
    path = tmp_path / "five.txt"
    path.write_text(" ".join(make_sentence(w) for w in words), encoding="utf-8")
    return path


@pytest.fixture
def fake_client_cls():
    return FakeEmbeddingClient


@pytest.fixture
def fake_extractor_cls():
    return FakeExtractor


@pytest.fixture
def sentence():
    return make_sentence
