"""Async embedding client for an Ollama-compatible service."""
import asyncio
import json
from dataclasses import dataclass
from typing import List, Optional

import httpx
import structlog

from ragengine import config
from ragengine.errors import (
    EmbeddingError,
    EmbeddingNetworkError,
    EmbeddingParseError,
    EmbeddingTimeoutError,
)

logger = structlog.get_logger()


@dataclass(frozen=True)
class EmbeddingCompletion:
    """Outcome of one embedding request issued for a chunk."""

    chunk_id: int
    generation: int
    vector: Optional[List[float]] = None
    error: Optional[EmbeddingError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def dimension(self) -> Optional[int]:
        return len(self.vector) if self.vector is not None else None


class EmbeddingClient:
    """Async client that turns text into embedding vectors.

    Requests beyond ``max_concurrency`` wait for a free slot. Nothing is
    retried here; callers decide what to do with a failure.
    """

    def __init__(
        self,
        base_url: str = None,
        model: str = None,
        timeout: float = None,
        max_concurrency: int = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the embedding client.

        Args:
            base_url: Embedding service base URL (default from config)
            model: Embedding model name (default from config)
            timeout: Per-request timeout in seconds (default from config)
            max_concurrency: Maximum outstanding requests (default from config)
            transport: Optional httpx transport, mainly for tests
        """
        self.base_url = (base_url or config.OLLAMA_BASE_URL).rstrip("/")
        self.model = model or config.EMBEDDING_MODEL
        self.timeout = timeout or config.EMBEDDING_TIMEOUT
        self.max_concurrency = max_concurrency or config.MAX_CONCURRENT_EMBEDDINGS
        self._transport = transport
        self._semaphore = asyncio.Semaphore(self.max_concurrency)

    @classmethod
    def from_settings(cls, settings) -> "EmbeddingClient":
        return cls(
            base_url=settings.base_url,
            model=settings.embedding_model,
            timeout=settings.embedding_timeout,
            max_concurrency=settings.max_concurrent_embeddings,
        )

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/api/embeddings"

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding for a piece of text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingTimeoutError: If the request exceeds the timeout
            EmbeddingNetworkError: On transport or HTTP status errors
            EmbeddingParseError: If the response holds no usable vector
        """
        async with self._semaphore:
            try:
                return await asyncio.wait_for(self._post(text), timeout=self.timeout)
            except asyncio.TimeoutError as e:
                logger.error(
                    "embedding_timeout",
                    model=self.model,
                    timeout=self.timeout,
                    prompt_length=len(text),
                )
                raise EmbeddingTimeoutError(
                    f"Embedding request timed out after {self.timeout}s"
                ) from e

    async def request(self, chunk_id: int, generation: int, text: str) -> EmbeddingCompletion:
        """Embed text on behalf of a chunk and report the outcome.

        Embedding failures are returned in the completion instead of raised.
        """
        try:
            vector = await self.embed(text)
        except EmbeddingError as e:
            return EmbeddingCompletion(chunk_id=chunk_id, generation=generation, error=e)
        return EmbeddingCompletion(chunk_id=chunk_id, generation=generation, vector=vector)

    async def _post(self, text: str) -> List[float]:
        payload = {
            "model": self.model,
            "prompt": text,
        }

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                logger.debug(
                    "embedding_request",
                    model=self.model,
                    prompt_length=len(text),
                )

                response = await client.post(self.endpoint, json=payload)
                response.raise_for_status()

        except httpx.TimeoutException as e:
            logger.error("embedding_timeout", model=self.model, error=str(e))
            raise EmbeddingTimeoutError(f"Embedding request timed out: {e}") from e
        except httpx.HTTPStatusError as e:
            logger.error(
                "embedding_http_error",
                error=str(e),
                status_code=e.response.status_code,
            )
            raise EmbeddingNetworkError(
                f"Embedding service returned HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error("embedding_connection_error", error=str(e), base_url=self.base_url)
            raise EmbeddingNetworkError(f"Embedding request failed: {e}") from e

        embedding = self._parse(response)

        logger.debug(
            "embedding_response",
            model=self.model,
            dimension=len(embedding),
        )

        return embedding

    def _parse(self, response: httpx.Response) -> List[float]:
        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EmbeddingParseError(f"Invalid JSON from embedding service: {e}") from e

        if not isinstance(data, dict):
            raise EmbeddingParseError("Embedding response is not a JSON object")

        embedding = data.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingParseError("Empty or missing embedding in response")

        # bool is an int subclass but never a valid component
        if not all(
            isinstance(value, (int, float)) and not isinstance(value, bool)
            for value in embedding
        ):
            raise EmbeddingParseError("Embedding contains non-numeric values")

        return [float(value) for value in embedding]

    async def list_models(self) -> List[str]:
        """List all models available at the embedding service.

        Raises:
            EmbeddingNetworkError: If the service cannot be reached
            EmbeddingParseError: If the model listing is malformed
        """
        try:
            async with httpx.AsyncClient(timeout=5.0, transport=self._transport) as client:
                response = await client.get(f"{self.base_url}/api/tags")
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("embedding_list_models_error", error=str(e))
            raise EmbeddingNetworkError(f"Could not list models: {e}") from e

        try:
            data = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise EmbeddingParseError(f"Invalid JSON from model listing: {e}") from e

        models = data.get("models", []) if isinstance(data, dict) else None
        if not isinstance(models, list) or not all(
            isinstance(m, dict) and isinstance(m.get("name"), str) for m in models
        ):
            raise EmbeddingParseError("Model listing has an unexpected shape")

        return [m["name"] for m in models]
