"""Tests for the async embedding client against a mocked HTTP transport."""
import asyncio
import json

import httpx
import pytest

from ragengine.embedding_client import EmbeddingClient
from ragengine.errors import (
    EmbeddingNetworkError,
    EmbeddingParseError,
    EmbeddingTimeoutError,
)


def make_client(handler, **kwargs) -> EmbeddingClient:
    return EmbeddingClient(
        base_url="http://embeddings.test",
        model="nomic-embed-text",
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_embed_posts_model_and_prompt():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"embedding": [0.1, 0.2, 3]})

    vector = await make_client(handler).embed("hello world")

    assert vector == [0.1, 0.2, 3.0]
    assert seen["path"] == "/api/embeddings"
    assert seen["body"] == {"model": "nomic-embed-text", "prompt": "hello world"}


@pytest.mark.asyncio
async def test_http_error_status_is_network_error():
    client = make_client(lambda request: httpx.Response(500, text="model not loaded"))

    with pytest.raises(EmbeddingNetworkError):
        await client.embed("text")


@pytest.mark.asyncio
async def test_connection_failure_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingNetworkError):
        await make_client(handler).embed("text")


@pytest.mark.asyncio
async def test_transport_timeout_is_timeout_error():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    with pytest.raises(EmbeddingTimeoutError):
        await make_client(handler).embed("text")


@pytest.mark.asyncio
async def test_slow_response_hits_request_timeout():
    async def handler(request):
        await asyncio.sleep(1.0)
        return httpx.Response(200, json={"embedding": [1.0]})

    with pytest.raises(EmbeddingTimeoutError):
        await make_client(handler, timeout=0.05).embed("text")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, content=b"not json"),
        httpx.Response(200, json={"model": "nomic-embed-text"}),
        httpx.Response(200, json={"embedding": []}),
        httpx.Response(200, json={"embedding": [0.1, "x"]}),
        httpx.Response(200, json={"embedding": [True, False]}),
        httpx.Response(200, json=[0.1, 0.2]),
    ],
)
async def test_malformed_response_is_parse_error(response):
    client = make_client(lambda request: response)

    with pytest.raises(EmbeddingParseError):
        await client.embed("text")


@pytest.mark.asyncio
async def test_concurrent_requests_are_bounded():
    in_flight = 0
    max_seen = 0

    async def handler(request):
        nonlocal in_flight, max_seen
        in_flight += 1
        max_seen = max(max_seen, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1
        return httpx.Response(200, json={"embedding": [1.0, 0.0]})

    client = make_client(handler, max_concurrency=2)
    vectors = await asyncio.gather(*(client.embed(f"text {i}") for i in range(6)))

    assert len(vectors) == 6
    assert max_seen <= 2


@pytest.mark.asyncio
async def test_request_reports_success_with_dimension():
    client = make_client(lambda request: httpx.Response(200, json={"embedding": [0.5] * 4}))

    completion = await client.request(chunk_id=7, generation=2, text="chunk")

    assert completion.ok
    assert completion.chunk_id == 7
    assert completion.generation == 2
    assert completion.dimension == 4


@pytest.mark.asyncio
async def test_request_reports_failure_instead_of_raising():
    client = make_client(lambda request: httpx.Response(503))

    completion = await client.request(chunk_id=1, generation=0, text="chunk")

    assert not completion.ok
    assert isinstance(completion.error, EmbeddingNetworkError)
    assert completion.vector is None
    assert completion.dimension is None


@pytest.mark.asyncio
async def test_list_models():
    def handler(request):
        assert request.url.path == "/api/tags"
        return httpx.Response(200, json={"models": [{"name": "nomic-embed-text:latest"}]})

    assert await make_client(handler).list_models() == ["nomic-embed-text:latest"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(200, content=b"<html>proxy error</html>"),
        httpx.Response(200, json=["nomic-embed-text"]),
        httpx.Response(200, json={"models": "nomic-embed-text"}),
        httpx.Response(200, json={"models": [{"size": 1}]}),
    ],
)
async def test_list_models_malformed_listing_is_parse_error(response):
    client = make_client(lambda request: response)

    with pytest.raises(EmbeddingParseError):
        await client.list_models()


@pytest.mark.asyncio
async def test_list_models_unreachable_service_is_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingNetworkError):
        await make_client(handler).list_models()
