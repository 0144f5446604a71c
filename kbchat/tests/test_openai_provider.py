from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from openai import APITimeoutError, OpenAIError

from kbchat.core.errors import CompletionError, EmbeddingError
from kbchat.services.providers.openai_provider import (
    OpenAICompletionClient,
    OpenAIEmbeddingClient,
    create_openai_client,
)


def embedding_response(vectors, reverse=False):
    items = [SimpleNamespace(index=i, embedding=vector) for i, vector in enumerate(vectors)]
    if reverse:
        items.reverse()
    return SimpleNamespace(data=items)


@pytest.fixture
def mock_openai():
    client = MagicMock()
    client.embeddings.create = AsyncMock()
    client.chat.completions.create = AsyncMock()
    return client


def test_no_api_key_means_no_client():
    assert create_openai_client("") is None


@pytest.mark.asyncio
async def test_embed_batch_splits_into_provider_batches(mock_openai):
    mock_openai.embeddings.create.side_effect = lambda model, input, dimensions: embedding_response(
        [[float(len(text))] for text in input]
    )
    embedder = OpenAIEmbeddingClient(mock_openai, dimensions=8, batch_size=2)

    vectors = await embedder.embed_batch(["a", "bb", "ccc", "dddd", "eeeee"])

    assert vectors == [[1.0], [2.0], [3.0], [4.0], [5.0]]
    assert mock_openai.embeddings.create.await_count == 3
    assert mock_openai.embeddings.create.await_args.kwargs["dimensions"] == 8


@pytest.mark.asyncio
async def test_embeddings_are_returned_in_input_order(mock_openai):
    mock_openai.embeddings.create.return_value = embedding_response([[0.0], [1.0], [2.0]], reverse=True)
    embedder = OpenAIEmbeddingClient(mock_openai)

    assert await embedder.embed_batch(["x", "y", "z"]) == [[0.0], [1.0], [2.0]]


def test_batch_size_is_capped_at_provider_limit(mock_openai):
    assert OpenAIEmbeddingClient(mock_openai, batch_size=10_000).batch_size == 2048


@pytest.mark.asyncio
async def test_embedding_timeout_is_typed(mock_openai):
    mock_openai.embeddings.create.side_effect = APITimeoutError(
        request=httpx.Request("POST", "https://api.openai.com/v1/embeddings")
    )
    embedder = OpenAIEmbeddingClient(mock_openai)

    with pytest.raises(EmbeddingError) as exc_info:
        await embedder.embed("question")

    assert exc_info.value.timed_out is True


@pytest.mark.asyncio
async def test_embedding_provider_error_is_typed(mock_openai):
    mock_openai.embeddings.create.side_effect = OpenAIError("invalid key")

    with pytest.raises(EmbeddingError, match="invalid key"):
        await OpenAIEmbeddingClient(mock_openai).embed("question")


@pytest.mark.asyncio
async def test_embedding_without_client_fails():
    with pytest.raises(EmbeddingError):
        await OpenAIEmbeddingClient(None).embed("question")


@pytest.mark.asyncio
async def test_complete_passes_generation_options(mock_openai):
    mock_openai.chat.completions.create.return_value = SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content="Book a consultation."))]
    )
    completer = OpenAICompletionClient(mock_openai, model="gpt-4o-mini")
    messages = [{"role": "user", "content": "Hello"}]

    text = await completer.complete(messages, temperature=0.3, max_tokens=123)

    assert text == "Book a consultation."
    kwargs = mock_openai.chat.completions.create.await_args.kwargs
    assert kwargs == {"model": "gpt-4o-mini", "messages": messages, "temperature": 0.3, "max_tokens": 123}


@pytest.mark.asyncio
async def test_completion_timeout_is_typed(mock_openai):
    mock_openai.chat.completions.create.side_effect = APITimeoutError(
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    )

    with pytest.raises(CompletionError) as exc_info:
        await OpenAICompletionClient(mock_openai).complete([{"role": "user", "content": "Hi"}])

    assert exc_info.value.status_code == 504
