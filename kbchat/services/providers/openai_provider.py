"""OpenAI-backed embedding and chat-completion clients."""

import logging
from typing import List, Optional

from openai import APITimeoutError, AsyncOpenAI, OpenAIError

from kbchat.core.errors import CompletionError, EmbeddingError
from kbchat.services.providers.base import ChatMessageDict, CompletionProvider, EmbeddingProvider

logger = logging.getLogger(__name__)

# OpenAI accepts at most 2048 inputs per embeddings request
MAX_EMBEDDING_BATCH_SIZE = 2048


def create_openai_client(
    api_key: str,
    base_url: Optional[str] = None,
    timeout: float = 30.0,
) -> Optional[AsyncOpenAI]:
    """Create the shared AsyncOpenAI client, or None when no key is configured."""
    if not api_key:
        logger.warning("OPENAI_API_KEY not set - embedding and completion calls will fail")
        return None
    return AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=2)


class OpenAIEmbeddingClient(EmbeddingProvider):
    """Embeddings through the OpenAI embeddings endpoint."""

    def __init__(
        self,
        client: Optional[AsyncOpenAI],
        model: str = "text-embedding-3-small",
        dimensions: int = 1024,
        batch_size: int = MAX_EMBEDDING_BATCH_SIZE,
    ):
        self.client = client
        self.model = model
        self.dimensions = dimensions
        self.batch_size = max(1, min(batch_size, MAX_EMBEDDING_BATCH_SIZE))

    def _require_client(self) -> AsyncOpenAI:
        if self.client is None:
            raise EmbeddingError("OpenAI client is not configured (OPENAI_API_KEY missing)")
        return self.client

    async def _create(self, inputs: List[str] | str) -> List[List[float]]:
        client = self._require_client()
        try:
            response = await client.embeddings.create(
                model=self.model,
                input=inputs,
                dimensions=self.dimensions,
            )
        except APITimeoutError as e:
            logger.error(f"Embedding request timed out: {e}")
            raise EmbeddingError("Embedding request timed out", timed_out=True) from e
        except OpenAIError as e:
            logger.error(f"Error generating embeddings: {e}")
            raise EmbeddingError(f"Embedding request failed: {e}") from e

        # The API may return items out of input order
        items = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in items]

    async def embed(self, text: str) -> List[float]:
        embeddings = await self._create(text)
        if not embeddings:
            raise EmbeddingError("Embedding provider returned no vector")
        return embeddings[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        all_embeddings: List[List[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start:start + self.batch_size]
            embeddings = await self._create(batch)
            if len(embeddings) != len(batch):
                raise EmbeddingError(
                    f"Embedding provider returned {len(embeddings)} vectors for {len(batch)} inputs"
                )
            all_embeddings.extend(embeddings)
            logger.info(
                f"Generated embeddings for batch {start // self.batch_size + 1} ({len(batch)} texts)"
            )
        return all_embeddings


class OpenAICompletionClient(CompletionProvider):
    """Chat completions through the OpenAI chat endpoint."""

    def __init__(self, client: Optional[AsyncOpenAI], model: str = "gpt-4o-mini"):
        self.client = client
        self.model = model

    async def complete(
        self,
        messages: List[ChatMessageDict],
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> str:
        if self.client is None:
            raise CompletionError("OpenAI client is not configured (OPENAI_API_KEY missing)")
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except APITimeoutError as e:
            logger.error(f"Chat completion timed out: {e}")
            raise CompletionError("Chat completion timed out", timed_out=True) from e
        except OpenAIError as e:
            logger.error(f"Error generating chat completion: {e}")
            raise CompletionError(f"Chat completion failed: {e}") from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
