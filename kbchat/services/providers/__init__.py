"""External provider clients: embeddings, completions and the vector index."""

import logging
from dataclasses import dataclass
from typing import Optional

from openai import AsyncOpenAI

from kbchat.core.config import Settings, settings as default_settings
from kbchat.services.providers.base import (
    CompletionProvider,
    EmbeddingProvider,
    VectorIndex,
    VectorMatch,
    VectorRecord,
)
from kbchat.services.providers.memory_index import InMemoryVectorIndex
from kbchat.services.providers.openai_provider import (
    OpenAICompletionClient,
    OpenAIEmbeddingClient,
    create_openai_client,
)
from kbchat.services.providers.qdrant_index import QdrantVectorIndex

logger = logging.getLogger(__name__)


@dataclass
class RagClients:
    """Provider clients built once per process and injected into services."""

    embedder: EmbeddingProvider
    completer: CompletionProvider
    vector_index: VectorIndex
    openai_client: Optional[AsyncOpenAI] = None

    async def aclose(self) -> None:
        await self.vector_index.close()
        await self.embedder.close()
        await self.completer.close()
        if self.openai_client is not None:
            await self.openai_client.close()


def build_clients(config: Optional[Settings] = None) -> RagClients:
    """Construct the provider clients from settings."""
    config = config or default_settings
    openai_client = create_openai_client(
        api_key=config.OPENAI_API_KEY,
        base_url=config.OPENAI_BASE_URL,
        timeout=config.PROVIDER_TIMEOUT_SECONDS,
    )

    if config.VECTOR_INDEX_BACKEND == "memory":
        logger.warning("Using in-memory vector index - vectors are lost on restart")
        vector_index: VectorIndex = InMemoryVectorIndex()
    else:
        vector_index = QdrantVectorIndex(
            base_url=config.QDRANT_URL,
            collection=config.QDRANT_COLLECTION,
            api_key=config.QDRANT_API_KEY,
            timeout=config.PROVIDER_TIMEOUT_SECONDS,
            upsert_batch_size=config.VECTOR_UPSERT_BATCH_SIZE,
        )

    return RagClients(
        embedder=OpenAIEmbeddingClient(
            openai_client,
            model=config.EMBEDDING_MODEL,
            dimensions=config.EMBEDDING_DIMENSIONS,
            batch_size=config.EMBEDDING_BATCH_SIZE,
        ),
        completer=OpenAICompletionClient(openai_client, model=config.CHAT_MODEL),
        vector_index=vector_index,
        openai_client=openai_client,
    )


__all__ = [
    "RagClients",
    "build_clients",
    "CompletionProvider",
    "EmbeddingProvider",
    "VectorIndex",
    "VectorMatch",
    "VectorRecord",
    "InMemoryVectorIndex",
    "QdrantVectorIndex",
    "OpenAIEmbeddingClient",
    "OpenAICompletionClient",
]
