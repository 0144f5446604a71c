"""Process-wide wiring of provider clients and services."""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.core.config import Settings, settings as default_settings
from kbchat.services.ingestion.dispatch import IngestionDispatcher
from kbchat.services.ingestion.pipeline import IngestionPipeline, build_chunker
from kbchat.services.providers import RagClients, build_clients
from kbchat.services.rag.engine import RAGEngine
from kbchat.services.storage import FileStorage

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    clients: RagClients
    storage: FileStorage
    pipeline: IngestionPipeline
    dispatcher: IngestionDispatcher
    rag_engine: RAGEngine

    async def aclose(self) -> None:
        await self.clients.aclose()


def build_container(
    session_factory: Callable[[], AsyncSession],
    config: Optional[Settings] = None,
    clients: Optional[RagClients] = None,
    storage: Optional[FileStorage] = None,
) -> ServiceContainer:
    """Build every long-lived collaborator once, at process start."""
    config = config or default_settings
    clients = clients or build_clients(config)
    pipeline = IngestionPipeline(session_factory, clients, chunker=build_chunker(config))
    container = ServiceContainer(
        clients=clients,
        storage=storage or FileStorage(config.UPLOAD_DIR),
        pipeline=pipeline,
        dispatcher=IngestionDispatcher(pipeline, backend=config.INGESTION_BACKEND),
        rag_engine=RAGEngine(
            clients,
            top_k=config.RETRIEVAL_TOP_K,
            temperature=config.OPENAI_TEMPERATURE,
            answer_max_tokens=config.ANSWER_MAX_TOKENS,
            fallback_max_tokens=config.FALLBACK_MAX_TOKENS,
        ),
    )
    logger.info(f"Service container ready (ingestion backend: {config.INGESTION_BACKEND})")
    return container
