"""Hands ingestion runs to a background runner."""

import asyncio
import logging
from datetime import datetime, timedelta, UTC
from typing import Callable, List, Optional, Set

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.core.config import settings
from kbchat.services.ingestion.pipeline import IngestionPipeline
from kbchat.services.knowledge_base.service import KnowledgeBaseService

logger = logging.getLogger(__name__)

BACKGROUND = "background"
CELERY = "celery"


class IngestionDispatcher:
    """Submits document ingestion without blocking the caller.

    ``background`` runs the pipeline in this process after the response is
    sent. ``celery`` enqueues the ``ingest_document`` task for a worker.
    """

    def __init__(self, pipeline: IngestionPipeline, backend: str = BACKGROUND):
        if backend not in (BACKGROUND, CELERY):
            raise ValueError(f"Unknown ingestion backend: {backend}")
        self.pipeline = pipeline
        self.backend = backend
        self._tasks: Set[asyncio.Task] = set()

    async def dispatch(self, document_id: str, background_tasks: Optional[BackgroundTasks] = None) -> None:
        if self.backend == CELERY:
            from kbchat.worker.tasks import ingest_document

            # Publishing to the broker blocks
            await asyncio.to_thread(ingest_document.delay, document_id)
            logger.info(f"Queued ingestion task for document {document_id}")
            return

        if background_tasks is not None:
            background_tasks.add_task(self.pipeline.ingest, document_id)
        else:
            task = asyncio.create_task(self.pipeline.ingest(document_id))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        logger.info(f"Scheduled background ingestion for document {document_id}")

    async def recover_stale(
        self,
        session_factory: Callable[[], AsyncSession],
        older_than_minutes: int,
        processing_older_than_minutes: Optional[int] = None,
    ) -> List[str]:
        """Re-dispatch documents stuck in ``pending`` or in an interrupted run.

        Args:
            session_factory: Factory for the session used to find the documents
            older_than_minutes: Age after which a ``pending`` document is stale
            processing_older_than_minutes: Age of a claim after which a
                ``processing`` document is released, defaults to
                settings.STALE_PROCESSING_MINUTES

        Returns:
            IDs of the re-dispatched documents
        """
        now = datetime.now(UTC)
        if processing_older_than_minutes is None:
            processing_older_than_minutes = settings.STALE_PROCESSING_MINUTES
        async with session_factory() as session:
            document_ids = await KnowledgeBaseService(session).collect_stale(
                pending_before=now - timedelta(minutes=older_than_minutes),
                claimed_before=now - timedelta(minutes=processing_older_than_minutes),
            )

        for document_id in document_ids:
            logger.warning(f"Re-dispatching stale document {document_id}")
            await self.dispatch(document_id)
        return document_ids

    async def wait_idle(self) -> None:
        """Wait for in-process ingestion runs started without BackgroundTasks."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
