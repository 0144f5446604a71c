"""Celery tasks for knowledge-base ingestion."""

import asyncio
import logging
from datetime import datetime, timedelta, UTC
from typing import Any, Coroutine, List, Optional

from kbchat.core.config import settings
from kbchat.db.session import AsyncSessionLocal
from kbchat.services.ingestion.pipeline import IngestionPipeline
from kbchat.services.knowledge_base.service import KnowledgeBaseService
from kbchat.services.providers import build_clients
from kbchat.worker import celery_app

logger = logging.getLogger(__name__)

_pipeline: Optional[IngestionPipeline] = None


def get_pipeline() -> IngestionPipeline:
    """Pipeline shared by all tasks of this worker process."""
    global _pipeline
    if _pipeline is None:
        _pipeline = IngestionPipeline(AsyncSessionLocal, build_clients(settings))
    return _pipeline


def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = None
    if loop is None or loop.is_closed():
        # If there's no usable event loop in this thread, create one
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


@celery_app.task(name="ingest_document")
def ingest_document(document_id: str) -> dict:
    """Run the ingestion pipeline for one pending document.

    Args:
        document_id: ID of the knowledge document

    Returns:
        Processing results
    """
    logger.info(f"Starting ingestion task for document: {document_id}")
    result = run_async(get_pipeline().ingest(document_id))
    logger.info(f"Ingestion task finished for document {document_id}: {result.get('status')}")
    return result


async def _stale_document_ids(older_than_minutes: int, processing_older_than_minutes: int) -> List[str]:
    now = datetime.now(UTC)
    async with AsyncSessionLocal() as session:
        return await KnowledgeBaseService(session).collect_stale(
            pending_before=now - timedelta(minutes=older_than_minutes),
            claimed_before=now - timedelta(minutes=processing_older_than_minutes),
        )


@celery_app.task(name="requeue_stale_documents")
def requeue_stale_documents(
    older_than_minutes: Optional[int] = None,
    processing_older_than_minutes: Optional[int] = None,
) -> dict:
    """Re-enqueue documents that have been pending too long or whose run was interrupted.

    Args:
        older_than_minutes: Pending age threshold, defaults to settings.STALE_PENDING_MINUTES
        processing_older_than_minutes: Claim age threshold, defaults to settings.STALE_PROCESSING_MINUTES

    Returns:
        IDs of the requeued documents
    """
    pending_minutes = older_than_minutes or settings.STALE_PENDING_MINUTES
    processing_minutes = processing_older_than_minutes or settings.STALE_PROCESSING_MINUTES
    document_ids = run_async(_stale_document_ids(pending_minutes, processing_minutes))
    for document_id in document_ids:
        logger.warning(f"Requeueing stale document {document_id}")
        ingest_document.delay(document_id)
    return {"status": "success", "requeued": document_ids}
