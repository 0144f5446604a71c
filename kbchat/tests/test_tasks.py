from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kbchat.core.config import settings
from kbchat.core.constants import ChatbotType
from kbchat.services.ingestion.dispatch import IngestionDispatcher
from kbchat.services.knowledge_base.service import KnowledgeBaseService
from kbchat.worker.celery_app import celery_app
from kbchat.worker.tasks import _stale_document_ids, ingest_document, requeue_stale_documents, run_async


@pytest.fixture
def mock_pipeline():
    """Create a mock ingestion pipeline."""
    pipeline = MagicMock()
    pipeline.ingest = AsyncMock(
        return_value={"status": "completed", "document_id": "doc-1", "chunk_count": 3}
    )
    return pipeline


def test_tasks_are_registered():
    assert "ingest_document" in celery_app.tasks
    assert "requeue_stale_documents" in celery_app.tasks
    assert celery_app.conf.beat_schedule["requeue-stale-documents"]["task"] == "requeue_stale_documents"


def test_run_async_returns_coroutine_result():
    async def answer():
        return 42

    assert run_async(answer()) == 42


@patch("kbchat.worker.tasks.get_pipeline")
def test_ingest_document_runs_pipeline(mock_get_pipeline, mock_pipeline):
    mock_get_pipeline.return_value = mock_pipeline

    result = ingest_document("doc-1")

    assert result == {"status": "completed", "document_id": "doc-1", "chunk_count": 3}
    mock_pipeline.ingest.assert_awaited_once_with("doc-1")


@patch("kbchat.worker.tasks.get_pipeline")
def test_ingest_document_reports_failure_result(mock_get_pipeline, mock_pipeline):
    mock_pipeline.ingest.return_value = {"status": "failed", "document_id": "doc-2", "error": "No text"}
    mock_get_pipeline.return_value = mock_pipeline

    result = ingest_document("doc-2")

    assert result["status"] == "failed"
    assert result["error"] == "No text"


@patch("kbchat.worker.tasks.ingest_document")
@patch("kbchat.worker.tasks._stale_document_ids", new_callable=AsyncMock)
def test_requeue_stale_documents(mock_stale_ids, mock_ingest_task):
    mock_stale_ids.return_value = ["doc-a", "doc-b"]

    result = requeue_stale_documents(15)

    assert result == {"status": "success", "requeued": ["doc-a", "doc-b"]}
    mock_stale_ids.assert_awaited_once_with(15, settings.STALE_PROCESSING_MINUTES)
    assert [c.args for c in mock_ingest_task.delay.call_args_list] == [("doc-a",), ("doc-b",)]


@patch("kbchat.worker.tasks.ingest_document")
@patch("kbchat.worker.tasks._stale_document_ids", new_callable=AsyncMock)
def test_requeue_uses_configured_threshold(mock_stale_ids, mock_ingest_task):
    mock_stale_ids.return_value = []

    result = requeue_stale_documents()

    assert result["requeued"] == []
    mock_stale_ids.assert_awaited_once_with(settings.STALE_PENDING_MINUTES, settings.STALE_PROCESSING_MINUTES)
    mock_ingest_task.delay.assert_not_called()


@pytest.mark.asyncio
async def test_stale_document_ids_reads_pending_documents(session_factory):
    async with session_factory() as session:
        document = await KnowledgeBaseService(session).create_document(
            chatbot_type=ChatbotType.MENOPAUSE,
            file_name="hrt.pdf",
            file_path="/tmp/hrt.pdf",
            file_size=10,
            mime_type="application/pdf",
        )

    with patch("kbchat.worker.tasks.AsyncSessionLocal", session_factory):
        assert await _stale_document_ids(0, 60) == [document.id]
        assert await _stale_document_ids(60, 60) == []


@pytest.mark.asyncio
@patch("kbchat.worker.tasks.ingest_document")
async def test_celery_dispatcher_enqueues_task(mock_ingest_task):
    pipeline = MagicMock()
    dispatcher = IngestionDispatcher(pipeline, backend="celery")

    await dispatcher.dispatch("doc-9")

    mock_ingest_task.delay.assert_called_once_with("doc-9")
    pipeline.ingest.assert_not_called()


@pytest.mark.asyncio
@patch("kbchat.services.ingestion.dispatch.asyncio.to_thread", new_callable=AsyncMock)
@patch("kbchat.worker.tasks.ingest_document")
async def test_celery_dispatcher_publishes_off_the_event_loop(mock_ingest_task, mock_to_thread):
    dispatcher = IngestionDispatcher(MagicMock(), backend="celery")

    await dispatcher.dispatch("doc-9")

    mock_to_thread.assert_awaited_once_with(mock_ingest_task.delay, "doc-9")
    mock_ingest_task.delay.assert_not_called()
