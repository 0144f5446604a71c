"""Ingestion pipeline: PDF text -> chunks -> embeddings -> vector index."""

import logging
from datetime import datetime, UTC
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.core.config import settings
from kbchat.core.constants import vector_record_id
from kbchat.core.errors import EmbeddingError, ExtractionError, KnowledgeBaseError
from kbchat.services.ingestion.chunking import TextChunk, TextChunker
from kbchat.services.ingestion.extraction import PDFTextExtractor
from kbchat.services.knowledge_base.service import KnowledgeBaseService
from kbchat.services.providers import RagClients
from kbchat.services.providers.base import VectorRecord

logger = logging.getLogger(__name__)


def build_chunker(config=settings) -> TextChunker:
    return TextChunker(
        max_tokens=config.CHUNK_MAX_TOKENS,
        overlap_words=config.CHUNK_OVERLAP_WORDS,
        tokenizer=config.CHUNK_TOKENIZER,
        model=config.TOKENIZER_MODEL,
    )


def build_records(document_id: str, chunks: List[TextChunk], embeddings: List[List[float]],
                  metadata: Dict[str, Any]) -> List[VectorRecord]:
    """One vector record per chunk, keyed by document id and chunk index."""
    return [
        VectorRecord(
            id=vector_record_id(document_id, chunk.index),
            values=embedding,
            metadata={
                **metadata,
                "text": chunk.text,
                "chunk_index": chunk.index,
                "token_count": chunk.token_count,
            },
        )
        for chunk, embedding in zip(chunks, embeddings)
    ]


class IngestionPipeline:
    """Runs one document through extraction, chunking, embedding and upsert.

    Each run opens its own short-lived database sessions so it can execute
    outside the request that created the document.
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession],
        clients: RagClients,
        extractor: Optional[PDFTextExtractor] = None,
        chunker: Optional[TextChunker] = None,
    ):
        self.session_factory = session_factory
        self.clients = clients
        self.extractor = extractor or PDFTextExtractor()
        self.chunker = chunker or build_chunker()

    async def ingest(self, document_id: str) -> Dict[str, Any]:
        """Ingest a pending document.

        Failures are recorded on the document and never raised. A document
        deleted while it was being ingested ends ``aborted`` and any vectors
        written for it are removed again.

        Args:
            document_id: ID of a document in ``pending``

        Returns:
            Dictionary with the processing result
        """
        async with self.session_factory() as session:
            knowledge_base = KnowledgeBaseService(session)
            if not await knowledge_base.claim(document_id):
                logger.warning(f"Document {document_id} is not pending, skipping ingestion")
                return {"status": "skipped", "document_id": document_id}
            document = await knowledge_base.find_document(document_id)
            if document is None:
                logger.warning(f"Document {document_id} was deleted before ingestion started")
                return {"status": "aborted", "document_id": document_id}
            file_path = document.file_path
            namespace = document.namespace
            metadata = {
                "file_name": document.file_name,
                "chatbot_type": document.chatbot_type.value,
                "document_id": document.id,
                "uploaded_at": _isoformat(document.uploaded_at),
            }

        try:
            chunk_count = await self._run(document_id, file_path, namespace, metadata)
        except Exception as e:
            logger.error(f"Error ingesting document {document_id}: {e}")
            await self._record_failure(document_id, namespace, str(e) or type(e).__name__)
            return {"status": "failed", "document_id": document_id, "error": str(e)}

        async with self.session_factory() as session:
            knowledge_base = KnowledgeBaseService(session)
            if await knowledge_base.mark_completed(document_id, chunk_count):
                return {"status": "completed", "document_id": document_id, "chunk_count": chunk_count}
            if await self._discard_if_deleted(knowledge_base, document_id, namespace):
                return {"status": "aborted", "document_id": document_id}
        return {"status": "skipped", "document_id": document_id}

    async def _run(self, document_id: str, file_path: str, namespace: str, metadata: Dict[str, Any]) -> int:
        text = await self.extractor.extract_async(file_path)

        chunks = self.chunker.chunk(text)
        if not chunks:
            raise ExtractionError("No text content found in PDF")
        logger.info(f"Document {document_id}: created {len(chunks)} chunks")

        embeddings = await self.clients.embedder.embed_batch([chunk.text for chunk in chunks])
        if len(embeddings) != len(chunks):
            raise EmbeddingError(f"Expected {len(chunks)} embeddings, got {len(embeddings)}")

        metadata = {**metadata, "ingested_at": datetime.now(UTC).isoformat()}
        records = build_records(document_id, chunks, embeddings, metadata)
        await self.clients.vector_index.upsert(namespace, records)
        logger.info(f"Document {document_id}: upserted {len(records)} vectors into {namespace}")
        return len(records)

    async def _discard_if_deleted(
        self, knowledge_base: KnowledgeBaseService, document_id: str, namespace: str
    ) -> bool:
        """Remove the vectors of a document whose record no longer exists."""
        if await knowledge_base.find_document(document_id) is not None:
            logger.warning(f"Document {document_id} was claimed again, leaving its vectors in place")
            return False
        logger.warning(f"Document {document_id} was deleted during ingestion, removing its vectors")
        try:
            await self.clients.vector_index.delete_document(namespace, document_id)
        except KnowledgeBaseError as e:
            logger.error(f"Could not remove vectors of deleted document {document_id}: {e.message}")
        return True

    async def _record_failure(self, document_id: str, namespace: str, error_message: str) -> None:
        try:
            async with self.session_factory() as session:
                knowledge_base = KnowledgeBaseService(session)
                if not await knowledge_base.mark_failed(document_id, error_message):
                    await self._discard_if_deleted(knowledge_base, document_id, namespace)
        except Exception as e:
            # The stale-claim sweep releases the document later
            logger.error(f"Could not mark document {document_id} as failed: {e}")


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None
