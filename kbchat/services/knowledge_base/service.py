from datetime import datetime, UTC
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.core.constants import ChatbotType, DocumentStatus, namespace_for
from kbchat.core.errors import NotFoundError
from kbchat.db.models.knowledge_document import KnowledgeDocument
from kbchat.services.providers.base import VectorIndex
from kbchat.services.storage import FileStorage

logger = logging.getLogger(__name__)


def empty_stats() -> Dict[str, int]:
    return {
        "totalDocuments": 0,
        "totalChunks": 0,
        "pendingDocuments": 0,
        "processingDocuments": 0,
        "completedDocuments": 0,
        "failedDocuments": 0,
    }


class KnowledgeBaseService:
    """Service for knowledge-base documents and their status transitions."""

    def __init__(self, db_session: AsyncSession):
        """Initialize the service with a database session.

        Args:
            db_session: SQLAlchemy async session
        """
        self.db = db_session

    async def create_document(
        self,
        chatbot_type: ChatbotType,
        file_name: str,
        file_path: str,
        file_size: int,
        mime_type: str,
        description: Optional[str] = None,
        meta_data: Optional[Dict[str, Any]] = None,
    ) -> KnowledgeDocument:
        """Create a document record in ``pending``.

        Args:
            chatbot_type: Topic scope the document belongs to
            file_name: Original filename as uploaded
            file_path: Where the stored file lives
            file_size: Size in bytes
            mime_type: MIME type of the upload
            description: Optional human description
            meta_data: Optional metadata dictionary

        Returns:
            The created KnowledgeDocument
        """
        chatbot_type = ChatbotType(chatbot_type)
        document = KnowledgeDocument(
            chatbot_type=chatbot_type,
            file_name=file_name,
            file_path=file_path,
            file_size=file_size,
            mime_type=mime_type,
            description=description,
            uploaded_at=datetime.now(UTC),
            chunk_count=0,
            status=DocumentStatus.PENDING,
            namespace=namespace_for(chatbot_type),
            meta_data=meta_data or {},
        )
        try:
            self.db.add(document)
            await self.db.commit()
            await self.db.refresh(document)
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error creating knowledge document: {str(e)}")
            raise

        logger.info(f"Created knowledge document {document.id} ({file_name}) for {chatbot_type.value}")
        return document

    async def find_document(self, document_id: str) -> Optional[KnowledgeDocument]:
        query = (
            select(KnowledgeDocument)
            .where(KnowledgeDocument.id == document_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalars().first()

    async def get_document(self, document_id: str) -> KnowledgeDocument:
        """Get a document by ID.

        Raises:
            NotFoundError: If no such document exists
        """
        document = await self.find_document(document_id)
        if document is None:
            raise NotFoundError("Document not found", details={"id": document_id})
        return document

    async def list_documents(
        self,
        chatbot_type: Optional[ChatbotType] = None,
        status: Optional[DocumentStatus] = None,
    ) -> List[KnowledgeDocument]:
        """List documents, newest upload first, optionally filtered."""
        query = select(KnowledgeDocument).order_by(desc(KnowledgeDocument.uploaded_at))
        if chatbot_type is not None:
            query = query.where(KnowledgeDocument.chatbot_type == ChatbotType(chatbot_type))
        if status is not None:
            query = query.where(KnowledgeDocument.status == DocumentStatus(status))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def has_completed_documents(self, chatbot_type: ChatbotType) -> bool:
        query = (
            select(KnowledgeDocument.id)
            .where(KnowledgeDocument.chatbot_type == ChatbotType(chatbot_type))
            .where(KnowledgeDocument.status == DocumentStatus.COMPLETED)
            .limit(1)
        )
        result = await self.db.execute(query)
        return result.first() is not None

    async def list_stale_pending(self, older_than: datetime) -> List[KnowledgeDocument]:
        """Documents still ``pending`` that were uploaded before ``older_than``."""
        query = (
            select(KnowledgeDocument)
            .where(KnowledgeDocument.status == DocumentStatus.PENDING)
            .where(KnowledgeDocument.uploaded_at < older_than)
            .order_by(KnowledgeDocument.uploaded_at)
        )
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def stats(self) -> Dict[str, Dict[str, int]]:
        """Document counts and chunk totals per topic scope."""
        query = select(
            KnowledgeDocument.chatbot_type,
            KnowledgeDocument.status,
            func.count(KnowledgeDocument.id),
            func.coalesce(func.sum(KnowledgeDocument.chunk_count), 0),
        ).group_by(KnowledgeDocument.chatbot_type, KnowledgeDocument.status)
        result = await self.db.execute(query)

        stats = {chatbot_type.value: empty_stats() for chatbot_type in ChatbotType}
        for chatbot_type, status, document_count, chunk_total in result.all():
            entry = stats[ChatbotType(chatbot_type).value]
            entry["totalDocuments"] += document_count
            entry["totalChunks"] += int(chunk_total)
            entry[f"{DocumentStatus(status).value}Documents"] += document_count
        return stats

    async def delete_document(
        self,
        document_id: str,
        vector_index: VectorIndex,
        storage: FileStorage,
    ) -> KnowledgeDocument:
        """Delete a document together with its vectors and stored file.

        Vectors go first: if purging them fails the record stays, so the
        delete can be retried.

        Raises:
            NotFoundError: If no such document exists
            VectorIndexError: If the vectors cannot be purged
        """
        document = await self.get_document(document_id)

        await vector_index.delete_document(document.namespace, document.id)
        storage.delete(document.file_path)

        try:
            await self.db.execute(delete(KnowledgeDocument).where(KnowledgeDocument.id == document.id))
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error deleting knowledge document {document_id}: {str(e)}")
            raise

        logger.info(f"Deleted knowledge document {document_id} ({document.file_name})")
        return document

    ################ STATUS TRANSITIONS ##################
    async def _transition(
        self,
        document_id: str,
        expected: List[DocumentStatus],
        conditions: Sequence[Any] = (),
        **values: Any,
    ) -> bool:
        statement = (
            update(KnowledgeDocument)
            .where(KnowledgeDocument.id == document_id)
            .where(KnowledgeDocument.status.in_(expected), *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(statement)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return result.rowcount == 1

    async def claim(self, document_id: str) -> bool:
        """Move a document from ``pending`` to ``processing``.

        Returns:
            False if the document is not pending, e.g. another worker owns it
        """
        claimed = await self._transition(
            document_id,
            [DocumentStatus.PENDING],
            status=DocumentStatus.PROCESSING,
            claimed_at=datetime.now(UTC),
        )
        if claimed:
            logger.info(f"Document {document_id}: pending -> processing")
        return claimed

    async def mark_completed(self, document_id: str, chunk_count: int) -> bool:
        completed = await self._transition(
            document_id,
            [DocumentStatus.PROCESSING],
            status=DocumentStatus.COMPLETED,
            chunk_count=chunk_count,
            processed_at=datetime.now(UTC),
            error_message=None,
        )
        if completed:
            logger.info(f"Document {document_id}: processing -> completed ({chunk_count} chunks)")
        else:
            logger.warning(f"Document {document_id} was not processing, completion not recorded")
        return completed

    async def mark_failed(self, document_id: str, error_message: str) -> bool:
        failed = await self._transition(
            document_id,
            [DocumentStatus.PENDING, DocumentStatus.PROCESSING],
            status=DocumentStatus.FAILED,
            chunk_count=0,
            error_message=error_message,
            processed_at=datetime.now(UTC),
        )
        if failed:
            logger.error(f"Document {document_id}: -> failed ({error_message})")
        return failed

    async def release_stale_claims(self, claimed_before: datetime) -> List[str]:
        """Move ``processing`` documents claimed before ``claimed_before`` back to ``pending``.

        A document stays ``processing`` when the run that claimed it died
        before recording an outcome.

        Returns:
            IDs of the released documents
        """
        is_stale = or_(KnowledgeDocument.claimed_at.is_(None), KnowledgeDocument.claimed_at < claimed_before)
        query = (
            select(KnowledgeDocument.id)
            .where(KnowledgeDocument.status == DocumentStatus.PROCESSING)
            .where(is_stale)
            .order_by(KnowledgeDocument.uploaded_at)
        )
        result = await self.db.execute(query)

        released = []
        for document_id in result.scalars().all():
            if await self._transition(
                document_id,
                [DocumentStatus.PROCESSING],
                conditions=(is_stale,),
                status=DocumentStatus.PENDING,
                claimed_at=None,
            ):
                logger.warning(f"Document {document_id}: processing -> pending (ingestion interrupted)")
                released.append(document_id)
        return released

    async def collect_stale(self, pending_before: datetime, claimed_before: datetime) -> List[str]:
        """IDs of documents that need another ingestion run.

        Interrupted runs are released first, then every document still
        ``pending`` since before ``pending_before`` is added.
        """
        document_ids = await self.release_stale_claims(claimed_before)
        for document in await self.list_stale_pending(pending_before):
            if document.id not in document_ids:
                document_ids.append(document.id)
        return document_ids
