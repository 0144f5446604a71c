"""KnowledgeDocument model for PDFs uploaded into a chatbot's knowledge base."""

from datetime import datetime, UTC
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Index, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from kbchat.core.constants import ChatbotType, DocumentStatus
from kbchat.db.base_class import Base


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class KnowledgeDocument(Base):
    """A knowledge-base document and its ingestion state.

    Rows are created in ``pending`` by the upload endpoint and afterwards only
    mutated by the ingestion pipeline, which moves them through ``processing``
    to ``completed`` or ``failed``.
    """

    __tablename__ = "knowledge_document"
    __table_args__ = (
        Index("ix_knowledge_document_type_status", "chatbot_type", "status"),
        {"extend_existing": True},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    chatbot_type: Mapped[ChatbotType] = mapped_column(
        SQLEnum(ChatbotType, values_callable=_enum_values, native_enum=False, length=32), index=True
    )
    file_name: Mapped[str] = mapped_column(String(512))
    file_path: Mapped[str] = mapped_column(String(1024))
    file_size: Mapped[int] = mapped_column(Integer)
    mime_type: Mapped[str] = mapped_column(String(128))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True
    )
    # Set when an ingestion run claims the document
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    chunk_count: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[DocumentStatus] = mapped_column(
        SQLEnum(DocumentStatus, values_callable=_enum_values, native_enum=False, length=16),
        default=DocumentStatus.PENDING,
        index=True,
    )
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    namespace: Mapped[str] = mapped_column(String(128))
    meta_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, default=dict, nullable=True)

    def __repr__(self):
        return f"<KnowledgeDocument(id='{self.id}', file_name='{self.file_name}', status='{self.status}')>"
