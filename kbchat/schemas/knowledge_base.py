"""Pydantic schemas for knowledge-base documents."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from kbchat.core.constants import ChatbotType, DocumentStatus


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)


class DocumentOut(CamelModel):
    id: str
    chatbot_type: ChatbotType
    file_name: str
    file_size: int
    mime_type: str
    description: Optional[str] = None
    uploaded_at: datetime
    processed_at: Optional[datetime] = None
    chunk_count: int = 0
    status: DocumentStatus
    error_message: Optional[str] = None
    namespace: str
    meta_data: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias="meta_data", serialization_alias="metadata"
    )


class UploadAccepted(CamelModel):
    """Returned with 202 once the document is stored and queued."""

    id: str
    file_name: str
    status: DocumentStatus
    chatbot_type: ChatbotType
    message: str = "File uploaded and queued for processing"


class DocumentDeleted(CamelModel):
    id: str
    message: str = "Document deleted successfully"


class KnowledgeBaseStats(CamelModel):
    total_documents: int = 0
    total_chunks: int = 0
    pending_documents: int = 0
    processing_documents: int = 0
    completed_documents: int = 0
    failed_documents: int = 0
