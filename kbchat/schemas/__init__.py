"""Pydantic request and response schemas."""

from kbchat.schemas.chat import ConversationOut, ConversationStats, QueryRequest, QueryResponse
from kbchat.schemas.knowledge_base import DocumentDeleted, DocumentOut, KnowledgeBaseStats, UploadAccepted

__all__ = [
    "ConversationOut",
    "ConversationStats",
    "QueryRequest",
    "QueryResponse",
    "DocumentDeleted",
    "DocumentOut",
    "KnowledgeBaseStats",
    "UploadAccepted",
]
