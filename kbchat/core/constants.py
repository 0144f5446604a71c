"""Application-wide constants."""

from enum import Enum


class ChatbotType(str, Enum):
    """Topic scopes partitioning knowledge documents and conversations."""
    GENERAL = "general"
    UROGYNAECOLOGY = "urogynaecology"
    AESTHETIC = "aesthetic"
    MENOPAUSE = "menopause"


class DocumentStatus(str, Enum):
    """Processing status of a knowledge-base document."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


NAMESPACE_PREFIX = "chatbot-"

PDF_MIME_TYPE = "application/pdf"


def namespace_for(chatbot_type: ChatbotType) -> str:
    """Return the vector-index namespace for a topic scope."""
    return f"{NAMESPACE_PREFIX}{ChatbotType(chatbot_type).value}"


def vector_record_id(document_id: str, chunk_index: int) -> str:
    """Deterministic vector record id for one chunk of a document."""
    return f"{document_id}-chunk-{chunk_index}"
