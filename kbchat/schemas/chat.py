"""Pydantic schemas for chatbot queries and conversations."""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator

from kbchat.core.constants import ChatbotType
from kbchat.db.models.chat_message import MessageRole
from kbchat.schemas.knowledge_base import CamelModel


class HistoryTurn(CamelModel):
    role: Literal["user", "assistant"]
    content: str


class QueryRequest(CamelModel):
    message: str
    chatbot_type: ChatbotType
    session_id: Optional[str] = Field(None, description="Client session; the exchange is stored when given")
    conversation_history: List[HistoryTurn] = Field(default_factory=list)
    user_id: Optional[str] = None

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Message is required")
        return v.strip()


class QueryResponse(CamelModel):
    response: str
    sources: List[str] = Field(default_factory=list)
    has_knowledge_base: bool
    timestamp: datetime


class MessageOut(CamelModel):
    role: MessageRole
    content: str
    timestamp: datetime = Field(validation_alias="created_at")
    sources: Optional[List[str]] = None


class ConversationOut(CamelModel):
    id: str
    session_id: str
    chatbot_type: ChatbotType
    user_id: Optional[str] = None
    started_at: datetime
    last_message_at: datetime
    meta_data: Optional[Dict[str, Any]] = Field(
        default=None, validation_alias="meta_data", serialization_alias="metadata"
    )
    messages: List[MessageOut] = Field(default_factory=list)


class ConversationStats(CamelModel):
    total_conversations: int = 0
    total_messages: int = 0
    avg_messages_per_conversation: float = 0
