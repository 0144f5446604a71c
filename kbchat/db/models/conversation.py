from datetime import datetime, UTC
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import DateTime, Enum as SQLEnum, Index, JSON, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kbchat.core.constants import ChatbotType
from kbchat.db.base_class import Base
from kbchat.db.models.chat_message import ChatMessage


class Conversation(Base):
    """Transcript of one chatbot session, keyed by the client's session id."""
    __tablename__ = "conversation"
    __table_args__ = (
        Index("ix_conversation_type_last_message", "chatbot_type", "last_message_at"),
        {"extend_existing": True},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    chatbot_type: Mapped[ChatbotType] = mapped_column(
        SQLEnum(ChatbotType, values_callable=lambda x: [e.value for e in x], native_enum=False, length=32)
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    last_message_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    meta_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    messages = relationship(
        "ChatMessage",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by=ChatMessage.position,
    )

    def __repr__(self):
        return f"<Conversation(session_id='{self.session_id}', chatbot_type='{self.chatbot_type}')>"
