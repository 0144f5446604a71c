from datetime import datetime, UTC
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kbchat.core.constants import ChatbotType
from kbchat.core.errors import NotFoundError, PersistenceError
from kbchat.db.models.chat_message import ChatMessage, MessageRole
from kbchat.db.models.conversation import Conversation

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50


class ConversationService:
    """Service for chatbot session transcripts."""

    def __init__(self, db_session: AsyncSession):
        """Initialize the service with a database session.

        Args:
            db_session: SQLAlchemy async session
        """
        self.db = db_session

    async def get_by_session_id(self, session_id: str) -> Optional[Conversation]:
        query = (
            select(Conversation)
            .where(Conversation.session_id == session_id)
            .options(selectinload(Conversation.messages))
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(query)
        return result.scalars().first()

    async def get_conversation(self, session_id: str) -> Conversation:
        """Get a conversation with its messages.

        Raises:
            NotFoundError: If the session has no conversation
        """
        conversation = await self.get_by_session_id(session_id)
        if conversation is None:
            raise NotFoundError("Conversation not found", details={"sessionId": session_id})
        return conversation

    async def append_exchange(
        self,
        session_id: str,
        chatbot_type: ChatbotType,
        user_text: str,
        assistant_text: str,
        sources: Optional[List[str]] = None,
        user_id: Optional[str] = None,
        meta_data: Optional[Dict[str, Any]] = None,
    ) -> Conversation:
        """Append a user question and the assistant answer to a session.

        The conversation is created on the first exchange of a session.

        Args:
            session_id: Client-provided session identifier
            chatbot_type: Topic scope of the session
            user_text: The user's message
            assistant_text: The answer returned to the user
            sources: Source filenames the answer was grounded on
            user_id: Optional ID of the user
            meta_data: Optional metadata, only applied on creation

        Returns:
            The updated Conversation

        Raises:
            PersistenceError: If the exchange could not be stored
        """
        try:
            conversation = await self.get_by_session_id(session_id)
            now = datetime.now(UTC)

            if conversation is None:
                conversation = Conversation(
                    session_id=session_id,
                    chatbot_type=ChatbotType(chatbot_type),
                    user_id=user_id,
                    started_at=now,
                    last_message_at=now,
                    meta_data=meta_data or {},
                    messages=[],
                )
                self.db.add(conversation)
                logger.info(f"Created conversation for session {session_id}")

            position = len(conversation.messages)
            conversation.messages.append(
                ChatMessage(position=position, role=MessageRole.USER, content=user_text, created_at=now)
            )
            conversation.messages.append(
                ChatMessage(
                    position=position + 1,
                    role=MessageRole.ASSISTANT,
                    content=assistant_text,
                    created_at=datetime.now(UTC),
                    sources=list(sources or []),
                )
            )
            conversation.last_message_at = datetime.now(UTC)
            if user_id and not conversation.user_id:
                conversation.user_id = user_id

            await self.db.commit()
            return conversation

        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error saving exchange for session {session_id}: {str(e)}")
            raise PersistenceError(f"Failed to save conversation: {e}") from e

    async def list_conversations(
        self,
        chatbot_type: Optional[ChatbotType] = None,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> List[Conversation]:
        """List conversations, most recently active first."""
        query = (
            select(Conversation)
            .options(selectinload(Conversation.messages))
            .order_by(desc(Conversation.last_message_at))
            .limit(limit)
        )
        if chatbot_type is not None:
            query = query.where(Conversation.chatbot_type == ChatbotType(chatbot_type))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete_by_session_id(self, session_id: str) -> None:
        """Delete a conversation and its messages.

        Raises:
            NotFoundError: If the session has no conversation
        """
        conversation = await self.get_conversation(session_id)
        try:
            await self.db.execute(delete(ChatMessage).where(ChatMessage.conversation_id == conversation.id))
            await self.db.execute(delete(Conversation).where(Conversation.id == conversation.id))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Error deleting conversation {session_id}: {str(e)}")
            raise
        logger.info(f"Deleted conversation for session {session_id}")

    async def stats(self) -> Dict[str, Dict[str, float]]:
        """Conversation and message totals per topic scope."""
        conversation_counts = await self.db.execute(
            select(Conversation.chatbot_type, func.count(Conversation.id)).group_by(Conversation.chatbot_type)
        )
        message_counts = await self.db.execute(
            select(Conversation.chatbot_type, func.count(ChatMessage.id))
            .join(ChatMessage, ChatMessage.conversation_id == Conversation.id)
            .group_by(Conversation.chatbot_type)
        )

        stats: Dict[str, Dict[str, float]] = {
            chatbot_type.value: {"totalConversations": 0, "totalMessages": 0, "avgMessagesPerConversation": 0}
            for chatbot_type in ChatbotType
        }
        for chatbot_type, count in conversation_counts.all():
            stats[ChatbotType(chatbot_type).value]["totalConversations"] = count
        for chatbot_type, count in message_counts.all():
            stats[ChatbotType(chatbot_type).value]["totalMessages"] = count

        for entry in stats.values():
            if entry["totalConversations"]:
                entry["avgMessagesPerConversation"] = round(
                    entry["totalMessages"] / entry["totalConversations"], 2
                )
        return stats
