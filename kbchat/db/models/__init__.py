"""Database models."""

from kbchat.db.models.chat_message import ChatMessage, MessageRole
from kbchat.db.models.conversation import Conversation
from kbchat.db.models.knowledge_document import KnowledgeDocument

__all__ = ["ChatMessage", "MessageRole", "Conversation", "KnowledgeDocument"]
