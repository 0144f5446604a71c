# Import all models so that Base.metadata has them before create_all runs
from kbchat.db.base_class import Base
from kbchat.db.models.chat_message import ChatMessage
from kbchat.db.models.conversation import Conversation
from kbchat.db.models.knowledge_document import KnowledgeDocument

__all__ = ["Base", "ChatMessage", "Conversation", "KnowledgeDocument"]
