from kbchat.services.conversation.service import ConversationService

__all__ = ["ConversationService"]
