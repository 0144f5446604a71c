from kbchat.services.knowledge_base.service import KnowledgeBaseService

__all__ = ["KnowledgeBaseService"]
