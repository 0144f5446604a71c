from kbchat.services.rag.engine import RAGAnswer, RAGEngine, RetrievedChunk
from kbchat.services.rag.prompts import SYSTEM_PROMPTS

__all__ = ["RAGAnswer", "RAGEngine", "RetrievedChunk", "SYSTEM_PROMPTS"]
