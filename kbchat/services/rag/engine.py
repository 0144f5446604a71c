"""Retrieval-augmented answer composition for the topic chatbots."""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Protocol, Sequence

from kbchat.core.config import settings
from kbchat.core.constants import ChatbotType, namespace_for
from kbchat.core.errors import ValidationError
from kbchat.services.providers import RagClients
from kbchat.services.providers.base import ChatMessageDict, VectorMatch
from kbchat.services.rag.prompts import build_context_message, system_prompt_for

logger = logging.getLogger(__name__)


class KnowledgeBaseLookup(Protocol):
    async def has_completed_documents(self, chatbot_type: ChatbotType) -> bool: ...


@dataclass
class RetrievedChunk:
    """A chunk returned by the vector index for a query."""

    text: str
    file_name: str
    score: float
    document_id: Optional[str] = None
    chunk_index: Optional[int] = None

    @classmethod
    def from_match(cls, match: VectorMatch) -> "RetrievedChunk":
        metadata = match.metadata
        chunk_index = metadata.get("chunk_index")
        return cls(
            text=str(metadata.get("text", "")),
            file_name=str(metadata.get("file_name", "")),
            score=match.score,
            document_id=metadata.get("document_id"),
            chunk_index=int(chunk_index) if chunk_index is not None else None,
        )


@dataclass
class RAGAnswer:
    response: str
    sources: List[str] = field(default_factory=list)
    relevant_chunks: List[RetrievedChunk] = field(default_factory=list)
    has_knowledge_base: bool = False


def unique_sources(chunks: Sequence[RetrievedChunk]) -> List[str]:
    """Source filenames in first-seen order, without duplicates."""
    seen = {}
    for chunk in chunks:
        if chunk.file_name:
            seen.setdefault(chunk.file_name, None)
    return list(seen)


def history_messages(conversation_history: Optional[Sequence[Mapping[str, Any]]]) -> List[ChatMessageDict]:
    messages: List[ChatMessageDict] = []
    for turn in conversation_history or []:
        role = "user" if turn.get("role") == "user" else "assistant"
        messages.append({"role": role, "content": str(turn.get("content", ""))})
    return messages


class RAGEngine:
    """Answers user questions from a topic's knowledge base.

    When the topic has no completed documents the engine answers from the
    topic's system prompt alone and never touches the vector index.
    """

    def __init__(
        self,
        clients: RagClients,
        top_k: int = settings.RETRIEVAL_TOP_K,
        temperature: float = settings.OPENAI_TEMPERATURE,
        answer_max_tokens: int = settings.ANSWER_MAX_TOKENS,
        fallback_max_tokens: int = settings.FALLBACK_MAX_TOKENS,
    ):
        self.clients = clients
        self.top_k = top_k
        self.temperature = temperature
        self.answer_max_tokens = answer_max_tokens
        self.fallback_max_tokens = fallback_max_tokens

    async def retrieve(self, query: str, chatbot_type: ChatbotType) -> List[RetrievedChunk]:
        """Embed the query and fetch the nearest chunks of the topic.

        Raises:
            EmbeddingError: If the query cannot be embedded
            VectorIndexError: If the index query fails
        """
        query_vector = await self.clients.embedder.embed(query)
        matches = await self.clients.vector_index.query(
            namespace_for(chatbot_type),
            query_vector,
            top_k=self.top_k,
            filter={"chatbot_type": chatbot_type.value},
        )
        logger.info(f"Found {len(matches)} relevant chunks for {chatbot_type.value}")
        return [RetrievedChunk.from_match(match) for match in matches]

    def compose_messages(
        self,
        query: str,
        chatbot_type: ChatbotType,
        chunks: Optional[Sequence[RetrievedChunk]] = None,
        conversation_history: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> List[ChatMessageDict]:
        messages: List[ChatMessageDict] = [{"role": "system", "content": system_prompt_for(chatbot_type)}]
        if chunks is not None:
            messages.append({"role": "system", "content": build_context_message([c.text for c in chunks])})
        messages.extend(history_messages(conversation_history))
        messages.append({"role": "user", "content": query})
        return messages

    async def answer(
        self,
        query: str,
        chatbot_type: ChatbotType,
        knowledge_base: KnowledgeBaseLookup,
        conversation_history: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> RAGAnswer:
        """Produce an answer for a user query.

        Args:
            query: The user's message
            chatbot_type: Topic scope to answer in
            knowledge_base: Used to check whether the topic has completed documents
            conversation_history: Prior user/assistant turns, oldest first

        Returns:
            The answer text, deduplicated source filenames and the retrieved chunks

        Raises:
            ValidationError: If the query is empty
            RetrievalError: If embedding the query or searching the index fails
            CompletionError: If the completion provider fails
        """
        if not query or not query.strip():
            raise ValidationError("Message is required")
        chatbot_type = ChatbotType(chatbot_type)

        if not await knowledge_base.has_completed_documents(chatbot_type):
            logger.info(f"No knowledge base for {chatbot_type.value}, answering without context")
            messages = self.compose_messages(query, chatbot_type, conversation_history=conversation_history)
            response = await self.clients.completer.complete(
                messages, temperature=self.temperature, max_tokens=self.fallback_max_tokens
            )
            return RAGAnswer(response=response, has_knowledge_base=False)

        chunks = await self.retrieve(query, chatbot_type)
        messages = self.compose_messages(query, chatbot_type, chunks, conversation_history)
        response = await self.clients.completer.complete(
            messages, temperature=self.temperature, max_tokens=self.answer_max_tokens
        )
        logger.info(f"Generated grounded answer for {chatbot_type.value} from {len(chunks)} chunks")
        return RAGAnswer(
            response=response,
            sources=unique_sources(chunks),
            relevant_chunks=chunks,
            has_knowledge_base=True,
        )
