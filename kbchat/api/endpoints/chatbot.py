"""Chatbot query and conversation endpoints."""

from datetime import datetime, UTC
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.api.deps import get_db, get_rag_engine
from kbchat.api.endpoints.knowledge_base import parse_enum
from kbchat.core.constants import ChatbotType
from kbchat.core.errors import PersistenceError
from kbchat.schemas.chat import ConversationOut, ConversationStats, QueryRequest, QueryResponse
from kbchat.services.conversation.service import DEFAULT_LIST_LIMIT, ConversationService
from kbchat.services.knowledge_base.service import KnowledgeBaseService
from kbchat.services.rag.engine import RAGEngine

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/query", response_model=QueryResponse)
async def query_chatbot(
    request: QueryRequest,
    db: AsyncSession = Depends(get_db),
    rag_engine: RAGEngine = Depends(get_rag_engine),
):
    """
    Answer a message from the chatbot's knowledge base.

    Falls back to an answer without context when the chatbot has no
    processed documents; ``hasKnowledgeBase`` tells the two apart.
    """
    answer = await rag_engine.answer(
        request.message,
        request.chatbot_type,
        knowledge_base=KnowledgeBaseService(db),
        conversation_history=[turn.model_dump() for turn in request.conversation_history],
    )

    if request.session_id:
        try:
            await ConversationService(db).append_exchange(
                session_id=request.session_id,
                chatbot_type=request.chatbot_type,
                user_text=request.message,
                assistant_text=answer.response,
                sources=answer.sources,
                user_id=request.user_id,
            )
        except PersistenceError as e:
            logger.error(f"Conversation for session {request.session_id} not saved: {e}")

    return QueryResponse(
        response=answer.response,
        sources=answer.sources,
        has_knowledge_base=answer.has_knowledge_base,
        timestamp=datetime.now(UTC),
    )


@router.get("/conversation/{session_id}", response_model=ConversationOut)
async def get_conversation(session_id: str, db: AsyncSession = Depends(get_db)):
    return await ConversationService(db).get_conversation(session_id)


@router.get("/conversations", response_model=List[ConversationOut])
async def list_conversations(
    chatbot_type: Optional[str] = Query(None, alias="chatbotType"),
    limit: int = Query(DEFAULT_LIST_LIMIT, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """List conversations, most recently active first."""
    return await ConversationService(db).list_conversations(
        chatbot_type=parse_enum(ChatbotType, chatbot_type, "chatbotType"),
        limit=limit,
    )


@router.delete("/conversation/{session_id}")
async def delete_conversation(session_id: str, db: AsyncSession = Depends(get_db)) -> Dict[str, str]:
    await ConversationService(db).delete_by_session_id(session_id)
    return {"message": "Conversation deleted successfully", "sessionId": session_id}


@router.get("/stats", response_model=Dict[str, ConversationStats])
async def chatbot_stats(db: AsyncSession = Depends(get_db)):
    """Conversation and message totals per chatbot type."""
    return await ConversationService(db).stats()
