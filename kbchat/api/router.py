from fastapi import APIRouter

from kbchat.api.endpoints import chatbot, health, knowledge_base

api_router = APIRouter()

api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(knowledge_base.router, prefix="/knowledge-base", tags=["knowledge-base"])
api_router.include_router(chatbot.router, prefix="/chatbot", tags=["chatbot"])
