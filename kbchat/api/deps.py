from collections.abc import AsyncGenerator

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.services.container import ServiceContainer
from kbchat.services.ingestion.dispatch import IngestionDispatcher
from kbchat.services.rag.engine import RAGEngine
from kbchat.services.storage import FileStorage


def get_session_factory(request: Request):
    """Session factory the application was started with."""
    return request.app.state.session_factory


async def get_db(session_factory=Depends(get_session_factory)) -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session."""
    async with session_factory() as session:
        yield session


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_rag_engine(container: ServiceContainer = Depends(get_container)) -> RAGEngine:
    return container.rag_engine


def get_dispatcher(container: ServiceContainer = Depends(get_container)) -> IngestionDispatcher:
    return container.dispatcher


def get_storage(container: ServiceContainer = Depends(get_container)) -> FileStorage:
    return container.storage
