"""Knowledge-base document endpoints."""

import logging
import os
from enum import Enum
from typing import Dict, List, Optional, Type, TypeVar

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from kbchat.api.deps import get_container, get_db, get_dispatcher, get_storage
from kbchat.core.config import settings
from kbchat.core.constants import ChatbotType, DocumentStatus, PDF_MIME_TYPE
from kbchat.core.errors import FileTooLargeError, ValidationError
from kbchat.schemas.knowledge_base import DocumentDeleted, DocumentOut, KnowledgeBaseStats, UploadAccepted
from kbchat.services.container import ServiceContainer
from kbchat.services.ingestion.dispatch import IngestionDispatcher
from kbchat.services.knowledge_base.service import KnowledgeBaseService
from kbchat.services.storage import FileStorage

logger = logging.getLogger(__name__)
router = APIRouter()

E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: Type[E], value: Optional[str], field_name: str, required: bool = False) -> Optional[E]:
    """Parse a request value into an enum, raising a 400 on bad input."""
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field_name} is required")
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field_name}: {value}. Must be one of: {allowed}",
            details={"field": field_name},
        ) from None


@router.post("/upload", status_code=202, response_model=UploadAccepted)
async def upload_document(
    background_tasks: BackgroundTasks,
    file: Optional[UploadFile] = File(None),
    chatbot_type: Optional[str] = Form(None, alias="chatbotType"),
    description: Optional[str] = Form(None),
    db: AsyncSession = Depends(get_db),
    storage: FileStorage = Depends(get_storage),
    dispatcher: IngestionDispatcher = Depends(get_dispatcher),
):
    """
    Upload a PDF into a chatbot's knowledge base.

    The document is stored and created in ``pending``; ingestion runs in the
    background. Poll ``GET /knowledge-base/{id}`` for the outcome.
    """
    if file is None or not file.filename:
        raise ValidationError("No file uploaded")
    topic = parse_enum(ChatbotType, chatbot_type, "chatbotType", required=True)
    if file.content_type != PDF_MIME_TYPE:
        raise ValidationError(
            f"Only PDF files are allowed, got {file.content_type}", details={"field": "file"}
        )

    max_bytes = settings.MAX_UPLOAD_BYTES
    if file.size is not None and file.size > max_bytes:
        raise FileTooLargeError(f"File too large: {file.size} bytes (max: {max_bytes} bytes)")
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise FileTooLargeError(f"File too large (max: {max_bytes} bytes)")

    file_path = storage.save(content, file.filename)
    try:
        document = await KnowledgeBaseService(db).create_document(
            chatbot_type=topic,
            file_name=file.filename,
            file_path=file_path,
            file_size=len(content),
            mime_type=file.content_type,
            description=description,
            meta_data={
                "stored_filename": os.path.basename(file_path),
                "sha256": storage.calculate_hash(content),
            },
        )
    except Exception:
        storage.delete(file_path)
        raise

    await dispatcher.dispatch(document.id, background_tasks)
    logger.info(f"Accepted upload {file.filename} as document {document.id}")

    return UploadAccepted(
        id=document.id,
        file_name=document.file_name,
        status=document.status,
        chatbot_type=document.chatbot_type,
    )


@router.get("/list", response_model=List[DocumentOut])
async def list_documents(
    chatbot_type: Optional[str] = Query(None, alias="chatbotType"),
    status: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """List documents, newest first."""
    return await KnowledgeBaseService(db).list_documents(
        chatbot_type=parse_enum(ChatbotType, chatbot_type, "chatbotType"),
        status=parse_enum(DocumentStatus, status, "status"),
    )


@router.get("/stats", response_model=Dict[str, KnowledgeBaseStats])
async def knowledge_base_stats(db: AsyncSession = Depends(get_db)):
    """Document and chunk counts per chatbot type."""
    return await KnowledgeBaseService(db).stats()


@router.get("/{document_id}", response_model=DocumentOut)
async def get_document(document_id: str, db: AsyncSession = Depends(get_db)):
    return await KnowledgeBaseService(db).get_document(document_id)


@router.delete("/{document_id}", response_model=DocumentDeleted)
async def delete_document(
    document_id: str,
    db: AsyncSession = Depends(get_db),
    container: ServiceContainer = Depends(get_container),
):
    """Delete a document, its vectors and its stored file."""
    document = await KnowledgeBaseService(db).delete_document(
        document_id, container.clients.vector_index, container.storage
    )
    return DocumentDeleted(id=document.id)
