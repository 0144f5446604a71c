import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kbchat.api.router import api_router
from kbchat.core.config import settings
from kbchat.core.errors import KnowledgeBaseError
from kbchat.core.logging_config import configure_logging
from kbchat.db.session import AsyncSessionLocal, create_tables
from kbchat.services.container import build_container

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Knowledge Base Chatbot API",
    description="Topic-scoped chatbots answering from uploaded PDF knowledge bases",
    version="0.1.0",
)

# Set up CORS
origins = (
    [origin.strip() for origin in settings.CORS_ORIGINS.split(",")]
    if "," in settings.CORS_ORIGINS
    else [settings.CORS_ORIGINS]
)
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.session_factory = AsyncSessionLocal

# Include API router
app.include_router(api_router, prefix=settings.API_PREFIX)


@app.exception_handler(KnowledgeBaseError)
async def knowledge_base_error_handler(request: Request, exc: KnowledgeBaseError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    fields = [".".join(str(part) for part in error.get("loc", ()) if part != "body") for error in errors]
    return JSONResponse(
        status_code=400,
        content={"detail": message, "error": "ValidationError", "details": {"fields": fields}},
    )


@app.on_event("startup")
async def startup():
    """Create tables, wire services and bootstrap the vector collection."""
    if settings.AUTO_CREATE_TABLES:
        await create_tables()

    container = build_container(app.state.session_factory, settings)
    app.state.container = container

    try:
        await container.clients.vector_index.ensure_collection(settings.EMBEDDING_DIMENSIONS)
    except KnowledgeBaseError as e:
        logger.error(f"Could not prepare vector collection: {e.message}")

    if settings.RECOVER_STALE_ON_STARTUP and settings.INGESTION_BACKEND == "background":
        recovered = await container.dispatcher.recover_stale(
            app.state.session_factory, settings.STALE_PENDING_MINUTES, settings.STALE_PROCESSING_MINUTES
        )
        if recovered:
            logger.warning(f"Re-dispatched {len(recovered)} stale documents")
    logger.info("Startup tasks completed")


@app.on_event("shutdown")
async def shutdown():
    container = getattr(app.state, "container", None)
    if container is not None:
        await container.aclose()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Liveness check."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("kbchat.main:app", host="0.0.0.0", port=8000, reload=True)
