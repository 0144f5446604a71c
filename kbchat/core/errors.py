"""Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status code it maps to, so the API exception
handlers can translate them without knowing about individual services.
"""

from typing import Any, Dict, Optional


class KnowledgeBaseError(Exception):
    """Base class for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"detail": self.message, "error": type(self).__name__}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(KnowledgeBaseError):
    """Malformed or missing request fields."""

    status_code = 400


class FileTooLargeError(ValidationError):
    status_code = 413


class NotFoundError(KnowledgeBaseError):
    """A referenced document or conversation does not exist."""

    status_code = 404


class ExtractionError(KnowledgeBaseError):
    """A PDF could not be parsed or contains no extractable text."""

    status_code = 422


class ProviderError(KnowledgeBaseError):
    """An external provider (embeddings, completions, vector index) failed."""

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None, timed_out: bool = False):
        super().__init__(message, details)
        self.timed_out = timed_out
        if timed_out:
            self.status_code = 504


class RetrievalError(ProviderError):
    """Failure while embedding a query or searching the vector index."""


class EmbeddingError(RetrievalError):
    pass


class VectorIndexError(RetrievalError):
    pass


class CompletionError(ProviderError):
    pass


class PersistenceError(KnowledgeBaseError):
    """Conversation history could not be stored."""
