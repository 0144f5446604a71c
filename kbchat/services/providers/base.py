"""Interfaces of the external collaborators used by ingestion and retrieval."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, TypedDict


class ChatMessageDict(TypedDict):
    role: Literal["system", "user", "assistant"]
    content: str


@dataclass
class VectorRecord:
    """One embedded chunk as stored in the vector index."""

    id: str
    values: List[float]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class VectorMatch:
    """A query hit returned by the vector index."""

    id: str
    score: float
    metadata: Dict[str, Any] = field(default_factory=dict)


class EmbeddingProvider(ABC):
    """Turns text into fixed-dimension vectors."""

    dimensions: int

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed a single text.

        Raises:
            EmbeddingError: If the provider call fails or times out.
        """

    @abstractmethod
    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed many texts, preserving order.

        Implementations split the input into provider-sized batches. A failed
        batch fails the whole call.

        Raises:
            EmbeddingError: If any batch fails or times out.
        """

    async def close(self) -> None:
        return None


class CompletionProvider(ABC):
    """Chat-completion model."""

    @abstractmethod
    async def complete(
        self,
        messages: List[ChatMessageDict],
        temperature: float = 0.7,
        max_tokens: int = 800,
    ) -> str:
        """Return the assistant text for a message sequence.

        Raises:
            CompletionError: If the provider call fails or times out.
        """

    async def close(self) -> None:
        return None


class VectorIndex(ABC):
    """Vector store partitioned into namespaces."""

    async def ensure_collection(self, dimensions: int) -> None:
        """Create the backing collection if the backend needs one."""
        return None

    @abstractmethod
    async def upsert(self, namespace: str, records: List[VectorRecord]) -> int:
        """Insert or replace records by id. Returns the number written."""

    @abstractmethod
    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """Return the ``top_k`` nearest records, most similar first.

        ``filter`` is an exact-match mapping of metadata keys to values.
        """

    @abstractmethod
    async def delete_document(self, namespace: str, document_id: str) -> None:
        """Remove every record belonging to one document."""

    @abstractmethod
    async def delete_namespace(self, namespace: str) -> None:
        """Remove every record in a namespace."""

    @abstractmethod
    async def count(self, namespace: str, document_id: Optional[str] = None) -> int:
        """Count records in a namespace, optionally for one document."""

    async def close(self) -> None:
        return None
