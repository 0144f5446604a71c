"""In-memory vector index for local development and tests."""

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

from kbchat.services.providers.base import VectorIndex, VectorMatch, VectorRecord

logger = logging.getLogger(__name__)


def cosine_similarity(a: List[float], b: List[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


class InMemoryVectorIndex(VectorIndex):
    """Dict-backed namespaced index with cosine similarity search."""

    def __init__(self) -> None:
        self._namespaces: Dict[str, Dict[str, VectorRecord]] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, namespace: str, records: List[VectorRecord]) -> int:
        async with self._lock:
            store = self._namespaces.setdefault(namespace, {})
            for record in records:
                store[record.id] = VectorRecord(
                    id=record.id, values=list(record.values), metadata=dict(record.metadata)
                )
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        conditions = filter or {}
        candidates = [
            record
            for record in self._namespaces.get(namespace, {}).values()
            if all(record.metadata.get(key) == value for key, value in conditions.items())
        ]
        scored = [
            VectorMatch(id=record.id, score=cosine_similarity(vector, record.values), metadata=dict(record.metadata))
            for record in candidates
        ]
        scored.sort(key=lambda match: match.score, reverse=True)
        return scored[:top_k]

    async def delete_document(self, namespace: str, document_id: str) -> None:
        async with self._lock:
            store = self._namespaces.get(namespace, {})
            for record_id in [rid for rid, rec in store.items() if rec.metadata.get("document_id") == document_id]:
                del store[record_id]

    async def delete_namespace(self, namespace: str) -> None:
        async with self._lock:
            self._namespaces.pop(namespace, None)

    async def count(self, namespace: str, document_id: Optional[str] = None) -> int:
        records = self._namespaces.get(namespace, {}).values()
        if document_id is None:
            return len(records)
        return sum(1 for record in records if record.metadata.get("document_id") == document_id)

    def record_ids(self, namespace: str) -> List[str]:
        return sorted(self._namespaces.get(namespace, {}))
