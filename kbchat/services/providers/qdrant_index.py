"""Qdrant vector index accessed over its REST API.

All topic namespaces share one collection. Every point carries its namespace
in the payload and every read, count and delete is filtered on it, so no
request can reach another namespace's points.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

import httpx

from kbchat.core.errors import VectorIndexError
from kbchat.services.providers.base import VectorIndex, VectorMatch, VectorRecord

logger = logging.getLogger(__name__)

DEFAULT_UPSERT_BATCH_SIZE = 100

# Namespace for deriving Qdrant point UUIDs from record ids
POINT_ID_NAMESPACE = uuid.UUID("8b0c6f0e-5d8e-4c55-9d7e-2f3c1c4b6a10")

INDEXED_PAYLOAD_FIELDS = ("namespace", "document_id", "chatbot_type")


def point_id_for(record_id: str) -> str:
    """Qdrant only accepts UUIDs or integers as point ids."""
    return str(uuid.uuid5(POINT_ID_NAMESPACE, record_id))


def build_filter(namespace: str, conditions: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    must = [{"key": "namespace", "match": {"value": namespace}}]
    for key, value in (conditions or {}).items():
        must.append({"key": key, "match": {"value": value}})
    return {"must": must}


class QdrantVectorIndex(VectorIndex):
    """Namespaced vector index on a single Qdrant collection."""

    def __init__(
        self,
        base_url: str,
        collection: str,
        api_key: str = "",
        timeout: float = 30.0,
        upsert_batch_size: int = DEFAULT_UPSERT_BATCH_SIZE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.collection = collection
        self.upsert_batch_size = max(1, upsert_batch_size)
        headers = {"api-key": api_key} if api_key else {}
        self._client = client or httpx.AsyncClient(base_url=self.base_url, headers=headers, timeout=timeout)

    ################ ENDPOINTS ##################
    def _endpoint_collection(self) -> str:
        return f"/collections/{self.collection}"

    def _endpoint_exists(self) -> str:
        return f"/collections/{self.collection}/exists"

    def _endpoint_index(self) -> str:
        return f"/collections/{self.collection}/index"

    def _endpoint_points(self) -> str:
        return f"/collections/{self.collection}/points"

    def _endpoint_search(self) -> str:
        return f"/collections/{self.collection}/points/search"

    def _endpoint_delete(self) -> str:
        return f"/collections/{self.collection}/points/delete"

    def _endpoint_count(self) -> str:
        return f"/collections/{self.collection}/points/count"

    ################ REQUESTS ##################
    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self._client.request(method, endpoint, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Qdrant {method} {endpoint} timed out: {e}")
            raise VectorIndexError(f"Vector index request timed out: {endpoint}", timed_out=True) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"Qdrant {method} {endpoint} failed with {e.response.status_code}: {e.response.text}")
            raise VectorIndexError(
                f"Vector index request failed with status {e.response.status_code}",
                details={"endpoint": endpoint},
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Qdrant {method} {endpoint} failed: {e}")
            raise VectorIndexError(f"Vector index request failed: {e}") from e
        return response.json() if response.content else {}

    async def ensure_collection(self, dimensions: int) -> None:
        """Create the collection (cosine distance) and payload indexes if missing."""
        result = await self._request("GET", self._endpoint_exists())
        if result.get("result", {}).get("exists"):
            logger.info(f"Qdrant collection {self.collection!r} already exists.")
            return

        await self._request(
            "PUT",
            self._endpoint_collection(),
            json={"vectors": {"size": dimensions, "distance": "Cosine"}},
        )
        for field_name in INDEXED_PAYLOAD_FIELDS:
            await self._request(
                "PUT",
                self._endpoint_index(),
                params={"wait": "true"},
                json={"field_name": field_name, "field_schema": "keyword"},
            )
        logger.info(f"Created Qdrant collection {self.collection!r} ({dimensions} dimensions)")

    async def upsert(self, namespace: str, records: List[VectorRecord]) -> int:
        for start in range(0, len(records), self.upsert_batch_size):
            batch = records[start:start + self.upsert_batch_size]
            points = [
                {
                    "id": point_id_for(record.id),
                    "vector": record.values,
                    "payload": {**record.metadata, "namespace": namespace, "record_id": record.id},
                }
                for record in batch
            ]
            await self._request(
                "PUT",
                self._endpoint_points(),
                params={"wait": "true"},
                json={"points": points},
            )
            logger.info(
                f"Upserted batch {start // self.upsert_batch_size + 1} ({len(batch)} vectors) into {namespace}"
            )
        return len(records)

    async def query(
        self,
        namespace: str,
        vector: List[float],
        top_k: int = 5,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        result = await self._request(
            "POST",
            self._endpoint_search(),
            json={
                "vector": vector,
                "limit": top_k,
                "with_payload": True,
                "filter": build_filter(namespace, filter),
            },
        )
        matches = []
        for point in result.get("result", []):
            payload = dict(point.get("payload") or {})
            record_id = payload.pop("record_id", str(point.get("id")))
            payload.pop("namespace", None)
            matches.append(VectorMatch(id=record_id, score=float(point.get("score", 0.0)), metadata=payload))
        return matches

    async def delete_document(self, namespace: str, document_id: str) -> None:
        await self._request(
            "POST",
            self._endpoint_delete(),
            params={"wait": "true"},
            json={"filter": build_filter(namespace, {"document_id": document_id})},
        )
        logger.info(f"Deleted vectors of document {document_id} from namespace {namespace}")

    async def delete_namespace(self, namespace: str) -> None:
        await self._request(
            "POST",
            self._endpoint_delete(),
            params={"wait": "true"},
            json={"filter": build_filter(namespace)},
        )
        logger.info(f"Deleted all vectors in namespace: {namespace}")

    async def count(self, namespace: str, document_id: Optional[str] = None) -> int:
        conditions = {"document_id": document_id} if document_id else None
        result = await self._request(
            "POST",
            self._endpoint_count(),
            json={"filter": build_filter(namespace, conditions), "exact": True},
        )
        return int(result.get("result", {}).get("count", 0))

    async def close(self) -> None:
        await self._client.aclose()
