import json

import httpx
import pytest

from kbchat.core.errors import VectorIndexError
from kbchat.services.providers.base import VectorRecord
from kbchat.services.providers.qdrant_index import QdrantVectorIndex, build_filter, point_id_for


class QdrantStub:
    """Records requests and answers with canned Qdrant responses."""

    def __init__(self, responses=None):
        self.requests = []
        self.responses = responses or {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, request.url.path, dict(request.url.params), body))
        handler = self.responses.get((request.method, request.url.path))
        if callable(handler):
            return handler(request)
        if handler is not None:
            return httpx.Response(200, json=handler)
        return httpx.Response(200, json={"result": {}, "status": "ok"})


def make_index(stub, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(stub), base_url="http://qdrant")
    return QdrantVectorIndex("http://qdrant", "kb", client=client, **kwargs)


def records(n, document_id="doc-1"):
    return [
        VectorRecord(
            id=f"{document_id}-chunk-{i}",
            values=[0.1 * i, 0.2],
            metadata={"text": f"chunk {i}", "document_id": document_id, "chunk_index": i},
        )
        for i in range(n)
    ]


def test_point_ids_are_stable_uuids():
    assert point_id_for("doc-1-chunk-0") == point_id_for("doc-1-chunk-0")
    assert point_id_for("doc-1-chunk-0") != point_id_for("doc-1-chunk-1")


def test_build_filter_always_scopes_to_namespace():
    assert build_filter("chatbot-general", {"chatbot_type": "general"}) == {
        "must": [
            {"key": "namespace", "match": {"value": "chatbot-general"}},
            {"key": "chatbot_type", "match": {"value": "general"}},
        ]
    }


@pytest.mark.asyncio
async def test_upsert_batches_points_with_namespace_payload():
    stub = QdrantStub()
    index = make_index(stub, upsert_batch_size=2)

    written = await index.upsert("chatbot-general", records(3))

    assert written == 3
    assert [(method, path) for method, path, _, _ in stub.requests] == [
        ("PUT", "/collections/kb/points"),
        ("PUT", "/collections/kb/points"),
    ]
    first_batch = stub.requests[0][3]["points"]
    assert len(first_batch) == 2
    assert first_batch[0]["id"] == point_id_for("doc-1-chunk-0")
    assert first_batch[0]["payload"]["namespace"] == "chatbot-general"
    assert first_batch[0]["payload"]["record_id"] == "doc-1-chunk-0"
    assert stub.requests[0][2] == {"wait": "true"}
    await index.close()


@pytest.mark.asyncio
async def test_query_maps_points_back_to_records():
    stub = QdrantStub({
        ("POST", "/collections/kb/points/search"): {
            "result": [
                {
                    "id": point_id_for("doc-1-chunk-2"),
                    "score": 0.91,
                    "payload": {
                        "record_id": "doc-1-chunk-2",
                        "namespace": "chatbot-general",
                        "text": "chunk 2",
                        "file_name": "a.pdf",
                    },
                }
            ]
        }
    })
    index = make_index(stub)

    matches = await index.query("chatbot-general", [0.1, 0.2], top_k=5, filter={"chatbot_type": "general"})

    assert len(matches) == 1
    assert matches[0].id == "doc-1-chunk-2"
    assert matches[0].score == pytest.approx(0.91)
    assert matches[0].metadata == {"text": "chunk 2", "file_name": "a.pdf"}
    body = stub.requests[0][3]
    assert body["limit"] == 5
    assert body["filter"] == build_filter("chatbot-general", {"chatbot_type": "general"})
    await index.close()


@pytest.mark.asyncio
async def test_delete_document_filters_on_namespace_and_document():
    stub = QdrantStub()
    index = make_index(stub)

    await index.delete_document("chatbot-general", "doc-1")

    method, path, _, body = stub.requests[0]
    assert (method, path) == ("POST", "/collections/kb/points/delete")
    assert body == {"filter": build_filter("chatbot-general", {"document_id": "doc-1"})}
    await index.close()


@pytest.mark.asyncio
async def test_count_uses_exact_count():
    stub = QdrantStub({("POST", "/collections/kb/points/count"): {"result": {"count": 4}}})
    index = make_index(stub)

    assert await index.count("chatbot-general") == 4
    assert stub.requests[0][3] == {"filter": build_filter("chatbot-general"), "exact": True}
    await index.close()


@pytest.mark.asyncio
async def test_ensure_collection_creates_missing_collection():
    stub = QdrantStub({("GET", "/collections/kb/exists"): {"result": {"exists": False}}})
    index = make_index(stub)

    await index.ensure_collection(1024)

    calls = [(method, path) for method, path, _, _ in stub.requests]
    assert calls[0] == ("GET", "/collections/kb/exists")
    assert calls[1] == ("PUT", "/collections/kb")
    assert stub.requests[1][3] == {"vectors": {"size": 1024, "distance": "Cosine"}}
    indexed = [body["field_name"] for method, path, _, body in stub.requests if path.endswith("/index")]
    assert "namespace" in indexed and "document_id" in indexed
    await index.close()


@pytest.mark.asyncio
async def test_ensure_collection_skips_existing_collection():
    stub = QdrantStub({("GET", "/collections/kb/exists"): {"result": {"exists": True}}})
    index = make_index(stub)

    await index.ensure_collection(1024)

    assert len(stub.requests) == 1
    await index.close()


@pytest.mark.asyncio
async def test_http_error_becomes_vector_index_error():
    stub = QdrantStub({
        ("POST", "/collections/kb/points/search"): lambda request: httpx.Response(500, text="boom"),
    })
    index = make_index(stub)

    with pytest.raises(VectorIndexError) as exc_info:
        await index.query("chatbot-general", [0.1], top_k=1)

    assert exc_info.value.status_code == 502
    assert exc_info.value.timed_out is False
    await index.close()


@pytest.mark.asyncio
async def test_timeout_becomes_timed_out_vector_index_error():
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    stub = QdrantStub({("POST", "/collections/kb/points/search"): timeout})
    index = make_index(stub)

    with pytest.raises(VectorIndexError) as exc_info:
        await index.query("chatbot-general", [0.1], top_k=1)

    assert exc_info.value.timed_out is True
    assert exc_info.value.status_code == 504
    await index.close()
