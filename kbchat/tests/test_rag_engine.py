import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from kbchat.core.constants import ChatbotType, vector_record_id
from kbchat.core.errors import CompletionError, EmbeddingError, ValidationError, VectorIndexError
from kbchat.services.providers.base import VectorRecord
from kbchat.services.rag.engine import RAGEngine, RetrievedChunk, unique_sources
from kbchat.services.rag.prompts import SYSTEM_PROMPTS, build_context_message


def knowledge_base(has_documents: bool):
    lookup = MagicMock()
    lookup.has_completed_documents = AsyncMock(return_value=has_documents)
    return lookup


@pytest.fixture
def engine(rag_clients):
    return RAGEngine(rag_clients, top_k=3, temperature=0.7, answer_max_tokens=800, fallback_max_tokens=500)


@pytest_asyncio.fixture
async def populated_index(vector_index, embedder):
    texts = [
        ("doc-a", 0, "heavy.pdf", "Heavy periods can be caused by fibroids or polyps."),
        ("doc-a", 1, "heavy.pdf", "Hormonal imbalance can also cause heavy periods."),
        ("doc-b", 0, "coil.pdf", "The hormonal coil reduces menstrual bleeding."),
        ("doc-c", 0, "hrt.pdf", "HRT relieves hot flushes."),
    ]
    records = [
        VectorRecord(
            id=vector_record_id(document_id, index),
            values=embedder.vector(text),
            metadata={
                "text": text,
                "file_name": file_name,
                "chatbot_type": "general",
                "document_id": document_id,
                "chunk_index": index,
            },
        )
        for document_id, index, file_name, text in texts
    ]
    await vector_index.upsert("chatbot-general", records)
    return vector_index


@pytest.mark.asyncio
async def test_without_knowledge_base_vector_index_is_never_queried(engine, vector_index, embedder, completer):
    answer = await engine.answer("What helps hot flushes?", ChatbotType.MENOPAUSE, knowledge_base(False))

    assert answer.has_knowledge_base is False
    assert answer.sources == []
    assert answer.relevant_chunks == []
    assert answer.response
    assert vector_index.query_calls == []
    assert embedder.embed_calls == []

    messages = completer.calls[0]["messages"]
    assert messages == [
        {"role": "system", "content": SYSTEM_PROMPTS[ChatbotType.MENOPAUSE]},
        {"role": "user", "content": "What helps hot flushes?"},
    ]
    assert completer.calls[0]["max_tokens"] == 500


@pytest.mark.asyncio
async def test_grounded_answer_uses_topic_namespace_and_filter(engine, populated_index, completer):
    answer = await engine.answer("What causes heavy periods?", ChatbotType.GENERAL, knowledge_base(True))

    assert answer.has_knowledge_base is True
    assert populated_index.query_calls == [
        {"namespace": "chatbot-general", "top_k": 3, "filter": {"chatbot_type": "general"}}
    ]
    assert len(answer.relevant_chunks) == 3
    assert completer.calls[0]["max_tokens"] == 800


@pytest.mark.asyncio
async def test_sources_are_deduplicated_in_similarity_order(engine, populated_index):
    answer = await engine.answer("What causes heavy periods?", ChatbotType.GENERAL, knowledge_base(True))

    scores = [chunk.score for chunk in answer.relevant_chunks]
    assert scores == sorted(scores, reverse=True)
    assert answer.sources == unique_sources(answer.relevant_chunks)
    assert len(answer.sources) == len(set(answer.sources))
    assert answer.sources[0] == "heavy.pdf"


@pytest.mark.asyncio
async def test_message_order_with_history(engine, populated_index, completer):
    history = [
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Hi, how can I help?"},
    ]

    answer = await engine.answer(
        "What causes heavy periods?", ChatbotType.GENERAL, knowledge_base(True), conversation_history=history
    )

    messages = completer.calls[0]["messages"]
    assert [m["role"] for m in messages] == ["system", "system", "user", "assistant", "user"]
    assert messages[0]["content"] == SYSTEM_PROMPTS[ChatbotType.GENERAL]
    assert messages[1]["content"] == build_context_message([c.text for c in answer.relevant_chunks])
    assert "[Context 1]: " in messages[1]["content"]
    assert messages[2]["content"] == "Hello"
    assert messages[3]["content"] == "Hi, how can I help?"
    assert messages[-1] == {"role": "user", "content": "What causes heavy periods?"}


@pytest.mark.asyncio
async def test_fallback_still_includes_history(engine, completer):
    history = [{"role": "user", "content": "Hi"}, {"role": "assistant", "content": "Hello!"}]

    await engine.answer("And HRT?", ChatbotType.MENOPAUSE, knowledge_base(False), conversation_history=history)

    roles = [m["role"] for m in completer.calls[0]["messages"]]
    assert roles == ["system", "user", "assistant", "user"]


@pytest.mark.asyncio
async def test_embedding_failure_propagates(engine, embedder, completer):
    embedder.fail_with = EmbeddingError("embedding timed out", timed_out=True)

    with pytest.raises(EmbeddingError) as exc_info:
        await engine.answer("Question?", ChatbotType.GENERAL, knowledge_base(True))

    assert exc_info.value.status_code == 504
    assert completer.calls == []


@pytest.mark.asyncio
async def test_index_failure_propagates(engine, vector_index, completer):
    vector_index.query = AsyncMock(side_effect=VectorIndexError("index unavailable"))

    with pytest.raises(VectorIndexError):
        await engine.answer("Question?", ChatbotType.GENERAL, knowledge_base(True))

    assert completer.calls == []


@pytest.mark.asyncio
async def test_completion_failure_propagates(engine, completer):
    completer.fail_with = CompletionError("model overloaded")

    with pytest.raises(CompletionError):
        await engine.answer("Question?", ChatbotType.AESTHETIC, knowledge_base(False))


@pytest.mark.asyncio
async def test_blank_query_is_rejected(engine):
    with pytest.raises(ValidationError):
        await engine.answer("   ", ChatbotType.GENERAL, knowledge_base(True))


def test_every_topic_has_a_system_prompt():
    assert set(SYSTEM_PROMPTS) == set(ChatbotType)
    with pytest.raises(TypeError):
        SYSTEM_PROMPTS[ChatbotType.GENERAL] = "changed"


def test_unique_sources_keeps_first_seen_order():
    chunks = [
        RetrievedChunk(text="a", file_name="b.pdf", score=0.9),
        RetrievedChunk(text="b", file_name="a.pdf", score=0.8),
        RetrievedChunk(text="c", file_name="b.pdf", score=0.7),
    ]

    assert unique_sources(chunks) == ["b.pdf", "a.pdf"]
