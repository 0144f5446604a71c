"""Test fixtures for the application."""

import hashlib
import math
import re
from typing import List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kbchat.core.config import Settings
from kbchat.db.base import Base
from kbchat.services.providers import RagClients
from kbchat.services.providers.base import CompletionProvider, EmbeddingProvider
from kbchat.services.providers.memory_index import InMemoryVectorIndex
from kbchat.services.storage import FileStorage

FAKE_DIMENSIONS = 64
WORD_REGEX = re.compile(r"[a-z]+")


class FakeEmbedder(EmbeddingProvider):
    """Deterministic bag-of-words embeddings, no network."""

    def __init__(self, dimensions: int = FAKE_DIMENSIONS):
        self.dimensions = dimensions
        self.batch_calls: List[List[str]] = []
        self.embed_calls: List[str] = []
        self.fail_with: Optional[Exception] = None

    def vector(self, text: str) -> List[float]:
        values = [0.0] * self.dimensions
        for word in WORD_REGEX.findall(text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dimensions
            values[bucket] += 1.0
        norm = math.sqrt(sum(v * v for v in values)) or 1.0
        return [v / norm for v in values]

    async def embed(self, text: str) -> List[float]:
        self.embed_calls.append(text)
        if self.fail_with:
            raise self.fail_with
        return self.vector(text)

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.batch_calls.append(list(texts))
        if self.fail_with:
            raise self.fail_with
        return [self.vector(text) for text in texts]


class FakeCompleter(CompletionProvider):
    """Records every message sequence and echoes the last user message."""

    def __init__(self):
        self.calls: List[dict] = []
        self.fail_with: Optional[Exception] = None

    async def complete(self, messages, temperature=0.7, max_tokens=800) -> str:
        self.calls.append({"messages": messages, "temperature": temperature, "max_tokens": max_tokens})
        if self.fail_with:
            raise self.fail_with
        return f"Answer to: {messages[-1]['content']}"


class SpyVectorIndex(InMemoryVectorIndex):
    """In-memory index that counts queries."""

    def __init__(self):
        super().__init__()
        self.query_calls: List[dict] = []

    async def query(self, namespace, vector, top_k=5, filter=None):
        self.query_calls.append({"namespace": namespace, "top_k": top_k, "filter": filter})
        return await super().query(namespace, vector, top_k=top_k, filter=filter)


def _escape_pdf_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")


def build_pdf(pages: List[str]) -> bytes:
    """Build a minimal PDF with one line of Helvetica text per page.

    An empty string produces a blank page.
    """
    objects = [
        (1, b"<< /Type /Catalog /Pages 2 0 R >>"),
        None,
        (3, b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>"),
    ]
    page_ids = []
    next_id = 4
    for text in pages:
        page_id, content_id = next_id, next_id + 1
        next_id += 2
        page_ids.append(page_id)
        stream = f"BT /F1 12 Tf 72 720 Td ({_escape_pdf_text(text)}) Tj ET".encode("latin-1") if text else b""
        objects.append((
            page_id,
            (
                "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
                f"/Resources << /Font << /F1 3 0 R >> >> /Contents {content_id} 0 R >>"
            ).encode("latin-1"),
        ))
        objects.append((content_id, b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"))

    kids = " ".join(f"{page_id} 0 R" for page_id in page_ids)
    objects[1] = (2, f"<< /Type /Pages /Kids [{kids}] /Count {len(page_ids)} >>".encode("latin-1"))

    out = bytearray(b"%PDF-1.4\n")
    offsets = {}
    for number, body in objects:
        offsets[number] = len(out)
        out += b"%d 0 obj\n" % number + body + b"\nendobj\n"

    xref_offset = len(out)
    out += b"xref\n0 %d\n" % (len(objects) + 1)
    out += b"0000000000 65535 f \n"
    for number in range(1, len(objects) + 1):
        out += b"%010d 00000 n \n" % offsets[number]
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (len(objects) + 1, xref_offset)
    return bytes(out)


@pytest.fixture
def pdf_factory(tmp_path):
    """Write a generated PDF to disk and return its path."""

    def _write(pages: List[str], name: str = "document.pdf") -> str:
        path = tmp_path / name
        path.write_bytes(build_pdf(pages))
        return str(path)

    return _write


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        CHUNK_TOKENIZER="approx",
        INGESTION_BACKEND="background",
        VECTOR_INDEX_BACKEND="memory",
        UPLOAD_DIR=str(tmp_path / "uploads"),
        OPENAI_API_KEY="",
    )


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """A fresh SQLite database file per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    """Create a clean database session for a test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def embedder():
    return FakeEmbedder()


@pytest.fixture
def completer():
    return FakeCompleter()


@pytest.fixture
def vector_index():
    return SpyVectorIndex()


@pytest.fixture
def rag_clients(embedder, completer, vector_index) -> RagClients:
    return RagClients(embedder=embedder, completer=completer, vector_index=vector_index)


@pytest.fixture
def storage(tmp_path) -> FileStorage:
    return FileStorage(str(tmp_path / "uploads"))
