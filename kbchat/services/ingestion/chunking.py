"""Utilities for chunking extracted document text into embedding-sized pieces."""

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import tiktoken

logger = logging.getLogger(__name__)

# Default chunking parameters
DEFAULT_MAX_TOKENS = 500
DEFAULT_OVERLAP_WORDS = 50
DEFAULT_MODEL = "gpt-4o-mini"  # Model to use for token counting

# A sentence is a run of non-terminators followed by terminators, or the
# trailing text when the document does not end with one.
SENTENCE_REGEX = re.compile(r"[^.!?]+(?:[.!?]+|$)|[.!?]+")
WHITESPACE_REGEX = re.compile(r"\s+")


@dataclass(frozen=True)
class TextChunk:
    """A bounded segment of document text, the unit of embedding and retrieval."""

    text: str
    index: int
    token_count: int
    # Sentence units this chunk contributed, not counting the overlap seed
    sentences: Tuple[str, ...] = field(default=(), compare=False, repr=False)


def approximate_token_count(text: str) -> int:
    """Cheap token estimate: roughly one token per four characters."""
    return math.ceil(len(text) / 4)


def normalize_whitespace(text: str) -> str:
    return WHITESPACE_REGEX.sub(" ", text).strip()


def split_sentences(text: str) -> List[str]:
    """Split normalized text into sentence-like units.

    Text without any terminator comes back as a single unit.
    """
    units = [match.group(0).strip() for match in SENTENCE_REGEX.finditer(text)]
    units = [unit for unit in units if unit]
    if not units and text.strip():
        return [text.strip()]
    return units


class TextChunker:
    """Greedy sentence packer with a word-level overlap between chunks."""

    def __init__(
        self,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        overlap_words: int = DEFAULT_OVERLAP_WORDS,
        tokenizer: str = "tiktoken",
        model: str = DEFAULT_MODEL,
        token_counter: Optional[Callable[[str], int]] = None,
    ):
        """Initialize the chunker.

        Args:
            max_tokens: Maximum estimated tokens per chunk
            overlap_words: Words carried over from the end of one chunk to the next
            tokenizer: "tiktoken" for model-accurate counts, "approx" for chars / 4
            model: Model to use for tiktoken token counting
            token_counter: Explicit counting function, overrides ``tokenizer``
        """
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if overlap_words < 0:
            raise ValueError("overlap_words must not be negative")

        self.max_tokens = max_tokens
        self.overlap_words = overlap_words
        self.model = model
        self._encoding = None

        if token_counter is not None:
            self._count = token_counter
        elif tokenizer == "approx":
            self._count = approximate_token_count
        elif tokenizer == "tiktoken":
            self._count = self._count_with_tiktoken
        else:
            raise ValueError(f"Unknown tokenizer: {tokenizer}")

    def _count_with_tiktoken(self, text: str) -> int:
        if self._encoding is None:
            try:
                self._encoding = tiktoken.encoding_for_model(self.model)
            except KeyError:
                logger.warning(f"No tokenizer registered for {self.model}. Using cl100k_base instead.")
                self._encoding = tiktoken.get_encoding("cl100k_base")
        return len(self._encoding.encode(text))

    def count_tokens(self, text: str) -> int:
        """Count the number of tokens in text."""
        return self._count(text)

    def chunk(self, text: str) -> List[TextChunk]:
        """Split raw text into ordered, overlapping chunks.

        Args:
            text: Raw extracted document text

        Returns:
            List of chunks with zero-based sequential indexes. Empty or
            whitespace-only input yields an empty list.
        """
        normalized = normalize_whitespace(text or "")
        if not normalized:
            return []

        sentences = split_sentences(normalized)
        chunks: List[TextChunk] = []

        current_text = ""
        current_tokens = 0
        current_sentences: List[str] = []

        for sentence in sentences:
            sentence_tokens = self.count_tokens(sentence)

            if current_sentences and current_tokens + sentence_tokens > self.max_tokens:
                chunks.append(self._make_chunk(current_text, len(chunks), current_sentences))

                seed = self._overlap_seed(current_text)
                current_text = f"{seed} {sentence}" if seed else sentence
                current_tokens = self.count_tokens(current_text)
                current_sentences = [sentence]
            else:
                current_text = f"{current_text} {sentence}" if current_text else sentence
                current_tokens += sentence_tokens
                current_sentences.append(sentence)

        if current_sentences:
            chunks.append(self._make_chunk(current_text, len(chunks), current_sentences))

        logger.info(f"Split text into {len(chunks)} chunks")
        return chunks

    def _overlap_seed(self, chunk_text: str) -> str:
        if self.overlap_words == 0:
            return ""
        return " ".join(chunk_text.split(" ")[-self.overlap_words:])

    def _make_chunk(self, chunk_text: str, index: int, sentences: List[str]) -> TextChunk:
        chunk_text = chunk_text.strip()
        return TextChunk(
            text=chunk_text,
            index=index,
            token_count=self.count_tokens(chunk_text),
            sentences=tuple(sentences),
        )
