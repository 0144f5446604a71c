from kbchat.services.ingestion.chunking import TextChunk, TextChunker
from kbchat.services.ingestion.dispatch import IngestionDispatcher
from kbchat.services.ingestion.extraction import PDFTextExtractor
from kbchat.services.ingestion.pipeline import IngestionPipeline

__all__ = ["TextChunk", "TextChunker", "IngestionDispatcher", "PDFTextExtractor", "IngestionPipeline"]
