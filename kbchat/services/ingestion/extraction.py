"""Plain-text extraction from uploaded PDF files."""

import asyncio
import logging
import os

from pdfminer.high_level import extract_text

from kbchat.core.errors import ExtractionError

logger = logging.getLogger(__name__)


class PDFTextExtractor:
    """Extract the full text of a PDF with pdfminer.six."""

    def extract(self, file_path: str) -> str:
        """Return the extracted plain text of a PDF.

        Args:
            file_path: Absolute path to the PDF on disk

        Returns:
            The extracted text, never empty

        Raises:
            ExtractionError: If the file cannot be read or parsed, or if it
                contains no extractable text (e.g. scanned images only)
        """
        if not os.path.exists(file_path):
            raise ExtractionError(f"File not found: {os.path.basename(file_path)}")

        try:
            text = extract_text(file_path)
        except Exception as e:
            logger.error(f"Error reading PDF {file_path}: {e}")
            raise ExtractionError(f"Failed to extract text from PDF: {e}") from e

        if not text or not text.strip():
            raise ExtractionError("No text content found in PDF")

        logger.info(f"Extracted {len(text)} characters from PDF: {os.path.basename(file_path)}")
        return text

    async def extract_async(self, file_path: str) -> str:
        """Run :meth:`extract` in a worker thread so the event loop stays free."""
        return await asyncio.to_thread(self.extract, file_path)
