"""Local disk storage for uploaded knowledge-base files."""

import hashlib
import logging
import os
import re
import time
import uuid
from typing import Optional

from kbchat.core.config import settings

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class FileStorage:
    """Store, locate and remove uploaded files under a single directory."""

    def __init__(self, upload_dir: Optional[str] = None):
        """Initialize the storage.

        Args:
            upload_dir: Directory uploads are written to, defaults to settings.UPLOAD_DIR
        """
        self.upload_dir = upload_dir or settings.UPLOAD_DIR
        if not os.path.exists(self.upload_dir):
            os.makedirs(self.upload_dir, exist_ok=True)
            logger.info(f"Created upload directory: {self.upload_dir}")

    @staticmethod
    def safe_filename(original_filename: str) -> str:
        """Strip directories and unusual characters from a client filename."""
        name = os.path.basename(original_filename or "") or "upload"
        return UNSAFE_FILENAME_CHARS.sub("_", name)

    def unique_filename(self, original_filename: str) -> str:
        """Prefix the filename with a millisecond timestamp and random suffix."""
        return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}-{self.safe_filename(original_filename)}"

    def save(self, content: bytes, original_filename: str) -> str:
        """Write uploaded bytes to disk.

        Args:
            content: File content
            original_filename: Filename as sent by the client

        Returns:
            Absolute path of the stored file
        """
        abs_file_path = os.path.join(self.upload_dir, self.unique_filename(original_filename))
        with open(abs_file_path, "wb") as f:
            f.write(content)
        logger.info(f"File saved to {abs_file_path}")
        return abs_file_path

    def delete(self, file_path: str) -> bool:
        """Delete a stored file.

        Returns:
            True if a file was removed, False if it was already gone
        """
        if not os.path.exists(file_path):
            logger.warning(f"File already removed: {file_path}")
            return False
        os.remove(file_path)
        logger.info(f"Deleted file: {file_path}")
        return True

    @staticmethod
    def calculate_hash(content: bytes) -> str:
        """SHA256 of the uploaded bytes, recorded in document metadata."""
        return hashlib.sha256(content).hexdigest()
