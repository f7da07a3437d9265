"""
Upload handler for the Parser service.
"""

import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from fastapi import UploadFile

from shared.logging import get_logger
from shared.errors import ValidationError, PayloadTooLargeError

PDF_CONTENT_TYPE = "application/pdf"
CHUNK_SIZE = 1024 * 1024


@dataclass
class UploadRecord:
    """A PDF persisted to the upload directory."""
    filename: str
    path: Path
    original_filename: Optional[str]
    size: int
    content_type: str

    @property
    def stem(self) -> str:
        return self.path.stem


class UploadHandler:
    """Validates inbound PDFs and writes them under a generated name."""

    def __init__(self, upload_dir: Path, max_bytes: int = 50 * 1024 * 1024):
        self.upload_dir = Path(upload_dir)
        self.max_bytes = max_bytes
        self.logger = get_logger("parser.uploads")

    @staticmethod
    def generate_filename() -> str:
        """Millisecond timestamp plus 4 random bytes, hex encoded."""
        return f"{int(time.time() * 1000)}-{secrets.token_hex(4)}.pdf"

    def validate(self, upload: Optional[UploadFile]) -> UploadFile:
        """Reject missing, non-PDF or oversized uploads before touching disk."""
        if upload is None or not upload.filename:
            raise ValidationError("No PDF file uploaded")

        if upload.content_type != PDF_CONTENT_TYPE:
            raise ValidationError(
                "Only PDF files allowed",
                details={"content_type": upload.content_type}
            )

        if upload.size is not None and upload.size > self.max_bytes:
            raise PayloadTooLargeError(
                "File too large",
                details={"size": upload.size, "max_bytes": self.max_bytes}
            )

        return upload

    async def save(self, upload: Optional[UploadFile]) -> UploadRecord:
        """Validate and persist an upload, returning where it landed."""
        upload = self.validate(upload)

        self.upload_dir.mkdir(parents=True, exist_ok=True)
        filename = self.generate_filename()
        path = self.upload_dir / filename

        size = 0
        try:
            with path.open("wb") as handle:
                while True:
                    chunk = await upload.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise PayloadTooLargeError(
                            "File too large",
                            details={"max_bytes": self.max_bytes}
                        )
                    handle.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        finally:
            await upload.close()

        record = UploadRecord(
            filename=filename,
            path=path,
            original_filename=upload.filename,
            size=size,
            content_type=upload.content_type,
        )
        self.logger.info(
            "Upload stored",
            filename=filename,
            original_filename=upload.filename,
            size=size
        )
        return record
