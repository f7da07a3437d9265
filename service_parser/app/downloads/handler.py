"""
Download handler for generated CSV files.
"""

from pathlib import Path

from shared.logging import get_logger
from shared.errors import ValidationError, NotFoundError

CSV_EXTENSION = ".csv"


class DownloadHandler:
    """Resolves requested CSV names inside the output directory."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)
        self.logger = get_logger("parser.downloads")

    @staticmethod
    def is_valid_filename(filename: str) -> bool:
        """String-level guard: .csv suffix and no parent traversal token."""
        return filename.endswith(CSV_EXTENSION) and ".." not in filename

    def resolve(self, filename: str) -> Path:
        """Return the path for filename, or raise if invalid or missing."""
        if not self.is_valid_filename(filename):
            raise ValidationError("Invalid filename", details={"filename": filename})

        path = self.output_dir / filename
        if not path.is_file():
            self.logger.info("Download target missing", path=str(path))
            raise NotFoundError("File not found", details={"filename": filename})

        return path
