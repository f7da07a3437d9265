"""
Unit tests for the download handler.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_parser.app.downloads.handler import DownloadHandler
from shared.errors import ValidationError, NotFoundError


class TestDownloadHandler:
    """Test cases for DownloadHandler."""

    @pytest.fixture
    def output_dir(self, tmp_path):
        directory = tmp_path / "output"
        directory.mkdir()
        return directory

    @pytest.fixture
    def handler(self, output_dir):
        return DownloadHandler(output_dir)

    def test_resolve_existing_csv(self, handler, output_dir):
        """Test a valid existing CSV resolves inside the output dir."""
        target = output_dir / "123-abcd_parsed.csv"
        target.write_text("a,b\n")

        assert handler.resolve("123-abcd_parsed.csv") == target

    @pytest.mark.parametrize("filename", ["report.txt", "report.csv.bak", "report", "..csv", "a..b.csv"])
    def test_invalid_names_rejected(self, handler, filename):
        """Test names without the .csv suffix or with '..' are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            handler.resolve(filename)

        assert exc_info.value.message == "Invalid filename"

    def test_traversal_rejected_even_if_file_exists(self, handler, output_dir):
        """Test the string guard wins over file existence."""
        (output_dir / "x..y.csv").write_text("a\n")

        with pytest.raises(ValidationError):
            handler.resolve("x..y.csv")

    def test_missing_file(self, handler):
        """Test valid but absent names raise not found."""
        with pytest.raises(NotFoundError) as exc_info:
            handler.resolve("missing.csv")

        assert exc_info.value.status_code == 404
