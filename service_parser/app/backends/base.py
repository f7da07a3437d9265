"""
Common types for extraction backends.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Union, runtime_checkable

PathLike = Union[str, Path]


@dataclass
class BackendResult:
    """Textual outcome of handing a PDF to the agent runtime."""
    success: bool
    message: str
    backend: str


@runtime_checkable
class ExtractionBackend(Protocol):
    """A way of asking the agent runtime to turn a PDF into a CSV."""

    name: str

    async def process(self, pdf_path: PathLike, csv_path: PathLike) -> BackendResult:
        """Run extraction, raising BackendError on failure."""
        ...
