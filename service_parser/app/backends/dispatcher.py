"""
Backend dispatcher: gateway first when it is ready, CLI otherwise.
"""

from contextlib import nullcontext
from typing import Callable, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.tracing import trace_operation

from .base import BackendResult, ExtractionBackend, PathLike


class BackendDispatcher:
    """Chooses an extraction strategy per call from a single readiness predicate.

    When the gateway reports ready, the WebSocket strategy runs first and
    any failure falls through to the CLI strategy within the same call.
    Nothing is remembered between calls; each one re-evaluates readiness.
    """

    def __init__(
        self,
        primary: ExtractionBackend,
        fallback: ExtractionBackend,
        is_ready: Callable[[], bool],
        metrics: Optional[MetricsCollector] = None,
    ):
        self.primary = primary
        self.fallback = fallback
        self._is_ready = is_ready
        self.metrics = metrics
        self.logger = get_logger("parser.backends.dispatcher")

    async def process(self, pdf_path: PathLike, csv_path: PathLike) -> BackendResult:
        if not self._is_ready():
            self.logger.info("Gateway not ready, using fallback", backend=self.fallback.name)
            return await self._run(self.fallback, pdf_path, csv_path)

        self.logger.info("Using gateway backend", backend=self.primary.name)
        try:
            return await self._run(self.primary, pdf_path, csv_path)
        except Exception as e:
            self.logger.warning(
                "Primary backend failed, trying fallback",
                backend=self.primary.name,
                fallback=self.fallback.name,
                error=str(e)
            )

        return await self._run(self.fallback, pdf_path, csv_path)

    async def _run(self, backend: ExtractionBackend, pdf_path: PathLike, csv_path: PathLike) -> BackendResult:
        outcome = "error"
        try:
            timer = (
                self.metrics.time_operation("backend_call_duration_seconds", backend=backend.name)
                if self.metrics else nullcontext()
            )
            with trace_operation(f"backend.{backend.name}", backend=backend.name, pdf_path=str(pdf_path)), timer:
                result = await backend.process(pdf_path, csv_path)
            outcome = "success"
            return result
        finally:
            if self.metrics:
                self.metrics.increment_counter("backend_calls_total", backend=backend.name, outcome=outcome)
