"""
Parser service for the EOG Parser API.
"""

import os
import secrets
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import Header, Request
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask
from starlette.datastructures import UploadFile

from shared.base_service import BaseService
from shared.errors import AuthenticationError, BackendError, GatewayStartupError, RateLimitError

from .backends.base import BackendResult
from .backends.cli import CliBackend
from .backends.dispatcher import BackendDispatcher
from .backends.websocket import WebSocketBackend
from .cleanup import CleanupScheduler
from .config import ParserConfig
from .downloads.handler import DownloadHandler
from .gateway.bootstrap import prepare_agent_state
from .gateway.supervisor import GatewaySupervisor
from .ratelimit.fixed_window import FixedWindowRateLimiter, RateLimitDecision
from .uploads.handler import UploadHandler


class ParserService(BaseService):
    """PDF-to-CSV façade over the agent runtime.

    Owns every piece of state shared across requests: the rate limiter
    windows and the gateway supervisor's readiness flag.
    """

    def __init__(self, config: Optional[ParserConfig] = None):
        config = config or ParserConfig()
        super().__init__("parser", config.port, config=config)

        for directory in (self.config.upload_dir, self.config.output_dir):
            directory.mkdir(parents=True, exist_ok=True)
            self.logger.info("Ensured directory", path=str(directory))

        self.rate_limiter = FixedWindowRateLimiter(
            limit=self.config.rate_limit_requests,
            window_seconds=self.config.rate_limit_window_seconds,
        )
        self.uploads = UploadHandler(self.config.upload_dir, max_bytes=self.config.max_upload_bytes)
        self.downloads = DownloadHandler(self.config.output_dir)
        self.cleanup = CleanupScheduler()

        self.supervisor = GatewaySupervisor(
            agent_command=self.config.agent_command,
            port=self.config.gateway_port,
            state_dir=str(self.config.state_dir),
            token=self.config.gateway_token,
            startup_grace=self.config.gateway_startup_grace_seconds,
            metrics=self.metrics,
        )
        self.dispatcher = BackendDispatcher(
            primary=WebSocketBackend(
                host=self.config.gateway_host,
                port=self.config.gateway_port,
                token_provider=lambda: self.supervisor.token,
                is_ready=self.supervisor.is_ready,
                agent_name=self.config.agent_name,
                timeout=self.config.backend_timeout_seconds,
            ),
            fallback=CliBackend(
                agent_command=self.config.agent_command,
                agent_name=self.config.agent_name,
                state_dir=self.config.state_dir,
                timeout=self.config.backend_timeout_seconds,
            ),
            is_ready=self.supervisor.is_ready,
            metrics=self.metrics,
        )

        self.logger.info(
            "Parser service configured",
            port=self.config.port,
            upload_dir=str(self.config.upload_dir),
            output_dir=str(self.config.output_dir),
            state_dir=str(self.config.state_dir),
            gateway_port=self.config.gateway_port,
            anthropic_key_set=self._anthropic_key_set(),
        )

        @self.app.on_event("startup")
        async def _startup():
            await self.start()

        @self.app.on_event("shutdown")
        async def _shutdown():
            await self.stop()

        self._setup_parser_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.parser_service = self

    def _anthropic_key_set(self) -> bool:
        return bool(self.config.anthropic_api_key or os.getenv("ANTHROPIC_API_KEY"))

    async def start(self):
        """Prepare agent state and bring up the gateway; failures degrade to CLI-only."""
        token = self.supervisor.ensure_token()
        if self.config.agent_bootstrap:
            try:
                prepare_agent_state(self.config, token)
            except OSError as e:
                self.logger.error("Failed to prepare agent state", error=str(e))

        if not self.config.start_gateway:
            self.logger.info("Gateway startup disabled, using CLI backend only")
            return

        try:
            await self.supervisor.start()
            self.logger.info("Gateway started", ready=self.supervisor.ready)
        except GatewayStartupError as e:
            self.logger.error("Failed to start gateway", error=e.message)
            self.logger.info("Will use CLI fallback for processing")

    async def stop(self):
        """Stop the gateway and drop pending cleanups."""
        await self.supervisor.stop()
        await self.cleanup.shutdown()
        self.logger.info("Parser service stopped")

    async def _health_payload(self) -> Dict[str, Any]:
        payload = await super()._health_payload()
        payload.update({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "gatewayReady": self.supervisor.ready,
            "anthropicKeySet": self._anthropic_key_set(),
        })
        return payload

    def _check_api_key(self, api_key: Optional[str]) -> None:
        required = self.config.api_key
        if required and not (api_key and secrets.compare_digest(api_key, required)):
            raise AuthenticationError("Invalid API key")

    def _client_identity(self, request: Request) -> str:
        """Rate-limit key: the socket peer, unless a trusted proxy sets forwarding headers."""
        if self.config.trust_proxy_headers:
            return self._get_client_ip(request)
        return request.client.host if request.client else "unknown"

    def _enforce_rate_limit(self, request: Request) -> RateLimitDecision:
        decision = self.rate_limiter.check(self._client_identity(request))
        if not decision.allowed:
            self.metrics.increment_counter("rate_limit_rejections_total")
            error = RateLimitError(
                "Rate limit exceeded. Try again later.",
                details={"limit": decision.limit, "reset_in_seconds": decision.reset_in_seconds}
            )
            error.headers = self._rate_limit_headers(decision)
            error.headers["Retry-After"] = str(decision.reset_in_seconds)
            raise error
        return decision

    def _rate_limit_headers(self, decision: RateLimitDecision) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(decision.limit),
            "X-RateLimit-Remaining": str(decision.remaining),
            "X-RateLimit-Reset": str(decision.reset_in_seconds),
        }

    def _parse_response(self, csv_path, result: Optional[BackendResult], error: Optional[BackendError],
                        decision: RateLimitDecision) -> JSONResponse:
        """Judge a completed parse by the CSV on disk; a failed dispatch is always an error."""
        if error is not None:
            if csv_path.exists():
                self.logger.warning(
                    "Backends failed, ignoring CSV on disk",
                    error=error.message,
                    csv_path=str(csv_path)
                )
            self.metrics.increment_counter("parse_requests_total", outcome="error")
            raise error

        if csv_path.exists():
            self.logger.info("CSV file created successfully", csv_path=str(csv_path))
            self.metrics.increment_counter("parse_requests_total", outcome="csv")
            body = {
                "success": True,
                "message": "PDF parsed successfully",
                "downloadUrl": f"/api/download/{csv_path.name}",
            }
        else:
            self.logger.info("CSV file not found after processing", csv_path=str(csv_path))
            self.metrics.increment_counter("parse_requests_total", outcome="no_csv")
            body = {
                "success": True,
                "message": result.message,
                "note": "CSV may not have been generated - check response for details",
            }

        return JSONResponse(content=body, headers=self._rate_limit_headers(decision))

    def _setup_parser_routes(self):
        """Set up parser routes."""

        @self.app.get("/api/gateway-status")
        async def gateway_status():
            """Gateway readiness as seen by the dispatcher."""
            return {"ready": self.supervisor.ready, "port": self.supervisor.port}

        @self.app.post("/api/parse")
        async def parse_pdf(request: Request, x_api_key: Optional[str] = Header(None)):
            """Accept a PDF and have the agent runtime turn it into a CSV."""
            self._check_api_key(x_api_key)
            decision = self._enforce_rate_limit(request)
            self.logger.info("Parse request", client_ip=self._client_identity(request))

            async with request.form() as form:
                # A plain text field named pdf counts as no upload.
                pdf = form.get("pdf")
                record = await self.uploads.save(pdf if isinstance(pdf, UploadFile) else None)
            csv_path = self.config.output_dir / f"{record.stem}_parsed.csv"
            self.logger.info("Processing PDF", pdf_path=str(record.path), csv_path=str(csv_path))

            try:
                try:
                    result, error = await self.dispatcher.process(record.path, csv_path), None
                except BackendError as e:
                    result, error = None, e
                return self._parse_response(csv_path, result, error, decision)
            finally:
                self.cleanup.schedule(record.path, self.config.upload_cleanup_delay_seconds)

        @self.app.get("/api/download/{filename}")
        async def download_csv(filename: str):
            """Stream a generated CSV and schedule its removal."""
            self.logger.info("Download requested", filename=filename)
            path = self.downloads.resolve(filename)

            return FileResponse(
                path,
                media_type="text/csv",
                filename=filename,
                background=BackgroundTask(
                    self.cleanup.schedule_async, path, self.config.download_cleanup_delay_seconds
                ),
            )


def create_app(config: Optional[ParserConfig] = None):
    """Create FastAPI application."""
    service = ParserService(config)
    return service.app


if __name__ == "__main__":
    service = ParserService()
    service.run()
