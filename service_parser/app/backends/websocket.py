"""
WebSocket extraction backend.

Sends one instruction envelope to the local agent gateway and folds the
streamed reply into a single text result. Frames are correlated by their
``type`` tag only; one call owns one connection, so no request ids are
needed.
"""

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from shared.logging import get_logger
from shared.errors import BackendError, BackendTimeoutError

from .base import BackendResult, PathLike
from .prompt import build_extraction_prompt

CONTENT_TYPES = frozenset({"content", "text"})
TERMINAL_TYPES = frozenset({"done", "complete", "end"})
ERROR_TYPE = "error"


@dataclass
class GatewaySession:
    """Correlation state for one in-flight gateway call."""
    token: Optional[str]
    opened: bool = False
    completed: bool = False
    buffer: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "".join(self.buffer)


class WebSocketBackend:
    """Delegates extraction to the agent gateway over a WebSocket."""

    name = "gateway"

    def __init__(
        self,
        host: str,
        port: int,
        token_provider: Callable[[], Optional[str]],
        is_ready: Callable[[], bool],
        agent_name: str = "main",
        timeout: float = 300.0,
    ):
        self.host = host
        self.port = port
        self.agent_name = agent_name
        self.timeout = timeout
        self._token_provider = token_provider
        self._is_ready = is_ready
        self.logger = get_logger("parser.backends.websocket")

    @property
    def url(self) -> str:
        return f"ws://{self.host}:{self.port}"

    async def process(self, pdf_path: PathLike, csv_path: PathLike) -> BackendResult:
        """Run one gateway exchange bounded by the configured timeout."""
        if not self._is_ready():
            raise BackendError("Gateway not ready")

        prompt = build_extraction_prompt(pdf_path, csv_path)
        session = GatewaySession(token=self._token_provider())
        self.logger.info("Connecting to gateway", url=self.url, prompt_preview=prompt[:100])

        try:
            message = await asyncio.wait_for(self._exchange(session, prompt), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Gateway exchange timed out", timeout_seconds=self.timeout)
            raise BackendTimeoutError(
                "Gateway timeout",
                details={"timeout_seconds": self.timeout, "partial_chars": len(session.text)}
            ) from None

        return BackendResult(success=True, message=message, backend=self.name)

    def build_envelope(self, prompt: str) -> Dict[str, Any]:
        return {"type": "message", "agent": self.agent_name, "content": prompt}

    async def _exchange(self, session: GatewaySession, prompt: str) -> str:
        headers = {}
        if session.token:
            headers["Authorization"] = f"Bearer {session.token}"

        try:
            async with connect(self.url, additional_headers=headers, max_size=None) as ws:
                session.opened = True
                self.logger.info("Gateway connected")
                try:
                    await ws.send(json.dumps(self.build_envelope(prompt)))
                    async for frame in ws:
                        if self._handle_frame(session, frame):
                            return session.text
                except ConnectionClosed as e:
                    self.logger.info("Gateway connection closed", code=getattr(e.rcvd, "code", None))
        except (OSError, WebSocketException) as e:
            self.logger.error("Gateway connection error", error=str(e))
            raise BackendError(f"WebSocket error: {e}") from e

        # Closed before a terminal frame: partial output still counts.
        if session.buffer:
            self.logger.warning(
                "Gateway closed without completion, using partial response",
                chars=len(session.text)
            )
            return session.text

        raise BackendError("WebSocket closed without response")

    def _handle_frame(self, session: GatewaySession, frame: Union[str, bytes]) -> bool:
        """Fold one frame into the session; True once a terminal frame arrives."""
        if isinstance(frame, bytes):
            frame = frame.decode("utf-8", errors="replace")

        try:
            msg = json.loads(frame)
        except ValueError:
            session.buffer.append(frame)
            return False

        if not isinstance(msg, dict):
            return False

        self.logger.debug("Gateway frame", frame=frame[:200])
        msg_type = msg.get("type")

        if msg_type in CONTENT_TYPES:
            session.buffer.append(str(msg.get("content") or msg.get("text") or ""))
            return False

        if msg_type in TERMINAL_TYPES:
            session.completed = True
            return True

        if msg_type == ERROR_TYPE:
            raise BackendError(str(msg.get("error") or msg.get("message") or "Gateway error"))

        return False
