"""
Supervisor for the agent gateway process.
"""

import asyncio
import atexit
import os
import secrets
import signal
from typing import Dict, List, Optional

from shared.logging import get_logger, mask_secret
from shared.errors import GatewayStartupError
from shared.metrics import MetricsCollector

READY_MARKERS = ("listening", "ready", "started")
MAX_CAPTURED_CHARS = 16384


class GatewaySupervisor:
    """Launches the gateway once and tracks whether it can take calls.

    Readiness is confirmed by a marker on stdout/stderr. When no marker
    shows up within the grace period the gateway is assumed ready anyway;
    a call dispatched too early then fails over to the CLI backend.
    Service shutdown (which uvicorn runs on SIGTERM/SIGINT) stops the
    child, and an atexit hook catches any exit path that skips shutdown.
    """

    def __init__(
        self,
        agent_command: str = "openclaw",
        port: int = 18789,
        state_dir: Optional[str] = None,
        token: Optional[str] = None,
        startup_grace: float = 5.0,
        stop_timeout: float = 10.0,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.agent_command = agent_command
        self._port = port
        self.state_dir = state_dir
        self._token = token
        self.startup_grace = startup_grace
        self.stop_timeout = stop_timeout
        self.metrics = metrics
        self.logger = get_logger("parser.gateway.supervisor")

        self._process: Optional[asyncio.subprocess.Process] = None
        self._ready = False
        self._output: List[str] = []
        self._readers: List[asyncio.Task] = []
        self._watcher: Optional[asyncio.Task] = None
        self._atexit_registered = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def port(self) -> int:
        return self._port

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    @property
    def captured_output(self) -> str:
        return "".join(self._output)[-MAX_CAPTURED_CHARS:]

    def is_ready(self) -> bool:
        return self._ready

    def ensure_token(self) -> str:
        """Return the gateway auth token, generating one on first use."""
        if not self._token:
            self._token = secrets.token_hex(32)
            self.logger.info("Generated gateway auth token", token=mask_secret(self._token))
        return self._token

    def build_command(self) -> List[str]:
        return [
            self.agent_command, "gateway", "run",
            "--bind", "loopback",
            "--port", str(self._port),
            "--auth", "token",
        ]

    def build_environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.state_dir is not None:
            env["OPENCLAW_STATE_DIR"] = str(self.state_dir)
        env["OPENCLAW_GATEWAY_TOKEN"] = self._token or ""
        env["NODE_OPTIONS"] = "--max-old-space-size=1024"
        return env

    async def start(self) -> None:
        """Spawn the gateway and wait for readiness, a crash, or the grace period."""
        if self.running:
            return

        self.ensure_token()

        command = self.build_command()
        self.logger.info("Starting gateway", command=" ".join(command))

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_environment(),
            )
        except OSError as e:
            self.logger.error("Gateway process error", error=str(e))
            raise GatewayStartupError(f"Failed to launch gateway: {e}") from e

        if not self._atexit_registered:
            atexit.register(self._terminate_orphan)
            self._atexit_registered = True

        ready_event = asyncio.Event()
        self._output = []
        self._readers = [
            asyncio.create_task(self._pump(self._process.stdout, "stdout", ready_event)),
            asyncio.create_task(self._pump(self._process.stderr, "stderr", ready_event)),
        ]
        self._watcher = asyncio.create_task(self._watch(self._process))

        ready_wait = asyncio.create_task(ready_event.wait())
        try:
            await asyncio.wait(
                {ready_wait, self._watcher},
                timeout=self.startup_grace,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            ready_wait.cancel()

        if self._watcher.done():
            if ready_event.is_set():
                return
            returncode = self._process.returncode
            raise GatewayStartupError(
                f"Gateway exited with code {returncode}: {self.captured_output}",
                details={"returncode": returncode}
            )

        if ready_event.is_set():
            self.logger.info("Gateway is ready", port=self._port)
        else:
            self.logger.warning(
                "Assuming gateway ready after timeout",
                grace_seconds=self.startup_grace
            )
        self._set_ready(True)

    async def stop(self) -> None:
        """Terminate the gateway, escalating to SIGKILL after stop_timeout."""
        process = self._process
        if process is not None and process.returncode is None:
            self.logger.info("Stopping gateway", pid=process.pid)
            try:
                process.terminate()
                await asyncio.wait_for(process.wait(), timeout=self.stop_timeout)
            except ProcessLookupError:
                pass
            except asyncio.TimeoutError:
                self.logger.warning("Gateway ignored SIGTERM, killing", pid=process.pid)
                process.kill()
                await process.wait()

        if self._watcher is not None:
            await asyncio.gather(self._watcher, return_exceptions=True)
        for reader in self._readers:
            reader.cancel()
        await asyncio.gather(*self._readers, return_exceptions=True)
        self._set_ready(False)

    def _set_ready(self, ready: bool) -> None:
        self._ready = ready
        if self.metrics:
            self.metrics.set_gauge("gateway_ready", 1 if ready else 0)

    async def _pump(self, stream: Optional[asyncio.StreamReader], name: str, ready_event: asyncio.Event) -> None:
        """Log one output stream and flag readiness markers as they appear."""
        if stream is None:
            return
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                return
            text = chunk.decode("utf-8", errors="replace")
            self._output.append(text)
            self.logger.info("Gateway output", stream=name, output=text.strip())

            if not ready_event.is_set() and any(marker in text.lower() for marker in READY_MARKERS):
                self.logger.info("Gateway readiness marker seen", stream=name)
                ready_event.set()

    async def _watch(self, process: asyncio.subprocess.Process) -> int:
        returncode = await process.wait()
        # Let the readers drain what the process wrote before exiting.
        if self._readers:
            await asyncio.wait(self._readers, timeout=1.0)
        self.logger.info("Gateway process exited", returncode=returncode)
        self._set_ready(False)
        return returncode

    def _terminate_orphan(self) -> None:
        process = self._process
        if process is not None and process.returncode is None:
            try:
                os.kill(process.pid, signal.SIGTERM)
            except ProcessLookupError:
                pass
