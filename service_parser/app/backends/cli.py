"""
One-shot CLI extraction backend.

Runs the agent in local mode through ``sh -c`` with stdout, stderr and the
exit status redirected to temp files, so output survives however the agent
buffers its streams.
"""

import asyncio
import os
import secrets
import shlex
import signal
import tempfile
import time
from pathlib import Path
from typing import Dict, Optional

from shared.logging import get_logger
from shared.errors import BackendError, BackendTimeoutError

from .base import BackendResult, PathLike
from .prompt import build_extraction_prompt, shell_single_quote


class CliBackend:
    """Delegates extraction to a local agent subprocess."""

    name = "cli"

    def __init__(
        self,
        agent_command: str = "openclaw",
        agent_name: str = "main",
        state_dir: Optional[PathLike] = None,
        timeout: float = 300.0,
        temp_dir: Optional[PathLike] = None,
    ):
        self.agent_command = agent_command
        self.agent_name = agent_name
        self.state_dir = state_dir
        self.timeout = timeout
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())
        self.logger = get_logger("parser.backends.cli")

    def build_environment(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.state_dir is not None:
            env["OPENCLAW_STATE_DIR"] = str(self.state_dir)
        env.update({
            "NODE_OPTIONS": "--max-old-space-size=1024",
            "FORCE_COLOR": "0",
            "NO_COLOR": "1",
            "TERM": "dumb",
        })
        return env

    def capture_paths(self) -> Dict[str, Path]:
        """Temp files for one run; timestamp plus random suffix keeps runs apart."""
        stamp = f"{int(time.time() * 1000)}_{secrets.token_hex(3)}"
        return {
            "stdout": self.temp_dir / f"oc_out_{stamp}.txt",
            "stderr": self.temp_dir / f"oc_err_{stamp}.txt",
            "exit": self.temp_dir / f"oc_exit_{stamp}.txt",
        }

    def build_shell_command(self, prompt: str, paths: Dict[str, Path]) -> str:
        return (
            f"{shlex.quote(self.agent_command)} agent --local --agent {shlex.quote(self.agent_name)} "
            f"--message {shell_single_quote(prompt)} "
            f"> {shlex.quote(str(paths['stdout']))} 2> {shlex.quote(str(paths['stderr']))}; "
            f"echo $? > {shlex.quote(str(paths['exit']))}"
        )

    async def process(self, pdf_path: PathLike, csv_path: PathLike) -> BackendResult:
        """Run the agent once and judge success by its exit status."""
        prompt = build_extraction_prompt(pdf_path, csv_path)
        paths = self.capture_paths()
        command = self.build_shell_command(prompt, paths)

        self.logger.info("Starting agent CLI", prompt_preview=prompt[:100])

        try:
            proc = await asyncio.create_subprocess_exec(
                "sh", "-c", command,
                env=self.build_environment(),
                stdin=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            self._discard(paths)
            raise BackendError(f"Failed to start agent CLI: {e}") from e

        try:
            await asyncio.wait_for(proc.wait(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.warning("Agent CLI timed out, terminating", timeout_seconds=self.timeout)
            await self._terminate(proc)
            self._discard(paths)
            raise BackendTimeoutError(
                f"Timeout waiting for agent response ({self.timeout:g} seconds)",
                details={"timeout_seconds": self.timeout}
            ) from None
        except asyncio.CancelledError:
            await self._terminate(proc)
            self._discard(paths)
            raise

        stdout, stderr, exit_code = self._collect(paths)

        self.logger.info(
            "Agent CLI finished",
            exit_code=exit_code,
            stdout_chars=len(stdout),
            stderr_chars=len(stderr),
            stdout_preview=stdout[:1000],
            stderr_preview=stderr[:1000]
        )

        if exit_code == 0:
            return BackendResult(success=True, message=stdout, backend=self.name)

        raise BackendError(
            f"Agent exited with code {exit_code}: {stderr or stdout or 'No output'}",
            details={"exit_code": exit_code}
        )

    def _collect(self, paths: Dict[str, Path]):
        """Read and delete the capture files; missing status counts as failure."""
        stdout = self._read(paths["stdout"])
        stderr = self._read(paths["stderr"])
        status = self._read(paths["exit"]).strip()
        self._discard(paths)

        try:
            exit_code = int(status)
        except ValueError:
            exit_code = 1

        return stdout, stderr, exit_code

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return ""
        except OSError as e:
            self.logger.error("Error reading capture file", path=str(path), error=str(e))
            return ""

    def _discard(self, paths: Dict[str, Path]) -> None:
        for path in paths.values():
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                self.logger.warning("Failed to remove capture file", path=str(path), error=str(e))

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the whole process group, then SIGKILL if it lingers."""
        for sig in (signal.SIGTERM, signal.SIGKILL):
            try:
                os.killpg(proc.pid, sig)
            except ProcessLookupError:
                return
            try:
                await asyncio.wait_for(proc.wait(), timeout=5.0)
                return
            except asyncio.TimeoutError:
                continue
