"""Agent CLI subprocess management.

Executes the analysis agent as an async subprocess: the rendered
instruction document is written to its standard input, stdin is closed
to signal end of input, and stdout/stderr are captured in full.

The command is fixed and resolved from PATH; the subprocess inherits the
service environment. A process that cannot be started raises
AgentLaunchError instead of producing a result with a made-up exit code.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

AGENT_COMMAND = "claude"
AGENT_ARGS: Sequence[str] = ("-p", "--dangerously-skip-permissions")


class AgentLaunchError(Exception):
    """Raised when the agent process cannot be started.

    Attributes:
        original_error: The OSError raised by the launch attempt.
        duration_ms: Time spent before the launch failed.
    """

    def __init__(self, original_error: OSError, duration_ms: int = 0):
        self.original_error = original_error
        self.duration_ms = duration_ms
        super().__init__(f"Failed to start {AGENT_COMMAND}: {original_error}")


@dataclass
class AgentResult:
    """Result of an agent execution that started.

    Attributes:
        exit_code: Process exit code as reported by the OS.
        stdout: Captured standard output.
        stderr: Captured standard error.
        duration_ms: Wall-clock execution time in milliseconds.
        timed_out: True when the process was killed for exceeding the timeout.
    """

    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False

    @property
    def success(self) -> bool:
        return not self.timed_out and self.exit_code == 0


class AgentRunner:
    """Runs the agent CLI against an instruction document.

    Attributes:
        timeout_seconds: Maximum execution time before the process is killed.
    """

    def __init__(self, timeout_seconds: int = 3600):
        self.timeout_seconds = timeout_seconds

    async def run(self, instruction_text: str) -> AgentResult:
        """Execute the agent with the instruction document on stdin.

        Args:
            instruction_text: The rendered instruction document.

        Returns:
            AgentResult with exit code, captured output, and duration.

        Raises:
            AgentLaunchError: If the process cannot be started.
        """
        start_time = time.monotonic()
        stdin_data = instruction_text.encode("utf-8", errors="replace")

        try:
            process = await self._start_process()
        except OSError as exc:
            duration_ms = _elapsed_ms(start_time)
            logger.error("Failed to start %s: %s", AGENT_COMMAND, exc)
            raise AgentLaunchError(exc, duration_ms) from exc

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(stdin_data),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return await self._handle_timeout(process, start_time)
        except BaseException:
            await self._terminate(process)
            raise

        return self._build_result(
            process.returncode,
            _decode(stdout),
            _decode(stderr),
            _elapsed_ms(start_time),
        )

    async def _start_process(self) -> asyncio.subprocess.Process:
        """Launch the agent subprocess with piped standard streams.

        Raises:
            OSError: If the executable cannot be found or started.
        """
        logger.info(
            "Executing: %s %s", AGENT_COMMAND, " ".join(AGENT_ARGS),
            extra={"timeout": self.timeout_seconds},
        )
        return await asyncio.create_subprocess_exec(
            AGENT_COMMAND,
            *AGENT_ARGS,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

    async def _handle_timeout(
        self,
        process: asyncio.subprocess.Process,
        start_time: float,
    ) -> AgentResult:
        """Kill and reap the timed-out process and return a timeout result."""
        await self._terminate(process)

        duration_ms = _elapsed_ms(start_time)
        logger.error(
            "%s timed out after %ds", AGENT_COMMAND, self.timeout_seconds
        )
        return AgentResult(
            exit_code=process.returncode if process.returncode is not None else -1,
            stdout="",
            stderr=f"Process timed out after {self.timeout_seconds}s",
            duration_ms=duration_ms,
            timed_out=True,
        )

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """Kill the process if it is still running and wait for it to exit."""
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()

    def _build_result(
        self,
        exit_code: Optional[int],
        stdout: str,
        stderr: str,
        duration_ms: int,
    ) -> AgentResult:
        exit_code = exit_code if exit_code is not None else 0

        if exit_code == 0:
            logger.info(
                "%s completed successfully in %dms", AGENT_COMMAND, duration_ms
            )
        else:
            logger.error(
                "%s failed with exit code %d in %dms",
                AGENT_COMMAND,
                exit_code,
                duration_ms,
            )

        return AgentResult(
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
            duration_ms=duration_ms,
        )


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _elapsed_ms(start_time: float) -> int:
    return int((time.monotonic() - start_time) * 1000)
