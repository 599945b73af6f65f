"""External tool invocation with per-call timeouts and cancellation."""
import logging
import subprocess
import threading
import time
from contextlib import contextmanager
from pathlib import Path

from .errors import PipelineCancelled, ToolError, ToolNotFoundError, ToolTimeoutError
from .models import ToolResult

# How often a running process is checked for cancellation
POLL_INTERVAL = 0.5


@contextmanager
def timer(operation_name: str, logger: logging.Logger):
    """Context manager to time operations and log duration."""
    start = time.perf_counter()
    try:
        yield
    finally:
        duration = time.perf_counter() - start
        logger.debug(f"{operation_name} took {duration:.1f}s")


class ToolRunner:
    """Run external commands, killing them on timeout or cancellation.

    One runner is shared by all adapters; ``cancel_event`` is the process-wide
    shutdown signal.
    """

    def __init__(self, cancel_event: threading.Event | None = None):
        self.cancel_event = cancel_event or threading.Event()
        self.logger = logging.getLogger(__name__)

    def check_cancelled(self) -> None:
        if self.cancel_event.is_set():
            raise PipelineCancelled("cancelled by shutdown")

    def sleep(self, seconds: float) -> None:
        """Sleep that wakes up early and raises on cancellation."""
        if self.cancel_event.wait(seconds):
            raise PipelineCancelled("cancelled by shutdown")

    def run(self, args: list[str], timeout: float, cwd: Path | None = None) -> ToolResult:
        """Run a command to completion.

        Raises:
            ToolNotFoundError: binary missing from PATH
            ToolTimeoutError: ceiling exceeded, process killed
            PipelineCancelled: cancel event set, process killed
            ToolError: non-zero exit code (message includes stderr)
        """
        self.check_cancelled()
        tool = Path(args[0]).name
        self.logger.debug(f"Executing: {' '.join(args)}")

        try:
            proc = subprocess.Popen(
                args,
                cwd=str(cwd) if cwd else None,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except FileNotFoundError:
            raise ToolNotFoundError(tool, f"{tool} not found. Ensure '{tool}' is in PATH.")

        deadline = time.monotonic() + timeout
        with timer(tool, self.logger):
            while True:
                try:
                    stdout, stderr = proc.communicate(timeout=POLL_INTERVAL)
                    break
                except subprocess.TimeoutExpired:
                    if self.cancel_event.is_set():
                        self._kill(proc)
                        raise PipelineCancelled(f"{tool} cancelled by shutdown")
                    if time.monotonic() >= deadline:
                        self._kill(proc)
                        raise ToolTimeoutError(tool, f"{tool} timed out after {timeout:.0f} seconds")

        if proc.returncode != 0:
            error_output = stderr.strip() or stdout.strip()
            self.logger.error(f"  ✗ {tool} exited with code {proc.returncode}: {error_output[:200]}")
            raise ToolError(
                tool,
                f"{tool} exited with code {proc.returncode}: {error_output}",
                returncode=proc.returncode,
                stderr=stderr,
            )

        return ToolResult(returncode=proc.returncode, stdout=stdout, stderr=stderr)

    def _kill(self, proc: subprocess.Popen) -> None:
        proc.kill()
        try:
            proc.communicate(timeout=5)
        except subprocess.TimeoutExpired:
            self.logger.warning(f"Process {proc.pid} did not exit after kill")
