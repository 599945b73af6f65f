"""Audio duration probing with ffprobe."""
import logging

from .errors import ToolError
from .tools import ToolRunner

logger = logging.getLogger(__name__)


class FFProbe:
    def __init__(self, runner: ToolRunner, binary: str = "ffprobe", timeout: float = 30):
        self.runner = runner
        self.binary = binary
        self.timeout = timeout

    def probe(self, path: str) -> int:
        """Duration of an audio file in whole seconds, 0 when unknown."""
        args = [
            self.binary,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            path,
        ]
        try:
            result = self.runner.run(args, timeout=self.timeout)
        except ToolError as e:
            logger.warning(f"Could not probe duration of {path}: {e}")
            return 0

        try:
            return int(float(result.stdout.strip()))
        except ValueError:
            logger.debug(f"ffprobe returned no duration for {path}: {result.stdout.strip()!r}")
            return 0
