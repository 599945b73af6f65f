"""Text-to-speech through the edge-tts command line tool."""
import logging
import tempfile
from pathlib import Path

from .errors import SynthesisError
from .tools import ToolRunner

DEFAULT_VOICE = "ru-RU-DmitryNeural"

SENTENCE_ENDINGS = ".!?\n"

logger = logging.getLogger(__name__)


def split_into_sentences(text: str) -> list[str]:
    """Split after each sentence terminator, keeping the terminator."""
    sentences = []
    current = []
    for char in text:
        current.append(char)
        if char in SENTENCE_ENDINGS:
            sentences.append("".join(current))
            current = []
    if current:
        sentences.append("".join(current))
    return sentences


def split_text_into_chunks(text: str, max_size: int) -> list[str]:
    """Group whole sentences into chunks of at most ``max_size`` chars."""
    if len(text) <= max_size:
        return [text]

    chunks = []
    current = ""
    for sentence in split_into_sentences(text):
        if current and len(current) + len(sentence) > max_size:
            chunks.append(current)
            current = ""
        current += sentence
    if current:
        chunks.append(current)
    return chunks


class EdgeTTS:
    """Synthesize mp3 audio with edge-tts."""

    def __init__(
        self,
        runner: ToolRunner,
        voice: str = DEFAULT_VOICE,
        binary: str = "edge-tts",
        timeout: float = 300,
        chunk_delay: float = 0.1,
    ):
        self.runner = runner
        self.voice = voice
        self.binary = binary
        self.timeout = timeout
        self.chunk_delay = chunk_delay

    def synthesize(self, text: str) -> bytes:
        if not text.strip():
            raise SynthesisError("nothing to synthesize")

        with tempfile.TemporaryDirectory(prefix="audiofeed-tts-") as tmpdir:
            text_file = Path(tmpdir) / "input.txt"
            media_file = Path(tmpdir) / "output.mp3"
            text_file.write_text(text, encoding="utf-8")

            self.runner.run(
                [
                    self.binary,
                    "--voice", self.voice,
                    "--file", str(text_file),
                    "--write-media", str(media_file),
                ],
                timeout=self.timeout,
            )

            if not media_file.exists() or media_file.stat().st_size == 0:
                raise SynthesisError("edge-tts produced no audio")
            return media_file.read_bytes()

    def synthesize_chunked(self, text: str, max_chars: int = 3000) -> bytes:
        """Synthesize long text chunk by chunk and concatenate the mp3 frames."""
        if max_chars <= 0:
            max_chars = 3000

        chunks = split_text_into_chunks(text, max_chars)
        audio = bytearray()
        for i, chunk in enumerate(chunks):
            self.runner.check_cancelled()
            try:
                audio += self.synthesize(chunk)
            except SynthesisError as e:
                raise SynthesisError(f"failed to synthesize chunk {i}: {e}")
            if i < len(chunks) - 1:
                self.runner.sleep(self.chunk_delay)

        logger.debug(f"Synthesized {len(chunks)} chunks, {len(audio)} bytes")
        return bytes(audio)
