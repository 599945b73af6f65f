"""Exceptions and error classifiers."""
from enum import Enum


# Phrases yt-dlp prints when the stored cookies no longer authenticate
CREDENTIAL_EXPIRY_MARKERS = [
    "cookies are no longer valid",
    "cookies have expired",
    "Please sign in",
    "Sign in to confirm your age",
    "Sign in to confirm you",
]


class ToolErrorKind(str, Enum):
    CREDENTIALS_EXPIRED = "credentials_expired"
    OTHER = "other"


class AudiofeedError(Exception):
    """Base error for everything a pipeline can report to the user."""


class ToolError(AudiofeedError):
    """External tool exited with an error."""

    def __init__(self, tool: str, message: str, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.tool = tool
        self.returncode = returncode
        self.stderr = stderr


class ToolTimeoutError(ToolError):
    """External tool exceeded its wall-clock ceiling."""


class ToolNotFoundError(ToolError):
    """External tool binary is not installed."""


class NoContentError(AudiofeedError):
    """Tool ran successfully but produced no file."""


class ArticleErrorReason(str, Enum):
    NO_CONTENT = "no-content"
    FETCH_FAILED = "fetch-failed"
    PARSE_FAILED = "parse-failed"


class ArticleError(AudiofeedError):
    """Article could not be turned into text."""

    def __init__(self, reason: ArticleErrorReason, message: str):
        super().__init__(message)
        self.reason = reason


class TranslationError(AudiofeedError):
    """Translation backend failed."""


class SynthesisError(AudiofeedError):
    """Text-to-speech produced no audio."""


class PipelineCancelled(AudiofeedError):
    """Shutdown was requested while a pipeline was running."""


class InvalidResourceError(AudiofeedError):
    """Submitted text does not name a resource the pipeline can handle."""


def classify_tool_error(error: BaseException | str) -> ToolErrorKind:
    """Classify a tool failure by the phrases in its message."""
    text = str(error)
    if any(marker in text for marker in CREDENTIAL_EXPIRY_MARKERS):
        return ToolErrorKind.CREDENTIALS_EXPIRED
    return ToolErrorKind.OTHER


def is_credential_error(error: BaseException | str) -> bool:
    return classify_tool_error(error) is ToolErrorKind.CREDENTIALS_EXPIRED
