"""Machine translation with ordered mirror fallback."""
import logging
import re
import unicodedata

import requests

from .errors import TranslationError
from .fallback import Candidate, NoAcceptableResult, first_success
from .tools import ToolRunner

YANDEX_API_URL = "https://translate.api.cloud.yandex.net/translate/v2/translate"

# Share of Cyrillic letters above which text is treated as Russian
CYRILLIC_THRESHOLD = 0.3

# Boundaries tried in order when a piece is over the chunk cap, with the
# string that rejoins pieces inside one chunk
SPLIT_LEVELS = [
    (re.compile(r"\n\n"), "\n\n"),
    (re.compile(r"\n"), "\n"),
    (re.compile(r"(?<=[.!?])\s+"), " "),
    (re.compile(r"\s+"), " "),
]

logger = logging.getLogger(__name__)


def detect_language(text: str) -> str:
    """Cheap script heuristic: "ru" for mostly Cyrillic text, else "en"."""
    cyrillic = latin = 0
    for char in text:
        if not char.isalpha():
            continue
        name = unicodedata.name(char, "")
        if name.startswith("CYRILLIC"):
            cyrillic += 1
        elif name.startswith("LATIN"):
            latin += 1

    total = cyrillic + latin
    if total == 0:
        return "en"
    return "ru" if cyrillic / total > CYRILLIC_THRESHOLD else "en"


def split_text_for_translation(text: str, max_size: int) -> list[str]:
    """Split into chunks of at most ``max_size`` chars.

    Paragraph boundaries are preferred. A piece still over the cap is split
    at line breaks, then at sentence ends, then between words, and as a last
    resort cut hard at ``max_size``.
    """
    if len(text) <= max_size:
        return [text]
    return _split(text, max_size, SPLIT_LEVELS)


def _split(text: str, max_size: int, levels: list[tuple[re.Pattern, str]]) -> list[str]:
    if len(text) <= max_size:
        return [text]
    if not levels:
        return [text[i:i + max_size] for i in range(0, len(text), max_size)]

    (pattern, joiner), finer = levels[0], levels[1:]
    chunks = []
    current = ""
    for piece in pattern.split(text):
        if not piece:
            continue
        if len(piece) > max_size:
            if current:
                chunks.append(current)
                current = ""
            chunks.extend(_split(piece, max_size, finer))
            continue
        if current and len(current) + len(joiner) + len(piece) > max_size:
            chunks.append(current)
            current = ""
        current = f"{current}{joiner}{piece}" if current else piece

    if current:
        chunks.append(current)
    return chunks


class YandexBackend:
    """Yandex Cloud Translate v2."""

    name = "yandex"

    def __init__(self, api_key: str, folder_id: str, timeout: float = 60, session: requests.Session | None = None):
        self.api_key = api_key
        self.folder_id = folder_id
        self.timeout = timeout
        self.session = session or requests.Session()

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        if not self.api_key:
            raise TranslationError("Yandex Translate API key not configured (set YANDEX_TRANSLATE_KEY)")
        if not self.folder_id:
            raise TranslationError("Yandex Folder ID not configured (set YANDEX_FOLDER_ID)")

        try:
            response = self.session.post(
                YANDEX_API_URL,
                json={
                    "folderId": self.folder_id,
                    "targetLanguageCode": target_lang,
                    "sourceLanguageCode": source_lang,
                    "texts": [text],
                },
                headers={"Authorization": f"Api-Key {self.api_key}"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TranslationError(f"Yandex request failed: {e}")

        if response.status_code != 200:
            raise TranslationError(f"Yandex API error (status {response.status_code}): {response.text[:500]}")

        translations = response.json().get("translations") or []
        if not translations:
            raise TranslationError("Yandex returned no translations")
        return translations[0].get("text", "")


class LibreTranslateBackend:
    """LibreTranslate-compatible mirror."""

    def __init__(self, url: str, api_key: str = "", timeout: float = 60, session: requests.Session | None = None):
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.session = session or requests.Session()
        self.name = self.url

    def translate(self, text: str, source_lang: str, target_lang: str) -> str:
        payload = {"q": text, "source": source_lang, "target": target_lang, "format": "text"}
        if self.api_key:
            payload["api_key"] = self.api_key

        try:
            response = self.session.post(f"{self.url}/translate", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise TranslationError(f"{self.name} request failed: {e}")

        if response.status_code != 200:
            raise TranslationError(f"{self.name} error (status {response.status_code}): {response.text[:500]}")

        translated = response.json().get("translatedText")
        if not translated:
            raise TranslationError(f"{self.name} returned no translation")
        return translated


class Translator:
    """Translate text through backends tried in declared order.

    Each chunk goes through the full mirror list; the first backend that
    answers wins and the last backend's error is raised when all fail.
    """

    def __init__(
        self,
        backends: list,
        target_lang: str = "ru",
        runner: ToolRunner | None = None,
        chunk_chars: int = 5000,
        chunk_delay: float = 0.5,
    ):
        self.backends = backends
        self.target_lang = target_lang
        self.runner = runner or ToolRunner()
        self.chunk_chars = chunk_chars
        self.chunk_delay = chunk_delay

    def needs_translation(self, text: str, target_lang: str | None = None) -> bool:
        return detect_language(text) != (target_lang or self.target_lang)

    def translate(self, text: str, target_lang: str | None = None) -> str:
        target_lang = target_lang or self.target_lang
        source_lang = detect_language(text)
        if source_lang == target_lang:
            return text
        if not self.backends:
            raise TranslationError("no translation backends configured")

        chunks = split_text_for_translation(text, self.chunk_chars)
        translated = []
        for i, chunk in enumerate(chunks):
            self.runner.check_cancelled()
            translated.append(self._translate_chunk(chunk, source_lang, target_lang))
            if i < len(chunks) - 1:
                self.runner.sleep(self.chunk_delay)

        logger.info(f"Translated {len(text)} chars in {len(chunks)} chunks ({source_lang} -> {target_lang})")
        return "\n\n".join(translated)

    def _translate_chunk(self, chunk: str, source_lang: str, target_lang: str) -> str:
        try:
            outcome = first_success(
                [
                    Candidate(backend.name, lambda backend=backend: backend.translate(chunk, source_lang, target_lang))
                    for backend in self.backends
                ],
                accept=bool,
            )
        except NoAcceptableResult as e:
            raise TranslationError(str(e))
        return outcome.value
