"""Readable-text extraction from web articles."""
import logging
import re
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from .errors import ArticleError, ArticleErrorReason
from .models import Article

HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "ru-RU,ru;q=0.9,en-US;q=0.8,en;q=0.7",
}

MAX_PAGE_BYTES = 5 * 1024 * 1024

# Speech rate of the TTS voice, ~150 words/min at ~6 chars/word
CHARS_PER_MINUTE = 900

NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside", "form", "iframe"]

logger = logging.getLogger(__name__)


def clean_text(text: str) -> str:
    """Drop blank lines, trim each line and collapse runs of spaces."""
    lines = [line.strip() for line in text.split("\n")]
    text = "\n".join(line for line in lines if line)
    return re.sub(r"[ \t]{2,}", " ", text)


def estimate_duration(text: str) -> int:
    """Spoken length of text in seconds."""
    return int(len(text) / CHARS_PER_MINUTE * 60)


def _meta(soup: BeautifulSoup, prop: str) -> str:
    tag = soup.find("meta", attrs={"property": prop}) or soup.find("meta", attrs={"name": prop})
    if tag and tag.get("content"):
        return tag["content"].strip()
    return ""


class ArticleExtractor:
    """Fetch a page with requests and pull its main text with BeautifulSoup."""

    def __init__(self, timeout: float = 30, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()

    def extract(self, url: str) -> Article:
        """Return the article behind ``url``.

        Raises:
            ArticleError: with reason fetch-failed, parse-failed or no-content
        """
        html = self._fetch(url)
        try:
            article = self.parse(html, url)
        except ArticleError:
            raise
        except Exception as e:
            raise ArticleError(ArticleErrorReason.PARSE_FAILED, f"failed to parse article: {e}")

        logger.info(f"Extracted article '{article.title}' ({len(article.text_content)} chars)")
        return article

    def _fetch(self, url: str) -> bytes:
        try:
            response = self.session.get(url, headers=HEADERS, timeout=self.timeout, stream=True)
        except requests.RequestException as e:
            raise ArticleError(ArticleErrorReason.FETCH_FAILED, f"failed to fetch URL: {e}")

        with response:
            if response.status_code != 200:
                raise ArticleError(ArticleErrorReason.FETCH_FAILED, f"HTTP error: {response.status_code}")
            body = bytearray()
            try:
                for chunk in response.iter_content(chunk_size=64 * 1024):
                    body += chunk
                    if len(body) >= MAX_PAGE_BYTES:
                        logger.debug(f"Page {url} truncated at {MAX_PAGE_BYTES} bytes")
                        break
            except requests.RequestException as e:
                raise ArticleError(ArticleErrorReason.FETCH_FAILED, f"failed to read response: {e}")
            return bytes(body[:MAX_PAGE_BYTES])

    @staticmethod
    def parse(html: str | bytes, url: str) -> Article:
        """Build an Article from page markup. Bytes are decoded by BeautifulSoup."""
        soup = BeautifulSoup(html, "html.parser")

        title = _meta(soup, "og:title")
        if not title and soup.title and soup.title.string:
            title = soup.title.string.strip()
        image = _meta(soup, "og:image")
        site_name = _meta(soup, "og:site_name") or urlparse(url).netloc

        for tag in soup(NOISE_TAGS):
            tag.decompose()

        container = soup.find("article") or soup.find("main") or soup.body or soup
        text = clean_text(container.get_text("\n"))
        if not text:
            raise ArticleError(ArticleErrorReason.NO_CONTENT, "no content extracted from article")

        return Article(
            title=title or url,
            text_content=text,
            url=url,
            image=image,
            site_name=site_name,
        )
