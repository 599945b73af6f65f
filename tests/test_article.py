"""Tests for article extraction."""
from unittest.mock import MagicMock

import pytest
import requests

HTML = """<html>
<head>
  <title>Fallback title</title>
  <meta property="og:title" content="Real Title">
  <meta property="og:image" content="https://example.com/cover.jpg">
  <meta property="og:site_name" content="Example Blog">
</head>
<body>
  <nav>Home | About</nav>
  <article>
    <h1>Real Title</h1>
    <p>First   paragraph of the story.</p>
    <script>var tracking = 1;</script>
    <p>Second paragraph.</p>
  </article>
  <footer>Copyright</footer>
</body>
</html>"""


def _response(status=200, body=HTML.encode()):
    response = MagicMock()
    response.status_code = status
    response.iter_content.return_value = [body]
    return response


def test_parse_extracts_metadata_and_text():
    """parse should use og: metadata and keep only the article text."""
    from audiofeed.article import ArticleExtractor

    article = ArticleExtractor.parse(HTML, "https://example.com/post")

    assert article.title == "Real Title"
    assert article.image == "https://example.com/cover.jpg"
    assert article.site_name == "Example Blog"
    assert "First paragraph of the story." in article.text_content
    assert "Second paragraph." in article.text_content
    assert "tracking" not in article.text_content
    assert "Home" not in article.text_content
    assert "Copyright" not in article.text_content


def test_parse_falls_back_to_title_tag_and_host():
    """Without og: tags the <title> and the URL host are used."""
    from audiofeed.article import ArticleExtractor

    html = "<html><head><title> Plain </title></head><body><p>Text body.</p></body></html>"
    article = ArticleExtractor.parse(html, "https://news.example.org/a/1")

    assert article.title == "Plain"
    assert article.site_name == "news.example.org"
    assert article.text_content == "Text body."


def test_parse_without_text_is_no_content():
    """A page with no readable text raises ArticleError(no-content)."""
    from audiofeed.article import ArticleExtractor
    from audiofeed.errors import ArticleError, ArticleErrorReason

    with pytest.raises(ArticleError) as exc_info:
        ArticleExtractor.parse("<html><body><script>x()</script></body></html>", "https://example.com")

    assert exc_info.value.reason is ArticleErrorReason.NO_CONTENT


def test_extract_fetches_with_browser_headers():
    """extract should GET the page with a browser user agent."""
    from audiofeed.article import ArticleExtractor

    session = MagicMock()
    session.get.return_value = _response()

    article = ArticleExtractor(session=session).extract("https://example.com/post")

    assert article.title == "Real Title"
    headers = session.get.call_args[1]["headers"]
    assert "Mozilla" in headers["User-Agent"]


def test_extract_http_error_is_fetch_failed():
    """Non-200 status maps to fetch-failed."""
    from audiofeed.article import ArticleExtractor
    from audiofeed.errors import ArticleError, ArticleErrorReason

    session = MagicMock()
    session.get.return_value = _response(status=404)

    with pytest.raises(ArticleError, match="404") as exc_info:
        ArticleExtractor(session=session).extract("https://example.com/missing")

    assert exc_info.value.reason is ArticleErrorReason.FETCH_FAILED


def test_extract_connection_error_is_fetch_failed():
    """Network errors map to fetch-failed."""
    from audiofeed.article import ArticleExtractor
    from audiofeed.errors import ArticleError, ArticleErrorReason

    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("connection refused")

    with pytest.raises(ArticleError) as exc_info:
        ArticleExtractor(session=session).extract("https://example.com/post")

    assert exc_info.value.reason is ArticleErrorReason.FETCH_FAILED


def test_clean_text_and_estimate():
    """clean_text trims lines and spaces; estimate uses 900 chars per minute."""
    from audiofeed.article import clean_text, estimate_duration

    assert clean_text("  a   b  \n\n\n  c ") == "a b\nc"
    assert estimate_duration("x" * 900) == 60
    assert estimate_duration("") == 0
