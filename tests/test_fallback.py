"""Tests for the ordered-fallback executor."""
import pytest


def test_first_success_stops_at_first_winner():
    """Later candidates should never run once one succeeds."""
    from audiofeed.fallback import Candidate, first_success

    calls = []

    def make(name, value):
        def call():
            calls.append(name)
            return value
        return call

    outcome = first_success([
        Candidate("a", make("a", "A")),
        Candidate("b", make("b", "B")),
    ])

    assert outcome.name == "a"
    assert outcome.value == "A"
    assert calls == ["a"]


def test_first_success_falls_back_on_error():
    """A failing candidate hands over to the next one."""
    from audiofeed.fallback import Candidate, first_success

    def boom():
        raise RuntimeError("first failed")

    outcome = first_success([Candidate("a", boom), Candidate("b", lambda: "B")])

    assert outcome.name == "b"
    assert outcome.value == "B"


def test_first_success_raises_last_error():
    """When all candidates fail the last exception propagates."""
    from audiofeed.fallback import Candidate, first_success

    def fail(message):
        def call():
            raise RuntimeError(message)
        return call

    with pytest.raises(RuntimeError, match="third"):
        first_success([Candidate("a", fail("first")), Candidate("b", fail("second")), Candidate("c", fail("third"))])


def test_first_success_respects_should_fallback():
    """should_fallback=False re-raises without trying later candidates."""
    from audiofeed.fallback import Candidate, first_success

    called = []

    def fail():
        raise ValueError("stop here")

    with pytest.raises(ValueError, match="stop here"):
        first_success(
            [Candidate("a", fail), Candidate("b", lambda: called.append("b"))],
            should_fallback=lambda name, exc: False,
        )
    assert called == []


def test_first_success_skips_rejected_values():
    """Rejected results continue the cascade; none accepted raises NoAcceptableResult."""
    from audiofeed.fallback import Candidate, NoAcceptableResult, first_success

    outcome = first_success([Candidate("a", lambda: None), Candidate("b", lambda: 42)])
    assert outcome.name == "b"

    with pytest.raises(NoAcceptableResult):
        first_success([Candidate("a", lambda: None)])


def test_first_success_requires_candidates():
    """An empty cascade is a programming error."""
    from audiofeed.fallback import first_success

    with pytest.raises(ValueError):
        first_success([])


def test_credential_retry_invoked_exactly_twice():
    """An always-failing credential error is retried once; the second error surfaces."""
    from audiofeed.errors import ToolError
    from audiofeed.fallback import with_credential_fallback

    calls = []

    def call(use_credentials):
        calls.append(use_credentials)
        raise ToolError("yt-dlp", f"attempt {len(calls)}: Sign in to confirm you're not a bot")

    with pytest.raises(ToolError, match="attempt 2"):
        with_credential_fallback(call, has_credentials=True)

    assert calls == [True, False]


def test_credential_retry_not_used_for_other_errors():
    """Non-credential errors are not retried."""
    from audiofeed.errors import ToolError
    from audiofeed.fallback import with_credential_fallback

    calls = []

    def call(use_credentials):
        calls.append(use_credentials)
        raise ToolError("yt-dlp", "HTTP Error 404")

    with pytest.raises(ToolError, match="404"):
        with_credential_fallback(call, has_credentials=True)

    assert calls == [True]


def test_credential_retry_succeeds_without_credentials():
    """A retry without credentials can succeed."""
    from audiofeed.errors import ToolError
    from audiofeed.fallback import with_credential_fallback

    def call(use_credentials):
        if use_credentials:
            raise ToolError("yt-dlp", "cookies have expired")
        return "ok"

    assert with_credential_fallback(call, has_credentials=True) == "ok"


def test_no_credentials_means_single_call():
    """Without stored credentials the call runs once without them."""
    from audiofeed.errors import ToolError
    from audiofeed.fallback import with_credential_fallback

    calls = []

    def call(use_credentials):
        calls.append(use_credentials)
        raise ToolError("yt-dlp", "Please sign in")

    with pytest.raises(ToolError):
        with_credential_fallback(call, has_credentials=False)

    assert calls == [False]
