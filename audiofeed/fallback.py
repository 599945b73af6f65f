"""Ordered-fallback execution shared by every cascade in the pipelines.

A cascade is a list of candidate operations tried in order. The first
candidate whose result is accepted wins and the rest are never invoked.
A failing candidate hands over to the next one only when ``should_fallback``
allows it; otherwise its exception propagates immediately. When every
candidate fails, the last exception is raised unchanged.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Generic, Sequence, TypeVar

from .errors import is_credential_error

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Candidate(Generic[T]):
    """Named operation in a cascade."""

    name: str
    call: Callable[[], T]


@dataclass
class Outcome(Generic[T]):
    """Winning candidate and its result."""

    name: str
    value: T


class NoAcceptableResult(Exception):
    """Every candidate returned a result that was rejected."""


def _always(_name: str, _exc: Exception) -> bool:
    return True


def _not_none(value) -> bool:
    return value is not None


def first_success(
    candidates: Sequence[Candidate[T]],
    should_fallback: Callable[[str, Exception], bool] = _always,
    accept: Callable[[T], bool] = _not_none,
) -> Outcome[T]:
    """Run candidates in order and return the first accepted result.

    Args:
        candidates: Operations in priority order
        should_fallback: Called with (candidate name, exception); returning
            False re-raises the exception instead of trying the next candidate
        accept: Success predicate for a returned value

    Raises:
        The last candidate's exception when all candidates fail.
        NoAcceptableResult when no candidate raised but none was accepted.
        ValueError for an empty cascade.
    """
    if not candidates:
        raise ValueError("cascade has no candidates")

    last_error: Exception | None = None
    for i, candidate in enumerate(candidates):
        try:
            value = candidate.call()
        except Exception as e:
            is_last = i == len(candidates) - 1
            if is_last or not should_fallback(candidate.name, e):
                raise
            logger.warning(f"{candidate.name} failed, falling back to {candidates[i + 1].name}: {e}")
            last_error = e
            continue

        if accept(value):
            return Outcome(name=candidate.name, value=value)
        logger.debug(f"{candidate.name} returned no usable result")
        last_error = None

    if last_error is not None:
        raise last_error
    raise NoAcceptableResult(f"no candidate produced a result ({', '.join(c.name for c in candidates)})")


def with_credential_fallback(call: Callable[[bool], T], has_credentials: bool) -> T:
    """Invoke ``call(True)``; on a credential-expiry error retry once as ``call(False)``.

    Without stored credentials there is nothing to drop, so the call runs once.
    """
    if not has_credentials:
        return call(False)

    outcome = first_success(
        [
            Candidate("with-credentials", lambda: call(True)),
            Candidate("without-credentials", lambda: call(False)),
        ],
        should_fallback=lambda _name, exc: is_credential_error(exc),
        accept=lambda _value: True,
    )
    return outcome.value
