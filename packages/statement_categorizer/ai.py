"""AI fallback tier: classify a party into one of the catalog categories.

Public API:
    - :class:`AIFallbackClassifier` (protocol the engine depends on)
    - :class:`AIClassification`
    - :class:`OpenAIClassifier` (OpenAI Responses API implementation)
    - :class:`RateLimiter`
    - :func:`parse_category_reply`

No side effects occur at import time; the OpenAI client is created lazily on
the first call that has a credential.
"""

from __future__ import annotations

import random
import re
import threading
import time
from collections.abc import Callable, Sequence
from typing import Any, NamedTuple, Protocol

from openai import APITimeoutError, OpenAI
from openai.types.responses import ResponseTextConfigParam
from pydantic import ValidationError

from . import prompting
from .errors import ClassifierError, ClassifierUnavailableError
from .logging_setup import get_logger
from .models import UNCATEGORIZED, AIDecision, ClassificationRequest, category_description

# ---- Tunables (private) ------------------------------------------------------

_MODEL: str = "gpt-5"
_TIMEOUT_SEC: float = 30.0
_REQUESTS_PER_MINUTE: int = 50
_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

# Answers some models give when they did not actually pick a category.
_PLACEHOLDER_ANSWERS: frozenset[str] = frozenset({"category", "categories", "unknown", "none"})
_CATEGORY_MARKER = re.compile(r"category\s*:\s*", re.IGNORECASE)

_logger = get_logger("statement_categorizer.ai")


class AIClassification(NamedTuple):
    category: str
    description: str


class AIFallbackClassifier(Protocol):
    """What the engine needs from an AI classifier.

    Implementations raise :class:`ClassifierUnavailableError` when they cannot
    run at all (no credential, disabled) and :class:`ClassifierError` for any
    failure of an attempted call (network, timeout, HTTP error, unparseable
    reply, cancellation).
    """

    def classify(
        self,
        request: ClassificationRequest,
        available_categories: Sequence[str],
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> AIClassification: ...


# ---- Rate limiting -----------------------------------------------------------


class RateLimiter:
    """Space calls at least ``60 / requests_per_minute`` seconds apart.

    Shared by all threads using one classifier. Slots are reserved under a
    lock and the wait happens outside it, so concurrent callers queue up in
    arrival order.
    """

    def __init__(
        self,
        requests_per_minute: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be >= 1")
        self.interval = 60.0 / requests_per_minute
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._next_slot: float | None = None

    def wait(
        self,
        cancel: threading.Event | None = None,
        *,
        max_delay: float | None = None,
    ) -> float | None:
        """Block until the caller may issue a request; return the delay used.

        Returns ``None`` without reserving a slot when the next free slot is at
        least ``max_delay`` seconds away.
        """

        with self._lock:
            now = self._clock()
            start = now if self._next_slot is None else max(now, self._next_slot)
            delay = start - now
            if max_delay is not None and delay > 0 and delay >= max_delay:
                return None
            self._next_slot = start + self.interval
        if delay > 0:
            _logger.info("ai:rate_limit_wait delay_ms=%.0f", delay * 1000.0)
            if cancel is not None:
                cancel.wait(delay)
            else:
                self._sleep(delay)
        return delay


# ---- Reply parsing -----------------------------------------------------------


def _extract_response_text(resp: Any) -> str:
    """Return the text output of a Responses SDK result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    Raises ``ValueError`` when no text can be located.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                txt_obj = getattr(content[0], "text", None)
                if isinstance(txt_obj, str):
                    text = txt_obj
                else:
                    maybe_val = getattr(txt_obj, "value", None)
                    if isinstance(maybe_val, str):
                        text = maybe_val
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str) or not text.strip():
        raise ValueError("Unexpected Responses API shape; unable to locate text output")
    return text


def _match_category_name(answer: str, categories: Sequence[str]) -> str | None:
    """Exact case-insensitive match first, then the longest name contained in ``answer``."""

    folded = answer.strip().casefold()
    if not folded:
        return None
    for name in categories:
        if name.casefold() == folded:
            return name
    best: str | None = None
    for name in categories:
        if name and name.casefold() in folded and (best is None or len(name) > len(best)):
            best = name
    return best


def _extract_from_free_text(text: str, categories: Sequence[str]) -> str:
    answer = text.strip().strip("\"'`")
    marker = _CATEGORY_MARKER.search(answer)
    if marker is not None:
        answer = answer[marker.end() :]
    for line in answer.splitlines():
        if line.strip():
            answer = line.strip().strip("\"'`*.")
            break

    if answer.casefold() in _PLACEHOLDER_ANSWERS:
        _logger.warning("ai:placeholder_answer answer=%s", answer)
        return UNCATEGORIZED

    found = _match_category_name(answer, categories)
    if found is None and marker is None:
        found = _match_category_name(text, categories)
    if found is None:
        _logger.warning("ai:no_category_in_reply answer=%s", answer[:80])
        return UNCATEGORIZED
    return found


def parse_category_reply(text: str, categories: Sequence[str]) -> str:
    """Return the category named by a model reply, in the catalog's casing.

    Structured JSON per :func:`prompting.build_response_format` is preferred;
    anything else is parsed as free text (an explicit ``Category: <name>``
    marker, else the longest known category name in the text). Unknown or
    placeholder answers resolve to ``Uncategorized``.
    """

    known = prompting.allowed_categories(categories)
    try:
        decision = AIDecision.model_validate_json(text)
    except ValidationError:
        _logger.debug("ai:free_text_reply length=%d", len(text))
        return _extract_from_free_text(text, known)

    if decision.category.casefold() in _PLACEHOLDER_ANSWERS:
        return UNCATEGORIZED
    return _match_category_name(decision.category, known) or UNCATEGORIZED


# ---- Retry helpers -----------------------------------------------------------


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(
    attempt_no: int,
    cancel: threading.Event | None = None,
    *,
    max_delay: float | None = None,
) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = max(0.0, base + random.uniform(-jitter, jitter))
    if max_delay is not None:
        delay = max(0.0, min(delay, max_delay))
    if cancel is not None:
        cancel.wait(delay)
    else:
        time.sleep(delay)


def _raise_if_cancelled(cancel: threading.Event | None, party: str) -> None:
    if cancel is not None and cancel.is_set():
        raise ClassifierError(f"AI classification cancelled for {party!r}")


def _create_client(api_key: str) -> OpenAI:
    # Retries are handled here, narrowed to 429/5xx.
    return OpenAI(api_key=api_key, max_retries=0)


# ---- OpenAI implementation ---------------------------------------------------


class OpenAIClassifier:
    """Classify parties with the OpenAI Responses API and a strict JSON schema.

    Parameters
    ----------
    api_key:
        OpenAI credential. When missing every call raises
        :class:`ClassifierUnavailableError` without touching the network.
    model:
        Responses API model name.
    timeout:
        Default overall time budget per :meth:`classify` call, in seconds.
    requests_per_minute:
        Client-side rate limit shared by all threads; ``None`` disables it.
    max_attempts:
        Upper bound on attempts; only HTTP 429/5xx are retried.
    rate_limiter:
        Pre-built limiter to use instead of one from ``requests_per_minute``.
    """

    def __init__(
        self,
        *,
        api_key: str | None,
        model: str = _MODEL,
        timeout: float = _TIMEOUT_SEC,
        requests_per_minute: int | None = _REQUESTS_PER_MINUTE,
        max_attempts: int = _MAX_ATTEMPTS,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._api_key = (api_key or "").strip() or None
        self.model = model
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        if rate_limiter is None and requests_per_minute:
            rate_limiter = RateLimiter(requests_per_minute)
        self._limiter = rate_limiter
        self._client: OpenAI | None = None
        self._client_lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._api_key is not None

    def _get_client(self) -> OpenAI:
        with self._client_lock:
            if self._client is None:
                if self._api_key is None:
                    raise ClassifierUnavailableError("OPENAI_API_KEY is not set")
                self._client = _create_client(self._api_key)
            return self._client

    def classify(
        self,
        request: ClassificationRequest,
        available_categories: Sequence[str],
        *,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> AIClassification:
        if self._api_key is None:
            raise ClassifierUnavailableError(
                "OPENAI_API_KEY is not set; AI classification is unavailable"
            )

        budget = self.timeout if timeout is None else timeout
        deadline = time.monotonic() + budget
        party = request.party_name.strip()
        instructions = prompting.build_system_instructions()
        user_content = prompting.build_user_content(request, available_categories)
        text_cfg: ResponseTextConfigParam = {
            "format": prompting.build_response_format(available_categories)
        }
        client = self._get_client()

        _logger.info("ai:classify party=%s categories=%d", party, len(available_categories))
        attempt = 1
        while True:
            _raise_if_cancelled(cancel, party)
            if self._limiter is not None:
                waited = self._limiter.wait(cancel, max_delay=deadline - time.monotonic())
                if waited is None:
                    raise ClassifierError(
                        f"AI classification timed out after {budget:.1f}s for {party!r}"
                        " waiting for a rate-limit slot"
                    )
                _raise_if_cancelled(cancel, party)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ClassifierError(
                    f"AI classification timed out after {budget:.1f}s for {party!r}"
                )

            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self.model,
                    instructions=instructions,
                    input=user_content,
                    text=text_cfg,
                    timeout=remaining,
                )
                text = _extract_response_text(resp)
                break
            except Exception as e:  # noqa: BLE001
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= self.max_attempts or not _is_retryable(e):
                    _logger.error(
                        "ai:classify_failed party=%s attempt=%d latency_ms=%.2f error=%s",
                        party,
                        attempt,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    if isinstance(e, (APITimeoutError, TimeoutError)):
                        raise ClassifierError(
                            f"AI classification timed out after {budget:.1f}s for {party!r}"
                        ) from e
                    raise ClassifierError(f"AI classification failed for {party!r}: {e}") from e
                _logger.warning(
                    "ai:classify_retry party=%s attempt=%d latency_ms=%.2f error=%s",
                    party,
                    attempt,
                    dt_ms,
                    e.__class__.__name__,
                )
                _sleep_backoff(attempt, cancel, max_delay=deadline - time.monotonic())
                attempt += 1

        name = parse_category_reply(text, available_categories)
        dt_ms = (time.perf_counter() - t0) * 1000.0
        _logger.info(
            "ai:classify_done party=%s category=%s attempts=%d latency_ms=%.2f",
            party,
            name,
            attempt,
            dt_ms,
        )
        return AIClassification(category=name, description=category_description(name))


__all__ = [
    "AIClassification",
    "AIFallbackClassifier",
    "OpenAIClassifier",
    "RateLimiter",
    "parse_category_reply",
]
