"""Provider interface shared by all external AI scoring backends.

Concrete providers implement a single completion primitive. Prompt building,
JSON extraction and shaping of the RawProviderScore happen here so every
backend returns the same envelope.
"""

import asyncio
import json
import math
import re
import time
from abc import ABC, abstractmethod
from collections.abc import Awaitable
from datetime import datetime, timezone
from typing import Any, NamedTuple, TypeVar

import structlog
from pydantic import BaseModel

from pte_scoring.config import DEFAULT_TIMEOUT_MS
from pte_scoring.models.payloads import (
    AnyProviderInput,
    ListeningInput,
    ReadingInput,
    SpeakingInput,
    WritingInput,
)
from pte_scoring.models.scoring import (
    HealthStatus,
    ProviderMeta,
    RawProviderScore,
    TestSection,
    get_default_weights,
)
from pte_scoring.scoring.normalize import (
    normalize_subscores,
    scale_to_90,
    weighted_overall,
)
from pte_scoring.scoring.rubrics import (
    SPEAKING_DIMENSIONS,
    WRITING_DIMENSIONS,
    PromptPair,
    build_listening_prompt,
    build_reading_explanation_prompt,
    build_speaking_prompt,
    build_writing_prompt,
    listening_dimensions,
)

logger = structlog.get_logger()

T = TypeVar("T")

HEALTH_TIMEOUT_MS = 2000
MAX_RATIONALE_CHARS = 1000

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_DECODER = json.JSONDecoder()


class ProviderError(Exception):
    """Base class for expected provider failures."""


class ProviderUnavailableError(ProviderError):
    """Provider cannot be used (missing credentials, bad configuration)."""


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its deadline."""


class Completion(NamedTuple):
    text: str
    finish_reason: str | None = None
    request_id: str | None = None


async def with_timeout(awaitable: Awaitable[T], timeout_ms: float | None) -> T:
    """Await with a deadline in milliseconds.

    A missing, non-positive or non-finite timeout means no deadline.

    Raises:
        ProviderTimeoutError: If the deadline passes first.
    """
    if not timeout_ms or timeout_ms <= 0 or not math.isfinite(timeout_ms):
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_ms / 1000)
    except TimeoutError as e:
        raise ProviderTimeoutError(f"timeout_after_{int(timeout_ms)}ms") from e


def extract_json(text: str | None) -> dict[str, Any] | None:
    """Extract the first JSON object from free-form model output.

    Tolerates code fences and prose around the object, including prose that
    contains braces of its own. Returns None instead of raising when nothing
    parseable is found.
    """
    trimmed = (text or "").strip()
    if not trimmed:
        return None
    fence = _FENCE.search(trimmed)
    candidates = [fence.group(1), trimmed] if fence else [trimmed]
    for candidate in candidates:
        for start in (i for i, ch in enumerate(candidate) if ch == "{"):
            try:
                parsed, _ = _DECODER.raw_decode(candidate, start)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict):
                return parsed
    return None


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _as_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class ScoringProvider(ABC):
    """Uniform interface over an external AI scoring backend.

    Args:
        model: Vendor model identifier.
        default_timeout_ms: Deadline used when a request carries none.
    """

    name: str = "base"

    def __init__(self, model: str, default_timeout_ms: int = DEFAULT_TIMEOUT_MS):
        self.model = model
        self.default_timeout_ms = default_timeout_ms

    @abstractmethod
    async def _complete(
        self, prompt: PromptPair, max_tokens: int, json_mode: bool = True
    ) -> Completion:
        """Send one system/user prompt pair and return the raw completion."""

    async def score_speaking(self, request: SpeakingInput) -> RawProviderScore:
        return await self._score(
            build_speaking_prompt(request),
            dimensions=SPEAKING_DIMENSIONS,
            section=TestSection.SPEAKING,
            timeout_ms=request.timeout_ms,
            max_tokens=400,
        )

    async def score_writing(self, request: WritingInput) -> RawProviderScore:
        return await self._score(
            build_writing_prompt(request),
            dimensions=WRITING_DIMENSIONS,
            section=TestSection.WRITING,
            timeout_ms=request.timeout_ms,
            max_tokens=500,
        )

    async def score_reading(self, request: ReadingInput) -> RawProviderScore:
        # Reading items are explained, not scored
        return await self._score(
            build_reading_explanation_prompt(request),
            dimensions=(),
            section=TestSection.READING,
            timeout_ms=request.timeout_ms,
            max_tokens=250,
        )

    async def score_listening(self, request: ListeningInput) -> RawProviderScore:
        dimensions = listening_dimensions(request.question_type)
        return await self._score(
            build_listening_prompt(request),
            dimensions=dimensions,
            section=TestSection.LISTENING,
            timeout_ms=request.timeout_ms,
            max_tokens=400 if dimensions else 250,
        )

    async def score(self, request: AnyProviderInput) -> RawProviderScore:
        """Dispatch a request to the capability matching its section."""
        if isinstance(request, SpeakingInput):
            return await self.score_speaking(request)
        if isinstance(request, WritingInput):
            return await self.score_writing(request)
        if isinstance(request, ReadingInput):
            return await self.score_reading(request)
        return await self.score_listening(request)

    async def health(self) -> HealthStatus:
        """Minimal round trip to check the backend answers."""
        start = time.perf_counter()
        try:
            await with_timeout(
                self._complete(PromptPair("pong", "ping"), max_tokens=1, json_mode=False),
                HEALTH_TIMEOUT_MS,
            )
        except Exception as e:
            return HealthStatus(
                provider=self.name,
                ok=False,
                model=self.model,
                latency_ms=_elapsed_ms(start),
                error=str(e) or type(e).__name__,
            )
        return HealthStatus(
            provider=self.name, ok=True, model=self.model, latency_ms=_elapsed_ms(start)
        )

    async def _score(
        self,
        prompt: PromptPair,
        dimensions: tuple[str, ...],
        section: TestSection,
        timeout_ms: int | None,
        max_tokens: int,
    ) -> RawProviderScore:
        start = time.perf_counter()
        completion = await with_timeout(
            self._complete(prompt, max_tokens=max_tokens),
            timeout_ms or self.default_timeout_ms,
        )
        parsed = extract_json(completion.text)
        meta = ProviderMeta(
            provider=self.name,
            model=self.model,
            latency_ms=_elapsed_ms(start),
            timestamp=datetime.now(timezone.utc),
            finish_reason=completion.finish_reason,
            request_id=completion.request_id,
        )

        if parsed is None:
            logger.warning(
                "provider_response_unparseable", provider=self.name, section=section.value
            )
            if dimensions:
                return RawProviderScore(meta=meta)
            # Explanation prompts: keep the prose itself as the rationale
            return RawProviderScore(
                rationale=_as_text(completion.text[:MAX_RATIONALE_CHARS]), meta=meta
            )

        rationale = _as_text(parsed.get("rationale"))
        if not dimensions:
            return RawProviderScore(rationale=rationale, meta=meta)

        subscores = normalize_subscores({d: _as_number(parsed.get(d)) for d in dimensions})
        raw_overall = _as_number(parsed.get("overall"))
        if raw_overall is not None:
            overall = scale_to_90(raw_overall, 0, 100)
        elif subscores:
            overall = weighted_overall(subscores, get_default_weights(section))
        else:
            overall = None

        return RawProviderScore(
            overall=overall,
            subscores=subscores,
            rationale=rationale,
            meta=meta,
        )


class ProviderCallResult(BaseModel):
    """Outcome of one provider call; failures are data, not exceptions."""

    provider: str
    ok: bool
    score: RawProviderScore | None = None
    error: str | None = None
    latency_ms: float | None = None

    @property
    def usable(self) -> bool:
        return self.ok and self.score is not None and self.score.is_usable()

    def as_raw(self) -> RawProviderScore:
        """Raw score for merging; failed calls keep only their error metadata."""
        if self.score is not None:
            if self.score.meta is None:
                meta = ProviderMeta(provider=self.provider, latency_ms=self.latency_ms)
                return self.score.model_copy(update={"meta": meta})
            return self.score
        return RawProviderScore(
            meta=ProviderMeta(provider=self.provider, error=self.error, latency_ms=self.latency_ms)
        )

    def meta_dict(self) -> dict[str, Any]:
        if self.score is not None and self.score.meta is not None:
            return self.score.meta.model_dump(mode="json", exclude_none=True)
        return self.as_raw().meta.model_dump(mode="json", exclude_none=True)


async def call_provider(
    provider: ScoringProvider,
    request: AnyProviderInput,
    timeout_ms: int | None,
) -> ProviderCallResult:
    """Call a provider with a deadline and convert every failure into data.

    Cancellation is not intercepted, so a caller can still abort the call.
    """
    start = time.perf_counter()
    try:
        score = await with_timeout(provider.score(request), timeout_ms)
    except ProviderError as e:
        logger.warning("provider_call_failed", provider=provider.name, error=str(e))
        return ProviderCallResult(
            provider=provider.name, ok=False, error=str(e), latency_ms=_elapsed_ms(start)
        )
    except Exception as e:
        logger.exception("provider_call_error", provider=provider.name)
        return ProviderCallResult(
            provider=provider.name,
            ok=False,
            error=str(e) or type(e).__name__,
            latency_ms=_elapsed_ms(start),
        )
    return ProviderCallResult(
        provider=provider.name, ok=True, score=score, latency_ms=_elapsed_ms(start)
    )


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)
