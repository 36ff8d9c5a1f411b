"""Scoring orchestrator: deterministic-first grading with a provider fallback chain."""

import functools
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, NamedTuple

import structlog
from pydantic import BaseModel, ValidationError

from pte_scoring.config import DEFAULT_TIMEOUT_MS, OrchestratorConfig, Settings, get_settings
from pte_scoring.models.payloads import (
    AnyProviderInput,
    FillInBlanksPayload,
    ListeningInput,
    MCQMultiplePayload,
    MCQSinglePayload,
    OrchestratorInput,
    ReadingInput,
    ReorderParagraphsPayload,
    SpeakingInput,
    WriteFromDictationPayload,
    WritingInput,
)
from pte_scoring.models.scoring import (
    DEFAULT_WEIGHTS,
    ProviderMeta,
    RawProviderScore,
    ScoringResult,
    TestSection,
)
from pte_scoring.providers.base import ProviderCallResult, call_provider
from pte_scoring.providers.registry import (
    KNOWN_PROVIDERS,
    ProviderFactory,
    ProviderUnavailable,
    settings_provider_factory,
)
from pte_scoring.scoring.deterministic import (
    DETERMINISTIC_PROVIDER,
    score_listening_write_from_dictation,
    score_reading_fill_in_blanks,
    score_reading_mcq_multiple,
    score_reading_mcq_single,
    score_reading_reorder_paragraphs,
)
from pte_scoring.scoring.normalize import (
    clamp_to_90,
    merge_provider_scores,
    weighted_overall,
)

logger = structlog.get_logger()

Transcriber = Callable[[str], Awaitable[str]]

# Speaking/Writing prefer a general conversational model; Reading/Listening a fast one
SECTION_DEFAULT_PRIORITY: Mapping[TestSection, tuple[str, ...]] = {
    TestSection.SPEAKING: ("openai", "gemini", "gateway"),
    TestSection.WRITING: ("openai", "gemini", "gateway"),
    TestSection.READING: ("gemini", "openai", "gateway"),
    TestSection.LISTENING: ("gemini", "openai", "gateway"),
}


class _DeterministicRule(NamedTuple):
    section: TestSection
    markers: tuple[str, ...]
    payload_model: type[BaseModel]
    scorer: Callable[[Any], ScoringResult]


DETERMINISTIC_RULES: tuple[_DeterministicRule, ...] = (
    _DeterministicRule(
        section=TestSection.READING,
        markers=("multiple_choice_single",),
        payload_model=MCQSinglePayload,
        scorer=score_reading_mcq_single,
    ),
    _DeterministicRule(
        section=TestSection.READING,
        markers=("multiple_choice_multiple",),
        payload_model=MCQMultiplePayload,
        scorer=score_reading_mcq_multiple,
    ),
    _DeterministicRule(
        section=TestSection.READING,
        markers=("fill_in_blanks",),
        payload_model=FillInBlanksPayload,
        scorer=score_reading_fill_in_blanks,
    ),
    _DeterministicRule(
        section=TestSection.READING,
        markers=("reorder_paragraphs",),
        payload_model=ReorderParagraphsPayload,
        scorer=score_reading_reorder_paragraphs,
    ),
    _DeterministicRule(
        section=TestSection.LISTENING,
        markers=("write_from_dictation", "wfd"),
        payload_model=WriteFromDictationPayload,
        scorer=score_listening_write_from_dictation,
    ),
)


def _unconfigured_factory(name: str) -> ProviderUnavailable:
    return ProviderUnavailable(name=name, reason="no_provider_factory")


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 1)


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, Mapping):
        return [str(v) for v in value.values()]
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    if value:
        return [str(value)]
    return []


class ScoringOrchestrator:
    """Chooses between deterministic grading and a prioritized provider chain.

    The orchestrator holds only immutable configuration. Each call builds its
    own providers and local state, so one instance serves concurrent requests.

    Args:
        config: Default provider priority and per-provider timeout.
        provider_factory: Maps a provider id to a provider or ProviderUnavailable.
        transcriber: Optional coroutine turning a speaking audio URL into text.
        known_providers: Provider ids accepted in priority lists.
    """

    def __init__(
        self,
        config: OrchestratorConfig | None = None,
        provider_factory: ProviderFactory | None = None,
        transcriber: Transcriber | None = None,
        known_providers: tuple[str, ...] = KNOWN_PROVIDERS,
    ):
        self.config = config or OrchestratorConfig()
        self.provider_factory = provider_factory or _unconfigured_factory
        self.transcriber = transcriber
        self.known_providers = known_providers

    def resolve_priority(
        self, section: TestSection, override: list[str] | None = None
    ) -> list[str]:
        """Provider order: explicit override, then configured default, then section default.

        An explicit empty override selects the section default.
        """
        base = list(SECTION_DEFAULT_PRIORITY[section])
        candidates = override if override is not None else self.config.provider_priority
        if not candidates:
            return base
        ordered: list[str] = []
        for raw in candidates:
            name = raw.strip().lower()
            if name in self.known_providers and name not in ordered:
                ordered.append(name)
        return ordered or base

    def resolve_timeout(self, override: int | None = None) -> int:
        if override is not None and math.isfinite(override) and override > 0:
            return int(override)
        if self.config.timeout_ms > 0:
            return self.config.timeout_ms
        return DEFAULT_TIMEOUT_MS

    @staticmethod
    def try_deterministic(request: OrchestratorInput) -> ScoringResult | None:
        """Score objectively gradable items exactly, or return None."""
        question_type = (request.question_type or "").lower()
        for rule in DETERMINISTIC_RULES:
            if rule.section != request.section:
                continue
            if not any(marker in question_type for marker in rule.markers):
                continue
            try:
                payload = rule.payload_model.model_validate(request.payload)
            except ValidationError:
                continue
            return rule.scorer(payload)
        return None

    async def score(self, request: OrchestratorInput) -> ScoringResult:
        """Score one response. Ordinary failures never raise.

        Args:
            request: Section, question type and task payload.

        Returns:
            A ScoringResult; overall is 0 with an explanatory rationale when
            every provider failed.
        """
        start = time.perf_counter()
        timeout_ms = self.resolve_timeout(request.timeout_ms)
        priority = self.resolve_priority(request.section, request.provider_priority)
        log = logger.bind(section=request.section.value, question_type=request.question_type)

        deterministic = self.try_deterministic(request)
        if deterministic is not None:
            log.info("deterministic_scored", overall=deterministic.overall)
            if request.include_rationale:
                return await self._with_explanation(
                    request, deterministic, priority, timeout_ms, start
                )
            return deterministic

        provider_input = await self._build_provider_input(request, timeout_ms)
        attempts: list[ProviderCallResult] = []

        for name in priority:
            outcome = await self._call(name, provider_input, timeout_ms)
            attempts.append(outcome)
            if outcome.usable:
                result = self._to_scoring_result(outcome.score, request.section)
                result.metadata = {
                    "provider": name,
                    "providers": [a.meta_dict() for a in attempts],
                    "orchestrator_latency_ms": _elapsed_ms(start),
                }
                log.info("provider_scored", provider=name, overall=result.overall)
                return result
            if outcome.ok:
                log.info("provider_result_unusable", provider=name)

        log.warning(
            "all_providers_failed",
            attempted=[a.provider for a in attempts],
        )
        merged = merge_provider_scores(
            [a.as_raw() for a in attempts], request.section, DEFAULT_WEIGHTS
        )
        merged.metadata = {
            **(merged.metadata or {}),
            "orchestrator_latency_ms": _elapsed_ms(start),
        }
        return merged

    async def _call(
        self, name: str, provider_input: AnyProviderInput, timeout_ms: int
    ) -> ProviderCallResult:
        provider = self.provider_factory(name)
        if isinstance(provider, ProviderUnavailable):
            logger.info("provider_skipped", provider=name, reason=provider.reason)
            return ProviderCallResult(provider=name, ok=False, error=provider.reason)
        return await call_provider(provider, provider_input, timeout_ms)

    async def _with_explanation(
        self,
        request: OrchestratorInput,
        deterministic: ScoringResult,
        priority: list[str],
        timeout_ms: int,
        start: float,
    ) -> ScoringResult:
        """Attach provider rationale to a deterministic result.

        The deterministic result goes first in the merge so its overall is kept,
        unless both sides contribute subscores, in which case the overall is
        recomputed from the merged subscores with the section weights.
        """
        provider_input = await self._build_provider_input(request, timeout_ms)
        explanation: RawProviderScore | None = None
        for name in priority:
            outcome = await self._call(name, provider_input, timeout_ms)
            if outcome.ok and outcome.score is not None and outcome.score.rationale:
                explanation = outcome.as_raw()
                break

        if explanation is None:
            return deterministic

        deterministic_raw = RawProviderScore(
            overall=deterministic.overall,
            subscores=deterministic.subscores,
            rationale=deterministic.rationale,
            meta=ProviderMeta(provider=DETERMINISTIC_PROVIDER, latency_ms=_elapsed_ms(start)),
        )
        merged = merge_provider_scores(
            [deterministic_raw, explanation], request.section, DEFAULT_WEIGHTS
        )
        merged.metadata = {**(deterministic.metadata or {}), **(merged.metadata or {})}
        return merged

    async def _build_provider_input(
        self, request: OrchestratorInput, timeout_ms: int
    ) -> AnyProviderInput:
        payload = request.payload
        common = {
            "question_type": request.question_type,
            "include_rationale": request.include_rationale,
            "timeout_ms": timeout_ms,
        }

        if request.section == TestSection.SPEAKING:
            transcript = payload.get("transcript")
            audio_url = payload.get("audioUrl")
            if not transcript and audio_url and self.transcriber is not None:
                try:
                    transcript = await self.transcriber(str(audio_url))
                except Exception as e:
                    # Providers still run on an empty transcript
                    logger.warning("transcription_failed", error=str(e))
            reference = payload.get("referenceText")
            return SpeakingInput(
                **common,
                transcript=str(transcript or ""),
                reference_text=str(reference) if reference else None,
            )

        if request.section == TestSection.WRITING:
            prompt = payload.get("prompt")
            return WritingInput(
                **common,
                text=str(payload.get("text") or payload.get("answer") or ""),
                prompt=str(prompt) if prompt else None,
            )

        if request.section == TestSection.READING:
            correct = payload.get("correct")
            if correct is None:
                correct = payload.get("correctOptions") or payload.get("correctOption")
            selected = (
                payload.get("userSelected")
                or payload.get("selectedOptions")
                or payload.get("selectedOption")
            )
            return ReadingInput(
                **common,
                question=str(payload.get("question") or ""),
                options=_as_str_list(payload.get("options")),
                correct=_as_str_list(correct),
                user_selected=_as_str_list(selected),
            )

        return ListeningInput(
            **common,
            transcript=_optional_str(payload.get("transcript")),
            target_text=_optional_str(payload.get("targetText")),
            user_text=_optional_str(payload.get("userText")),
        )

    @staticmethod
    def _to_scoring_result(raw: RawProviderScore, section: TestSection) -> ScoringResult:
        subscores = {
            k: v for k, v in raw.subscores.items()
            if isinstance(v, (int, float)) and math.isfinite(v)
        }
        if raw.overall is not None:
            overall = clamp_to_90(raw.overall)
        else:
            overall = weighted_overall(subscores, DEFAULT_WEIGHTS.get(section))
        return ScoringResult(overall=overall, subscores=subscores, rationale=raw.rationale)


def _optional_str(value: Any) -> str | None:
    return str(value) if value else None


def build_orchestrator(
    settings: Settings, transcriber: Transcriber | None = None
) -> ScoringOrchestrator:
    """Composition root: the only place settings flow into the orchestrator."""
    return ScoringOrchestrator(
        config=OrchestratorConfig.from_settings(settings),
        provider_factory=settings_provider_factory(settings),
        transcriber=transcriber,
    )


@functools.lru_cache
def get_orchestrator() -> ScoringOrchestrator:
    """Get the application-wide orchestrator."""
    return build_orchestrator(get_settings())


async def score_with_orchestrator(
    request: OrchestratorInput | Mapping[str, Any],
    orchestrator: ScoringOrchestrator | None = None,
) -> ScoringResult:
    """Score a request with the given (or application-wide) orchestrator."""
    if not isinstance(request, OrchestratorInput):
        request = OrchestratorInput.model_validate(request)
    return await (orchestrator or get_orchestrator()).score(request)
