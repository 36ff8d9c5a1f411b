"""Score normalization onto the PTE Academic 0-90 scale.

Every numeric conversion in the service goes through this module. Functions
never raise on bad numbers: NaN and infinities mean "no credit" and map to 0.
"""

import math
from collections.abc import Iterable, Mapping

from pte_scoring.models.scoring import (
    RawProviderScore,
    ScoringResult,
    TestSection,
)

PTE_MAX = 90
WER_ZERO_BOUND = 3.0

ALL_FAILED_RATIONALE = "All providers failed or returned insufficient data."


def _is_number(value: object) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite(value: object) -> bool:
    return _is_number(value) and math.isfinite(value)


def clamp_to_90(value: float) -> int:
    """Round half up and clamp into [0, 90]. Non-finite input maps to 0."""
    if not _is_finite(value):
        return 0
    rounded = math.floor(value + 0.5)
    return max(0, min(PTE_MAX, rounded))


def scale_to_90(value: float, min_value: float, max_value: float) -> int:
    """Linearly map ``value`` from [min_value, max_value] onto [0, 90].

    A degenerate range (min == max) has no scale, so the value is clamped as is.
    """
    if not _is_finite(value):
        return 0
    if not (_is_finite(min_value) and _is_finite(max_value)) or min_value == max_value:
        return clamp_to_90(value)
    return clamp_to_90((value - min_value) / (max_value - min_value) * PTE_MAX)


def accuracy_to_90(value: float, is_percentage: bool = False) -> int:
    """Convert an accuracy fraction (or percentage) to 0-90."""
    return scale_to_90(value, 0, 100 if is_percentage else 1)


def wer_to_90(wer: float) -> int:
    """Convert word error rate to 0-90.

    Linear from 90 at WER 0 down to 30 at WER 1, then a quadratic decay that
    reaches 0 at WER 3 and stays there. Negative WER counts as perfect.
    """
    if not _is_finite(wer):
        return 0
    wer = max(0.0, float(wer))
    if wer <= 1.0:
        return clamp_to_90(90 - 60 * wer)
    if wer >= WER_ZERO_BOUND:
        return 0
    remaining = (WER_ZERO_BOUND - wer) / (WER_ZERO_BOUND - 1.0)
    return clamp_to_90(30 * remaining**2)


def weighted_overall(
    subscores: Mapping[str, float | None],
    weights: Mapping[str, float] | None = None,
) -> int:
    """Weighted mean of subscores, clamped to 0-90.

    Missing values count as 0. Keys with negative weight are left out
    entirely; keys without a weight contribute nothing. With no weights, or
    when the applicable weights sum to zero, the plain mean is used.

    Args:
        subscores: Dimension name to 0-90 value.
        weights: Dimension name to non-negative weight.

    Returns:
        Overall score on the 0-90 scale.
    """
    if not subscores:
        return 0

    values = {k: (v if _is_finite(v) else 0.0) for k, v in subscores.items()}

    if weights:
        total = 0.0
        weight_sum = 0.0
        for key, value in values.items():
            weight = weights.get(key, 0.0)
            if not _is_finite(weight) or weight < 0:
                continue
            total += value * weight
            weight_sum += weight
        if weight_sum > 0:
            return clamp_to_90(total / weight_sum)

    return clamp_to_90(sum(values.values()) / len(values))


def normalize_subscores(
    raw: Mapping[str, object],
    scalers: Mapping[str, Mapping[str, float]] | None = None,
) -> dict[str, int]:
    """Scale raw subscores onto 0-90.

    Values that are not finite numbers are dropped rather than zeroed, so an
    abstaining rater stays distinguishable from a rater who gave 0.

    Args:
        raw: Dimension name to raw value.
        scalers: Optional per-key ``{"min": .., "max": ..}`` ranges. Keys
            without a scaler are assumed to be on a 0-100 scale.
    """
    scalers = scalers or {}
    out: dict[str, int] = {}
    for key, value in raw.items():
        if not _is_finite(value):
            continue
        scaler = scalers.get(key)
        if scaler is not None:
            out[key] = scale_to_90(value, scaler.get("min", 0), scaler.get("max", 100))
        else:
            out[key] = scale_to_90(value, 0, 100)
    return out


def merge_provider_scores(
    results: Iterable[RawProviderScore],
    section: TestSection,
    weights_by_section: Mapping[TestSection, Mapping[str, float]],
) -> ScoringResult:
    """Merge partial provider reports into one ScoringResult.

    Subscores merge per key with the last non-empty value winning. When more
    than one report carries subscores the overall is recomputed from the
    merged subscores with the section weights; otherwise the first numeric
    overall in list order is kept. Rationales are joined with spaces.
    """
    results = list(results)
    merged: dict[str, float] = {}
    subscore_sources = 0
    first_overall: float | None = None
    rationales: list[str] = []
    metas: list[dict] = []

    for result in results:
        usable_subs = {k: v for k, v in result.subscores.items() if _is_finite(v)}
        if usable_subs:
            subscore_sources += 1
            merged.update(usable_subs)
        if first_overall is None and _is_number(result.overall):
            first_overall = result.overall
        if result.rationale and result.rationale.strip():
            rationales.append(result.rationale.strip())
        if result.meta is not None:
            metas.append(result.meta.model_dump(mode="json", exclude_none=True))

    metadata = {"providers": metas} if metas else None
    rationale = " ".join(rationales) or None

    if not merged and first_overall is None:
        return ScoringResult(
            overall=0,
            subscores={},
            rationale=" ".join([ALL_FAILED_RATIONALE, *rationales]),
            metadata=metadata,
        )

    weights = weights_by_section.get(section)
    if subscore_sources > 1 or first_overall is None:
        overall = weighted_overall(merged, weights)
    else:
        overall = clamp_to_90(first_overall)

    return ScoringResult(
        overall=overall,
        subscores=merged,
        rationale=rationale,
        metadata=metadata,
    )


_SECTION_PREFIXES: tuple[tuple[str, TestSection], ...] = (
    ("speak", TestSection.SPEAKING),
    ("writ", TestSection.WRITING),
    ("read", TestSection.READING),
    ("listen", TestSection.LISTENING),
)


def parse_test_section(label: str | None) -> TestSection | None:
    """Map a free-text label to a TestSection, or None if unrecognized."""
    text = (label or "").strip().lower()
    if not text:
        return None
    for prefix, section in _SECTION_PREFIXES:
        if text.startswith(prefix):
            return section
    return None


def to_test_section(label: str | None) -> TestSection:
    """Map a free-text label to a TestSection, defaulting to READING."""
    return parse_test_section(label) or TestSection.READING
