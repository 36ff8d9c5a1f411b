"""Scoring result models."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TestSection(StrEnum):
    """PTE Academic skill sections."""

    __test__ = False

    SPEAKING = "SPEAKING"
    WRITING = "WRITING"
    READING = "READING"
    LISTENING = "LISTENING"


class ScoringResult(BaseModel):
    """Canonical scoring output on the PTE 0-90 scale."""

    overall: int = Field(default=0, ge=0, le=90)
    subscores: dict[str, float] = Field(default_factory=dict)
    rationale: str | None = None
    metadata: dict[str, Any] | None = None


class ProviderMeta(BaseModel):
    """Diagnostic information about a single provider attempt."""

    model_config = ConfigDict(extra="allow")

    provider: str
    model: str | None = None
    latency_ms: float | None = None
    timestamp: datetime | None = None
    error: str | None = None
    finish_reason: str | None = None
    request_id: str | None = None


class RawProviderScore(BaseModel):
    """Provider output before normalization into a ScoringResult."""

    overall: float | None = None
    subscores: dict[str, float | None] = Field(default_factory=dict)
    rationale: str | None = None
    meta: ProviderMeta | None = None

    def has_subscores(self) -> bool:
        return any(v is not None for v in self.subscores.values())

    def is_usable(self) -> bool:
        """A raw score counts only if it carries a numeric overall or any subscore."""
        return self.overall is not None or self.has_subscores()


class HealthStatus(BaseModel):
    """Provider liveness probe result."""

    provider: str
    ok: bool
    model: str | None = None
    latency_ms: float | None = None
    error: str | None = None


# Default subscore weights per section (read-only)
DEFAULT_WEIGHTS: dict[TestSection, dict[str, float]] = {
    TestSection.SPEAKING: {
        "content": 0.4,
        "pronunciation": 0.3,
        "fluency": 0.2,
        "grammar": 0.05,
        "vocabulary": 0.05,
    },
    TestSection.WRITING: {
        "content": 0.35,
        "structure": 0.15,
        "coherence": 0.15,
        "grammar": 0.15,
        "vocabulary": 0.1,
        "spelling": 0.1,
    },
    TestSection.READING: {
        "correctness": 1.0,
    },
    TestSection.LISTENING: {
        "correctness": 0.7,
        "wer": 0.3,
    },
}


def get_default_weights(section: TestSection) -> dict[str, float]:
    """Return a copy of the default weight table for a section."""
    return dict(DEFAULT_WEIGHTS.get(section, {}))
