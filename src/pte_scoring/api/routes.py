"""REST API routes for scoring and provider diagnostics."""

import asyncio
import time
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import APIRouter, Body, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError, field_validator

from pte_scoring.config import get_settings
from pte_scoring.models.payloads import OrchestratorInput
from pte_scoring.models.scoring import TestSection
from pte_scoring.orchestrator import get_orchestrator
from pte_scoring.providers.registry import KNOWN_PROVIDERS, ProviderUnavailable, create_provider
from pte_scoring.scoring.normalize import parse_test_section

logger = structlog.get_logger()
router = APIRouter(prefix="/api")


class ScoreRequest(BaseModel):
    """Body of ``POST /api/score``."""

    model_config = ConfigDict(populate_by_name=True)

    section: TestSection
    question_type: str = Field(alias="questionType", min_length=1)
    attempt_id: str | None = Field(default=None, alias="attemptId")
    user_id: str | None = Field(default=None, alias="userId")
    include_rationale: bool = Field(default=False, alias="includeRationale")
    payload: dict[str, Any] = Field(default_factory=dict)
    provider_priority: list[str] | None = Field(default=None, alias="providerPriority")
    timeout_ms: PositiveInt | None = Field(default=None, alias="timeoutMs")

    @field_validator("section", mode="before")
    @classmethod
    def _parse_section(cls, v: Any) -> TestSection:
        section = parse_test_section(v) if isinstance(v, str) else None
        if section is None:
            raise ValueError("section must be one of SPEAKING, WRITING, READING, LISTENING")
        return section

    @field_validator("provider_priority", mode="before")
    @classmethod
    def _split_priority(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [p.strip() for p in v.split(",") if p.strip()] or None
        return v


def build_error(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


def redact_secret(value: str | None) -> str | None:
    """Mask a secret so it can be echoed in diagnostics."""
    if not value:
        return value
    if len(value) <= 8:
        return "***"
    return f"{value[:3]}***{value[-2:]}"


@router.post("/score", response_model=None)
async def score(
    response: Response, body: dict[str, Any] = Body(...)
) -> dict | JSONResponse:
    """Score one response and return the result with a request trace."""
    start = time.perf_counter()
    try:
        request = ScoreRequest.model_validate(body)
    except ValidationError as e:
        message = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        logger.info("score_request_invalid", error=message)
        return JSONResponse(build_error("invalid_request", message), status_code=400)

    result = await get_orchestrator().score(
        OrchestratorInput(
            section=request.section,
            question_type=request.question_type,
            payload=request.payload,
            include_rationale=request.include_rationale,
            provider_priority=request.provider_priority,
            timeout_ms=request.timeout_ms,
        )
    )
    duration_ms = round((time.perf_counter() - start) * 1000, 1)
    logger.info(
        "score_request_completed",
        section=request.section.value,
        question_type=request.question_type,
        overall=result.overall,
        duration_ms=duration_ms,
    )

    response.headers["x-duration-ms"] = str(duration_ms)
    response.headers["cache-control"] = "no-store"
    return {
        "result": result.model_dump(mode="json", exclude_none=True),
        "trace": {
            "section": request.section.value,
            "questionType": request.question_type,
            "attemptId": request.attempt_id,
            "userId": request.user_id,
            "providerPriority": request.provider_priority,
            "durationMs": duration_ms,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    }


@router.get("/providers/health")
async def providers_health() -> dict:
    """Probe every known provider; diagnostics only, never used for scoring."""
    settings = get_settings()

    async def probe(name: str) -> dict:
        provider = create_provider(name, settings)
        if isinstance(provider, ProviderUnavailable):
            return {"name": name, "provider": name, "ok": False, "error": provider.reason}
        status = await provider.health()
        return {"name": name, **status.model_dump(exclude_none=True)}

    providers = await asyncio.gather(*(probe(name) for name in KNOWN_PROVIDERS))
    return {
        "providers": list(providers),
        "env": {
            "OPENAI_API_KEY": redact_secret(settings.openai_api_key),
            "GEMINI_API_KEY": redact_secret(settings.gemini_api_key),
            "GATEWAY_API_KEY": redact_secret(settings.gateway_api_key),
            "PTE_SCORING_PROVIDER_PRIORITY": settings.pte_scoring_provider_priority,
            "PTE_SCORING_TIMEOUT_MS": settings.pte_scoring_timeout_ms,
        },
    }


@router.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}
