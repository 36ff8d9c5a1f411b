"""Capability-checked construction of scoring providers."""

from collections.abc import Callable

import structlog
from pydantic import BaseModel

from pte_scoring.config import Settings
from pte_scoring.providers.base import ProviderUnavailableError, ScoringProvider
from pte_scoring.providers.gemini_provider import GeminiProvider
from pte_scoring.providers.openai_provider import GatewayProvider, OpenAIProvider

logger = structlog.get_logger()

KNOWN_PROVIDERS: tuple[str, ...] = ("openai", "gemini", "gateway")


class ProviderUnavailable(BaseModel):
    """A provider that could not be constructed, and why."""

    name: str
    reason: str


ProviderFactory = Callable[[str], ScoringProvider | ProviderUnavailable]


def create_provider(name: str, settings: Settings) -> ScoringProvider | ProviderUnavailable:
    """Build a provider by id, reporting absence as data instead of raising.

    Args:
        name: Provider id (``openai``, ``gemini`` or ``gateway``).
        settings: Credentials and model configuration.
    """
    timeout = settings.pte_scoring_timeout_ms
    try:
        if name == "openai":
            return OpenAIProvider(
                api_key=settings.openai_api_key,
                model=settings.openai_model,
                default_timeout_ms=timeout,
            )
        if name == "gemini":
            return GeminiProvider(
                api_key=settings.gemini_api_key,
                model=settings.gemini_model,
                default_timeout_ms=timeout,
            )
        if name == "gateway":
            return GatewayProvider(
                api_key=settings.gateway_api_key,
                base_url=settings.gateway_base_url,
                model=settings.gateway_model,
                default_timeout_ms=timeout,
            )
    except ProviderUnavailableError as e:
        logger.debug("provider_unavailable", provider=name, reason=str(e))
        return ProviderUnavailable(name=name, reason=str(e))
    except Exception as e:
        logger.warning("provider_init_failed", provider=name, error=str(e))
        return ProviderUnavailable(name=name, reason=f"init_failed: {e}")
    return ProviderUnavailable(name=name, reason="unknown_provider")


def settings_provider_factory(settings: Settings) -> ProviderFactory:
    """Bind settings into a single-argument factory for the orchestrator."""

    def factory(name: str) -> ScoringProvider | ProviderUnavailable:
        return create_provider(name, settings)

    return factory
