"""OpenAI chat-completions scoring provider."""

from openai import AsyncOpenAI

from pte_scoring.config import DEFAULT_TIMEOUT_MS
from pte_scoring.providers.base import (
    Completion,
    ProviderUnavailableError,
    ScoringProvider,
)
from pte_scoring.scoring.rubrics import PromptPair


class OpenAIProvider(ScoringProvider):
    """Scores responses with an OpenAI chat model.

    Args:
        api_key: OpenAI API key.
        model: Model to use for scoring.
        base_url: Alternative OpenAI-compatible endpoint.
        default_timeout_ms: Deadline used when a request carries none.
    """

    name = "openai"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gpt-4o-mini",
        base_url: str | None = None,
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        if not api_key:
            raise ProviderUnavailableError(f"{self.name}_api_key_missing")
        super().__init__(model=model, default_timeout_ms=default_timeout_ms)
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)

    async def _complete(
        self, prompt: PromptPair, max_tokens: int, json_mode: bool = True
    ) -> Completion:
        kwargs = {"response_format": {"type": "json_object"}} if json_mode else {}
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": prompt.system},
                {"role": "user", "content": prompt.user},
            ],
            temperature=0.2,
            max_tokens=max_tokens,
            **kwargs,
        )
        if not response.choices:
            return Completion(text="", request_id=response.id)
        choice = response.choices[0]
        return Completion(
            text=choice.message.content or "",
            finish_reason=choice.finish_reason,
            request_id=response.id,
        )


class GatewayProvider(OpenAIProvider):
    """OpenAI-compatible AI gateway that routes to any hosted model.

    Args:
        api_key: Gateway API key.
        base_url: Gateway endpoint.
        model: Gateway model id, e.g. ``openai/gpt-4o-mini``.
    """

    name = "gateway"

    def __init__(
        self,
        api_key: str | None,
        base_url: str,
        model: str = "openai/gpt-4o-mini",
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        super().__init__(
            api_key=api_key,
            model=model,
            base_url=base_url,
            default_timeout_ms=default_timeout_ms,
        )
