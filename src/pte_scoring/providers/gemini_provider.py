"""Google Gemini scoring provider."""

from google import genai
from google.genai import types

from pte_scoring.config import DEFAULT_TIMEOUT_MS
from pte_scoring.providers.base import (
    Completion,
    ProviderUnavailableError,
    ScoringProvider,
)
from pte_scoring.scoring.rubrics import PromptPair


class GeminiProvider(ScoringProvider):
    """Scores responses with a Gemini model through the async client.

    Args:
        api_key: Gemini API key.
        model: Model to use for scoring.
        default_timeout_ms: Deadline used when a request carries none.
    """

    name = "gemini"

    def __init__(
        self,
        api_key: str | None,
        model: str = "gemini-2.5-flash",
        default_timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        if not api_key:
            raise ProviderUnavailableError("gemini_api_key_missing")
        super().__init__(model=model, default_timeout_ms=default_timeout_ms)
        self.client = genai.Client(api_key=api_key)

    async def _complete(
        self, prompt: PromptPair, max_tokens: int, json_mode: bool = True
    ) -> Completion:
        config = types.GenerateContentConfig(
            system_instruction=prompt.system,
            temperature=0.2,
            max_output_tokens=max_tokens,
            response_mime_type="application/json" if json_mode else None,
        )
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt.user,
            config=config,
        )
        finish_reason = None
        if response.candidates and response.candidates[0].finish_reason is not None:
            finish_reason = str(response.candidates[0].finish_reason)
        return Completion(
            text=response.text or "",
            finish_reason=finish_reason,
            request_id=getattr(response, "response_id", None),
        )
