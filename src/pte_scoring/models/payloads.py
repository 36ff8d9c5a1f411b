"""Request and task payload models.

Payloads arrive as loose dicts from the application layer. Each objective task
has a variant model with its required fields; a payload that does not validate
into the variant is simply not eligible for deterministic scoring.
"""

from typing import Annotated

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from pte_scoring.models.scoring import TestSection


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# Option and paragraph ids arrive as letters or numbers; both are kept as sent
ItemId = Annotated[str, StringConstraints(min_length=1)] | int


class MCQSinglePayload(_Payload):
    selected_option: ItemId = Field(alias="selectedOption")
    correct_option: ItemId = Field(alias="correctOption")


class MCQMultiplePayload(_Payload):
    selected_options: list[ItemId] = Field(alias="selectedOptions")
    correct_options: list[ItemId] = Field(alias="correctOptions")


class FillInBlanksPayload(_Payload):
    # blank key -> answer; None for a blank left empty
    answers: dict[str, str | None]
    correct: dict[str, str]


class ReorderParagraphsPayload(_Payload):
    user_order: list[ItemId] = Field(
        validation_alias=AliasChoices("userOrder", "order", "user_order")
    )
    correct_order: list[ItemId] = Field(alias="correctOrder")


class WriteFromDictationPayload(_Payload):
    target_text: str = Field(alias="targetText")
    user_text: str = Field(alias="userText")


class OrchestratorInput(BaseModel):
    """A single scoring request.

    Args:
        section: PTE section being scored.
        question_type: Snake_case task key, e.g. ``multiple_choice_single``.
        payload: Task-specific fields.
        include_rationale: Ask providers for explanatory text.
        provider_priority: Override of the configured provider order.
        timeout_ms: Override of the per-provider timeout.
    """

    model_config = ConfigDict(populate_by_name=True)

    section: TestSection
    question_type: str = Field(alias="questionType")
    payload: dict = Field(default_factory=dict)
    include_rationale: bool = Field(default=False, alias="includeRationale")
    provider_priority: list[str] | None = Field(default=None, alias="providerPriority")
    timeout_ms: int | None = Field(default=None, alias="timeoutMs")

    @field_validator("payload", mode="before")
    @classmethod
    def _none_payload(cls, v):
        return v if v is not None else {}


class ProviderInput(BaseModel):
    """Fields shared by every provider call."""

    question_type: str
    include_rationale: bool = False
    timeout_ms: int | None = None


class SpeakingInput(ProviderInput):
    section: TestSection = TestSection.SPEAKING
    transcript: str
    reference_text: str | None = None


class WritingInput(ProviderInput):
    section: TestSection = TestSection.WRITING
    text: str
    prompt: str | None = None


class ReadingInput(ProviderInput):
    section: TestSection = TestSection.READING
    question: str = ""
    options: list[str] = Field(default_factory=list)
    correct: list[str] = Field(default_factory=list)
    user_selected: list[str] = Field(default_factory=list)


class ListeningInput(ProviderInput):
    section: TestSection = TestSection.LISTENING
    transcript: str | None = None
    target_text: str | None = None
    user_text: str | None = None


AnyProviderInput = SpeakingInput | WritingInput | ReadingInput | ListeningInput
