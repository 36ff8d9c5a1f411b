"""Smoke tests for Pydantic models."""

import pytest
from pydantic import ValidationError

from pte_scoring.models.payloads import (
    FillInBlanksPayload,
    MCQSinglePayload,
    OrchestratorInput,
    ReorderParagraphsPayload,
    SpeakingInput,
)
from pte_scoring.models.scoring import (
    DEFAULT_WEIGHTS,
    ProviderMeta,
    RawProviderScore,
    ScoringResult,
    TestSection,
    get_default_weights,
)


class TestScoringResult:
    def test_default_values(self):
        result = ScoringResult()
        assert result.overall == 0
        assert result.subscores == {}
        assert result.rationale is None
        assert result.metadata is None

    def test_overall_bounds(self):
        with pytest.raises(ValidationError):
            ScoringResult(overall=91)
        with pytest.raises(ValidationError):
            ScoringResult(overall=-1)

    def test_model_dump(self):
        data = ScoringResult(overall=45, subscores={"content": 40.0}).model_dump()
        assert data["overall"] == 45
        assert data["subscores"] == {"content": 40.0}


class TestRawProviderScore:
    def test_empty_is_unusable(self):
        assert not RawProviderScore().is_usable()
        assert not RawProviderScore(rationale="text only").is_usable()

    def test_overall_or_subscores_usable(self):
        assert RawProviderScore(overall=0).is_usable()
        assert RawProviderScore(subscores={"content": 0.0}).is_usable()
        assert not RawProviderScore(subscores={"content": None}).is_usable()

    def test_meta_allows_extra_fields(self):
        meta = ProviderMeta(provider="openai", usage={"total_tokens": 12})
        assert meta.model_dump(exclude_none=True) == {
            "provider": "openai",
            "usage": {"total_tokens": 12},
        }


class TestWeights:
    def test_weights_sum_to_one(self):
        for section in TestSection:
            assert sum(DEFAULT_WEIGHTS[section].values()) == pytest.approx(1.0)

    def test_get_default_weights_returns_copy(self):
        weights = get_default_weights(TestSection.LISTENING)
        weights["wer"] = 5
        assert DEFAULT_WEIGHTS[TestSection.LISTENING]["wer"] == 0.3


class TestPayloads:
    def test_mcq_single_requires_both_options(self):
        with pytest.raises(ValidationError):
            MCQSinglePayload.model_validate({"selectedOption": "A"})
        with pytest.raises(ValidationError):
            MCQSinglePayload.model_validate({"selectedOption": "", "correctOption": "A"})

    def test_extra_fields_ignored(self):
        payload = MCQSinglePayload.model_validate(
            {"selectedOption": "A", "correctOption": "B", "question": "Q?"}
        )
        assert payload.selected_option == "A"

    def test_reorder_aliases(self):
        for key in ("userOrder", "order", "user_order"):
            payload = ReorderParagraphsPayload.model_validate({key: [2, 1], "correctOrder": [1, 2]})
            assert payload.user_order == [2, 1]

    def test_item_ids_keep_their_type(self):
        payload = ReorderParagraphsPayload.model_validate(
            {"userOrder": ["A", "1"], "correctOrder": [1, 2]}
        )
        assert payload.user_order == ["A", "1"]
        assert payload.correct_order == [1, 2]
        mcq = MCQSinglePayload.model_validate({"selectedOption": 4, "correctOption": "D"})
        assert mcq.selected_option == 4

    def test_fill_in_blanks_allows_unanswered(self):
        payload = FillInBlanksPayload.model_validate(
            {"answers": {"1": None}, "correct": {"1": "dog"}}
        )
        assert payload.answers == {"1": None}

    def test_orchestrator_input_aliases(self):
        request = OrchestratorInput.model_validate({
            "section": "SPEAKING",
            "questionType": "read_aloud",
            "includeRationale": True,
            "providerPriority": ["gemini"],
            "timeoutMs": 100,
        })
        assert request.section is TestSection.SPEAKING
        assert request.question_type == "read_aloud"
        assert request.payload == {}
        assert request.include_rationale is True
        assert request.provider_priority == ["gemini"]
        assert request.timeout_ms == 100

    def test_provider_input_section(self):
        assert SpeakingInput(question_type="read_aloud", transcript="").section == "SPEAKING"
