"""Tests for 0-90 score normalization."""

import math

import pytest

from pte_scoring.models.scoring import (
    DEFAULT_WEIGHTS,
    ProviderMeta,
    RawProviderScore,
    TestSection,
)
from pte_scoring.scoring.normalize import (
    ALL_FAILED_RATIONALE,
    accuracy_to_90,
    clamp_to_90,
    merge_provider_scores,
    normalize_subscores,
    parse_test_section,
    scale_to_90,
    to_test_section,
    wer_to_90,
    weighted_overall,
)

NON_FINITE = [math.nan, math.inf, -math.inf]


class TestClampTo90:
    def test_within_range(self):
        assert clamp_to_90(45) == 45
        assert clamp_to_90(0) == 0
        assert clamp_to_90(90) == 90

    def test_rounds_half_up(self):
        assert clamp_to_90(50.5) == 51
        assert clamp_to_90(50.4) == 50
        assert clamp_to_90(2.5) == 3
        assert clamp_to_90(0.5) == 1

    def test_clamps_out_of_range(self):
        assert clamp_to_90(-0.1) == 0
        assert clamp_to_90(-100) == 0
        assert clamp_to_90(90.001) == 90
        assert clamp_to_90(1000) == 90

    @pytest.mark.parametrize("value", NON_FINITE)
    def test_non_finite_is_zero(self, value):
        assert clamp_to_90(value) == 0

    def test_returns_int(self):
        assert isinstance(clamp_to_90(45.6), int)

    def test_monotonic(self):
        values = [-5, 0, 0.4, 0.6, 12.3, 44.5, 89.4, 89.6, 150]
        results = [clamp_to_90(v) for v in values]
        assert results == sorted(results)


class TestScaleTo90:
    def test_endpoints_and_midpoint(self):
        assert scale_to_90(0, 0, 100) == 0
        assert scale_to_90(100, 0, 100) == 90
        assert scale_to_90(50, 0, 100) == 45
        assert scale_to_90(3, 1, 5) == 45

    def test_out_of_range_clamps(self):
        assert scale_to_90(-10, 0, 100) == 0
        assert scale_to_90(200, 0, 100) == 90

    def test_degenerate_range_falls_back_to_clamp(self):
        assert scale_to_90(7, 4, 4) == clamp_to_90(7)
        assert scale_to_90(120, 4, 4) == 90
        assert scale_to_90(-3, 0, 0) == 0

    @pytest.mark.parametrize("value", NON_FINITE)
    def test_non_finite_is_zero(self, value):
        assert scale_to_90(value, 0, 100) == 0


class TestAccuracyTo90:
    def test_fractions(self):
        assert accuracy_to_90(0) == 0
        assert accuracy_to_90(0.5) == 45
        assert accuracy_to_90(1) == 90
        assert accuracy_to_90(0.75) == 68
        assert accuracy_to_90(0.25) == 23
        assert accuracy_to_90(0.8) == 72

    def test_percentages(self):
        assert accuracy_to_90(80, is_percentage=True) == 72
        assert accuracy_to_90(100, is_percentage=True) == 90

    def test_out_of_range(self):
        assert accuracy_to_90(-0.5) == 0
        assert accuracy_to_90(1.5) == 90

    @pytest.mark.parametrize("value", NON_FINITE)
    def test_non_finite_is_zero(self, value):
        assert accuracy_to_90(value) == 0


class TestWerTo90:
    def test_anchor_points(self):
        assert wer_to_90(0) == 90
        assert wer_to_90(0.5) == 60
        assert wer_to_90(1.0) == 30
        assert wer_to_90(2.0) == 8

    def test_one_third(self):
        assert wer_to_90(1 / 3) == 70

    def test_negative_is_perfect(self):
        assert wer_to_90(-0.1) == 90
        assert wer_to_90(-1) == 90

    def test_reaches_and_stays_at_zero(self):
        assert wer_to_90(3.0) == 0
        assert wer_to_90(10) == 0
        assert wer_to_90(1e9) == 0

    def test_strictly_decreasing(self):
        wers = [0, 0.25, 0.5, 0.75, 1.0, 1.5, 2.0, 2.5]
        scores = [wer_to_90(w) for w in wers]
        assert all(a > b for a, b in zip(scores, scores[1:]))

    @pytest.mark.parametrize("value", NON_FINITE)
    def test_non_finite_is_zero(self, value):
        assert wer_to_90(value) == 0


class TestWeightedOverall:
    def test_empty(self):
        assert weighted_overall({}) == 0
        assert weighted_overall({}, {"a": 1}) == 0

    def test_equal_weight_fallback(self):
        assert weighted_overall({"a": 90, "b": 60, "c": 30}, {}) == 60
        assert weighted_overall({"a": 90, "b": 60, "c": 30}) == 60

    def test_weighted(self):
        subscores = {
            "content": 80,
            "pronunciation": 60,
            "fluency": 70,
            "grammar": 50,
            "vocabulary": 50,
        }
        assert weighted_overall(subscores, DEFAULT_WEIGHTS[TestSection.SPEAKING]) == 69

    def test_negative_weight_excluded(self):
        assert weighted_overall({"a": 90, "b": 0}, {"a": 1, "b": -1}) == 90

    def test_all_zero_weights_use_mean(self):
        assert weighted_overall({"a": 90, "b": 30}, {"a": 0, "b": 0}) == 60

    def test_missing_value_counts_as_zero(self):
        assert weighted_overall({"a": 90, "b": None}, {"a": 1, "b": 1}) == 45

    def test_unweighted_key_contributes_nothing(self):
        assert weighted_overall({"a": 90, "z": 0}, {"a": 1}) == 90


class TestNormalizeSubscores:
    def test_pinned_values(self):
        assert normalize_subscores({"a": 50}) == {"a": 45}
        assert normalize_subscores({"a": 100}) == {"a": 90}
        assert normalize_subscores({"a": 45}) == {"a": 41}

    def test_drops_non_numbers(self):
        raw = {"a": 50, "b": None, "c": "80", "d": math.nan, "e": True}
        assert normalize_subscores(raw) == {"a": 45}

    def test_abstain_differs_from_zero(self):
        assert normalize_subscores({"a": 0, "b": None}) == {"a": 0}

    def test_per_key_scalers(self):
        result = normalize_subscores(
            {"a": 90, "b": 3, "c": 50},
            scalers={"a": {"min": 0, "max": 90}, "b": {"min": 1, "max": 5}},
        )
        assert result == {"a": 90, "b": 45, "c": 45}


class TestMergeProviderScores:
    def _merge(self, results, section=TestSection.SPEAKING):
        return merge_provider_scores(results, section, DEFAULT_WEIGHTS)

    def test_last_non_empty_wins_per_key(self):
        result = self._merge([
            RawProviderScore(subscores={"content": 60, "fluency": 50}),
            RawProviderScore(subscores={}),
            RawProviderScore(subscores={"content": 70}),
        ])
        assert result.subscores == {"content": 70, "fluency": 50}

    def test_multiple_sources_recompute_overall(self):
        result = self._merge([
            RawProviderScore(overall=10, subscores={"content": 60}),
            RawProviderScore(overall=20, subscores={"content": 80, "grammar": 40}),
        ])
        # (0.4 * 80 + 0.05 * 40) / 0.45
        assert result.overall == 76

    def test_recompute_uses_section_weights(self):
        result = self._merge(
            [
                RawProviderScore(overall=90, subscores={"correctness": 90}),
                RawProviderScore(overall=20, subscores={"correctness": 30, "wer": 60}),
            ],
            section=TestSection.LISTENING,
        )
        assert result.overall == 39

    def test_first_numeric_overall_kept(self):
        result = self._merge([
            RawProviderScore(overall=90),
            RawProviderScore(overall=10, subscores={"content": 10}),
        ])
        assert result.overall == 90
        assert result.subscores == {"content": 10}

    def test_single_subscore_source_without_overall(self):
        result = self._merge([RawProviderScore(subscores={"content": 90})])
        assert result.overall == 90

    def test_rationales_joined(self):
        result = self._merge([
            RawProviderScore(overall=50, rationale="First."),
            RawProviderScore(rationale="  "),
            RawProviderScore(rationale="Second."),
        ])
        assert result.rationale == "First. Second."

    def test_total_failure(self):
        result = self._merge([
            RawProviderScore(meta=ProviderMeta(provider="openai", error="timeout_after_10ms")),
            RawProviderScore(meta=ProviderMeta(provider="gemini", error="boom")),
        ])
        assert result.overall == 0
        assert result.subscores == {}
        assert result.rationale.startswith(ALL_FAILED_RATIONALE)
        providers = result.metadata["providers"]
        assert [p["provider"] for p in providers] == ["openai", "gemini"]
        assert providers[0]["error"] == "timeout_after_10ms"

    def test_empty_input_is_total_failure(self):
        result = self._merge([])
        assert result.overall == 0
        assert ALL_FAILED_RATIONALE in result.rationale


class TestToTestSection:
    @pytest.mark.parametrize(
        ("label", "expected"),
        [
            ("speaking", TestSection.SPEAKING),
            ("SPEAK", TestSection.SPEAKING),
            ("Writing", TestSection.WRITING),
            ("writ", TestSection.WRITING),
            ("READING", TestSection.READING),
            ("listening", TestSection.LISTENING),
            ("  Listen ", TestSection.LISTENING),
        ],
    )
    def test_recognized(self, label, expected):
        assert to_test_section(label) == expected

    @pytest.mark.parametrize("label", ["", "math", "s", None])
    def test_unrecognized_defaults_to_reading(self, label):
        assert to_test_section(label) == TestSection.READING

    def test_parse_rejects_unknown(self):
        assert parse_test_section("math") is None
        assert parse_test_section("") is None
        assert parse_test_section("Speaking") == TestSection.SPEAKING
