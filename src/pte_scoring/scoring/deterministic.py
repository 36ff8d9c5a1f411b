"""Deterministic scoring for objectively checkable PTE tasks.

Coverage:
    - Reading: multiple choice (single), multiple choice (multiple) with
      partial credit, fill in the blanks, reorder paragraphs.
    - Listening: write from dictation (word error rate).
"""

import re
import unicodedata

import structlog

from pte_scoring.models.payloads import (
    FillInBlanksPayload,
    MCQMultiplePayload,
    MCQSinglePayload,
    ReorderParagraphsPayload,
    WriteFromDictationPayload,
)
from pte_scoring.models.scoring import ScoringResult, TestSection
from pte_scoring.scoring.normalize import accuracy_to_90, clamp_to_90, wer_to_90

logger = structlog.get_logger()

DETERMINISTIC_PROVIDER = "deterministic"

_NON_WORD = re.compile(r"[^\w\s']", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")


def _result(
    section: TestSection,
    overall: float,
    task: str,
    **details: object,
) -> ScoringResult:
    return ScoringResult(
        overall=clamp_to_90(overall),
        subscores={},
        metadata={
            "section": section.value,
            "providers": [{"provider": DETERMINISTIC_PROVIDER, "task": task}],
            "details": details,
        },
    )


def score_reading_mcq_single(payload: MCQSinglePayload) -> ScoringResult:
    """Single answer multiple choice: 90 on exact option match, else 0."""
    correct = payload.selected_option == payload.correct_option
    return _result(
        TestSection.READING,
        90 if correct else 0,
        "READING_MCQ_SINGLE",
        correct=correct,
    )


def score_reading_mcq_multiple(payload: MCQMultiplePayload) -> ScoringResult:
    """Multiple answer multiple choice with a penalty for wrong selections.

    accuracy = max(0, (TP - FP) / |correct|)
    """
    selected = set(payload.selected_options)
    correct = set(payload.correct_options)
    tp = len(selected & correct)
    fp = len(selected - correct)
    accuracy = min(1.0, max(0, tp - fp) / max(1, len(correct)))
    return _result(
        TestSection.READING,
        accuracy_to_90(accuracy),
        "READING_MCQ_MULTIPLE",
        tp=tp,
        fp=fp,
        correct_count=len(correct),
    )


def normalize_answer(text: str | None) -> str:
    """Case-fold, trim and collapse whitespace for blank comparison."""
    return _WHITESPACE.sub(" ", (text or "").strip()).casefold()


def score_reading_fill_in_blanks(payload: FillInBlanksPayload) -> ScoringResult:
    """Exact match per blank after normalization, equal weight per blank."""
    total = len(payload.correct)
    wrong: list[str] = []
    for key, expected in payload.correct.items():
        if normalize_answer(payload.answers.get(key)) != normalize_answer(expected):
            wrong.append(key)
    right = total - len(wrong)
    overall = 90 * right / total if total else 0
    return _result(
        TestSection.READING,
        overall,
        "READING_FILL_IN_BLANKS",
        total=total,
        correct=right,
        wrong=wrong,
    )


def score_reading_reorder_paragraphs(payload: ReorderParagraphsPayload) -> ScoringResult:
    """Credit each adjacent pair of the correct order kept adjacent by the user."""
    correct_order = payload.correct_order
    if len(correct_order) <= 1:
        return _result(
            TestSection.READING,
            90 if correct_order else 0,
            "READING_REORDER",
            pairs=0,
            correct_pairs=0,
        )

    user_pairs = set(zip(payload.user_order, payload.user_order[1:]))
    expected_pairs = list(zip(correct_order, correct_order[1:]))
    kept = sum(1 for pair in expected_pairs if pair in user_pairs)
    return _result(
        TestSection.READING,
        90 * kept / len(expected_pairs),
        "READING_REORDER",
        pairs=len(expected_pairs),
        correct_pairs=kept,
    )


def tokenize_words(text: str) -> list[str]:
    """Lowercase word tokens with punctuation removed (apostrophes kept)."""
    norm = unicodedata.normalize("NFKC", text or "").lower()
    norm = _NON_WORD.sub(" ", norm).replace("_", " ")
    return norm.split()


def word_edit_distance(reference: list[str], hypothesis: list[str]) -> int:
    """Levenshtein distance over word tokens (all edits cost 1)."""
    previous = list(range(len(hypothesis) + 1))
    for i, ref_word in enumerate(reference, start=1):
        current = [i] + [0] * len(hypothesis)
        for j, hyp_word in enumerate(hypothesis, start=1):
            cost = 0 if ref_word == hyp_word else 1
            current[j] = min(
                previous[j] + 1,  # deletion
                current[j - 1] + 1,  # insertion
                previous[j - 1] + cost,  # substitution
            )
        previous = current
    return previous[-1]


def score_listening_write_from_dictation(payload: WriteFromDictationPayload) -> ScoringResult:
    """Write from dictation scored by word error rate."""
    reference = tokenize_words(payload.target_text)
    hypothesis = tokenize_words(payload.user_text)
    edits = word_edit_distance(reference, hypothesis)
    wer = edits / len(reference) if reference else 1.0
    result = _result(
        TestSection.LISTENING,
        wer_to_90(wer),
        "LISTENING_WFD",
        ref_len=len(reference),
        edits=edits,
        wer=round(wer, 4),
    )
    logger.debug("dictation_scored", wer=round(wer, 4), overall=result.overall)
    return result
