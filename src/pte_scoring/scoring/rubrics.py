"""Rubric dimensions and prompt builders for provider scoring."""

import json
from typing import NamedTuple

from pte_scoring.models.payloads import (
    ListeningInput,
    ReadingInput,
    SpeakingInput,
    WritingInput,
)

SPEAKING_DIMENSIONS = ("content", "pronunciation", "fluency", "grammar", "vocabulary")
WRITING_DIMENSIONS = ("content", "structure", "coherence", "grammar", "vocabulary", "spelling")
LISTENING_SUMMARY_DIMENSIONS = ("content", "form", "grammar", "vocabulary", "spelling")

EXAMINER_PREAMBLE = "You are a certified Pearson PTE Academic examiner."


class PromptPair(NamedTuple):
    system: str
    user: str


def _schema(dimensions: tuple[str, ...], include_rationale: bool) -> str:
    fields = ['  "overall": <0-100>']
    fields += [f'  "{d}": <0-100>' for d in dimensions]
    fields.append(f'  "rationale": "{"<brief explanation>" if include_rationale else ""}"')
    return "JSON schema:\n{\n" + ",\n".join(fields) + "\n}"


def build_speaking_prompt(request: SpeakingInput) -> PromptPair:
    system = (
        f"{EXAMINER_PREAMBLE} "
        "Score the SPEAKING response strictly per PTE criteria. "
        "Score each dimension from 0 to 100. "
        "Respond ONLY with a JSON object with keys: overall, "
        f"{', '.join(SPEAKING_DIMENSIONS)}, rationale. "
        "Keep the rationale under 5 sentences."
    )
    reference = (
        f"Reference/Prompt Text: {request.reference_text}"
        if request.reference_text
        else "No reference text provided."
    )
    user = "\n".join([
        f"Task: {request.question_type}",
        reference,
        f'Transcript: """{request.transcript}"""',
        "",
        _schema(SPEAKING_DIMENSIONS, request.include_rationale),
    ])
    return PromptPair(system, user)


def build_writing_prompt(request: WritingInput) -> PromptPair:
    system = (
        f"{EXAMINER_PREAMBLE} "
        "Score the WRITING response strictly per PTE criteria. "
        "Score each dimension from 0 to 100. "
        "Respond ONLY with a JSON object with keys: overall, "
        f"{', '.join(WRITING_DIMENSIONS)}, rationale."
    )
    prompt = f'Prompt: """{request.prompt}"""' if request.prompt else "No prompt text provided."
    user = "\n".join([
        f"Task: {request.question_type}",
        prompt,
        f'Student Response: """{request.text}"""',
        "",
        _schema(WRITING_DIMENSIONS, request.include_rationale),
    ])
    return PromptPair(system, user)


def build_reading_explanation_prompt(request: ReadingInput) -> PromptPair:
    system = (
        "You are a PTE Reading coach. Explain succinctly why the correct answers are correct. "
        "Keep the response under 5 sentences. Neutral tone. "
        "Respond ONLY with a JSON object with key: rationale (1-3 sentences)."
    )
    user = "\n".join([
        f"Task: {request.question_type}",
        f'Question: """{request.question}"""',
        f"Options: {json.dumps(request.options)}",
        f"Correct: {json.dumps(request.correct)}",
        f"UserSelected: {json.dumps(request.user_selected)}",
        "",
        'JSON schema:\n{ "rationale": "string" }',
    ])
    return PromptPair(system, user)


def is_listening_summary(question_type: str) -> bool:
    return "summarize" in question_type.lower() or "summarise" in question_type.lower()


def build_listening_prompt(request: ListeningInput) -> PromptPair:
    """Summaries of spoken text are scored; other listening items get an explanation."""
    context = [f"Task: {request.question_type}"]
    if request.transcript:
        context.append(f'Audio Transcript: """{request.transcript}"""')
    if request.target_text:
        context.append(f'Target Text: """{request.target_text}"""')
    if request.user_text:
        context.append(f'User Text: """{request.user_text}"""')

    if is_listening_summary(request.question_type):
        system = (
            f"{EXAMINER_PREAMBLE} "
            "Score the learner's summary of the spoken text strictly per PTE criteria. "
            "Score each dimension from 0 to 100. "
            "Respond ONLY with a JSON object with keys: overall, "
            f"{', '.join(LISTENING_SUMMARY_DIMENSIONS)}, rationale."
        )
        schema = _schema(LISTENING_SUMMARY_DIMENSIONS, request.include_rationale)
    else:
        system = (
            "You are a PTE Listening coach. Provide a brief explanation and key differences. "
            "Respond ONLY with a JSON object with key: rationale. Keep it under 4 sentences."
        )
        schema = 'JSON schema:\n{ "rationale": "string" }'

    return PromptPair(system, "\n".join([*context, "", schema]))


def listening_dimensions(question_type: str) -> tuple[str, ...]:
    return LISTENING_SUMMARY_DIMENSIONS if is_listening_summary(question_type) else ()
