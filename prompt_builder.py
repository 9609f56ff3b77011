"""Instruction text sent to the inference service."""

from __future__ import annotations

from models import Classification, Language, LanguageHint

ANALYSIS_CRITERIA = (
    "Natural speech patterns and conversational flow",
    "Presence of filler words (um, uh, like, you know)",
    "Grammar and structure naturalness",
    "Emotional undertones",
    "Contextual coherence",
)


def _quoted_choices(values: list[str]) -> str:
    return " or ".join(f'"{value}"' for value in values)


RESPONSE_SCHEMA = (
    "{\n"
    f'  "classification": {_quoted_choices([c.value for c in Classification])},\n'
    '  "confidence": <number between 0.0 and 1.0>,\n'
    f'  "language": {_quoted_choices([lang.value for lang in Language])},\n'
    '  "explanation": "<string describing your reasoning based on the transcription analysis>"\n'
    "}"
)


def language_clause(language_hint: LanguageHint) -> str:
    if language_hint is LanguageHint.AUTO:
        return "Identify the language automatically from the transcription."
    return (
        f"The user specified {language_hint.value} as the language context. "
        "Treat this as context only and report the language you actually detect."
    )


def build_prompt(transcript: str, language_hint: LanguageHint) -> str:
    """Render the classification request for one transcript.

    The output depends only on the arguments, so identical inputs always
    produce identical text.
    """
    criteria = "\n".join(f"{i}. {item}" for i, item in enumerate(ANALYSIS_CRITERIA, start=1))
    return (
        "You are a voice authenticity analyzer. Based on the following transcribed speech, "
        "analyze if it's likely from a real human or AI-generated voice.\n"
        "\n"
        f'Transcription: "{transcript}"\n'
        "\n"
        f"{language_clause(language_hint)}\n"
        "\n"
        "Consider these factors:\n"
        f"{criteria}\n"
        "\n"
        "Respond with a single JSON object containing exactly these four fields "
        "and nothing else (no prose, no markdown, no code blocks):\n"
        f"{RESPONSE_SCHEMA}"
    )
