"""Assistant persona: tone selection from conversation memory."""

from dataclasses import dataclass
from typing import Any

from commerce_assistant.services.graph.prompts import TONE_INSTRUCTIONS_TEMPLATE

DEFAULT_TONE = "casual"


@dataclass(frozen=True)
class Tone:
    style: str
    vocabulary: str
    persuasion_level: str


TONES: dict[str, Tone] = {
    "casual": Tone(
        style="friendly and conversational",
        vocabulary="simple and accessible",
        persuasion_level="subtle",
    ),
    "professional": Tone(
        style="polite and business-like",
        vocabulary="precise and technical",
        persuasion_level="moderate",
    ),
    "proactive": Tone(
        style="enthusiastic and energetic",
        vocabulary="persuasive and benefit-focused",
        persuasion_level="high",
    ),
}


def get_tone(name: str) -> Tone:
    return TONES.get(name, TONES[DEFAULT_TONE])


def select_tone_name(prefs: dict[str, Any] | None) -> str:
    """Pick a tone from user preferences.

    Technical users get the professional tone, price-sensitive users the
    proactive one, and an explicit ``preferredTone`` overrides both.
    """
    name = DEFAULT_TONE
    if not prefs:
        return name
    if prefs.get("technicalUser"):
        name = "professional"
    if prefs.get("priceSensitive"):
        name = "proactive"
    preferred = prefs.get("preferredTone")
    if isinstance(preferred, str) and preferred in TONES:
        name = preferred
    return name


def tone_instructions(prefs: dict[str, Any] | None) -> str:
    """Render the tone paragraph appended to the system prompt."""
    tone = get_tone(select_tone_name(prefs))
    return TONE_INSTRUCTIONS_TEMPLATE.format(
        style=tone.style,
        vocabulary=tone.vocabulary,
        persuasion_level=tone.persuasion_level,
    )
