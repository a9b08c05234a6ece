"""Tests for tone selection."""

from commerce_assistant.services.persona_service import (
    DEFAULT_TONE,
    get_tone,
    select_tone_name,
    tone_instructions,
)


class TestSelectToneName:
    def test_default_without_prefs(self) -> None:
        assert select_tone_name(None) == DEFAULT_TONE
        assert select_tone_name({}) == "casual"

    def test_technical_user(self) -> None:
        assert select_tone_name({"technicalUser": True}) == "professional"

    def test_price_sensitive_wins_over_technical(self) -> None:
        prefs = {"technicalUser": True, "priceSensitive": True}
        assert select_tone_name(prefs) == "proactive"

    def test_explicit_tone_overrides(self) -> None:
        prefs = {"priceSensitive": True, "preferredTone": "casual"}
        assert select_tone_name(prefs) == "casual"

    def test_unknown_explicit_tone_is_ignored(self) -> None:
        assert select_tone_name({"preferredTone": "sarcastic"}) == "casual"


class TestToneInstructions:
    def test_unknown_tone_falls_back(self) -> None:
        assert get_tone("missing") == get_tone(DEFAULT_TONE)

    def test_renders_tone_fields(self) -> None:
        text = tone_instructions({"priceSensitive": True})

        assert "enthusiastic and energetic" in text
        assert "high level of persuasion" in text
