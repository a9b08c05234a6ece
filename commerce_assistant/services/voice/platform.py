"""Platform speech primitives consumed by the voice controller.

Speech capture, speech synthesis and microphone amplitude sampling are
provided by the host. The controller only depends on these protocols; a
host lacking capture or synthesis degrades to text-only operation.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

CAPTURE_UNSUPPORTED_NOTICE = (
    "Your browser doesn't support voice recognition. "
    "For the best experience, try Chrome or Edge."
)
FIREFOX_NOTICE = (
    "Firefox has limited support for voice recognition. "
    "For the best experience, try Chrome or Edge."
)
SAFARI_NOTICE = (
    "Safari has limited support for voice recognition. "
    "For the best experience, try Chrome or Edge."
)
SYNTHESIS_UNSUPPORTED_NOTICE = (
    "Your browser doesn't fully support voice features. "
    "For the best experience, try Chrome or Edge."
)
PREFERRED_BROWSER_NOTICE = "For the best voice experience, try using Chrome or Edge."


@dataclass(frozen=True)
class Voice:
    """A synthesis voice offered by the platform."""

    id: str
    name: str
    lang: str = ""

    @property
    def is_english(self) -> bool:
        return self.lang.lower().startswith("en")


@dataclass(frozen=True)
class Utterance:
    """One synthesis request with the voice settings applied."""

    text: str
    voice: Voice | None = None
    lang: str = "en-US"
    rate: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0


class SpeechCapture(Protocol):
    """A single-shot recognition session.

    The host reports transcripts, errors and end-of-session back through
    ``VoiceController.on_transcript``, ``on_capture_error`` and
    ``on_capture_end``.
    """

    def start(self) -> None: ...

    def abort(self) -> None: ...


class SpeechSynthesizer(Protocol):
    """Utterance playback. Completion is reported via ``on_speech_end``/``on_speech_error``."""

    def voices(self) -> list[Voice]: ...

    def speak(self, utterance: Utterance) -> None: ...

    def cancel(self) -> None: ...


class AmplitudeAnalyser(Protocol):
    """Microphone frequency analyser (byte magnitudes 0-255)."""

    async def initialize(self) -> bool: ...

    def frequency_data(self) -> Sequence[int]: ...

    def close(self) -> None: ...


def compatibility_notice(
    *,
    capture_supported: bool,
    synthesis_supported: bool,
    user_agent: str = "",
) -> str | None:
    """User-facing notice describing degraded voice support, or None."""
    is_edge = bool(re.search(r"Edge|Edg/", user_agent))
    is_chrome = "Chrome" in user_agent and not is_edge
    is_firefox = "Firefox" in user_agent
    is_safari = "Safari" in user_agent and "Chrome" not in user_agent

    if not capture_supported:
        if is_firefox:
            return FIREFOX_NOTICE
        if is_safari:
            return SAFARI_NOTICE
        return CAPTURE_UNSUPPORTED_NOTICE
    if not synthesis_supported:
        return SYNTHESIS_UNSUPPORTED_NOTICE
    if user_agent and not (is_chrome or is_edge):
        return PREFERRED_BROWSER_NOTICE
    return None
