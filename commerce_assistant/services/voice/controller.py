"""Voice I/O controller: capture and playback over one shared attention resource.

Listening and speaking are mutually exclusive. ``speak`` interrupts an
active capture before anything is queued, and capture never starts while
an utterance is active or checkout mode is on.

In continuous mode the controller loops listen -> send -> speak -> listen.
Both the capture restart and the post-speech resume use the same named
timer, so at most one of them is ever pending, and each re-checks its
conditions when it fires.
"""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from commerce_assistant.core.config import settings
from commerce_assistant.schemas.voice import VoiceSettings
from commerce_assistant.services.timers import TimerRegistry
from commerce_assistant.services.voice.platform import (
    SpeechCapture,
    SpeechSynthesizer,
    Utterance,
    Voice,
    compatibility_notice,
)
from commerce_assistant.services.voice.visualizer import AmplitudeVisualizer

logger = logging.getLogger(__name__)

RESTART_TIMER = "voice:restart"

TranscriptSink = Callable[[str], Awaitable[Any] | Any]
InterimSink = Callable[[str], None]


class VoiceController:
    """Coordinates speech capture, synthesis and the amplitude feed.

    Args:
        capture: Platform recognizer, or None when the host has none
        synthesizer: Platform synthesizer, or None when the host has none
        visualizer: Optional amplitude feed started with capture
        timers: Registry holding the restart handle (usually the session's)
        voice_settings: Initial voice settings
    """

    def __init__(
        self,
        *,
        capture: SpeechCapture | None = None,
        synthesizer: SpeechSynthesizer | None = None,
        visualizer: AmplitudeVisualizer | None = None,
        timers: TimerRegistry | None = None,
        voice_settings: VoiceSettings | None = None,
        capture_restart_delay: float | None = None,
        speech_resume_delay: float | None = None,
    ) -> None:
        self.capture = capture
        self.synthesizer = synthesizer
        self.visualizer = visualizer
        self.timers = timers or TimerRegistry()
        self.voice_settings = voice_settings or VoiceSettings()
        self.capture_restart_delay = (
            settings.capture_restart_delay
            if capture_restart_delay is None
            else capture_restart_delay
        )
        self.speech_resume_delay = (
            settings.speech_resume_delay if speech_resume_delay is None else speech_resume_delay
        )

        self.is_listening = False
        self.is_speaking = False
        self.checkout_mode = False

        self.transcript_sink: TranscriptSink | None = None
        self.interim_sink: InterimSink | None = None

        self._utterance: Utterance | None = None
        self._notice_shown = False

    @property
    def capture_supported(self) -> bool:
        return self.capture is not None

    @property
    def synthesis_supported(self) -> bool:
        return self.synthesizer is not None

    # --- Listening ---

    async def start_listening(self) -> bool:
        """Begin a capture session. Returns False when it was a no-op."""
        if (
            self.capture is None
            or self.is_listening
            or self.is_speaking
            or self.checkout_mode
        ):
            return False

        self.is_listening = True
        self.timers.cancel(RESTART_TIMER)

        if self.visualizer is not None:
            ready = await self.visualizer.initialize()
            # stop_listening or speak may have run while awaiting the microphone
            if not self.is_listening:
                return False
            if ready:
                self.visualizer.start()

        try:
            self.capture.start()
        except Exception:
            logger.exception("Failed to start speech capture")
            self._halt_capture(abort=False)
            return False
        logger.debug("Speech capture started")
        return True

    def stop_listening(self) -> None:
        """Abort capture immediately and cancel any scheduled restart."""
        self.timers.cancel(RESTART_TIMER)
        if self.is_listening:
            self._halt_capture()

    def _halt_capture(self, *, abort: bool = True) -> None:
        self.is_listening = False
        if abort and self.capture is not None:
            try:
                self.capture.abort()
            except Exception:
                logger.exception("Failed to abort speech capture")
        if self.visualizer is not None:
            self.visualizer.stop()

    def _can_continue(self) -> bool:
        return (
            self.voice_settings.continuous_mode
            and not self.is_speaking
            and not self.checkout_mode
        )

    def on_capture_end(self) -> None:
        """Platform event: the recognition session ended on its own."""
        if not self.is_listening:
            return
        if self._can_continue():
            self.timers.schedule(
                self.capture_restart_delay, self._restart_capture, name=RESTART_TIMER
            )
            return
        self._halt_capture(abort=False)

    def _restart_capture(self) -> None:
        if self.is_listening and self.capture is not None and self._can_continue():
            try:
                self.capture.start()
                return
            except Exception:
                logger.exception("Failed to restart continuous listening")
        if self.is_listening:
            self._halt_capture(abort=False)

    def on_capture_error(self, error: str = "") -> None:
        """Platform event: recognition failed."""
        logger.warning("Speech capture error: %s", error or "unknown")
        self.timers.cancel(RESTART_TIMER)
        if self.is_listening:
            self._halt_capture(abort=False)

    async def on_transcript(self, text: str, *, is_final: bool = True) -> None:
        """Platform event: a transcript arrived. Final ones are sent as user input."""
        text = text.strip()
        if not text or not self.is_listening:
            return
        if not is_final:
            if self.interim_sink is not None:
                self.interim_sink(text)
            return
        if self.transcript_sink is not None:
            result = self.transcript_sink(text)
            if inspect.isawaitable(result):
                await result

    # --- Speaking ---

    def choose_voice(self) -> Voice | None:
        """Configured voice if offered, else the first English voice, else the first voice."""
        if self.synthesizer is None:
            return None
        try:
            voices = self.synthesizer.voices()
        except Exception:
            logger.exception("Failed to list synthesis voices")
            return None
        if not voices:
            return None

        wanted = self.voice_settings.selected_voice_id
        if wanted:
            for voice in voices:
                if voice.id == wanted:
                    return voice
        return next((v for v in voices if v.is_english), voices[0])

    def speak(self, text: str) -> bool:
        """Speak ``text``, replacing any in-flight utterance. Returns False when skipped."""
        if self.synthesizer is None or self.checkout_mode or not text.strip():
            return False

        self.stop_listening()
        try:
            self.synthesizer.cancel()
        except Exception:
            logger.exception("Failed to cancel previous utterance")

        utterance = Utterance(
            text=text,
            voice=self.choose_voice(),
            rate=self.voice_settings.rate,
            pitch=self.voice_settings.pitch,
            volume=self.voice_settings.volume,
        )
        self._utterance = utterance
        self.is_speaking = True
        try:
            self.synthesizer.speak(utterance)
        except Exception:
            logger.exception("Speech synthesis failed")
            self._utterance = None
            self.is_speaking = False
            return False
        return True

    def _is_stale(self, utterance: Utterance | None) -> bool:
        # Events for a cancelled utterance must not touch the current one
        return utterance is not None and utterance is not self._utterance

    def on_speech_end(self, utterance: Utterance | None = None) -> None:
        """Platform event: playback finished. Resumes listening in continuous mode."""
        if self._is_stale(utterance) or not self.is_speaking:
            return
        self.is_speaking = False
        self._utterance = None
        if self.capture is not None and self._can_continue():
            self.timers.schedule(
                self.speech_resume_delay, self._resume_listening, name=RESTART_TIMER
            )

    async def _resume_listening(self) -> None:
        if self._can_continue():
            await self.start_listening()

    def on_speech_error(self, utterance: Utterance | None = None, error: str = "") -> None:
        """Platform event: playback failed. Listening is not resumed."""
        if self._is_stale(utterance):
            return
        logger.warning("Speech synthesis error: %s", error or "unknown")
        self.is_speaking = False
        self._utterance = None

    # --- Modes and settings ---

    def set_checkout_mode(self, active: bool) -> None:
        """Entering checkout hard-stops capture."""
        if active == self.checkout_mode:
            return
        self.checkout_mode = active
        if active:
            self.stop_listening()

    def update_settings(self, voice_settings: VoiceSettings) -> None:
        self.voice_settings = voice_settings

    def take_compatibility_notice(self, user_agent: str = "") -> str | None:
        """Compatibility notice for this host, returned at most once."""
        if self._notice_shown:
            return None
        notice = compatibility_notice(
            capture_supported=self.capture_supported,
            synthesis_supported=self.synthesis_supported,
            user_agent=user_agent,
        )
        if notice:
            self._notice_shown = True
        return notice

    def close(self) -> None:
        """Stop all voice activity and release the analyser."""
        self.stop_listening()
        if self.is_speaking and self.synthesizer is not None:
            try:
                self.synthesizer.cancel()
            except Exception:
                logger.exception("Failed to cancel utterance on close")
        self.is_speaking = False
        self._utterance = None
        if self.visualizer is not None:
            self.visualizer.close()
