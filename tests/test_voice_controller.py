"""Tests for the voice controller, the amplitude feed and host compatibility."""

import asyncio

import pytest

from commerce_assistant.schemas.voice import VoiceSettings
from commerce_assistant.services.timers import TimerRegistry
from commerce_assistant.services.voice.controller import RESTART_TIMER, VoiceController
from commerce_assistant.services.voice.platform import (
    FIREFOX_NOTICE,
    PREFERRED_BROWSER_NOTICE,
    SAFARI_NOTICE,
    SYNTHESIS_UNSUPPORTED_NOTICE,
    Utterance,
    Voice,
    compatibility_notice,
)
from commerce_assistant.services.voice.visualizer import AmplitudeVisualizer, to_bars
from tests.conftest import FakeAnalyser, FakeCapture, FakeSynthesizer

CHROME_UA = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 Chrome/126.0 Safari/537.36"
FIREFOX_UA = "Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0"
SAFARI_UA = "Mozilla/5.0 (Macintosh) AppleWebKit/605.1.15 Version/17.5 Safari/605.1.15"


def _controller(
    capture: FakeCapture | None,
    synthesizer: FakeSynthesizer | None,
    *,
    continuous: bool = False,
    visualizer: AmplitudeVisualizer | None = None,
) -> VoiceController:
    return VoiceController(
        capture=capture,
        synthesizer=synthesizer,
        visualizer=visualizer,
        timers=TimerRegistry(),
        voice_settings=VoiceSettings(continuous_mode=continuous),
        capture_restart_delay=0.01,
        speech_resume_delay=0.01,
    )


# ---------------------------------------------------------------------------
# Listening
# ---------------------------------------------------------------------------


class TestListening:
    """Capture start and stop are idempotent and respect the shared resource."""

    @pytest.mark.asyncio
    async def test_start_is_idempotent(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer)

        assert await controller.start_listening() is True
        assert await controller.start_listening() is False

        assert controller.is_listening
        assert capture.starts == 1

    @pytest.mark.asyncio
    async def test_stop_aborts_capture(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer)
        await controller.start_listening()

        controller.stop_listening()
        controller.stop_listening()

        assert not controller.is_listening
        assert capture.aborts == 1

    @pytest.mark.asyncio
    async def test_no_capture_on_host(self, synthesizer: FakeSynthesizer) -> None:
        controller = _controller(None, synthesizer)

        assert await controller.start_listening() is False
        assert not controller.capture_supported

    @pytest.mark.asyncio
    async def test_capture_start_failure_resets_flag(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        capture.fail_start = True
        controller = _controller(capture, synthesizer)

        assert await controller.start_listening() is False
        assert not controller.is_listening

    @pytest.mark.asyncio
    async def test_transcripts(self, capture: FakeCapture, synthesizer: FakeSynthesizer) -> None:
        """Final transcripts go to the transcript sink, interim ones to the interim sink."""
        controller = _controller(capture, synthesizer)
        sent: list[str] = []
        interim: list[str] = []

        async def _send(text: str) -> None:
            sent.append(text)

        controller.transcript_sink = _send
        controller.interim_sink = interim.append

        await controller.on_transcript("ignored while idle")
        await controller.start_listening()
        await controller.on_transcript("show me", is_final=False)
        await controller.on_transcript("  show me laptops  ")
        await controller.on_transcript("   ")

        assert interim == ["show me"]
        assert sent == ["show me laptops"]

    @pytest.mark.asyncio
    async def test_single_shot_capture_end_stops_listening(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer)
        await controller.start_listening()

        controller.on_capture_end()

        assert not controller.is_listening
        assert not controller.timers.is_pending(RESTART_TIMER)

    @pytest.mark.asyncio
    async def test_continuous_capture_restarts(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer, continuous=True)
        await controller.start_listening()

        controller.on_capture_end()
        assert controller.timers.is_pending(RESTART_TIMER)
        await asyncio.sleep(0.05)

        assert controller.is_listening
        assert capture.starts == 2

    @pytest.mark.asyncio
    async def test_capture_error_cancels_restart(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer, continuous=True)
        await controller.start_listening()
        controller.on_capture_end()

        controller.on_capture_error("no-speech")
        await asyncio.sleep(0.05)

        assert not controller.is_listening
        assert capture.starts == 1


# ---------------------------------------------------------------------------
# Speaking
# ---------------------------------------------------------------------------


class TestSpeaking:
    """Listening and speaking are never both active."""

    @pytest.mark.asyncio
    async def test_speak_interrupts_listening(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer)
        await controller.start_listening()

        assert controller.speak("Here are some laptops.") is True

        assert controller.is_speaking and not controller.is_listening
        assert capture.aborts == 1
        assert synthesizer.cancels == 1
        assert await controller.start_listening() is False

    def test_utterance_uses_settings(self, synthesizer: FakeSynthesizer) -> None:
        controller = _controller(None, synthesizer)
        controller.update_settings(VoiceSettings(rate=1.5, pitch=0.8, volume=0.5))

        controller.speak("hello")

        utterance = synthesizer.spoken[0]
        assert utterance.text == "hello"
        assert (utterance.rate, utterance.pitch, utterance.volume) == (1.5, 0.8, 0.5)
        assert utterance.voice is not None and utterance.voice.id == "en-1"

    def test_skips_empty_text_and_missing_synthesizer(self) -> None:
        assert _controller(None, FakeSynthesizer()).speak("   ") is False
        assert _controller(None, None).speak("hello") is False

    def test_synthesis_failure_clears_flags(self) -> None:
        class BrokenSynthesizer(FakeSynthesizer):
            def speak(self, utterance: Utterance) -> None:
                raise RuntimeError("synthesis-failed")

        controller = _controller(None, BrokenSynthesizer())

        assert controller.speak("hello") is False
        assert not controller.is_speaking

    def test_stale_speech_end_is_ignored(self, synthesizer: FakeSynthesizer) -> None:
        """The end event of a replaced utterance does not clear the new one."""
        controller = _controller(None, synthesizer)
        controller.speak("first")
        first = synthesizer.spoken[0]
        controller.speak("second")

        controller.on_speech_end(first)
        assert controller.is_speaking

        controller.on_speech_end(synthesizer.spoken[1])
        assert not controller.is_speaking

    @pytest.mark.asyncio
    async def test_continuous_mode_resumes_after_speech(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer, continuous=True)
        controller.speak("Anything else?")

        controller.on_speech_end()
        await asyncio.sleep(0.05)

        assert controller.is_listening
        assert capture.starts == 1

    @pytest.mark.asyncio
    async def test_speech_error_does_not_resume(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer, continuous=True)
        controller.speak("Anything else?")

        controller.on_speech_error(error="interrupted")
        await asyncio.sleep(0.05)

        assert not controller.is_speaking
        assert not controller.is_listening


class TestChooseVoice:
    def test_prefers_configured_voice(self, synthesizer: FakeSynthesizer) -> None:
        controller = _controller(None, synthesizer)
        controller.update_settings(VoiceSettings(selected_voice_id="fr-1"))

        assert controller.choose_voice() == Voice(id="fr-1", name="Amelie", lang="fr-FR")

    def test_unknown_configured_voice_falls_back_to_english(
        self, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(None, synthesizer)
        controller.update_settings(VoiceSettings(selected_voice_id="gone"))

        chosen = controller.choose_voice()
        assert chosen is not None and chosen.id == "en-1"

    def test_first_voice_without_english(self) -> None:
        synthesizer = FakeSynthesizer([Voice(id="de-1", name="Anna", lang="de-DE")])
        chosen = _controller(None, synthesizer).choose_voice()
        assert chosen is not None and chosen.id == "de-1"

    def test_no_voices(self) -> None:
        assert _controller(None, FakeSynthesizer([])).choose_voice() is None


# ---------------------------------------------------------------------------
# Checkout mode
# ---------------------------------------------------------------------------


class TestCheckoutMode:
    """Checkout mode hard-stops all voice activity."""

    @pytest.mark.asyncio
    async def test_entering_checkout_stops_capture(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer)
        await controller.start_listening()

        controller.set_checkout_mode(True)

        assert not controller.is_listening
        assert await controller.start_listening() is False
        assert controller.speak("Your total is $799") is False

    @pytest.mark.asyncio
    async def test_checkout_cancels_pending_restart(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer, continuous=True)
        await controller.start_listening()
        controller.on_capture_end()

        controller.set_checkout_mode(True)
        await asyncio.sleep(0.05)

        assert capture.starts == 1
        assert not controller.is_listening

    @pytest.mark.asyncio
    async def test_leaving_checkout_allows_listening(
        self, capture: FakeCapture, synthesizer: FakeSynthesizer
    ) -> None:
        controller = _controller(capture, synthesizer)
        controller.set_checkout_mode(True)
        controller.set_checkout_mode(False)

        assert await controller.start_listening() is True


# ---------------------------------------------------------------------------
# Amplitude feed
# ---------------------------------------------------------------------------


class TestVisualizer:
    """The amplitude feed follows capture and clears on stop."""

    @pytest.mark.asyncio
    async def test_feed_runs_while_listening(
        self, capture: FakeCapture, analyser: FakeAnalyser
    ) -> None:
        frames: list[list[float]] = []
        visualizer = AmplitudeVisualizer(analyser, frames.append, bar_count=4, interval=0.01)
        controller = _controller(capture, None, visualizer=visualizer)

        await controller.start_listening()
        await asyncio.sleep(0.03)
        assert visualizer.is_running
        assert frames[0] == [1.0, 1.0, 1.0, 1.0]

        controller.stop_listening()
        await asyncio.sleep(0)
        assert not visualizer.is_running
        assert frames[-1] == [0.0, 0.0, 0.0, 0.0]

    @pytest.mark.asyncio
    async def test_analyser_initialized_once(
        self, capture: FakeCapture, analyser: FakeAnalyser
    ) -> None:
        visualizer = AmplitudeVisualizer(analyser, lambda frame: None, interval=0.01)
        controller = _controller(capture, None, visualizer=visualizer)

        await controller.start_listening()
        controller.stop_listening()
        await controller.start_listening()
        controller.close()

        assert analyser.initialize_calls == 1
        assert analyser.closed

    @pytest.mark.asyncio
    async def test_unavailable_microphone_still_captures(self, capture: FakeCapture) -> None:
        analyser = FakeAnalyser(ready=False)
        visualizer = AmplitudeVisualizer(analyser, lambda frame: None, interval=0.01)
        controller = _controller(capture, None, visualizer=visualizer)

        assert await controller.start_listening() is True
        assert not visualizer.is_running
        assert capture.starts == 1

    @pytest.mark.asyncio
    async def test_stop_during_microphone_setup(
        self, capture: FakeCapture, analyser: FakeAnalyser
    ) -> None:
        """Stopping while the analyser initializes leaves capture off."""
        visualizer = AmplitudeVisualizer(analyser, lambda frame: None, interval=0.01)
        controller = _controller(capture, None, visualizer=visualizer)

        task = asyncio.create_task(controller.start_listening())
        await asyncio.sleep(0)
        controller.stop_listening()

        assert await task is False
        assert capture.starts == 0
        assert not visualizer.is_running

    def test_to_bars(self) -> None:
        assert to_bars([255] * 40, 20) == [1.0] * 20
        assert to_bars([255, 0, 0, 0], 2) == [0.5, 0.0]
        assert to_bars([300, -5], 4) == [1.0, 0.0, 0.0, 0.0]
        assert to_bars([], 3) == [0.0, 0.0, 0.0]


# ---------------------------------------------------------------------------
# Host compatibility
# ---------------------------------------------------------------------------


class TestCompatibility:
    @pytest.mark.parametrize(
        ("capture_ok", "synthesis_ok", "user_agent", "expected"),
        [
            (False, True, FIREFOX_UA, FIREFOX_NOTICE),
            (False, True, SAFARI_UA, SAFARI_NOTICE),
            (True, False, CHROME_UA, SYNTHESIS_UNSUPPORTED_NOTICE),
            (True, True, FIREFOX_UA, PREFERRED_BROWSER_NOTICE),
            (True, True, CHROME_UA, None),
            (True, True, "", None),
        ],
    )
    def test_notice(
        self, capture_ok: bool, synthesis_ok: bool, user_agent: str, expected: str | None
    ) -> None:
        notice = compatibility_notice(
            capture_supported=capture_ok,
            synthesis_supported=synthesis_ok,
            user_agent=user_agent,
        )
        assert notice == expected

    def test_notice_shown_once(self, synthesizer: FakeSynthesizer) -> None:
        controller = _controller(None, synthesizer)

        assert controller.take_compatibility_notice(FIREFOX_UA) == FIREFOX_NOTICE
        assert controller.take_compatibility_notice(FIREFOX_UA) is None
