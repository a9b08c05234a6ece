"""Microphone amplitude feed for listening feedback."""

import asyncio
import logging
from collections.abc import Callable, Sequence

from commerce_assistant.core.config import settings
from commerce_assistant.services.voice.platform import AmplitudeAnalyser

logger = logging.getLogger(__name__)

FrameSink = Callable[[list[float]], None]


def to_bars(frequency_data: Sequence[int], bar_count: int) -> list[float]:
    """Downsample byte magnitudes into ``bar_count`` averages in [0, 1]."""
    if not frequency_data:
        return [0.0] * bar_count

    normalized = [min(max(value, 0), 255) / 255 for value in frequency_data]
    step = len(normalized) // bar_count
    if step == 0:
        return (normalized + [0.0] * bar_count)[:bar_count]
    return [sum(normalized[i * step : (i + 1) * step]) / step for i in range(bar_count)]


class AmplitudeVisualizer:
    """Samples the analyser periodically and pushes bar frames to a sink.

    The analyser is initialized lazily, at most once. ``stop`` always emits
    one all-zero frame so the UI clears.
    """

    def __init__(
        self,
        analyser: AmplitudeAnalyser,
        on_frame: FrameSink,
        *,
        bar_count: int | None = None,
        interval: float | None = None,
    ) -> None:
        self.analyser = analyser
        self.on_frame = on_frame
        self.bar_count = bar_count or settings.visualizer_bar_count
        self.interval = interval or settings.visualizer_interval
        self._ready: bool | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def initialize(self) -> bool:
        if self._ready is None:
            try:
                self._ready = bool(await self.analyser.initialize())
            except Exception:
                logger.exception("Failed to initialize amplitude analyser")
                self._ready = False
        return self._ready

    def start(self) -> None:
        if not self._ready or self.is_running:
            return
        self._task = asyncio.create_task(self._sample_loop(), name="voice-visualizer")

    async def _sample_loop(self) -> None:
        while True:
            try:
                frame = to_bars(self.analyser.frequency_data(), self.bar_count)
            except Exception:
                logger.exception("Amplitude sampling failed")
                return
            self.on_frame(frame)
            await asyncio.sleep(self.interval)

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self.on_frame([0.0] * self.bar_count)

    def close(self) -> None:
        self.stop()
        if self._ready:
            self.analyser.close()
        self._ready = None
