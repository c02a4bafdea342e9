"""
Alert Dispatcher.

Turns alert triggers (anchor drift, imminent collision, pressure drop) into
an audible tone and a banner/modal through pluggable sinks.

The tone is a short three-note square-wave sweep (A5, C#6, A5; 0.2 s each)
synthesized once with numpy. Anchor drift repeats the tone every 3 s until
the caller stops the repeat; only one repeat per alert kind can be
scheduled at a time.

Rendering failures (no audio device, UI gone) are logged and counted; they
never reach the safety state machines.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
import numpy as np

from singrar_core.metrics import get_metrics
from singrar_core.proto.alert_event import AlertEvent, AlertKind
from singrar_core.scheduling import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

ToneSink = Callable[[np.ndarray, int], None]
VisualSink = Callable[[AlertEvent], None]


@dataclass
class AlertConfig:
    """
    Configuration for alert rendering.

    Attributes:
        repeat_interval_s: Period of repeating alerts (anchor drift)
        sample_rate_hz: Tone sample rate
        tone_frequencies_hz: Notes of the sweep, played in order
        note_duration_s: Length of each note
        gain: Peak amplitude (0-1)
    """

    repeat_interval_s: float = 3.0
    sample_rate_hz: int = 22050
    tone_frequencies_hz: Tuple[float, ...] = (880.0, 1108.73, 880.0)
    note_duration_s: float = 0.2
    gain: float = 0.1


def synthesize_alarm_tone(config: Optional[AlertConfig] = None) -> np.ndarray:
    """
    Build the alarm sweep as float32 PCM samples in [-gain, gain].

    Args:
        config: Tone parameters (uses defaults if None)

    Returns:
        1-D array of len(notes) * note_duration_s * sample_rate_hz samples
    """
    config = config or AlertConfig()
    n = int(round(config.sample_rate_hz * config.note_duration_s))
    t = np.arange(n) / config.sample_rate_hz

    notes = [
        np.where(np.sin(2 * np.pi * freq * t) >= 0, config.gain, -config.gain)
        for freq in config.tone_frequencies_hz
    ]
    return np.concatenate(notes).astype(np.float32)


def _log_tone(samples: np.ndarray, sample_rate: int):
    logger.debug(f"Alarm tone: {len(samples) / sample_rate:.2f}s")


def _log_visual(event: AlertEvent):
    logger.warning(f"[{event.presentation.value}] {event.kind.value}: {event.message}")


class AlertDispatcher:
    """
    Fan-in point for alert triggers.

    Usage:
        dispatcher = AlertDispatcher(scheduler, tone_sink=play, visual_sink=show)
        dispatcher.dispatch(event)                 # one-shot
        dispatcher.start_repeating(drift_event)    # now, then every 3 s
        dispatcher.stop_repeating(AlertKind.ANCHOR_DRIFT)
    """

    def __init__(
        self,
        scheduler: Scheduler,
        tone_sink: Optional[ToneSink] = None,
        visual_sink: Optional[VisualSink] = None,
        config: Optional[AlertConfig] = None,
    ):
        """
        Initialize dispatcher.

        Args:
            scheduler: Timer backend for repeating alerts
            tone_sink: Plays PCM samples (logs only if None)
            visual_sink: Shows the banner/modal (logs only if None)
            config: Alert configuration (uses defaults if None)
        """
        self.scheduler = scheduler
        self.config = config or AlertConfig()
        self.tone_sink = tone_sink or _log_tone
        self.visual_sink = visual_sink or _log_visual
        self.metrics = get_metrics()

        self._tone = synthesize_alarm_tone(self.config)
        self._lock = threading.Lock()
        self._repeats: Dict[AlertKind, TimerHandle] = {}

    @property
    def tone(self) -> np.ndarray:
        return self._tone

    def dispatch(self, event: AlertEvent):
        """Render one alert: tone, then banner/modal."""
        self.metrics.increment('alerts_dispatched')
        self.metrics.increment(f'alerts_{event.kind.value}')

        try:
            self.tone_sink(self._tone, self.config.sample_rate_hz)
        except Exception as e:
            logger.warning(f"Alert tone failed for {event.kind.value}: {e}")
            self.metrics.increment('alert_render_failures')

        try:
            self.visual_sink(event)
        except Exception as e:
            logger.warning(f"Alert {event.presentation.value} failed for {event.kind.value}: {e}")
            self.metrics.increment('alert_render_failures')

    def start_repeating(self, event: AlertEvent) -> bool:
        """
        Dispatch now and then every repeat_interval_s.

        Returns:
            False if a repeat for this kind is already scheduled (nothing
            is dispatched in that case)
        """
        if not self.arm_repeat(event):
            return False
        self.dispatch(event)
        return True

    def arm_repeat(self, event: AlertEvent) -> bool:
        """
        Schedule the repeat for event without rendering anything now.

        Only touches the timer, so callers may hold their state lock while
        arming and render the first alert after releasing it.

        Returns:
            False if a repeat for this kind is already scheduled
        """
        with self._lock:
            if event.kind in self._repeats:
                return False
            self._repeats[event.kind] = self.scheduler.call_every(
                self.config.repeat_interval_s,
                lambda: self._repeat(event),
                name=f"alert-repeat-{event.kind.value}",
            )

        logger.info(f"Repeating alert started: {event.kind.value}")
        return True

    def stop_repeating(self, kind: AlertKind) -> bool:
        """
        Stop the repeat for kind.

        Returns:
            True if a repeat was running
        """
        with self._lock:
            handle = self._repeats.pop(kind, None)
        if handle is None:
            return False
        handle.cancel()
        logger.info(f"Repeating alert stopped: {kind.value}")
        return True

    def is_repeating(self, kind: AlertKind) -> bool:
        with self._lock:
            return kind in self._repeats

    def close(self):
        """Cancel every scheduled repeat."""
        with self._lock:
            kinds = list(self._repeats)
        for kind in kinds:
            self.stop_repeating(kind)

    def _repeat(self, event: AlertEvent):
        if not self.is_repeating(event.kind):
            return
        self.dispatch(event)


def create_default_dispatcher(scheduler: Scheduler) -> AlertDispatcher:
    """
    Create a dispatcher with logging-only sinks and the standard tone.

    Returns:
        Configured AlertDispatcher
    """
    config = AlertConfig(
        repeat_interval_s=3.0,     # anchor alarm cadence
        sample_rate_hz=22050,
        tone_frequencies_hz=(880.0, 1108.73, 880.0),
        note_duration_s=0.2,
        gain=0.1,
    )

    return AlertDispatcher(scheduler, config=config)
