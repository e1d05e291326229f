"""
Speech gate: decides WHEN a derived utterance is actually spoken.

Identical utterances are suppressed inside a dedupe window, new ones
interrupt whatever is playing, and a runaway utterance is force-stopped
after a maximum duration.
"""

import itertools
import logging
import re
import threading
from typing import Callable, Optional

from frame_gate import monotonic_ms
from speech_engine import ProgressKind, SpeechEngine, SpeechProgress

logger = logging.getLogger(__name__)

DEDUPE_WINDOW_MS = 7000
MAX_UTTERANCE_MS = 5000
# Grace period after the cap before the safety check runs
MAX_UTTERANCE_GRACE_MS = 100

_WHITESPACE = re.compile(r"\s+")

Scheduler = Callable[[float, Callable[[], None]], None]


def normalize_utterance(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def _timer_scheduler(delay_s: float, callback: Callable[[], None]):
    timer = threading.Timer(delay_s, callback)
    timer.daemon = True
    timer.start()


class SpeechGate:
    """Owns the speak call and the last-spoken state."""

    def __init__(
        self,
        engine: SpeechEngine,
        dedupe_window_ms: int = DEDUPE_WINDOW_MS,
        max_utterance_ms: int = MAX_UTTERANCE_MS,
        clock: Optional[Callable[[], float]] = None,
        scheduler: Optional[Scheduler] = None
    ):
        """
        Args:
            engine: TTS collaborator
            dedupe_window_ms: Default window for suppressing repeats
            max_utterance_ms: Hard cap on one utterance's duration
            clock: Millisecond clock (defaults to monotonic time)
            scheduler: Runs a callback after a delay in seconds (defaults to a timer thread)
        """
        self.engine = engine
        self.dedupe_window_ms = dedupe_window_ms
        self.max_utterance_ms = max_utterance_ms
        self._clock = clock or monotonic_ms
        self._schedule = scheduler or _timer_scheduler
        self._ids = itertools.count(1)

        # All fields below are guarded by _lock (speak path and progress handler)
        self._lock = threading.Lock()
        self._last_spoken: Optional[str] = None
        self._last_spoken_at: float = 0.0
        self._current_utterance_id: Optional[str] = None
        self._current_started_at: float = 0.0
        self._speaking = False

        engine.set_progress_handler(self.on_progress)

    @property
    def is_speaking(self) -> bool:
        with self._lock:
            return self._speaking

    @property
    def last_spoken(self) -> Optional[str]:
        with self._lock:
            return self._last_spoken

    def speak_if_allowed(
        self,
        text: str,
        audio_enabled: bool,
        dedupe_window_ms: Optional[int] = None
    ) -> bool:
        """
        Speak `text` unless audio is off, TTS is not ready, it is blank,
        or it repeats the last utterance inside the dedupe window.

        Returns:
            True if the engine was asked to speak
        """
        if not audio_enabled:
            logger.debug("Speech skipped: audio disabled")
            return False
        if not self.engine.is_ready():
            logger.warning("⚠️ Speech skipped: TTS not initialized")
            return False

        normalized = normalize_utterance(text)
        if not normalized:
            return False

        window = self.dedupe_window_ms if dedupe_window_ms is None else dedupe_window_ms

        with self._lock:
            now = self._clock()
            if self._last_spoken == normalized and (now - self._last_spoken_at) < window:
                logger.debug(f"Speech skipped due to dedupe window: '{normalized}'")
                return False

            utterance_id = f"utterance_{int(now)}_{next(self._ids)}"
            self._current_utterance_id = utterance_id
            self._current_started_at = now
            self._speaking = True
            # Recorded even if the engine later reports an error
            self._last_spoken = normalized
            self._last_spoken_at = now

        logger.info(f"🔊 Speaking [{utterance_id}]: '{normalized}'")
        try:
            self.engine.stop()
            self.engine.speak(normalized, utterance_id, interrupt=True)
        except Exception as e:
            logger.error(f"❌ TTS speak failed: {e}", exc_info=True)
            with self._lock:
                if self._current_utterance_id == utterance_id:
                    self._speaking = False
            return True

        delay_s = (self.max_utterance_ms + MAX_UTTERANCE_GRACE_MS) / 1000.0
        self._schedule(delay_s, lambda: self._enforce_max_duration(utterance_id))
        return True

    def on_progress(self, progress: SpeechProgress):
        """Single serialized entry point for TTS progress messages."""
        with self._lock:
            if progress.utterance_id != self._current_utterance_id:
                logger.debug(f"Ignoring progress for stale utterance {progress.utterance_id}")
                return
            if progress.kind is ProgressKind.STARTED:
                self._speaking = True
            else:
                self._speaking = False
        if progress.kind is ProgressKind.ERROR:
            logger.error(f"❌ TTS error for {progress.utterance_id}")

    def _enforce_max_duration(self, utterance_id: str):
        with self._lock:
            elapsed = self._clock() - self._current_started_at
            should_stop = (
                self._speaking
                and self._current_utterance_id == utterance_id
                and elapsed >= self.max_utterance_ms
            )
            if should_stop:
                self._speaking = False
        if should_stop:
            logger.info(f"⏱️ Max utterance duration reached, stopping {utterance_id}")
            self.engine.stop(utterance_id)

    def shutdown(self):
        self.engine.set_progress_handler(None)
        self.engine.shutdown()
