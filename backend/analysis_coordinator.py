"""
Single-flight analysis coordinator.

Bridges admitted frames to the vision provider with at most one call
outstanding. Frames arriving while a call is in flight are dropped, not
queued, so throughput is bounded by analysis latency rather than frame rate.

on_frame(), start(), stop() and set_audio_enabled() must run on the event
loop thread; other threads hand frames over with submit_frame_threadsafe().
"""

import asyncio
import logging
import threading
from typing import Optional

from connectivity import ConnectivityMonitor
from errors import ConnectivityError, PipelineError
from models import Frame, VisionResult
from pipeline_state import (AnalysisFailed, AnalysisStarted, AnalysisSucceeded,
                            AudioToggled, ConnectivityLost, Error,
                            NO_INTERNET_MESSAGE, PipelineStateMachine, Started,
                            Stopped)
from speech_gate import SpeechGate
from speech_policy import MAX_OBJECT_DISTANCE_M, derive_utterance, summarize_status
from vision_client import VisionClient

logger = logging.getLogger(__name__)


class AnalysisCoordinator:
    """Owns the in-flight token and the running / audio flags."""

    def __init__(
        self,
        vision_client: VisionClient,
        speech_gate: SpeechGate,
        state_machine: PipelineStateMachine,
        connectivity: ConnectivityMonitor,
        max_distance_m: float = MAX_OBJECT_DISTANCE_M,
        dedupe_window_ms: Optional[int] = None,
        audio_enabled: bool = True
    ):
        self.vision_client = vision_client
        self.speech_gate = speech_gate
        self.state_machine = state_machine
        self.connectivity = connectivity
        self.max_distance_m = max_distance_m
        self.dedupe_window_ms = dedupe_window_ms

        self._lock = threading.Lock()
        self._running = False
        self._audio_enabled = audio_enabled
        # The in-flight token is the task running the vision call
        self._in_flight: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def audio_enabled(self) -> bool:
        return self._audio_enabled

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight is not None and not self._in_flight.done()

    def set_audio_enabled(self, enabled: bool):
        logger.info(f"🔈 Audio enabled={enabled}")
        self._audio_enabled = enabled
        self.state_machine.dispatch(AudioToggled(enabled))

    def start(self):
        """Enter Running. Analysis begins with the next admitted frame."""
        logger.info("▶️ Pipeline start")
        # A start while busy resets the cycle: the stale call is cancelled
        self._cancel_in_flight()
        self._running = True
        self._loop = asyncio.get_running_loop()
        self.state_machine.dispatch(Started(self._audio_enabled))

    def stop(self):
        """Cancel any in-flight call and return to Idle."""
        logger.info("⏹️ Pipeline stop")
        self._running = False
        self._cancel_in_flight()
        self.state_machine.dispatch(Stopped())

    def _cancel_in_flight(self):
        with self._lock:
            task, self._in_flight = self._in_flight, None
        if task is not None and not task.done():
            logger.info("🛑 Cancelling in-flight analysis")
            task.cancel()

    def _release(self, task: Optional[asyncio.Task]):
        with self._lock:
            if self._in_flight is task:
                self._in_flight = None

    def _require_internet(self):
        if not self.connectivity.has_internet():
            raise ConnectivityError(NO_INTERNET_MESSAGE)

    def on_frame(self, frame: Frame) -> bool:
        """
        Offer an admitted frame for analysis.

        Returns:
            True if a vision call was launched for this frame
        """
        if not self._running:
            logger.debug("Frame ignored, not running")
            return False

        state = self.state_machine.state
        if isinstance(state, Error) and not state.recoverable:
            logger.debug(f"Frame ignored, pipeline halted: {state.message}")
            return False

        try:
            self._require_internet()
        except ConnectivityError as e:
            logger.error(f"❌ {e}")
            self.state_machine.dispatch(ConnectivityLost())
            return False

        with self._lock:
            current = self._in_flight
            if current is not None and not current.done():
                logger.debug("Analysis already in-flight, dropping frame")
                return False
            self.state_machine.dispatch(AnalysisStarted(self._audio_enabled))
            self._in_flight = asyncio.get_running_loop().create_task(self._analyze(frame))

        logger.info(f"🚀 Analysis launched for frame {frame.width}x{frame.height}")
        return True

    def submit_frame_threadsafe(self, frame: Frame):
        """Hand a frame over from a producer thread without blocking it."""
        loop = self._loop
        if loop is None or loop.is_closed():
            logger.debug("Frame ignored, no event loop yet")
            return
        loop.call_soon_threadsafe(self.on_frame, frame)

    async def _analyze(self, frame: Frame):
        task = asyncio.current_task()
        try:
            try:
                result = await self.vision_client.analyze(frame.data, frame.mime_type)
            finally:
                self._release(task)
        except asyncio.CancelledError:
            # Superseded by stop()/start(); not an error
            logger.debug("Analysis cancelled")
            raise
        except PipelineError as e:
            logger.error(f"❌ Analysis failure: {e}")
            self.state_machine.dispatch(AnalysisFailed(str(e) or "API error", e.recoverable))
            return
        except Exception as e:
            logger.error(f"❌ Unexpected analysis failure: {e}", exc_info=True)
            self.state_machine.dispatch(AnalysisFailed(str(e) or "API error", True))
            return

        self._handle_result(result)

    def _handle_result(self, result: VisionResult):
        if not self._running:
            logger.debug("Result discarded, pipeline stopped")
            return
        audio_enabled = self._audio_enabled
        self.state_machine.dispatch(
            AnalysisSucceeded(summarize_status(result, self.max_distance_m), audio_enabled)
        )
        utterance = derive_utterance(result, self.max_distance_m)
        if utterance is None:
            logger.debug("Nothing to say")
            return
        self.speech_gate.speak_if_allowed(
            utterance,
            audio_enabled=audio_enabled,
            dedupe_window_ms=self.dedupe_window_ms
        )

    async def shutdown(self):
        """Stop and wait for the cancelled call to unwind."""
        with self._lock:
            task = self._in_flight
        self.stop()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
