"""
Pipeline UI/status state machine.

The state is a small tagged union (Idle / Running / Error). Transitions are
pure functions of (state, event); PipelineStateMachine holds the single
current instance and serializes updates so readers never see a partial one.
"""

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, List, Union

logger = logging.getLogger(__name__)

STATUS_STARTING = "Starting…"
STATUS_ANALYZING = "Analyzing…"
NO_INTERNET_MESSAGE = "No internet connection"


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Running:
    status: str
    audio_enabled: bool = True


@dataclass(frozen=True)
class Error:
    message: str
    recoverable: bool = True


PipelineState = Union[Idle, Running, Error]


# Events

@dataclass(frozen=True)
class Started:
    audio_enabled: bool


@dataclass(frozen=True)
class Stopped:
    pass


@dataclass(frozen=True)
class AnalysisStarted:
    audio_enabled: bool


@dataclass(frozen=True)
class AnalysisSucceeded:
    status: str
    audio_enabled: bool


@dataclass(frozen=True)
class AnalysisFailed:
    message: str
    recoverable: bool = True


@dataclass(frozen=True)
class ConnectivityLost:
    pass


@dataclass(frozen=True)
class AudioToggled:
    enabled: bool


PipelineEvent = Union[
    Started, Stopped, AnalysisStarted, AnalysisSucceeded,
    AnalysisFailed, ConnectivityLost, AudioToggled,
]


def transition(state: PipelineState, event: PipelineEvent) -> PipelineState:
    """Compute the next state. Never mutates its inputs."""
    if isinstance(event, Stopped):
        return Idle()
    if isinstance(event, Started):
        return Running(status=STATUS_STARTING, audio_enabled=event.audio_enabled)
    if isinstance(event, AnalysisStarted):
        return Running(status=STATUS_ANALYZING, audio_enabled=event.audio_enabled)
    if isinstance(event, AnalysisSucceeded):
        return Running(status=event.status, audio_enabled=event.audio_enabled)
    if isinstance(event, AnalysisFailed):
        return Error(message=event.message, recoverable=event.recoverable)
    if isinstance(event, ConnectivityLost):
        return Error(message=NO_INTERNET_MESSAGE, recoverable=True)
    if isinstance(event, AudioToggled):
        # Only Running carries the flag; other states pick it up on the next entry
        if isinstance(state, Running):
            return replace(state, audio_enabled=event.enabled)
        return state
    raise TypeError(f"Unknown pipeline event: {event!r}")


def state_to_dict(state: PipelineState) -> dict:
    """JSON-friendly view for the presentation layer."""
    if isinstance(state, Running):
        return {"state": "running", "status": state.status, "audio_enabled": state.audio_enabled}
    if isinstance(state, Error):
        return {"state": "error", "message": state.message, "recoverable": state.recoverable}
    return {"state": "idle"}


StateListener = Callable[[PipelineState], None]


class PipelineStateMachine:
    """Single source of truth for pipeline state."""

    def __init__(self, initial: PipelineState = None):
        self._state: PipelineState = initial if initial is not None else Idle()
        self._lock = threading.Lock()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    def subscribe(self, listener: StateListener):
        """Register a listener called with each new state. Listeners must not block or dispatch."""
        with self._lock:
            self._listeners.append(listener)

    def dispatch(self, event: PipelineEvent) -> PipelineState:
        with self._lock:
            previous = self._state
            new_state = transition(previous, event)
            self._state = new_state
            # Notify under the lock so listeners see transitions in order
            if new_state != previous:
                logger.info(f"🔁 State: {type(previous).__name__} -> {new_state}")
                for listener in self._listeners:
                    try:
                        listener(new_state)
                    except Exception as e:
                        logger.error(f"State listener failed: {e}", exc_info=True)
        return new_state
