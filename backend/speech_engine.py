"""
Text-to-speech collaborators.

The pipeline never synthesizes audio itself. It hands text to a SpeechEngine,
which reports progress back as SpeechProgress messages through a single
handler. SocketSpeechEngine drives the TTS of the connected device.
"""

import asyncio
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class ProgressKind(Enum):
    STARTED = "start"
    DONE = "done"
    ERROR = "error"


@dataclass(frozen=True)
class SpeechProgress:
    utterance_id: str
    kind: ProgressKind


ProgressHandler = Callable[[SpeechProgress], None]


class SpeechEngine(ABC):
    """Interface of a TTS backend with its own internal queue."""

    def __init__(self):
        self._progress_handler: Optional[ProgressHandler] = None

    def set_progress_handler(self, handler: Optional[ProgressHandler]):
        self._progress_handler = handler

    def report_progress(self, utterance_id: str, kind: ProgressKind):
        handler = self._progress_handler
        if handler is not None:
            handler(SpeechProgress(utterance_id=utterance_id, kind=kind))

    @abstractmethod
    def is_ready(self) -> bool:
        ...

    @abstractmethod
    def speak(self, text: str, utterance_id: str, interrupt: bool = True):
        """Start speaking `text`. Must not block the caller."""

    @abstractmethod
    def stop(self, utterance_id: Optional[str] = None):
        """Silence the current utterance."""

    def shutdown(self):
        self.stop()


class SocketSpeechEngine(SpeechEngine):
    """
    Speaks through the device connected over Socket.IO.

    The device announces itself with `tts_ready`, receives `speak` /
    `stop_speech` events and answers with `speech_progress`.
    """

    def __init__(self, sio, loop: Optional[asyncio.AbstractEventLoop] = None):
        super().__init__()
        self._sio = sio
        self._loop = loop
        self._sid: Optional[str] = None
        self._lock = threading.Lock()

    def attach_loop(self, loop: asyncio.AbstractEventLoop):
        self._loop = loop

    def bind(self, sid: str, ready: bool = True):
        with self._lock:
            if ready:
                self._sid = sid
            elif self._sid == sid:
                self._sid = None
        logger.info(f"🔈 TTS device {'ready' if ready else 'not ready'}: {sid}")

    def unbind(self, sid: str):
        with self._lock:
            if self._sid != sid:
                return
            self._sid = None
        logger.info(f"🔇 TTS device detached: {sid}")

    @property
    def sid(self) -> Optional[str]:
        with self._lock:
            return self._sid

    def is_ready(self) -> bool:
        return self.sid is not None and self._loop is not None

    def _emit(self, event: str, payload: dict):
        sid = self.sid
        if sid is None or self._loop is None:
            logger.warning(f"⚠️ No TTS device bound, dropping '{event}'")
            return
        asyncio.run_coroutine_threadsafe(self._sio.emit(event, payload, room=sid), self._loop)

    def speak(self, text: str, utterance_id: str, interrupt: bool = True):
        self._emit("speak", {"text": text, "utterance_id": utterance_id, "interrupt": interrupt})

    def stop(self, utterance_id: Optional[str] = None):
        self._emit("stop_speech", {"utterance_id": utterance_id})

    def handle_progress(self, sid: str, data: dict):
        """Translate a device `speech_progress` message into a SpeechProgress."""
        utterance_id = data.get("utterance_id")
        raw_kind = data.get("event")
        try:
            kind = ProgressKind(raw_kind)
        except ValueError:
            logger.warning(f"⚠️ Unknown speech progress event {raw_kind!r} from {sid}")
            return
        if not utterance_id:
            logger.warning(f"⚠️ Speech progress without utterance_id from {sid}")
            return
        self.report_progress(utterance_id, kind)
