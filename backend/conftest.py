import asyncio

import pytest

from models import Frame
from speech_engine import SpeechEngine


class FakeSpeechEngine(SpeechEngine):
    """Records what would have been spoken."""

    def __init__(self, ready=True):
        super().__init__()
        self.ready = ready
        self.spoken = []
        self.utterance_ids = []
        self.stops = []
        self.fail_next = False

    def is_ready(self):
        return self.ready

    def speak(self, text, utterance_id, interrupt=True):
        if self.fail_next:
            self.fail_next = False
            raise RuntimeError("engine exploded")
        self.spoken.append(text)
        self.utterance_ids.append(utterance_id)

    def stop(self, utterance_id=None):
        self.stops.append(utterance_id)


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class FakeConnectivity:
    def __init__(self, online=True):
        self.online = online

    def has_internet(self):
        return self.online


class GatedVisionClient:
    """Vision client whose calls block until `release` is set."""

    key_store = None

    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0
        self.cancelled = 0
        self.release = asyncio.Event()

    async def analyze(self, frame_bytes, mime_type="image/jpeg"):
        self.calls += 1
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if self.error is not None:
            raise self.error
        return self.result

    async def aclose(self):
        pass


async def drain(rounds=10):
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_frame(captured_at_ms=0.0):
    return Frame(data=b"\xff\xd8jpeg", width=640, height=480, captured_at_ms=captured_at_ms)


@pytest.fixture
def speech_engine():
    return FakeSpeechEngine()


@pytest.fixture
def clock():
    return FakeClock()
