from conftest import FakeSpeechEngine
from speech_engine import ProgressKind, SpeechProgress
from speech_gate import SpeechGate, normalize_utterance


class ManualScheduler:
    """Collects delayed callbacks so tests can fire them."""

    def __init__(self):
        self.pending = []

    def __call__(self, delay_s, callback):
        self.pending.append((delay_s, callback))

    def fire_all(self):
        pending, self.pending = self.pending, []
        for _, callback in pending:
            callback()


def make_gate(engine, clock, scheduler=None, **kw):
    return SpeechGate(engine, clock=clock, scheduler=scheduler or ManualScheduler(), **kw)


def test_repeat_suppressed_inside_window_and_spoken_after(speech_engine, clock):
    gate = make_gate(speech_engine, clock)

    clock.now = 0
    assert gate.speak_if_allowed("chair ahead", audio_enabled=True, dedupe_window_ms=7000)
    clock.now = 3000
    assert not gate.speak_if_allowed("chair ahead", audio_enabled=True, dedupe_window_ms=7000)
    clock.now = 8000
    assert gate.speak_if_allowed("chair ahead", audio_enabled=True, dedupe_window_ms=7000)

    assert speech_engine.spoken == ["chair ahead", "chair ahead"]


def test_whitespace_variants_dedupe_together(speech_engine, clock):
    gate = make_gate(speech_engine, clock)
    assert normalize_utterance("  chair   ahead ") == normalize_utterance("chair ahead")

    assert gate.speak_if_allowed("  chair   ahead ", audio_enabled=True)
    clock.now = 1000
    assert not gate.speak_if_allowed("chair ahead", audio_enabled=True)
    assert speech_engine.spoken == ["chair ahead"]


def test_different_utterance_interrupts_immediately(speech_engine, clock):
    gate = make_gate(speech_engine, clock)
    assert gate.speak_if_allowed("chair ahead", audio_enabled=True)
    clock.now = 500
    assert gate.speak_if_allowed("door ahead", audio_enabled=True)
    assert speech_engine.spoken == ["chair ahead", "door ahead"]
    # The engine is flushed before every new utterance
    assert len(speech_engine.stops) == 2


def test_audio_disabled_is_a_no_op(speech_engine, clock):
    gate = make_gate(speech_engine, clock)
    assert not gate.speak_if_allowed("chair ahead", audio_enabled=False)
    assert speech_engine.spoken == []
    assert gate.last_spoken is None


def test_engine_not_ready_is_a_no_op(clock):
    engine = FakeSpeechEngine(ready=False)
    gate = make_gate(engine, clock)
    assert not gate.speak_if_allowed("chair ahead", audio_enabled=True)
    assert engine.spoken == []


def test_blank_text_is_a_no_op(speech_engine, clock):
    gate = make_gate(speech_engine, clock)
    assert not gate.speak_if_allowed(" \t\n ", audio_enabled=True)
    assert speech_engine.spoken == []


def test_failed_speak_still_records_last_spoken(speech_engine, clock):
    gate = make_gate(speech_engine, clock)
    speech_engine.fail_next = True
    assert gate.speak_if_allowed("stairs ahead", audio_enabled=True)
    assert gate.last_spoken == "stairs ahead"
    assert not gate.is_speaking

    clock.now = 1000
    assert not gate.speak_if_allowed("stairs ahead", audio_enabled=True)


def test_runaway_utterance_is_force_stopped(speech_engine, clock):
    scheduler = ManualScheduler()
    gate = make_gate(speech_engine, clock, scheduler, max_utterance_ms=5000)

    gate.speak_if_allowed("Text reads: a very long sign", audio_enabled=True)
    utterance_id = speech_engine.utterance_ids[-1]
    gate.on_progress(SpeechProgress(utterance_id, ProgressKind.STARTED))
    assert scheduler.pending[0][0] == 5.1

    clock.now = 5100
    scheduler.fire_all()

    assert speech_engine.stops[-1] == utterance_id
    assert not gate.is_speaking


def test_finished_utterance_is_not_stopped(speech_engine, clock):
    scheduler = ManualScheduler()
    gate = make_gate(speech_engine, clock, scheduler)

    gate.speak_if_allowed("chair ahead", audio_enabled=True)
    utterance_id = speech_engine.utterance_ids[-1]
    gate.on_progress(SpeechProgress(utterance_id, ProgressKind.DONE))
    stops_before = list(speech_engine.stops)

    clock.now = 5100
    scheduler.fire_all()
    assert speech_engine.stops == stops_before


def test_cap_ignores_superseded_utterance(speech_engine, clock):
    scheduler = ManualScheduler()
    gate = make_gate(speech_engine, clock, scheduler)

    gate.speak_if_allowed("chair ahead", audio_enabled=True)
    clock.now = 2000
    gate.speak_if_allowed("door ahead", audio_enabled=True)
    stops_before = list(speech_engine.stops)

    # First cap fires for the old utterance; the new one is still within its cap
    clock.now = 5100
    scheduler.pending[0][1]()
    assert speech_engine.stops == stops_before
    assert gate.is_speaking


def test_stale_progress_is_ignored(speech_engine, clock):
    gate = make_gate(speech_engine, clock)
    gate.speak_if_allowed("chair ahead", audio_enabled=True)
    gate.on_progress(SpeechProgress("utterance_old", ProgressKind.DONE))
    assert gate.is_speaking

    gate.on_progress(SpeechProgress(speech_engine.utterance_ids[-1], ProgressKind.ERROR))
    assert not gate.is_speaking


def test_gate_registers_itself_with_engine(speech_engine, clock):
    gate = make_gate(speech_engine, clock)
    gate.speak_if_allowed("chair ahead", audio_enabled=True)
    speech_engine.report_progress(speech_engine.utterance_ids[-1], ProgressKind.DONE)
    assert not gate.is_speaking
