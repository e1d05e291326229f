import pytest

from pipeline_state import (STATUS_ANALYZING, STATUS_STARTING, AnalysisFailed,
                            AnalysisStarted, AnalysisSucceeded, AudioToggled,
                            ConnectivityLost, Error, Idle,
                            PipelineStateMachine, Running, Started, Stopped,
                            state_to_dict, transition)


def test_initial_state_is_idle():
    assert PipelineStateMachine().state == Idle()


def test_start_enters_running():
    assert transition(Idle(), Started(audio_enabled=True)) == Running(STATUS_STARTING, True)


@pytest.mark.parametrize("state", [Idle(), Running("Nearby: chair", True), Error("boom", False)])
def test_stop_from_any_state_is_idle(state):
    assert transition(state, Stopped()) == Idle()


def test_analysis_cycle():
    state = transition(Idle(), Started(True))
    state = transition(state, AnalysisStarted(True))
    assert state == Running(STATUS_ANALYZING, True)
    state = transition(state, AnalysisFailed("HTTP 500", recoverable=True))
    assert state == Error("HTTP 500", True)
    state = transition(state, AnalysisSucceeded("No nearby objects (≤5m). No text.", True))
    assert state == Running("No nearby objects (≤5m). No text.", True)


def test_connectivity_lost():
    assert transition(Running("x", True), ConnectivityLost()) == Error("No internet connection", True)


def test_audio_toggle_only_changes_running():
    assert transition(Running("Nearby: chair", True), AudioToggled(False)) == Running("Nearby: chair", False)
    assert transition(Idle(), AudioToggled(False)) == Idle()
    assert transition(Error("boom"), AudioToggled(False)) == Error("boom")


def test_transition_rejects_unknown_events():
    with pytest.raises(TypeError):
        transition(Idle(), "start")


def test_state_to_dict():
    assert state_to_dict(Idle()) == {"state": "idle"}
    assert state_to_dict(Running("Analyzing…", False)) == {
        "state": "running", "status": "Analyzing…", "audio_enabled": False,
    }
    assert state_to_dict(Error("Missing Gemini API key", False)) == {
        "state": "error", "message": "Missing Gemini API key", "recoverable": False,
    }


def test_listeners_see_each_change_once():
    machine = PipelineStateMachine()
    seen = []
    machine.subscribe(seen.append)

    machine.dispatch(Started(True))
    machine.dispatch(AudioToggled(True))  # no change
    machine.dispatch(Stopped())

    assert seen == [Running(STATUS_STARTING, True), Idle()]


def test_failing_listener_does_not_break_dispatch():
    machine = PipelineStateMachine()

    def broken(state):
        raise RuntimeError("socket gone")

    machine.subscribe(broken)
    assert machine.dispatch(Started(True)) == Running(STATUS_STARTING, True)
    assert machine.state == Running(STATUS_STARTING, True)
