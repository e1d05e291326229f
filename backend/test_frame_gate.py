import threading

import pytest

from frame_gate import FrameGate


def test_two_hz_admits_every_500ms():
    gate = FrameGate(max_fps=2.0)
    assert gate.min_interval_ms == 500
    admitted = [t for t in (0, 100, 400, 600) if gate.admit(t)]
    assert admitted == [0, 600]


def test_interval_is_exactly_min_interval():
    gate = FrameGate(max_fps=2.0)
    assert gate.admit(1000)
    assert not gate.admit(1499)
    assert gate.admit(1500)


@pytest.mark.parametrize("max_fps, expected", [(1.0, 1000), (3.0, 333), (2000.0, 1), (5000.0, 1), (0.5, 2000)])
def test_min_interval_rounding(max_fps, expected):
    assert FrameGate(max_fps=max_fps).min_interval_ms == expected


@pytest.mark.parametrize("max_fps", [0, -1.0])
def test_rejects_non_positive_rate(max_fps):
    with pytest.raises(ValueError):
        FrameGate(max_fps=max_fps)


def test_uses_clock_when_no_timestamp(clock):
    gate = FrameGate(max_fps=2.0, clock=clock)
    clock.now = 10_000
    assert gate.admit()
    clock.now = 10_200
    assert not gate.admit()
    assert gate.wait_time_ms() == 300
    clock.now = 10_500
    assert gate.admit()


def test_reset_forgets_last_admission():
    gate = FrameGate(max_fps=2.0)
    assert gate.admit(0)
    gate.reset()
    assert gate.admit(10)


def test_concurrent_admits_let_exactly_one_through():
    gate = FrameGate(max_fps=2.0)
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(gate.admit(5_000))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert results.count(True) == 1
