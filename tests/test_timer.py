"""Tests for the control rate decimator."""
import pytest

from wrench_controller import UpdateTimer


def test_first_call_latches():
    timer = UpdateTimer()
    assert timer.update(3.0) == 0.0
    assert timer.update(3.5) == pytest.approx(0.5)


def test_every_step_without_rate():
    timer = UpdateTimer(0.0)
    timer.update(0.0)
    assert timer.update(0.001) == pytest.approx(0.001)
    assert timer.update(0.002) == pytest.approx(0.001)
    assert timer.update(0.002) == 0.0


def test_decimation():
    """10 Hz control on a 20 Hz simulation runs every other step."""
    timer = UpdateTimer(10.0)
    dts = [timer.update(t) for t in (0.0, 0.05, 0.1, 0.15, 0.2)]
    assert dts == [0.0, 0.0, pytest.approx(0.1), 0.0, pytest.approx(0.1)]


def test_time_going_backwards_relatches():
    timer = UpdateTimer()
    timer.update(5.0)
    assert timer.update(1.0) == 0.0
    assert timer.update(1.25) == pytest.approx(0.25)


def test_negative_rate_rejected():
    with pytest.raises(ValueError):
        UpdateTimer(-1.0)
