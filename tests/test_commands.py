"""Tests for the latest-value command channel."""
import threading

import pytest
import torch

from wrench_controller import Axis, CommandChannel, LatestValue, ReconfigureRequest
from wrench_controller.commands import EngageTrigger


def test_latest_value_semantics():
    cell = LatestValue(1)
    cell.set(2)
    cell.set(3)
    assert cell.get() == 3
    assert cell.take() == 3
    assert cell.get() is None
    assert cell.take() is None


def test_commands_broadcast_to_all_envs(device):
    channel = CommandChannel(4, device)
    channel.set_velocity_command(linear=[1.0, 2.0, 3.0], angular=[0.0, 0.0, 0.5])
    cmd = channel.velocity_command
    assert cmd.linear.shape == (4, 3)
    assert cmd.linear[3].tolist() == [1.0, 2.0, 3.0]
    assert cmd.angular[:, 2].tolist() == [0.5] * 4


def test_unset_components_are_zero(device):
    channel = CommandChannel(1, device)
    channel.set_position_command(linear=[0.0, 0.0, 2.0])
    assert channel.position_command.angular.abs().sum().item() == 0.0


def test_snapshot_is_isolated_from_producer(device):
    """Mutating the producer's tensor after publishing does not leak into the snapshot."""
    channel = CommandChannel(1, device)
    source = torch.tensor([1.0, 0.0, 0.0])
    channel.set_velocity_command(linear=source)
    source[0] = 99.0
    assert channel.snapshot().velocity.linear[0, 0].item() == 1.0


def test_bad_shape_rejected(device):
    channel = CommandChannel(1, device)
    with pytest.raises(ValueError):
        channel.set_velocity_command(linear=[1.0, 2.0])


def test_reconfigure_last_write_wins_per_axis(device):
    channel = CommandChannel(1, device)
    assert channel.request_reconfigure(ReconfigureRequest(1, 1.0, 0.0, 0.0, 0.0))
    assert channel.request_reconfigure(ReconfigureRequest(1, 2.0, 0.0, 0.0, 0.0))
    assert channel.request_reconfigure(ReconfigureRequest(8, 3.0, 0.0, 0.0, 0.0))

    pending = channel.snapshot().reconfigure
    by_axis = {request.axis: request.gain_p for request in pending}
    assert by_axis == {Axis.VELOCITY_X: 2.0, Axis.ROLL: 3.0}
    assert channel.snapshot().reconfigure == []


def test_reconfigure_invalid_selector(device):
    channel = CommandChannel(1, device)
    assert not channel.request_reconfigure(ReconfigureRequest(0, 1.0, 0.0, 0.0, 0.0))
    assert channel.snapshot().reconfigure == []


def test_triggers_are_consumed_once(device):
    channel = CommandChannel(1, device)
    channel.engage()
    channel.shutdown()
    assert channel.snapshot().trigger is EngageTrigger.SHUTDOWN
    assert channel.snapshot().trigger is None


def test_concurrent_writers_never_tear(device):
    """A reader only ever sees whole commands written by one producer."""
    channel = CommandChannel(1, device)
    stop = threading.Event()

    def producer(value):
        while not stop.is_set():
            channel.set_velocity_command(linear=[value, value, value], angular=[value, value, value])

    threads = [threading.Thread(target=producer, args=(v,)) for v in (1.0, 2.0)]
    for thread in threads:
        thread.start()
    try:
        for _ in range(200):
            cmd = channel.snapshot().velocity
            values = set(cmd.linear.flatten().tolist()) | set(cmd.angular.flatten().tolist())
            assert len(values) == 1
    finally:
        stop.set()
        for thread in threads:
            thread.join()


def test_reset_clears_everything(device):
    channel = CommandChannel(1, device)
    channel.set_velocity_command(linear=[1.0, 0.0, 0.0])
    channel.engage()
    channel.request_reconfigure(ReconfigureRequest(2, 1.0, 0.0, 0.0, 0.0))
    channel.reset()
    snapshot = channel.snapshot()
    assert snapshot.velocity.linear.abs().sum().item() == 0.0
    assert snapshot.trigger is None
    assert snapshot.reconfigure == []
