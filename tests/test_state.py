"""Tests for vehicle state refresh and measurement-source priority."""
import math

import pytest
import torch

from wrench_controller import ImuSample, RigidBodySim, StateSample, VehicleState
from wrench_controller.frames import quat_from_euler

IDENTITY = torch.tensor([1.0, 0.0, 0.0, 0.0])


def yaw_quat(yaw):
    return quat_from_euler(torch.tensor(0.0), torch.tensor(0.0), torch.tensor(yaw))


def sample(velocity, stamp, position=(0.0, 0.0, 0.0), orientation=IDENTITY, angular=(0.0, 0.0, 0.0)):
    return StateSample(
        position=torch.tensor(position),
        orientation=orientation,
        linear_velocity=torch.tensor(velocity),
        angular_velocity=torch.tensor(angular),
        stamp=stamp,
    )


def test_physics_source_acceleration_needs_two_samples(device, body):
    state = VehicleState(1, device)
    body.set_state(linear_velocity=torch.tensor([1.0, 0.0, 0.0]))
    state.refresh(body, 0.1)
    assert state.linear_acceleration.abs().sum().item() == 0.0

    body.set_state(linear_velocity=torch.tensor([1.5, 0.0, -0.2]))
    state.refresh(body, 0.1)
    torch.testing.assert_close(state.linear_acceleration, torch.tensor([[5.0, 0.0, -2.0]]))


def test_physics_source_copies_pose(device, body):
    state = VehicleState(1, device)
    body.set_state(position=torch.tensor([1.0, 2.0, 3.0]), orientation=yaw_quat(0.5))
    state.refresh(body, 0.01)
    torch.testing.assert_close(state.position, torch.tensor([[1.0, 2.0, 3.0]]))
    assert state.euler[0, 2].item() == pytest.approx(0.5, abs=1e-6)

    # Later changes on the host do not alias into the cached state
    body.set_state(position=torch.tensor([9.0, 9.0, 9.0]))
    assert state.position[0, 0].item() == 1.0


def test_state_feed_finite_difference(device, body):
    state = VehicleState(1, device, use_state_feed=True)
    state.push_state(sample([0.0, 0.0, 1.0], stamp=1.0))
    state.refresh(body, 0.01)
    assert state.linear_acceleration.abs().sum().item() == 0.0
    assert state.last_update_time == 1.0

    state.push_state(sample([0.0, 0.0, 2.0], stamp=1.5))
    state.refresh(body, 0.01)
    torch.testing.assert_close(state.linear_acceleration, torch.tensor([[0.0, 0.0, 2.0]]))

    # Same stamp again: no time gap, acceleration undefined -> zero
    state.push_state(sample([0.0, 0.0, 3.0], stamp=1.5))
    state.refresh(body, 0.01)
    assert state.linear_acceleration.abs().sum().item() == 0.0


def test_state_feed_ignores_physics(device, body):
    """With the state feed selected, the host's state is never read."""
    body.set_state(position=torch.tensor([5.0, 5.0, 5.0]), linear_velocity=torch.tensor([1.0, 1.0, 1.0]))
    state = VehicleState(1, device, use_state_feed=True)
    state.refresh(body, 0.01)
    assert state.position.abs().sum().item() == 0.0
    assert state.linear_velocity.abs().sum().item() == 0.0

    state.push_state(sample([0.1, 0.2, 0.3], stamp=0.0, position=(1.0, 0.0, 2.0)))
    state.refresh(body, 0.01)
    torch.testing.assert_close(state.position, torch.tensor([[1.0, 0.0, 2.0]]))


def test_state_feed_overrides_imu(device, body):
    state = VehicleState(1, device, use_state_feed=True, use_imu_feed=True)
    assert not state.use_imu_feed
    state.push_imu(ImuSample(orientation=yaw_quat(1.0), angular_velocity=torch.tensor([0.0, 0.0, 1.0])))
    state.push_state(sample([0.0, 0.0, 0.0], stamp=0.0, orientation=yaw_quat(0.2)))
    state.refresh(body, 0.01)
    assert state.euler[0, 2].item() == pytest.approx(0.2, abs=1e-6)
    assert state.angular_velocity.abs().sum().item() == 0.0


def test_imu_feed_orientation_and_rates(device, body):
    """IMU supplies orientation and (body) rates; position/velocity come from the host."""
    body.set_state(
        position=torch.tensor([0.0, 0.0, 4.0]),
        orientation=yaw_quat(-1.0),
        linear_velocity=torch.tensor([0.5, 0.0, 0.0]),
    )
    state = VehicleState(1, device, use_imu_feed=True)
    state.push_imu(ImuSample(orientation=yaw_quat(math.pi / 2), angular_velocity=torch.tensor([1.0, 0.0, 0.0])))
    state.refresh(body, 0.01)

    assert state.euler[0, 2].item() == pytest.approx(math.pi / 2, abs=1e-5)
    # Body x rate expressed in the world frame for a vehicle heading +y
    torch.testing.assert_close(state.angular_velocity, torch.tensor([[0.0, 1.0, 0.0]]), atol=1e-6, rtol=0)
    torch.testing.assert_close(state.position, torch.tensor([[0.0, 0.0, 4.0]]))
    torch.testing.assert_close(state.linear_velocity, torch.tensor([[0.5, 0.0, 0.0]]))


def test_reset_forgets_samples(device, body):
    state = VehicleState(1, device, use_state_feed=True)
    state.push_state(sample([1.0, 0.0, 0.0], stamp=2.0))
    state.refresh(body, 0.01)
    state.reset()
    assert state.last_update_time is None
    assert state.linear_velocity.abs().sum().item() == 0.0
    assert state.orientation[0].tolist() == [1.0, 0.0, 0.0, 0.0]


def test_reset_single_environment(device):
    """A reset environment restarts its acceleration estimate; the others keep theirs."""
    body = RigidBodySim(2, device, ground_plane=False)
    state = VehicleState(2, device)
    body.set_state(linear_velocity=torch.tensor([1.0, 0.0, 0.0]))
    state.refresh(body, 0.1)

    state.reset(torch.tensor([1]))
    assert state.linear_velocity[0].tolist() == [1.0, 0.0, 0.0]
    assert state.linear_velocity[1].tolist() == [0.0, 0.0, 0.0]

    body.set_state(linear_velocity=torch.tensor([2.0, 0.0, 0.0]))
    state.refresh(body, 0.1)
    torch.testing.assert_close(state.linear_acceleration, torch.tensor([[10.0, 0.0, 0.0], [0.0, 0.0, 0.0]]))
