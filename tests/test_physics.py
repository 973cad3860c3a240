"""Tests for the built-in rigid body host."""
import math

import pytest
import torch

from wrench_controller import RigidBodyModel, RigidBodySim
from wrench_controller.frames import quat_from_euler


def test_free_fall(body):
    body.step(0.1)
    assert body.linear_velocity[0, 2].item() == pytest.approx(-0.981, rel=1e-5)
    assert body.sim_time == pytest.approx(0.1)


def test_hover_force_cancels_gravity(body):
    for _ in range(10):
        body.add_force(torch.tensor([[0.0, 0.0, body.mass * 9.81]]))
        body.step(0.01)
    assert body.linear_velocity.abs().max().item() < 1e-5


def test_wrench_cleared_after_step(body):
    body.add_force(torch.tensor([[1.0, 0.0, 0.0]]))
    body.add_relative_torque(torch.tensor([[0.0, 0.0, 1.0]]))
    body.step(0.01)
    assert body.applied_force.abs().sum().item() == 0.0
    assert body.applied_torque.abs().sum().item() == 0.0


def test_yaw_torque_spins_body(body):
    body.add_relative_torque(torch.tensor([[0.0, 0.0, 0.5]]))
    body.step(0.01)
    expected = 0.5 / body.inertia[2].item() * 0.01
    assert body.angular_velocity[0, 2].item() == pytest.approx(expected, rel=1e-4)
    assert body.angular_acceleration[0, 2].item() == pytest.approx(0.5 / body.inertia[2].item(), rel=1e-4)


def test_relative_force_follows_heading(body):
    yaw = quat_from_euler(torch.tensor(0.0), torch.tensor(0.0), torch.tensor(math.pi / 2))
    body.set_state(orientation=yaw)
    body.add_relative_force(torch.tensor([[2.0, 0.0, 0.0]]))
    torch.testing.assert_close(body.applied_force, torch.tensor([[0.0, 2.0, 0.0]]), atol=1e-6, rtol=0)


def test_ground_plane(device):
    grounded = RigidBodySim(2, device)
    for _ in range(5):
        grounded.step(0.01)
    assert grounded.position[:, 2].tolist() == [0.0, 0.0]
    assert grounded.linear_velocity[:, 2].tolist() == [0.0, 0.0]


def test_invalid_arguments(device, body):
    with pytest.raises(ValueError):
        RigidBodySim(1, device, mass=0.0)
    with pytest.raises(ValueError):
        body.step(0.0)


def test_model_link_lookup(body):
    model = RigidBodyModel({"base_link": body})
    assert model.get_link("base_link") is body
    assert model.get_link("") is body
    assert model.get_link(None) is body
    assert model.get_link("rotor_0") is None
    assert RigidBodyModel({}).get_link("") is None
