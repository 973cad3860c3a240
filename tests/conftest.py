import pytest
import torch

from wrench_controller import ControllerSettings, RigidBodyModel, RigidBodySim, WrenchController


@pytest.fixture
def device():
    return torch.device("cpu")


@pytest.fixture
def body(device):
    """Single free-flying body without ground contact."""
    return RigidBodySim(1, device, ground_plane=False)


@pytest.fixture
def model(body):
    return RigidBodyModel({"base_link": body})


@pytest.fixture
def make_controller(model):
    """Factory: controller on the shared body with settings overrides."""

    def _make(**overrides):
        overrides.setdefault("body_name", "base_link")
        return WrenchController.load(model, ControllerSettings(**overrides))

    return _make
