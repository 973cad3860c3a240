"""
Cascaded filtered-PID wrench controller for simulated rigid bodies.

This module provides a complete controller stack for one (batched) rigid body:
- Twelve filtered PID controllers addressable by axis for runtime retuning
- Two cascade policies (velocity -> attitude, full position cascade)
- Engage / shutdown state machine with auto-engage
- Vectorized torch operations for batch simulation

Usage:
    from wrench_controller import ControllerSettings, RigidBodyModel, RigidBodySim, WrenchController

    model = RigidBodyModel({"base_link": RigidBodySim(num_envs=1, device=device)})
    controller = WrenchController.load(model, ControllerSettings(body_name="base_link"))
    force, torque = controller.update(sim_time)
"""
from .controller import (
    WrenchController,
    EngageState,
    ControlTelemetry,
    ControllerLoadError,
    lever_arm_corrected_torque,
)
from .bank import Axis, ControllerBank, GainSet, ReconfigureRequest
from .cascade import CascadeMode, PositionCascade, VelocityAttitudeCascade
from .commands import CommandChannel, LatestValue, Twist
from .physics import RigidBodyModel, RigidBodySim
from .pid import FilteredPID
from .settings import ControllerSettings, ForceFrame
from .state import ImuSample, StateSample, VehicleState, VehicleStateSource
from .timer import UpdateTimer
from . import config
from . import frames

__all__ = [
    "WrenchController",
    "EngageState",
    "ControlTelemetry",
    "ControllerLoadError",
    "lever_arm_corrected_torque",
    "Axis",
    "ControllerBank",
    "GainSet",
    "ReconfigureRequest",
    "CascadeMode",
    "PositionCascade",
    "VelocityAttitudeCascade",
    "CommandChannel",
    "LatestValue",
    "Twist",
    "RigidBodyModel",
    "RigidBodySim",
    "FilteredPID",
    "ControllerSettings",
    "ForceFrame",
    "ImuSample",
    "StateSample",
    "VehicleState",
    "VehicleStateSource",
    "UpdateTimer",
    "config",
    "frames",
]
