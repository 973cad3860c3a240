"""
Cascade policies: how the controller bank turns commands into a wrench.

Two mutually exclusive strategies share the ControllerBank and the frame
helpers. One is chosen at configuration time.

VelocityAttitudeCascade:
    velocity (heading frame) -> tilt angle -> torque
    yaw rate command         -> torque
    vertical velocity        -> thrust (+ gravity compensation), floored at 0

PositionCascade:
    position -> velocity -> force (+ gravity compensation on z)
    attitude -> angular rate -> torque
"""
import torch
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Tuple

from .bank import Axis, ControllerBank
from .commands import Twist
from .state import VehicleState
from . import config


class CascadeMode(IntEnum):
    """Configuration-time cascade selection."""
    VELOCITY_ATTITUDE = 0  # Velocity command -> attitude -> torque
    POSITION = 1           # Position command -> velocity -> force, attitude -> rate -> torque

    @classmethod
    def from_name(cls, name: str) -> "CascadeMode":
        try:
            return cls[name.strip().upper()]
        except KeyError:
            raise ValueError(f"Unknown cascade mode: {name!r}") from None


@dataclass
class TickContext:
    """Per-tick quantities shared by both cascades."""
    dt: float
    state: VehicleState
    velocity_command: Twist
    position_command: Twist
    gravity: torch.Tensor                # |g| [N]
    load_factor: torch.Tensor            # [N]
    velocity_xy: torch.Tensor            # heading frame [N, 3]
    acceleration_xy: torch.Tensor        # heading frame [N, 3]
    angular_velocity_body: torch.Tensor  # body frame [N, 3]
    mass: float
    inertia: torch.Tensor                # principal moments [3]
    max_force: float = config.MAX_FORCE
    max_torque: float = config.MAX_TORQUE
    active: Optional[torch.Tensor] = None  # bool [N], environments being controlled


class Cascade(ABC):
    """Base class for a cascade policy."""

    mode: CascadeMode

    def __init__(self, bank: ControllerBank):
        self.bank = bank

    @abstractmethod
    def compute(self, ctx: TickContext) -> Tuple[torch.Tensor, torch.Tensor, Twist]:
        """
        Run the cascade for one tick.

        Returns:
            Tuple of (force [N, 3], torque [N, 3], effective velocity command)
        """


class VelocityAttitudeCascade(Cascade):
    """
    Velocity command drives tilt; attitude PIDs produce torque directly.

    The horizontal velocity loop runs in the heading-aligned frame so that yaw
    does not couple into roll/pitch.
    """

    mode = CascadeMode.VELOCITY_ATTITUDE

    def compute(self, ctx: TickContext) -> Tuple[torch.Tensor, torch.Tensor, Twist]:
        bank = self.bank
        dt = ctx.dt
        active = ctx.active
        cmd = ctx.velocity_command
        state = ctx.state
        euler = state.euler

        # Horizontal velocity -> desired tilt (rad), none without gravity
        inverse_gravity = torch.where(
            ctx.gravity > 0.0, 1.0 / ctx.gravity.clamp_min(1e-9), torch.zeros_like(ctx.gravity)
        )
        pitch_command = bank[Axis.VELOCITY_X].update(
            cmd.linear[:, 0], ctx.velocity_xy[:, 0], ctx.acceleration_xy[:, 0], dt, active
        ) * inverse_gravity
        roll_command = -bank[Axis.VELOCITY_Y].update(
            cmd.linear[:, 1], ctx.velocity_xy[:, 1], ctx.acceleration_xy[:, 1], dt, active
        ) * inverse_gravity

        # Tilt -> torque, yaw rate -> torque
        torque = torch.zeros_like(state.linear_velocity)
        torque[:, 0] = ctx.inertia[0] * bank[Axis.ROLL].update(
            roll_command, euler[:, 0], ctx.angular_velocity_body[:, 0], dt, active
        )
        torque[:, 1] = ctx.inertia[1] * bank[Axis.PITCH].update(
            pitch_command, euler[:, 1], ctx.angular_velocity_body[:, 1], dt, active
        )
        torque[:, 2] = ctx.inertia[2] * bank[Axis.YAW].update(
            cmd.angular[:, 2], state.angular_velocity[:, 2], 0.0, dt, active
        )

        # Vertical velocity -> thrust with gravity compensation
        force = torch.zeros_like(state.linear_velocity)
        force[:, 2] = ctx.mass * (
            bank[Axis.VELOCITY_Z].update(
                cmd.linear[:, 2], state.linear_velocity[:, 2], state.linear_acceleration[:, 2], dt, active
            )
            + ctx.load_factor * ctx.gravity
        )
        if ctx.max_force > 0.0:
            force[:, 2] = torch.clamp(force[:, 2], max=ctx.max_force)
        # No downward thrust
        force[:, 2] = torch.clamp(force[:, 2], min=0.0)

        return force, torque, cmd.clone()


class PositionCascade(Cascade):
    """
    Full position cascade with per-axis force output.

    Forces and torques are saturated component-wise. The vertical force gets
    an extra VERTICAL_FORCE_MARGIN on top of max_force.
    """

    mode = CascadeMode.POSITION

    def __init__(self, bank: ControllerBank, vertical_margin: float = config.VERTICAL_FORCE_MARGIN):
        super().__init__(bank)
        self.vertical_margin = vertical_margin

    def position_control(self, ctx: TickContext) -> torch.Tensor:
        """Position error -> world velocity setpoint [N, 3]."""
        bank = self.bank
        state = ctx.state
        target = ctx.position_command.linear
        velocity = torch.stack(
            [
                bank[axis].update(
                    target[:, i], state.position[:, i], state.linear_velocity[:, i], ctx.dt, ctx.active
                )
                for i, axis in enumerate((Axis.POSITION_X, Axis.POSITION_Y, Axis.POSITION_Z))
            ],
            dim=1,
        )
        return velocity

    def velocity_control(self, ctx: TickContext, velocity_setpoint: torch.Tensor) -> torch.Tensor:
        """World velocity error -> force [N, 3] (gravity compensated on z)."""
        bank = self.bank
        state = ctx.state
        force = torch.stack(
            [
                bank[axis].update(
                    velocity_setpoint[:, i],
                    state.linear_velocity[:, i],
                    state.linear_acceleration[:, i],
                    ctx.dt,
                    ctx.active,
                )
                for i, axis in enumerate((Axis.VELOCITY_X, Axis.VELOCITY_Y, Axis.VELOCITY_Z))
            ],
            dim=1,
        )
        force[:, 2] = force[:, 2] + ctx.load_factor * ctx.gravity
        return ctx.mass * force

    def attitude_control(self, ctx: TickContext) -> torch.Tensor:
        """Attitude error -> angular rate setpoint [N, 3]."""
        bank = self.bank
        state = ctx.state
        target = ctx.position_command.angular
        return torch.stack(
            [
                bank[axis].update(
                    target[:, i], state.euler[:, i], state.angular_velocity[:, i], ctx.dt, ctx.active
                )
                for i, axis in enumerate((Axis.ROLL, Axis.PITCH, Axis.YAW))
            ],
            dim=1,
        )

    def rate_control(self, ctx: TickContext, rate_setpoint: torch.Tensor) -> torch.Tensor:
        """Angular rate error -> torque [N, 3] (inertia scaled)."""
        bank = self.bank
        state = ctx.state
        torque = torch.stack(
            [
                bank[axis].update(
                    rate_setpoint[:, i],
                    state.angular_velocity[:, i],
                    state.angular_acceleration[:, i],
                    ctx.dt,
                    ctx.active,
                )
                for i, axis in enumerate((Axis.ROLL_RATE, Axis.PITCH_RATE, Axis.YAW_RATE))
            ],
            dim=1,
        )
        return ctx.inertia * torque

    def saturate(self, ctx: TickContext, force: torch.Tensor, torque: torch.Tensor) -> Tuple[torch.Tensor, torch.Tensor]:
        if ctx.max_force > 0.0:
            force_limit = torch.full((3,), ctx.max_force, device=force.device)
            force_limit[2] += self.vertical_margin
            force = torch.maximum(torch.minimum(force, force_limit), -force_limit)
        if ctx.max_torque > 0.0:
            torque = torch.clamp(torque, -ctx.max_torque, ctx.max_torque)
        return force, torque

    def compute(self, ctx: TickContext) -> Tuple[torch.Tensor, torch.Tensor, Twist]:
        # Position -> Velocity -> Force
        velocity_setpoint = self.position_control(ctx)
        force = self.velocity_control(ctx, velocity_setpoint)

        # Attitude -> Rate -> Torque
        rate_setpoint = self.attitude_control(ctx)
        torque = self.rate_control(ctx, rate_setpoint)

        force, torque = self.saturate(ctx, force, torque)
        return force, torque, Twist(velocity_setpoint, rate_setpoint)


CASCADES = {
    CascadeMode.VELOCITY_ATTITUDE: VelocityAttitudeCascade,
    CascadeMode.POSITION: PositionCascade,
}


def make_cascade(mode: CascadeMode, bank: ControllerBank) -> Cascade:
    return CASCADES[CascadeMode(mode)](bank)
