"""
Main controller module: turns commands and measured rigid-body state into a
body wrench once per control tick.

This is the primary entry point, providing:
1. Engage / shutdown state machine (with auto-engage on climb command)
2. Cascaded filtered PID control through the selected cascade policy
3. Force/torque application to the physics host, corrected for the CoG lever arm

The controller is fully vectorized for batch simulation.
"""
import logging
import torch
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Optional, Tuple

from .bank import Axis, ControllerBank, ReconfigureRequest
from .cascade import TickContext, make_cascade
from .commands import CommandChannel, EngageTrigger, Twist
from .frames import gravity_in_body, heading_quaternion, rotate_vector_reverse
from .physics import RigidBodyModel
from .settings import ControllerSettings, ForceFrame
from .state import ImuSample, StateSample, VehicleState, VehicleStateSource
from .timer import UpdateTimer
from . import config

logger = logging.getLogger(__name__)


class ControllerLoadError(RuntimeError):
    """Raised when the controller cannot be attached to its body."""


class EngageState(IntEnum):
    """Motor engage states."""
    IDLE = 0
    RUNNING = 1


@dataclass
class ControlTelemetry:
    """Published every executed tick."""
    measured_velocity: Twist           # world linear / angular velocity
    effective_velocity_command: Twist  # velocity command after the cascade
    force: torch.Tensor
    torque: torch.Tensor
    load_factor: torch.Tensor


def lever_arm_corrected_torque(
    torque: torch.Tensor, force: torch.Tensor, center_of_gravity: torch.Tensor
) -> torch.Tensor:
    """Torque to apply at the link origin: torque - cog x force."""
    cog = center_of_gravity.expand_as(force)
    return torque - torch.linalg.cross(cog, force, dim=-1)


class WrenchController:
    """
    Complete rigid-body wrench controller.

    Matches the control flow:
        commands -> state refresh -> engage logic -> cascade -> saturation -> wrench

    Units are SI throughout: angles in rad, rates in rad/s, forces in N.
    """

    def __init__(
        self,
        link: VehicleStateSource,
        settings: Optional[ControllerSettings] = None,
        num_envs: int = 1,
        device: Optional[torch.device] = None,
        enable_debug: bool = False,
    ):
        """
        Initialize the controller on a resolved link.

        Args:
            link: Physics host for the controlled body
            settings: Static configuration (defaults if None)
            num_envs: Number of parallel environments
            device: Torch device (defaults to CPU)
            enable_debug: Keep cloned intermediate tensors in last_debug
        """
        if link is None:
            raise ControllerLoadError("No link to control")
        if num_envs <= 0:
            raise ValueError("num_envs must be positive")

        self.settings = settings or ControllerSettings()
        self.link = link
        self.num_envs = num_envs
        self.device = device if device is not None else torch.device("cpu")
        self.enable_debug = enable_debug

        # Controllers and cascade policy
        self.bank = ControllerBank(num_envs, self.device, self.settings.gains)
        self.cascade = make_cascade(self.settings.cascade, self.bank)

        # Inputs
        self.commands = CommandChannel(num_envs, self.device)
        self.state = VehicleState(
            num_envs,
            self.device,
            use_state_feed=self.settings.use_state_feed,
            use_imu_feed=self.settings.use_imu_feed,
        )
        self.timer = UpdateTimer(self.settings.update_rate)

        # Physical parameters, loaded once
        self.mass = float(link.mass)
        self.inertia = link.inertia.to(self.device)
        self.center_of_gravity = link.center_of_gravity.to(self.device)

        # Engage state per environment
        self.engage_state = torch.full(
            (num_envs,), EngageState.IDLE, dtype=torch.int32, device=self.device
        )

        # Outputs
        self.force = torch.zeros(num_envs, 3, device=self.device)
        self.torque = torch.zeros(num_envs, 3, device=self.device)
        self.telemetry: Optional[ControlTelemetry] = None

        # Debug storage for external tools (opt-in to avoid per-step clones)
        self.last_debug = {}

        if self.settings.use_state_feed:
            logger.info("Using the state feed as source of state information.")
        elif self.settings.use_imu_feed:
            logger.info("Using the imu feed as source of orientation and angular velocity.")

        self.reset()

    @classmethod
    def load(
        cls,
        model: RigidBodyModel,
        settings: Optional[ControllerSettings] = None,
        **kwargs,
    ) -> "WrenchController":
        """
        Resolve the configured body on the model and build the controller.

        Raises:
            ControllerLoadError: If the body does not exist on the model
        """
        settings = settings or ControllerSettings()
        link = model.get_link(settings.body_name)
        if link is None:
            logger.critical("bodyName: %s does not exist", settings.body_name)
            raise ControllerLoadError(f"bodyName: {settings.body_name} does not exist")
        return cls(link, settings, **kwargs)

    # -- Engage state -------------------------------------------------------------

    @property
    def running(self) -> torch.Tensor:
        """Bool mask [num_envs] of engaged environments."""
        return self.engage_state == EngageState.RUNNING

    def engage(self):
        """Request engage; processed at the start of the next update()."""
        self.commands.engage()

    def shutdown(self):
        """Request shutdown; processed at the start of the next update()."""
        self.commands.shutdown()

    def _apply_trigger(self, trigger: EngageTrigger):
        if trigger == EngageTrigger.ENGAGE:
            logger.info("Engaging motors!")
            self.engage_state[:] = EngageState.RUNNING
        else:
            logger.info("Shutting down motors!")
            self.engage_state[:] = EngageState.IDLE

    # -- External feeds -----------------------------------------------------------

    def set_velocity_command(self, linear=None, angular=None):
        self.commands.set_velocity_command(linear, angular)

    def set_position_command(self, linear=None, angular=None):
        self.commands.set_position_command(linear, angular)

    def reconfigure(self, request: ReconfigureRequest) -> bool:
        return self.commands.request_reconfigure(request)

    def push_state(self, sample: StateSample):
        self.state.push_state(sample)

    def push_imu(self, sample: ImuSample):
        self.state.push_imu(sample)

    # -- Control ------------------------------------------------------------------

    def reset(self, env_ids: Optional[torch.Tensor] = None):
        """
        Return to a freshly loaded controller: all twelve controllers zeroed,
        zero wrench, no cached state and motors idle.

        Args:
            env_ids: Specific environments to reset (None = all). Commands,
                pending triggers, the update timer and telemetry are shared by
                all environments and only cleared by a full reset.
        """
        self.bank.reset(env_ids=env_ids)
        self.state.reset(env_ids)
        if env_ids is None:
            self.force.zero_()
            self.torque.zero_()
            self.engage_state[:] = EngageState.IDLE
            self.commands.reset()
            self.timer.reset()
            self.telemetry = None
        else:
            self.force[env_ids] = 0.0
            self.torque[env_ids] = 0.0
            self.engage_state[env_ids] = EngageState.IDLE

    def _consume_commands(self) -> Tuple[Twist, Twist, bool]:
        snapshot = self.commands.snapshot()
        for request in snapshot.reconfigure:
            self.bank.reconfigure(request)
        triggered = snapshot.trigger is not None
        if triggered:
            self._apply_trigger(snapshot.trigger)
        return snapshot.velocity, snapshot.position, triggered

    def _auto_engage(self, position_command: Twist):
        climb = position_command.linear[:, 2] > config.AUTO_ENGAGE_THRESHOLD
        engage = climb & ~self.running
        if engage.any():
            logger.info("Engaging motors!")
            self.engage_state[engage] = EngageState.RUNNING

    def tick(
        self,
        dt: float,
        velocity_command: Optional[Twist] = None,
        position_command: Optional[Twist] = None,
        triggered: bool = False,
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Run the control law once.

        Args:
            dt: Control interval (s). Nothing happens for dt <= 0.
            velocity_command: Velocity command snapshot (latest if None)
            position_command: Position command snapshot (latest if None)
            triggered: An explicit engage/shutdown was processed this step,
                which suppresses the auto-engage transition

        Returns:
            Tuple of (force, torque), each [num_envs, 3]
        """
        if dt <= 0.0:
            return self.force, self.torque

        if velocity_command is None:
            velocity_command = self.commands.velocity_command
        if position_command is None:
            position_command = self.commands.position_command

        # --- State ---
        state = self.state
        state.refresh(self.link, dt)

        # --- Gravity and control frames ---
        _, gravity, load_factor = gravity_in_body(
            state.orientation, self.link.gravity.to(self.device), self.settings.max_load_factor
        )
        heading = heading_quaternion(state.euler[:, 2])
        velocity_xy = rotate_vector_reverse(heading, state.linear_velocity)
        acceleration_xy = rotate_vector_reverse(heading, state.linear_acceleration)
        angular_velocity_body = rotate_vector_reverse(state.orientation, state.angular_velocity)

        # --- Engage logic ---
        if self.settings.auto_engage and not triggered:
            self._auto_engage(position_command)
        running = self.running

        force = torch.zeros(self.num_envs, 3, device=self.device)
        torque = torch.zeros(self.num_envs, 3, device=self.device)
        effective = velocity_command

        # --- Cascade ---
        if running.any():
            ctx = TickContext(
                dt=dt,
                state=state,
                velocity_command=velocity_command,
                position_command=position_command,
                gravity=gravity,
                load_factor=load_factor,
                velocity_xy=velocity_xy,
                acceleration_xy=acceleration_xy,
                angular_velocity_body=angular_velocity_body,
                mass=self.mass,
                inertia=self.inertia,
                max_force=self.settings.max_force,
                max_torque=self.settings.max_torque,
                active=running,
            )
            cascade_force, cascade_torque, effective = self.cascade.compute(ctx)
            mask = running.unsqueeze(1)
            force = torch.where(mask, cascade_force, force)
            torque = torch.where(mask, cascade_torque, torque)

        # --- Idle environments ---
        idle = ~running
        if idle.any():
            self.bank.reset(self.settings.idle_reset_axes, torch.where(idle)[0])

        self.force = force
        self.torque = torque
        self.telemetry = ControlTelemetry(
            measured_velocity=Twist(state.linear_velocity.clone(), state.angular_velocity.clone()),
            effective_velocity_command=effective,
            force=force,
            torque=torque,
            load_factor=load_factor,
        )

        # Store debug info for external viewers when enabled.
        if self.enable_debug:
            self.last_debug = {
                "euler": state.euler.detach().clone(),
                "velocity_xy": velocity_xy.detach().clone(),
                "acceleration_xy": acceleration_xy.detach().clone(),
                "angular_velocity_body": angular_velocity_body.detach().clone(),
                "gravity": gravity.detach().clone(),
                "load_factor": load_factor.detach().clone(),
                "running": running.detach().clone(),
                "force": force.detach().clone(),
                "torque": torque.detach().clone(),
            }

        return force, torque

    def apply_wrench(self):
        """Apply the current wrench to the link, torque corrected for the CoG offset."""
        if self.settings.force_frame == ForceFrame.BODY:
            self.link.add_relative_force(self.force)
        else:
            self.link.add_force(self.force)
        self.link.add_relative_torque(
            lever_arm_corrected_torque(self.torque, self.force, self.center_of_gravity)
        )

    def update(self, sim_time: float) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        One host simulation step.

        Commands are consumed on every step; the control law only runs when the
        update timer reports a positive interval. The wrench is applied on every
        step, carried over from the last executed tick otherwise.

        Args:
            sim_time: Current simulation time (s)

        Returns:
            Tuple of (force, torque) as applied this step
        """
        velocity_command, position_command, triggered = self._consume_commands()

        dt = self.timer.update(sim_time)
        if dt > 0.0:
            self.tick(dt, velocity_command, position_command, triggered)

        self.apply_wrench()
        return self.force, self.torque

    def get_debug_info(self) -> Dict[str, Any]:
        """Get debug information about controller state."""
        return {
            "engage_state": self.engage_state.cpu().numpy(),
            "force": self.force.cpu().numpy(),
            "torque": self.torque.cpu().numpy(),
            "gains": {axis.name.lower(): pid.gains for axis, pid in self.bank.items()},
        }

    def set_gains(self, params: Dict[str, Dict[str, float]]):
        """
        Update PID gains at runtime by axis name (e.g. "roll_rate", "velocity_x").
        Each entry may include p, d, i, time_constant; missing keys keep their value.
        """
        for name, cfg in params.items():
            try:
                axis = Axis[name.upper()]
            except KeyError:
                logger.warning("Ignoring gains for unknown axis %r", name)
                continue
            gain_p, gain_d, gain_i, time_constant, _ = self.bank[axis].gains
            self.commands.request_reconfigure(
                ReconfigureRequest(
                    selector=int(axis),
                    gain_p=cfg.get("p", gain_p),
                    gain_d=cfg.get("d", gain_d),
                    gain_i=cfg.get("i", gain_i),
                    time_constant=cfg.get("time_constant", time_constant),
                )
            )
