"""
Vehicle state tracking.

Measurement sources, highest priority first:
    1. State feed (odometry): pose, linear and angular velocity, timestamp
    2. IMU feed: orientation and angular velocity only
    3. The physics host (VehicleStateSource), queried each control tick

A quantity is always taken from exactly one source within a tick. Linear
acceleration is estimated by finite difference of the selected velocity
source and stays zero until two samples with a positive time gap exist.
"""
import torch
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from .commands import LatestValue
from .frames import quat_to_euler, rotate_vector


class VehicleStateSource(ABC):
    """
    Physics host capability interface for one (batched) rigid body.

    Vectors are world frame unless stated otherwise.
    """

    @property
    @abstractmethod
    def position(self) -> torch.Tensor:
        """World position [num_envs, 3]."""

    @property
    @abstractmethod
    def orientation(self) -> torch.Tensor:
        """Body orientation quaternion (w, x, y, z) [num_envs, 4]."""

    @property
    @abstractmethod
    def linear_velocity(self) -> torch.Tensor:
        """World linear velocity [num_envs, 3]."""

    @property
    @abstractmethod
    def angular_velocity(self) -> torch.Tensor:
        """World angular velocity [num_envs, 3]."""

    @property
    @abstractmethod
    def angular_acceleration(self) -> torch.Tensor:
        """World angular acceleration [num_envs, 3]."""

    @property
    @abstractmethod
    def mass(self) -> float:
        """Body mass (kg)."""

    @property
    @abstractmethod
    def inertia(self) -> torch.Tensor:
        """Principal moments of inertia [3] (kg*m^2)."""

    @property
    @abstractmethod
    def center_of_gravity(self) -> torch.Tensor:
        """Center of gravity offset from the link origin, body frame [3]."""

    @property
    @abstractmethod
    def gravity(self) -> torch.Tensor:
        """World gravity vector [3]."""

    @abstractmethod
    def add_force(self, force: torch.Tensor):
        """Apply a world frame force at the link origin [num_envs, 3]."""

    @abstractmethod
    def add_relative_force(self, force: torch.Tensor):
        """Apply a body frame force at the link origin [num_envs, 3]."""

    @abstractmethod
    def add_relative_torque(self, torque: torch.Tensor):
        """Apply a body frame torque [num_envs, 3]."""


@dataclass(frozen=True)
class StateSample:
    """Odometry message: pose + twist + stamp (seconds)."""
    position: torch.Tensor
    orientation: torch.Tensor
    linear_velocity: torch.Tensor
    angular_velocity: torch.Tensor
    stamp: float


@dataclass(frozen=True)
class ImuSample:
    """IMU message. angular_velocity is in the body frame."""
    orientation: torch.Tensor
    angular_velocity: torch.Tensor


class VehicleState:
    """
    Latest-known state of all environments plus the cache needed for the
    finite-difference acceleration estimate.
    """

    def __init__(
        self,
        num_envs: int,
        device: torch.device,
        use_state_feed: bool = False,
        use_imu_feed: bool = False,
    ):
        """
        Initialize vehicle state.

        Args:
            num_envs: Number of parallel environments
            device: Torch device
            use_state_feed: Take pose and velocities from the state feed
            use_imu_feed: Take orientation and angular velocity from the IMU
                feed (ignored for those quantities when the state feed is used)
        """
        self.num_envs = num_envs
        self.device = device
        self.use_state_feed = use_state_feed
        self.use_imu_feed = use_imu_feed and not use_state_feed

        self._state_feed: LatestValue[StateSample] = LatestValue()
        self._imu_feed: LatestValue[ImuSample] = LatestValue()

        self.position = torch.zeros(num_envs, 3, device=device)
        self.orientation = torch.zeros(num_envs, 4, device=device)
        self.linear_velocity = torch.zeros(num_envs, 3, device=device)
        self.angular_velocity = torch.zeros(num_envs, 3, device=device)
        self.angular_acceleration = torch.zeros(num_envs, 3, device=device)
        self.linear_acceleration = torch.zeros(num_envs, 3, device=device)
        self.euler = torch.zeros(num_envs, 3, device=device)
        self.last_update_time: Optional[float] = None
        self._has_velocity = torch.zeros(num_envs, dtype=torch.bool, device=device)
        self.reset()

    def reset(self, env_ids: Optional[torch.Tensor] = None):
        """
        Zero state and forget cached samples.

        Args:
            env_ids: Specific environments to reset (None = all). Pending feed
                samples and the feed timestamp are only dropped for a full reset.
        """
        if env_ids is None:
            env_ids = slice(None)
            self.last_update_time = None
            self._state_feed.take()
            self._imu_feed.take()
        self.position[env_ids] = 0.0
        self.orientation[env_ids] = 0.0
        self.orientation[env_ids, 0] = 1.0
        self.linear_velocity[env_ids] = 0.0
        self.angular_velocity[env_ids] = 0.0
        self.angular_acceleration[env_ids] = 0.0
        self.linear_acceleration[env_ids] = 0.0
        self.euler[env_ids] = 0.0
        self._has_velocity[env_ids] = False

    # -- Feeds (called from the transport) ------------------------------------

    def push_state(self, sample: StateSample):
        self._state_feed.set(sample)

    def push_imu(self, sample: ImuSample):
        self._imu_feed.set(sample)

    # -- Tick-side refresh ----------------------------------------------------

    def _finite_difference(self, velocity: torch.Tensor, dt: float) -> torch.Tensor:
        """(velocity - previous) / dt where a previous sample exists, else zero."""
        if dt <= 0.0:
            return torch.zeros_like(velocity)
        acceleration = (velocity - self.linear_velocity) / dt
        return torch.where(self._has_velocity.unsqueeze(1), acceleration, torch.zeros_like(acceleration))

    def _apply_state_sample(self, sample: StateSample):
        dt = 0.0 if self.last_update_time is None else sample.stamp - self.last_update_time
        self.last_update_time = sample.stamp

        velocity = sample.linear_velocity.to(self.device).expand(self.num_envs, 3).clone()
        self.linear_acceleration = self._finite_difference(velocity, dt)
        self.linear_velocity = velocity
        self._has_velocity.fill_(True)

        self.position = sample.position.to(self.device).expand(self.num_envs, 3).clone()
        self.orientation = sample.orientation.to(self.device).expand(self.num_envs, 4).clone()
        self.angular_velocity = sample.angular_velocity.to(self.device).expand(self.num_envs, 3).clone()

    def _apply_imu_sample(self, sample: ImuSample):
        self.orientation = sample.orientation.to(self.device).expand(self.num_envs, 4).clone()
        # IMU rates are body frame; keep the world frame convention internally
        body_rate = sample.angular_velocity.to(self.device).expand(self.num_envs, 3)
        self.angular_velocity = rotate_vector(self.orientation, body_rate)

    def refresh(self, source: VehicleStateSource, dt: float):
        """
        Bring the state up to date for one control tick.

        Args:
            source: Physics host used for quantities not covered by a feed
            dt: Control tick interval (s), > 0
        """
        if self.use_state_feed:
            sample = self._state_feed.take()
            if sample is not None:
                self._apply_state_sample(sample)
        else:
            if self.use_imu_feed:
                sample = self._imu_feed.take()
                if sample is not None:
                    self._apply_imu_sample(sample)
            else:
                self.orientation = source.orientation.clone()
                self.angular_velocity = source.angular_velocity.clone()
                self.angular_acceleration = source.angular_acceleration.clone()

            self.position = source.position.clone()
            velocity = source.linear_velocity.clone()
            self.linear_acceleration = self._finite_difference(velocity, dt)
            self.linear_velocity = velocity
            self._has_velocity.fill_(True)

        self.euler = quat_to_euler(self.orientation)
