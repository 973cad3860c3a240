"""
Asynchronous command inputs.

Producers (transport callbacks, possibly on other threads) write into
single-slot latest-value cells. The control loop takes one snapshot per
simulation step, so a multi-field command is never observed half-written.
"""
import logging
import threading
import torch
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Dict, Generic, List, Optional, Sequence, TypeVar, Union

from .bank import Axis, ReconfigureRequest

logger = logging.getLogger(__name__)

T = TypeVar("T")
VectorLike = Union[torch.Tensor, Sequence[float]]


class LatestValue(Generic[T]):
    """Single-slot cell with last-write-wins semantics."""

    def __init__(self, initial: Optional[T] = None):
        self._lock = threading.Lock()
        self._value = initial

    def set(self, value: T):
        with self._lock:
            self._value = value

    def get(self) -> Optional[T]:
        with self._lock:
            return self._value

    def take(self) -> Optional[T]:
        """Return the current value and clear the cell."""
        with self._lock:
            value, self._value = self._value, None
            return value


@dataclass(frozen=True)
class Twist:
    """Six-dof command: linear [num_envs, 3] and angular [num_envs, 3]."""
    linear: torch.Tensor
    angular: torch.Tensor

    @classmethod
    def zeros(cls, num_envs: int, device: torch.device) -> "Twist":
        return cls(
            linear=torch.zeros(num_envs, 3, device=device),
            angular=torch.zeros(num_envs, 3, device=device),
        )

    @classmethod
    def from_vectors(
        cls,
        num_envs: int,
        device: torch.device,
        linear: Optional[VectorLike] = None,
        angular: Optional[VectorLike] = None,
    ) -> "Twist":
        """Build a twist, broadcasting [3] vectors to all environments."""
        return cls(
            linear=_as_batch(linear, num_envs, device),
            angular=_as_batch(angular, num_envs, device),
        )

    def clone(self) -> "Twist":
        return Twist(self.linear.clone(), self.angular.clone())


def _as_batch(value: Optional[VectorLike], num_envs: int, device: torch.device) -> torch.Tensor:
    if value is None:
        return torch.zeros(num_envs, 3, device=device)
    value = torch.as_tensor(value, dtype=torch.float32, device=device)
    if value.shape[-1] != 3:
        raise ValueError(f"Expected a 3-vector, got shape {tuple(value.shape)}")
    # Own the memory so later producer writes cannot leak into the snapshot
    return value.expand(num_envs, 3).clone()


class EngageTrigger(IntEnum):
    """External engage state triggers."""
    SHUTDOWN = 0
    ENGAGE = 1


@dataclass
class CommandSnapshot:
    """Everything the control loop consumes at the start of one step."""
    velocity: Twist
    position: Twist
    trigger: Optional[EngageTrigger] = None
    reconfigure: List[ReconfigureRequest] = field(default_factory=list)


class CommandChannel:
    """
    Latest-value holders for velocity/position commands, engage triggers and
    pending gain reconfiguration requests.
    """

    def __init__(self, num_envs: int, device: torch.device):
        self.num_envs = num_envs
        self.device = device
        self._velocity: LatestValue[Twist] = LatestValue(Twist.zeros(num_envs, device))
        self._position: LatestValue[Twist] = LatestValue(Twist.zeros(num_envs, device))
        self._trigger: LatestValue[EngageTrigger] = LatestValue()
        # One pending request per controller, last write wins
        self._reconfigure_lock = threading.Lock()
        self._reconfigure: Dict[Axis, ReconfigureRequest] = {}

    def set_velocity_command(
        self,
        linear: Optional[VectorLike] = None,
        angular: Optional[VectorLike] = None,
    ):
        """
        Set velocity command.

        Args:
            linear: Linear velocity (m/s) [3] or [num_envs, 3]
            angular: Angular velocity (rad/s) [3] or [num_envs, 3]
        """
        self._velocity.set(Twist.from_vectors(self.num_envs, self.device, linear, angular))

    def set_position_command(
        self,
        linear: Optional[VectorLike] = None,
        angular: Optional[VectorLike] = None,
    ):
        """
        Set position command. linear.z > 0.1 doubles as the auto-engage trigger.

        Args:
            linear: Position (m) [3] or [num_envs, 3]
            angular: Attitude (roll, pitch, yaw in rad) [3] or [num_envs, 3]
        """
        self._position.set(Twist.from_vectors(self.num_envs, self.device, linear, angular))

    def engage(self):
        self._trigger.set(EngageTrigger.ENGAGE)

    def shutdown(self):
        self._trigger.set(EngageTrigger.SHUTDOWN)

    def request_reconfigure(self, request: ReconfigureRequest) -> bool:
        """
        Queue a gain update for the next step.

        Returns:
            False if the selector does not name a controller
        """
        axis = request.axis
        if axis is None:
            logger.warning("Ignoring reconfigure request with invalid selector %r", request.selector)
            return False
        with self._reconfigure_lock:
            self._reconfigure[axis] = request
        return True

    @property
    def velocity_command(self) -> Twist:
        return self._velocity.get()

    @property
    def position_command(self) -> Twist:
        return self._position.get()

    def snapshot(self) -> CommandSnapshot:
        """Read commands and drain pending triggers/reconfigurations."""
        with self._reconfigure_lock:
            pending = list(self._reconfigure.values())
            self._reconfigure.clear()
        return CommandSnapshot(
            velocity=self._velocity.get(),
            position=self._position.get(),
            trigger=self._trigger.take(),
            reconfigure=pending,
        )

    def reset(self):
        """Clear commands and anything pending."""
        self._velocity.set(Twist.zeros(self.num_envs, self.device))
        self._position.set(Twist.zeros(self.num_envs, self.device))
        self._trigger.take()
        with self._reconfigure_lock:
            self._reconfigure.clear()
