"""
Controller bank: the fixed set of twelve filtered PID controllers.

Each controller is addressed by an Axis selector. The numeric values of the
selector are part of the reconfiguration wire format and must not change:

    1 velocity_x   2 position_x   3 velocity_y   4 position_y
    5 velocity_z   6 position_z   7 roll_rate    8 roll
    9 pitch_rate  10 pitch       11 yaw_rate    12 yaw
"""
import logging
import math
import torch
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple

from .pid import FilteredPID
from . import config

logger = logging.getLogger(__name__)


class Axis(IntEnum):
    """Controller selectors (reconfiguration wire values)."""
    VELOCITY_X = 1
    POSITION_X = 2
    VELOCITY_Y = 3
    POSITION_Y = 4
    VELOCITY_Z = 5
    POSITION_Z = 6
    ROLL_RATE = 7
    ROLL = 8
    PITCH_RATE = 9
    PITCH = 10
    YAW_RATE = 11
    YAW = 12

    @classmethod
    def from_selector(cls, selector) -> Optional["Axis"]:
        """Map a raw selector (int or integral float) to an Axis, None if invalid."""
        try:
            value = float(selector)
        except (TypeError, ValueError):
            return None
        if not math.isfinite(value) or value != int(value):
            return None
        try:
            return cls(int(value))
        except ValueError:
            return None


# Parameter name prefixes per axis (x and y share their gain sets). The first
# entry is the classic plugin name, later entries are accepted aliases.
PARAM_PREFIXES: Dict[Axis, Tuple[str, ...]] = {
    Axis.ROLL_RATE: ("roll_vel",),
    Axis.PITCH_RATE: ("pitch_vel",),
    Axis.YAW_RATE: ("yaw_vel",),
    Axis.ROLL: ("roll",),
    Axis.PITCH: ("pitch",),
    Axis.YAW: ("yaw",),
    Axis.VELOCITY_X: ("velocityXY",),
    Axis.VELOCITY_Y: ("velocityXY",),
    Axis.VELOCITY_Z: ("velocityZ",),
    Axis.POSITION_X: ("positionx", "positionXY"),
    Axis.POSITION_Y: ("positionx", "positionXY"),
    Axis.POSITION_Z: ("positionz", "positionZ"),
}


def find_prefix(params: Mapping[str, float], axis: Axis) -> Optional[str]:
    """First prefix of the axis with at least one `{prefix}<Field>` key in params."""
    for prefix in PARAM_PREFIXES[axis]:
        if any(key.startswith(prefix) and key[len(prefix):][:1].isupper() for key in params):
            return prefix
    return None


@dataclass(frozen=True)
class GainSet:
    """Static configuration of one filtered PID."""
    gain_p: float = 0.0
    gain_d: float = 0.0
    gain_i: float = 0.0
    time_constant: float = 0.0
    limit: float = -1.0

    @classmethod
    def from_params(cls, params: Mapping[str, float], prefix: str) -> "GainSet":
        """Read `{prefix}ProportionalGain`-style keys, defaulting missing ones."""
        return cls(
            gain_p=float(params.get(prefix + "ProportionalGain", 0.0)),
            gain_d=float(params.get(prefix + "DifferentialGain", 0.0)),
            gain_i=float(params.get(prefix + "IntegralGain", 0.0)),
            time_constant=float(params.get(prefix + "TimeConstant", 0.0)),
            limit=float(params.get(prefix + "Limit", -1.0)),
        )


def _gains(prefix: str) -> GainSet:
    return GainSet(
        gain_p=getattr(config, f"PID_{prefix}_KP"),
        gain_d=getattr(config, f"PID_{prefix}_KD"),
        gain_i=getattr(config, f"PID_{prefix}_KI"),
        time_constant=getattr(config, f"PID_{prefix}_TIME_CONSTANT"),
        limit=getattr(config, f"PID_{prefix}_LIMIT"),
    )


DEFAULT_GAINS: Dict[Axis, GainSet] = {
    Axis.VELOCITY_X: _gains("VEL_XY"),
    Axis.POSITION_X: _gains("POS_XY"),
    Axis.VELOCITY_Y: _gains("VEL_XY"),
    Axis.POSITION_Y: _gains("POS_XY"),
    Axis.VELOCITY_Z: _gains("VEL_Z"),
    Axis.POSITION_Z: _gains("POS_Z"),
    Axis.ROLL_RATE: _gains("ROLL_RATE"),
    Axis.ROLL: _gains("ROLL"),
    Axis.PITCH_RATE: _gains("PITCH_RATE"),
    Axis.PITCH: _gains("PITCH"),
    Axis.YAW_RATE: _gains("YAW_RATE"),
    Axis.YAW: _gains("YAW"),
}


def gains_from_params(params: Mapping[str, float]) -> Dict[Axis, GainSet]:
    """Build a full gain table from flat plugin-style parameters."""
    return {
        axis: GainSet.from_params(params, find_prefix(params, axis) or PARAM_PREFIXES[axis][0])
        for axis in Axis
    }


@dataclass(frozen=True)
class ReconfigureRequest:
    """Runtime gain update for one controller."""
    selector: float
    gain_p: float
    gain_d: float
    gain_i: float
    time_constant: float

    @property
    def axis(self) -> Optional[Axis]:
        return Axis.from_selector(self.selector)

    @classmethod
    def from_twist(cls, linear, angular) -> "ReconfigureRequest":
        """
        Decode the twist-encoded wire format.

        linear = (selector, p, d), angular = (i, time_constant, unused)
        """
        return cls(
            selector=float(linear[0]),
            gain_p=float(linear[1]),
            gain_d=float(linear[2]),
            gain_i=float(angular[0]),
            time_constant=float(angular[1]),
        )


class ControllerBank:
    """
    Ordered mapping Axis -> FilteredPID.

    All twelve controllers always exist; selectors are disjoint and total.
    """

    def __init__(
        self,
        num_envs: int,
        device: torch.device,
        gains: Optional[Mapping[Axis, GainSet]] = None,
    ):
        """
        Initialize the bank.

        Args:
            num_envs: Number of parallel environments
            device: Torch device
            gains: Gain table (missing axes fall back to DEFAULT_GAINS)
        """
        self.num_envs = num_envs
        self.device = device
        self._controllers: Dict[Axis, FilteredPID] = {
            axis: FilteredPID(num_envs, device) for axis in Axis
        }
        self.configure(gains or {})

    def configure(self, gains: Mapping[Axis, GainSet]):
        """Load-time configuration. Runtime state is kept."""
        for axis, pid in self._controllers.items():
            g = gains.get(axis, DEFAULT_GAINS[axis])
            pid.configure(g.gain_p, g.gain_d, g.gain_i, g.time_constant, g.limit)

    def __getitem__(self, axis: Axis) -> FilteredPID:
        return self._controllers[axis]

    def __iter__(self) -> Iterator[Axis]:
        return iter(self._controllers)

    def __len__(self) -> int:
        return len(self._controllers)

    def items(self) -> Iterable[Tuple[Axis, FilteredPID]]:
        return self._controllers.items()

    def reset(
        self,
        axes: Optional[Iterable[Axis]] = None,
        env_ids: Optional[torch.Tensor] = None,
    ):
        """
        Reset runtime state of the given axes (None = all twelve).

        Args:
            axes: Axes to reset
            env_ids: Specific environment indices to reset (None = all)
        """
        for axis in (self._controllers if axes is None else axes):
            self._controllers[axis].reset(env_ids)

    def reconfigure(self, request: ReconfigureRequest) -> bool:
        """
        Apply a runtime gain update to exactly the selected controller.

        Returns:
            False if the selector is not a valid Axis (nothing is changed)
        """
        axis = request.axis
        if axis is None:
            logger.warning("Ignoring reconfigure request with invalid selector %r", request.selector)
            return False
        self._controllers[axis].update_gains(
            request.gain_p, request.gain_d, request.gain_i, request.time_constant
        )
        logger.debug(
            "Reconfigured %s: p=%g d=%g i=%g time_constant=%g",
            axis.name.lower(), request.gain_p, request.gain_d, request.gain_i, request.time_constant,
        )
        return True
