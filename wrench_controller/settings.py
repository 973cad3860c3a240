"""
Load-time controller settings.

ControllerSettings.from_params() understands the flat parameter vocabulary of
the classic simulator plugin (bodyName, maxForce, rollProportionalGain, ...),
so existing model descriptions can be reused as plain dicts.
"""
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Mapping, Tuple

from .bank import Axis, GainSet, DEFAULT_GAINS, find_prefix
from .cascade import CascadeMode
from . import config


class ForceFrame(IntEnum):
    """Frame in which the commanded force is applied to the link."""
    WORLD = 0
    BODY = 1


# Controllers zeroed every tick while idle. Position integrators are kept.
IDLE_RESET_AXES: Tuple[Axis, ...] = (
    Axis.ROLL,
    Axis.PITCH,
    Axis.YAW,
    Axis.ROLL_RATE,
    Axis.PITCH_RATE,
    Axis.YAW_RATE,
    Axis.VELOCITY_X,
    Axis.VELOCITY_Y,
    Axis.VELOCITY_Z,
)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


@dataclass
class ControllerSettings:
    """Static configuration, read once when the controller is loaded."""
    body_name: str = ""
    gains: Dict[Axis, GainSet] = field(default_factory=lambda: dict(DEFAULT_GAINS))
    max_force: float = config.MAX_FORCE
    max_torque: float = config.MAX_TORQUE
    auto_engage: bool = True
    use_state_feed: bool = False
    use_imu_feed: bool = False
    cascade: CascadeMode = CascadeMode.VELOCITY_ATTITUDE
    update_rate: float = config.UPDATE_RATE
    force_frame: ForceFrame = ForceFrame.WORLD
    idle_reset_axes: Tuple[Axis, ...] = IDLE_RESET_AXES
    max_load_factor: float = config.MAX_LOAD_FACTOR

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "ControllerSettings":
        """
        Build settings from flat plugin-style parameters.

        Gain keys that are absent for an axis fall back to that axis' default
        gain set. A present stateTopic / imuTopic selects the matching feed.
        """
        gains = {}
        for axis in Axis:
            prefix = find_prefix(params, axis)
            if prefix is not None:
                gains[axis] = GainSet.from_params(params, prefix)
            else:
                gains[axis] = DEFAULT_GAINS[axis]

        cascade = params.get("cascade", CascadeMode.VELOCITY_ATTITUDE)
        if isinstance(cascade, str):
            cascade = CascadeMode.from_name(cascade)

        force_frame = params.get("forceFrame", ForceFrame.WORLD)
        if isinstance(force_frame, str):
            force_frame = ForceFrame[force_frame.strip().upper()]

        return cls(
            body_name=str(params.get("bodyName", "") or ""),
            gains=gains,
            max_force=float(params.get("maxForce", config.MAX_FORCE)),
            max_torque=float(params.get("maxTorque", config.MAX_TORQUE)),
            auto_engage=_as_bool(params.get("autoEngage", True)),
            use_state_feed=bool(params.get("stateTopic")),
            use_imu_feed=bool(params.get("imuTopic")),
            cascade=CascadeMode(cascade),
            update_rate=float(params.get("updateRate", config.UPDATE_RATE)),
            force_frame=ForceFrame(force_frame),
            max_load_factor=float(params.get("maxLoadFactor", config.MAX_LOAD_FACTOR)),
        )
