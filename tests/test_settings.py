"""Tests for load-time settings parsing."""
import pytest

from wrench_controller import Axis, CascadeMode, ControllerSettings, ForceFrame, GainSet, WrenchController
from wrench_controller.bank import DEFAULT_GAINS


def test_defaults_match_plain_settings():
    assert ControllerSettings.from_params({}) == ControllerSettings()


def test_plugin_parameters():
    settings = ControllerSettings.from_params(
        {
            "bodyName": "base_link",
            "maxForce": 30,
            "maxTorque": "2.5",
            "autoEngage": "false",
            "cascade": "position",
            "forceFrame": "body",
            "stateTopic": "ground_truth/state",
            "updateRate": 100,
            "maxLoadFactor": 0,
        }
    )
    assert settings.body_name == "base_link"
    assert settings.max_force == 30.0
    assert settings.max_torque == 2.5
    assert settings.auto_engage is False
    assert settings.cascade is CascadeMode.POSITION
    assert settings.force_frame is ForceFrame.BODY
    assert settings.use_state_feed
    assert not settings.use_imu_feed
    assert settings.update_rate == 100.0
    assert settings.max_load_factor == 0.0


def test_gain_parameters():
    settings = ControllerSettings.from_params(
        {
            "rollProportionalGain": 3.0,
            "rollLimit": 0.2,
            "roll_velProportionalGain": 9.0,
            "velocityXYProportionalGain": 4.0,
            "velocityXYDifferentialGain": 0.5,
        }
    )
    gains = settings.gains
    assert gains[Axis.ROLL] == GainSet(gain_p=3.0, limit=0.2)
    assert gains[Axis.ROLL_RATE] == GainSet(gain_p=9.0)
    # x and y share one parameter set
    assert gains[Axis.VELOCITY_X] == GainSet(gain_p=4.0, gain_d=0.5)
    assert gains[Axis.VELOCITY_Y] == gains[Axis.VELOCITY_X]
    # Untouched axes keep their defaults
    assert gains[Axis.PITCH] == DEFAULT_GAINS[Axis.PITCH]
    assert gains[Axis.POSITION_Z] == DEFAULT_GAINS[Axis.POSITION_Z]


def test_unknown_cascade():
    with pytest.raises(ValueError):
        ControllerSettings.from_params({"cascade": "acrobatic"})


def test_imu_topic_selects_imu_feed(model):
    settings = ControllerSettings.from_params({"bodyName": "base_link", "imuTopic": "imu"})
    controller = WrenchController.load(model, settings)
    assert controller.state.use_imu_feed
    assert not controller.state.use_state_feed


def test_classic_position_gain_names():
    """positionx (shared by x and y) and positionz are read as in plugin model files."""
    settings = ControllerSettings.from_params(
        {"positionxProportionalGain": 0.3, "positionxIntegralGain": 0.05, "positionzProportionalGain": 0.7}
    )
    gains = settings.gains
    assert gains[Axis.POSITION_X] == GainSet(gain_p=0.3, gain_i=0.05)
    assert gains[Axis.POSITION_Y] == gains[Axis.POSITION_X]
    assert gains[Axis.POSITION_Z] == GainSet(gain_p=0.7)


def test_position_gain_aliases():
    settings = ControllerSettings.from_params({"positionXYProportionalGain": 0.4, "positionZLimit": 2.0})
    assert settings.gains[Axis.POSITION_Y] == GainSet(gain_p=0.4)
    assert settings.gains[Axis.POSITION_Z] == GainSet(limit=2.0)
