"""
Default parameters for the rigid-body wrench controller.

Gains follow the classic quadrotor plugin tuning (velocity -> attitude -> torque).
Every value here can be overridden at load time through ControllerSettings, and
the PID gains (but not the limits) can be replaced at runtime through the
reconfiguration channel.
"""

# =============================================================================
# Physical constants
# =============================================================================
# Gravity (m/s^2), world frame z-up
GRAVITY = 9.81

# =============================================================================
# Engage logic
# =============================================================================

# Commanded z position that automatically engages the motors (auto-engage)
AUTO_ENGAGE_THRESHOLD = 0.1

# =============================================================================
# Saturation
# =============================================================================

# Force / torque limits (N, N*m). <= 0 means unbounded.
MAX_FORCE = -1.0
MAX_TORQUE = -1.0

# Extra band on the vertical force in the position cascade (N)
VERTICAL_FORCE_MARGIN = 10.0

# Load factor ceiling used when the body axis approaches the horizontal plane.
# <= 0 propagates the raw (possibly infinite) value.
MAX_LOAD_FACTOR = 5.0

# =============================================================================
# Timing
# =============================================================================

# Control update rate (Hz). 0 runs the controller on every simulation step.
UPDATE_RATE = 0.0

# =============================================================================
# Attitude Rate PID Gains (inner loop, position cascade)
# =============================================================================

PID_ROLL_RATE_KP = 5.0
PID_ROLL_RATE_KD = 0.0
PID_ROLL_RATE_KI = 0.0
PID_ROLL_RATE_TIME_CONSTANT = 0.0
PID_ROLL_RATE_LIMIT = -1.0

PID_PITCH_RATE_KP = 5.0
PID_PITCH_RATE_KD = 0.0
PID_PITCH_RATE_KI = 0.0
PID_PITCH_RATE_TIME_CONSTANT = 0.0
PID_PITCH_RATE_LIMIT = -1.0

PID_YAW_RATE_KP = 2.0
PID_YAW_RATE_KD = 0.0
PID_YAW_RATE_KI = 0.0
PID_YAW_RATE_TIME_CONSTANT = 0.0
PID_YAW_RATE_LIMIT = -1.0

# =============================================================================
# Attitude PID Gains
# =============================================================================

PID_ROLL_KP = 10.0
PID_ROLL_KD = 5.0
PID_ROLL_KI = 0.0
PID_ROLL_TIME_CONSTANT = 0.0
PID_ROLL_LIMIT = 0.5  # rad

PID_PITCH_KP = 10.0
PID_PITCH_KD = 5.0
PID_PITCH_KI = 0.0
PID_PITCH_TIME_CONSTANT = 0.0
PID_PITCH_LIMIT = 0.5  # rad

PID_YAW_KP = 2.0
PID_YAW_KD = 1.0
PID_YAW_KI = 0.0
PID_YAW_TIME_CONSTANT = 0.0
PID_YAW_LIMIT = 1.5  # rad/s

# =============================================================================
# Velocity PID Gains
# =============================================================================

PID_VEL_XY_KP = 5.0
PID_VEL_XY_KD = 1.0
PID_VEL_XY_KI = 0.0
PID_VEL_XY_TIME_CONSTANT = 0.0
PID_VEL_XY_LIMIT = 5.0  # m/s

PID_VEL_Z_KP = 5.0
PID_VEL_Z_KD = 1.0
PID_VEL_Z_KI = 0.0
PID_VEL_Z_TIME_CONSTANT = 0.0
PID_VEL_Z_LIMIT = -1.0

# =============================================================================
# Position PID Gains
# =============================================================================

PID_POS_XY_KP = 1.0
PID_POS_XY_KD = 0.0
PID_POS_XY_KI = 0.0
PID_POS_XY_TIME_CONSTANT = 0.0
PID_POS_XY_LIMIT = -1.0

PID_POS_Z_KP = 1.0
PID_POS_Z_KD = 0.0
PID_POS_Z_KI = 0.0
PID_POS_Z_TIME_CONSTANT = 0.0
PID_POS_Z_LIMIT = -1.0
