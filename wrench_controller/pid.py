"""
Vectorized filtered PID controller.

Key features:
- Setpoint saturation (limit <= 0 disables it)
- First-order low-pass filter on the setpoint; the filter also provides the
  setpoint derivative used by the D term
- Derivative term on (filtered setpoint rate - measured derivative)
- Plain integrator with no anti-windup: the integral keeps accumulating while
  the downstream output saturates
"""
import threading
import torch
from typing import Optional, Tuple, Union

Scalar = Union[float, torch.Tensor]


class FilteredPID:
    """
    Vectorized single-axis PID controller with an input low-pass filter.

    The PID computes:
        input  <- low-pass(clamp(setpoint, limit), time_constant)
        output = gain_p * (input - x) + gain_d * (dinput - dx) + gain_i * integral

    Gains are plain floats shared across environments. Runtime state is one
    tensor per quantity with shape [num_envs].
    """

    def __init__(
        self,
        num_envs: int,
        device: torch.device,
        gain_p: float = 0.0,
        gain_d: float = 0.0,
        gain_i: float = 0.0,
        time_constant: float = 0.0,
        limit: float = -1.0,
    ):
        """
        Initialize a filtered PID controller with zeroed runtime state.

        Args:
            num_envs: Number of parallel environments
            device: Torch device
            gain_p: Proportional gain
            gain_d: Derivative gain
            gain_i: Integral gain
            time_constant: Setpoint filter time constant (s), 0 = no filtering
            limit: Setpoint limit (<= 0 = no limit)
        """
        self.num_envs = num_envs
        self.device = device

        self.gain_p = gain_p
        self.gain_d = gain_d
        self.gain_i = gain_i
        self.time_constant = time_constant
        self.limit = limit

        # Gain writes may come from a transport thread
        self._lock = threading.Lock()

        # State tensors [num_envs]
        self.filtered_input = torch.zeros(num_envs, device=device)
        self.filtered_dinput = torch.zeros(num_envs, device=device)
        self.p = torch.zeros(num_envs, device=device)
        self.d = torch.zeros(num_envs, device=device)
        self.integral = torch.zeros(num_envs, device=device)
        self.output = torch.zeros(num_envs, device=device)

    def configure(
        self,
        gain_p: float,
        gain_d: float,
        gain_i: float,
        time_constant: float,
        limit: float,
    ):
        """Replace the full configuration. Runtime state is kept."""
        with self._lock:
            self.gain_p = float(gain_p)
            self.gain_d = float(gain_d)
            self.gain_i = float(gain_i)
            self.time_constant = float(time_constant)
            self.limit = float(limit)

    def update_gains(
        self,
        gain_p: float,
        gain_d: float,
        gain_i: float,
        time_constant: float,
    ):
        """Replace gains and time constant from the reconfiguration path. The limit is kept."""
        with self._lock:
            self.gain_p = float(gain_p)
            self.gain_d = float(gain_d)
            self.gain_i = float(gain_i)
            self.time_constant = float(time_constant)

    @property
    def gains(self) -> Tuple[float, float, float, float, float]:
        """Consistent (gain_p, gain_d, gain_i, time_constant, limit) snapshot."""
        with self._lock:
            return self.gain_p, self.gain_d, self.gain_i, self.time_constant, self.limit

    def reset(self, env_ids: Optional[torch.Tensor] = None):
        """
        Zero runtime state. Configuration is not touched.

        Args:
            env_ids: Specific environment indices to reset (None = all)
        """
        state = (
            self.filtered_input,
            self.filtered_dinput,
            self.p,
            self.d,
            self.integral,
            self.output,
        )
        for tensor in state:
            if env_ids is None:
                tensor.zero_()
            else:
                tensor[env_ids] = 0.0

    def _as_state(self, value: Scalar) -> torch.Tensor:
        value = torch.as_tensor(value, dtype=self.integral.dtype, device=self.device)
        return value.expand(self.num_envs)

    def update(
        self,
        setpoint: Scalar,
        measured: Scalar,
        measured_derivative: Scalar,
        dt: float,
        active: Optional[torch.Tensor] = None,
    ) -> torch.Tensor:
        """
        Update PID and compute output.

        Args:
            setpoint: Desired value [num_envs] (or scalar)
            measured: Current measurement [num_envs] (or scalar)
            measured_derivative: Current measurement rate [num_envs] (or scalar)
            dt: Time step (seconds), must be > 0
            active: Optional bool mask [num_envs]; inactive environments keep
                their state and previous output untouched

        Returns:
            PID output [num_envs]
        """
        gain_p, gain_d, gain_i, time_constant, limit = self.gains

        setpoint = self._as_state(setpoint)
        measured = self._as_state(measured)
        measured_derivative = self._as_state(measured_derivative)

        # Limit command
        if limit > 0.0:
            setpoint = torch.clamp(setpoint, -limit, limit)

        # Filter command, otherwise hold the previous filter state
        filtered_input = self.filtered_input
        filtered_dinput = self.filtered_dinput
        if dt + time_constant > 0.0:
            filtered_dinput = (setpoint - self.filtered_input) / (dt + time_constant)
            filtered_input = (dt * setpoint + time_constant * self.filtered_input) / (dt + time_constant)

        # Proportional, differential and integral errors
        p = filtered_input - measured
        d = filtered_dinput - measured_derivative
        integral = self.integral + dt * p

        output = gain_p * p + gain_d * d + gain_i * integral

        if active is not None:
            filtered_input = torch.where(active, filtered_input, self.filtered_input)
            filtered_dinput = torch.where(active, filtered_dinput, self.filtered_dinput)
            p = torch.where(active, p, self.p)
            d = torch.where(active, d, self.d)
            integral = torch.where(active, integral, self.integral)
            output = torch.where(active, output, self.output)

        self.filtered_input = filtered_input
        self.filtered_dinput = filtered_dinput
        self.p = p
        self.d = d
        self.integral = integral
        self.output = output

        return output
