"""
Minimal batched rigid-body host for running the controller without an
external simulator.

Newton-Euler dynamics with semi-implicit Euler integration:
    a     = F_world / m + g
    w_dot = I^-1 (tau_body - w_body x (I w_body))     (body frame)
    q     <- normalize(q + 0.5 * q * (0, w_body) * dt)

Forces are applied at the link origin. Wrench accumulators are cleared after
every step(), like a physics engine clears applied forces per iteration.
"""
import torch
from typing import Dict, Optional, Sequence

from .frames import quat_multiply, quat_normalize, rotate_vector, rotate_vector_reverse
from .state import VehicleStateSource
from . import config


class RigidBodySim(VehicleStateSource):
    """
    Vectorized free-flying rigid body.

    All environments share mass, inertia and center of gravity.
    """

    def __init__(
        self,
        num_envs: int,
        device: torch.device,
        mass: float = 1.5,
        inertia: Sequence[float] = (0.0347563, 0.0458929, 0.0977),
        center_of_gravity: Sequence[float] = (0.0, 0.0, 0.0),
        gravity: Sequence[float] = (0.0, 0.0, -config.GRAVITY),
        ground_plane: bool = True,
    ):
        """
        Initialize the rigid body at rest at the origin.

        Args:
            num_envs: Number of parallel environments
            device: Torch device
            mass: Body mass (kg)
            inertia: Principal moments of inertia (kg*m^2)
            center_of_gravity: CoG offset from the link origin, body frame (m)
            gravity: World gravity vector (m/s^2)
            ground_plane: Keep the body at or above z = 0
        """
        if mass <= 0.0:
            raise ValueError("mass must be positive")
        self.num_envs = num_envs
        self.device = device
        self.ground_plane = ground_plane

        self._mass = float(mass)
        self._inertia = torch.tensor(inertia, dtype=torch.float32, device=device)
        self._cog = torch.tensor(center_of_gravity, dtype=torch.float32, device=device)
        self._gravity = torch.tensor(gravity, dtype=torch.float32, device=device)

        self._position = torch.zeros(num_envs, 3, device=device)
        self._orientation = torch.zeros(num_envs, 4, device=device)
        self._orientation[:, 0] = 1.0
        self._linear_velocity = torch.zeros(num_envs, 3, device=device)
        self._angular_velocity = torch.zeros(num_envs, 3, device=device)
        self._angular_acceleration = torch.zeros(num_envs, 3, device=device)

        # Wrench accumulators (world force, body torque)
        self._force = torch.zeros(num_envs, 3, device=device)
        self._torque = torch.zeros(num_envs, 3, device=device)

        self.sim_time = 0.0

    # -- VehicleStateSource -------------------------------------------------------

    @property
    def position(self) -> torch.Tensor:
        return self._position

    @property
    def orientation(self) -> torch.Tensor:
        return self._orientation

    @property
    def linear_velocity(self) -> torch.Tensor:
        return self._linear_velocity

    @property
    def angular_velocity(self) -> torch.Tensor:
        return self._angular_velocity

    @property
    def angular_acceleration(self) -> torch.Tensor:
        return self._angular_acceleration

    @property
    def mass(self) -> float:
        return self._mass

    @property
    def inertia(self) -> torch.Tensor:
        return self._inertia

    @property
    def center_of_gravity(self) -> torch.Tensor:
        return self._cog

    @property
    def gravity(self) -> torch.Tensor:
        return self._gravity

    def add_force(self, force: torch.Tensor):
        self._force += force

    def add_relative_force(self, force: torch.Tensor):
        self._force += rotate_vector(self._orientation, force)

    def add_relative_torque(self, torque: torch.Tensor):
        self._torque += torque

    # -- Simulation ---------------------------------------------------------------

    @property
    def applied_force(self) -> torch.Tensor:
        """World force accumulated since the last step [num_envs, 3]."""
        return self._force

    @property
    def applied_torque(self) -> torch.Tensor:
        """Body torque accumulated since the last step [num_envs, 3]."""
        return self._torque

    def set_state(
        self,
        position: Optional[torch.Tensor] = None,
        orientation: Optional[torch.Tensor] = None,
        linear_velocity: Optional[torch.Tensor] = None,
        angular_velocity: Optional[torch.Tensor] = None,
    ):
        """Teleport the body. Arguments broadcast to [num_envs, ...]."""
        if position is not None:
            self._position = position.to(self.device).expand(self.num_envs, 3).clone()
        if orientation is not None:
            self._orientation = quat_normalize(orientation.to(self.device).expand(self.num_envs, 4).clone())
        if linear_velocity is not None:
            self._linear_velocity = linear_velocity.to(self.device).expand(self.num_envs, 3).clone()
        if angular_velocity is not None:
            self._angular_velocity = angular_velocity.to(self.device).expand(self.num_envs, 3).clone()

    def step(self, dt: float):
        """Integrate the accumulated wrench over dt and clear it."""
        if dt <= 0.0:
            raise ValueError("dt must be positive")

        # Translation
        acceleration = self._force / self._mass + self._gravity
        self._linear_velocity = self._linear_velocity + acceleration * dt
        self._position = self._position + self._linear_velocity * dt

        # Rotation (body frame Euler equations)
        omega_body = rotate_vector_reverse(self._orientation, self._angular_velocity)
        gyroscopic = torch.linalg.cross(omega_body, self._inertia * omega_body, dim=-1)
        omega_dot_body = (self._torque - gyroscopic) / self._inertia
        omega_body = omega_body + omega_dot_body * dt

        omega_quat = torch.cat([torch.zeros_like(omega_body[:, :1]), omega_body], dim=1)
        q_dot = 0.5 * quat_multiply(self._orientation, omega_quat)
        self._orientation = quat_normalize(self._orientation + q_dot * dt)

        self._angular_acceleration = rotate_vector(self._orientation, omega_dot_body)
        self._angular_velocity = rotate_vector(self._orientation, omega_body)

        if self.ground_plane:
            below = self._position[:, 2] < 0.0
            self._position[:, 2] = torch.clamp(self._position[:, 2], min=0.0)
            self._linear_velocity[:, 2] = torch.where(
                below & (self._linear_velocity[:, 2] < 0.0),
                torch.zeros_like(self._linear_velocity[:, 2]),
                self._linear_velocity[:, 2],
            )

        self._force.zero_()
        self._torque.zero_()
        self.sim_time += dt


class RigidBodyModel:
    """Named collection of links, the unit a controller is loaded onto."""

    def __init__(self, links: Dict[str, VehicleStateSource]):
        self.links = dict(links)

    def get_link(self, name: Optional[str] = None) -> Optional[VehicleStateSource]:
        """Look up a link by name. An empty name selects the first link."""
        if not name:
            return next(iter(self.links.values()), None)
        return self.links.get(name)
