"""
Stateless frame transforms on batched tensors.

Conventions:
    - Quaternions are [..., 4] in (w, x, y, z) order, body -> world
    - Vectors are [..., 3]
    - Euler angles are (roll, pitch, yaw) in radians, z-y-x order
    - World frame is z-up; gravity is usually (0, 0, -g)
"""
import torch
from typing import Optional, Tuple


def quat_conjugate(q: torch.Tensor) -> torch.Tensor:
    """Conjugate (inverse for unit quaternions)."""
    return torch.cat([q[..., :1], -q[..., 1:]], dim=-1)


def quat_multiply(a: torch.Tensor, b: torch.Tensor) -> torch.Tensor:
    """Hamilton product a * b."""
    aw, ax, ay, az = a.unbind(-1)
    bw, bx, by, bz = b.unbind(-1)
    return torch.stack(
        [
            aw * bw - ax * bx - ay * by - az * bz,
            aw * bx + ax * bw + ay * bz - az * by,
            aw * by - ax * bz + ay * bw + az * bx,
            aw * bz + ax * by - ay * bx + az * bw,
        ],
        dim=-1,
    )


def quat_normalize(q: torch.Tensor) -> torch.Tensor:
    return q / torch.linalg.norm(q, dim=-1, keepdim=True).clamp_min(1e-12)


def rotate_vector(q: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
    """
    Rotate v by q (body -> world for a body orientation).

    Uses v' = v + 2w (u x v) + 2 u x (u x v) with u the vector part.
    """
    w = q[..., :1]
    u = q[..., 1:]
    uv = torch.linalg.cross(u, v, dim=-1)
    return v + 2.0 * w * uv + 2.0 * torch.linalg.cross(u, uv, dim=-1)


def rotate_vector_reverse(q: torch.Tensor, v: torch.Tensor) -> torch.Tensor:
    """Inverse rotation of v by q (world -> body for a body orientation)."""
    return rotate_vector(quat_conjugate(q), v)


def heading_quaternion(yaw: torch.Tensor) -> torch.Tensor:
    """Rotation by yaw about the vertical axis only [..., 4]."""
    half = 0.5 * yaw
    zeros = torch.zeros_like(yaw)
    return torch.stack([torch.cos(half), zeros, zeros, torch.sin(half)], dim=-1)


def quat_from_euler(roll: torch.Tensor, pitch: torch.Tensor, yaw: torch.Tensor) -> torch.Tensor:
    """Quaternion from z-y-x Euler angles (radians)."""
    cr, sr = torch.cos(0.5 * roll), torch.sin(0.5 * roll)
    cp, sp = torch.cos(0.5 * pitch), torch.sin(0.5 * pitch)
    cy, sy = torch.cos(0.5 * yaw), torch.sin(0.5 * yaw)
    return torch.stack(
        [
            cr * cp * cy + sr * sp * sy,
            sr * cp * cy - cr * sp * sy,
            cr * sp * cy + sr * cp * sy,
            cr * cp * sy - sr * sp * cy,
        ],
        dim=-1,
    )


def quat_to_euler(q: torch.Tensor) -> torch.Tensor:
    """
    Euler angles [..., 3] (roll, pitch, yaw) from a quaternion.

    Pitch is clamped at +-pi/2 near the gimbal-lock singularity.
    """
    w, x, y, z = quat_normalize(q).unbind(-1)
    roll = torch.atan2(2.0 * (w * x + y * z), 1.0 - 2.0 * (x * x + y * y))
    pitch = torch.asin(torch.clamp(2.0 * (w * y - z * x), -1.0, 1.0))
    yaw = torch.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))
    return torch.stack([roll, pitch, yaw], dim=-1)


def gravity_in_body(
    orientation: torch.Tensor,
    world_gravity: torch.Tensor,
    max_load_factor: Optional[float] = None,
) -> Tuple[torch.Tensor, torch.Tensor, torch.Tensor]:
    """
    Project gravity through the body orientation.

    load_factor = |g|^2 / dot(g_world, g_body) is the thrust multiplier needed to
    hold altitude at the current tilt. It is singular when the body z axis is
    perpendicular to gravity.

    Args:
        orientation: Body orientation [N, 4]
        world_gravity: Gravity vector [3] or [N, 3]
        max_load_factor: If > 0, saturate the load factor to [-max, max]
            (NaN/inf included). Otherwise the raw value is returned.

    Returns:
        Tuple of (gravity_body [N, 3], magnitude [N], load_factor [N])
    """
    world_gravity = world_gravity.expand_as(orientation[..., 1:])
    gravity_body = rotate_vector(orientation, world_gravity)
    magnitude = torch.linalg.norm(gravity_body, dim=-1)
    load_factor = magnitude * magnitude / (world_gravity * gravity_body).sum(dim=-1)

    if max_load_factor is not None and max_load_factor > 0.0:
        load_factor = torch.nan_to_num(
            load_factor, nan=max_load_factor, posinf=max_load_factor, neginf=-max_load_factor
        )
        load_factor = torch.clamp(load_factor, -max_load_factor, max_load_factor)

    return gravity_body, magnitude, load_factor
