"""Geometry helpers: quaternions, rays and a pinhole reference camera.

World space is y-up. Cameras look down their local +z axis. Screen space
has its origin at the bottom-left corner with y pointing up.
Quaternions are stored as numpy arrays ordered (x, y, z, w).
"""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

IDENTITY_ROTATION = np.array([0.0, 0.0, 0.0, 1.0])
WORLD_UP = np.array([0.0, 1.0, 0.0])


def identity_rotation() -> np.ndarray:
    return IDENTITY_ROTATION.copy()


def quat_conjugate(q: np.ndarray) -> np.ndarray:
    return np.array([-q[0], -q[1], -q[2], q[3]], dtype=float)


def quat_multiply(a: np.ndarray, b: np.ndarray) -> np.ndarray:
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return np.array([
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    ])


def quat_rotate(q: np.ndarray, v: Sequence[float]) -> np.ndarray:
    """Rotate vector ``v`` by unit quaternion ``q``."""
    u = np.asarray(q[:3], dtype=float)
    w = float(q[3])
    v = np.asarray(v, dtype=float)
    return v + 2.0 * np.cross(u, np.cross(u, v) + w * v)


def quat_from_matrix(m: np.ndarray) -> np.ndarray:
    """Convert a 3x3 rotation matrix into a quaternion."""
    trace = m[0, 0] + m[1, 1] + m[2, 2]
    if trace > 0:
        s = math.sqrt(trace + 1.0) * 2
        w = 0.25 * s
        x = (m[2, 1] - m[1, 2]) / s
        y = (m[0, 2] - m[2, 0]) / s
        z = (m[1, 0] - m[0, 1]) / s
    elif m[0, 0] > m[1, 1] and m[0, 0] > m[2, 2]:
        s = math.sqrt(1.0 + m[0, 0] - m[1, 1] - m[2, 2]) * 2
        w = (m[2, 1] - m[1, 2]) / s
        x = 0.25 * s
        y = (m[0, 1] + m[1, 0]) / s
        z = (m[0, 2] + m[2, 0]) / s
    elif m[1, 1] > m[2, 2]:
        s = math.sqrt(1.0 + m[1, 1] - m[0, 0] - m[2, 2]) * 2
        w = (m[0, 2] - m[2, 0]) / s
        x = (m[0, 1] + m[1, 0]) / s
        y = 0.25 * s
        z = (m[1, 2] + m[2, 1]) / s
    else:
        s = math.sqrt(1.0 + m[2, 2] - m[0, 0] - m[1, 1]) * 2
        w = (m[1, 0] - m[0, 1]) / s
        x = (m[0, 2] + m[2, 0]) / s
        y = (m[1, 2] + m[2, 1]) / s
        z = 0.25 * s
    q = np.array([x, y, z, w])
    return q / np.linalg.norm(q)


def look_rotation(forward: Sequence[float], up: Sequence[float] = WORLD_UP) -> np.ndarray:
    """Rotation whose local +z axis points along ``forward``.

    A zero-length forward vector yields the identity rotation.
    """
    forward = np.asarray(forward, dtype=float)
    length = np.linalg.norm(forward)
    if length < 1e-9:
        return identity_rotation()
    z_axis = forward / length

    up = np.asarray(up, dtype=float)
    x_axis = np.cross(up, z_axis)
    if np.linalg.norm(x_axis) < 1e-9:
        # forward is parallel to up; pick any perpendicular reference
        x_axis = np.cross(np.array([0.0, 0.0, 1.0]) if abs(z_axis[2]) < 0.9 else np.array([1.0, 0.0, 0.0]), z_axis)
    x_axis /= np.linalg.norm(x_axis)
    y_axis = np.cross(z_axis, x_axis)

    return quat_from_matrix(np.column_stack((x_axis, y_axis, z_axis)))


@dataclass
class Ray:
    origin: np.ndarray
    direction: np.ndarray

    def __post_init__(self):
        self.origin = np.asarray(self.origin, dtype=float)
        direction = np.asarray(self.direction, dtype=float)
        self.direction = direction / np.linalg.norm(direction)

    def point_at(self, distance: float) -> np.ndarray:
        return self.origin + self.direction * distance


@dataclass
class RaycastHit:
    """A surface hit returned by a world-geometry raycaster."""
    point: np.ndarray
    normal: np.ndarray
    normal_confidence: float = 1.0

    def __post_init__(self):
        self.point = np.asarray(self.point, dtype=float)
        self.normal = np.asarray(self.normal, dtype=float)


class PinholeCamera:
    """Reference camera with a symmetric pinhole projection."""

    def __init__(self, pixel_width: int, pixel_height: int, vertical_fov_deg: float = 60.0,
                 position: Optional[Sequence[float]] = None,
                 rotation: Optional[Sequence[float]] = None):
        self.pixel_width = int(pixel_width)
        self.pixel_height = int(pixel_height)
        self.vertical_fov_deg = vertical_fov_deg
        self.position = np.zeros(3) if position is None else np.asarray(position, dtype=float)
        self.rotation = identity_rotation() if rotation is None else np.asarray(rotation, dtype=float)

    @property
    def focal_length(self) -> float:
        return (self.pixel_height / 2.0) / math.tan(math.radians(self.vertical_fov_deg) / 2.0)

    @property
    def forward(self) -> np.ndarray:
        return quat_rotate(self.rotation, [0.0, 0.0, 1.0])

    def _screen_to_local(self, screen_x: float, screen_y: float) -> np.ndarray:
        f = self.focal_length
        return np.array([
            (screen_x - self.pixel_width / 2.0) / f,
            (screen_y - self.pixel_height / 2.0) / f,
            1.0
        ])

    def screen_point_to_ray(self, screen_x: float, screen_y: float) -> Ray:
        direction = quat_rotate(self.rotation, self._screen_to_local(screen_x, screen_y))
        return Ray(self.position.copy(), direction)

    def screen_to_world_point(self, screen_x: float, screen_y: float, depth: float) -> np.ndarray:
        """World point at ``depth`` along the camera's forward axis."""
        local = self._screen_to_local(screen_x, screen_y) * depth
        return self.position + quat_rotate(self.rotation, local)

    def world_to_screen_point(self, point: Sequence[float]) -> np.ndarray:
        """Project a world point; returns (screen_x, screen_y, depth)."""
        local = quat_rotate(quat_conjugate(self.rotation), np.asarray(point, dtype=float) - self.position)
        depth = local[2]
        if abs(depth) < 1e-9:
            depth = 1e-9
        f = self.focal_length
        return np.array([
            local[0] / depth * f + self.pixel_width / 2.0,
            local[1] / depth * f + self.pixel_height / 2.0,
            local[2]
        ])

    def copy(self) -> "PinholeCamera":
        """Snapshot of the camera state at the time a frame was captured."""
        return PinholeCamera(self.pixel_width, self.pixel_height, self.vertical_fov_deg,
                             self.position.copy(), self.rotation.copy())
