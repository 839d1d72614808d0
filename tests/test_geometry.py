"""Unit tests for quaternion helpers and the pinhole camera."""

import math
import unittest
import sys
import os

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from yolo_anchoring.geometry import (
    PinholeCamera, Ray, identity_rotation, look_rotation, quat_multiply, quat_rotate
)


class TestQuaternions(unittest.TestCase):
    """Test cases for quaternion helpers."""

    def test_look_rotation_points_z_along_forward(self):
        for forward in ([1.0, 0.0, 0.0], [0.0, 0.0, -1.0], [1.0, 2.0, 3.0], [0.0, 1.0, 0.0]):
            q = look_rotation(forward)
            expected = np.asarray(forward) / np.linalg.norm(forward)
            np.testing.assert_allclose(quat_rotate(q, [0.0, 0.0, 1.0]), expected, atol=1e-9)
            self.assertAlmostEqual(float(np.linalg.norm(q)), 1.0)

    def test_look_rotation_keeps_up(self):
        q = look_rotation([1.0, 0.0, 0.0])
        np.testing.assert_allclose(quat_rotate(q, [0.0, 1.0, 0.0]), [0.0, 1.0, 0.0], atol=1e-9)

    def test_zero_forward_is_identity(self):
        np.testing.assert_array_equal(look_rotation([0.0, 0.0, 0.0]), identity_rotation())

    def test_multiply_composes_rotations(self):
        quarter_turn = np.array([0.0, math.sin(math.pi / 4), 0.0, math.cos(math.pi / 4)])
        half_turn = quat_multiply(quarter_turn, quarter_turn)
        np.testing.assert_allclose(quat_rotate(half_turn, [0.0, 0.0, 1.0]), [0.0, 0.0, -1.0], atol=1e-9)


class TestPinholeCamera(unittest.TestCase):
    """Test cases for PinholeCamera."""

    def setUp(self):
        self.camera = PinholeCamera(640, 480, vertical_fov_deg=60.0, position=[1.0, 2.0, 3.0],
                                    rotation=look_rotation([1.0, 0.0, 1.0]))

    def test_screen_world_round_trip(self):
        point = self.camera.screen_to_world_point(100.0, 400.0, 2.0)
        np.testing.assert_allclose(self.camera.world_to_screen_point(point), [100.0, 400.0, 2.0], atol=1e-6)

    def test_center_ray_is_forward(self):
        ray = self.camera.screen_point_to_ray(320.0, 240.0)
        np.testing.assert_allclose(ray.direction, self.camera.forward, atol=1e-9)
        np.testing.assert_allclose(ray.origin, [1.0, 2.0, 3.0])

    def test_screen_origin_is_bottom_left(self):
        camera = PinholeCamera(640, 480)
        point = camera.screen_to_world_point(0.0, 0.0, 1.0)
        self.assertLess(point[0], 0.0)
        self.assertLess(point[1], 0.0)

    def test_copy_is_independent(self):
        snapshot = self.camera.copy()
        self.camera.position[0] = 10.0
        self.assertEqual(snapshot.position[0], 1.0)

    def test_ray_direction_normalized(self):
        ray = Ray([0.0, 0.0, 0.0], [0.0, 3.0, 4.0])
        np.testing.assert_allclose(ray.direction, [0.0, 0.6, 0.8])
        np.testing.assert_allclose(ray.point_at(5.0), [0.0, 3.0, 4.0])


if __name__ == '__main__':
    unittest.main()
