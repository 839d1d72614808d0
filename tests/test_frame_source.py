"""Unit tests for frame sources."""

import unittest
from unittest.mock import Mock, patch
import sys
import os
import time

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from yolo_anchoring.services.frame_source import StaticFrameSource, OpenCVFrameSource


class TestStaticFrameSource(unittest.TestCase):
    """Test cases for StaticFrameSource."""

    def test_empty_source(self):
        source = StaticFrameSource()

        self.assertIsNone(source.get_frame())
        self.assertIsNone(source.get_feed_dimensions())

    def test_returns_copy_of_frame(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        source = StaticFrameSource(frame)

        served = source.get_frame()
        served[0, 0, 0] = 255

        self.assertEqual(frame[0, 0, 0], 0)
        feed = source.get_feed_dimensions()
        self.assertEqual((feed.width, feed.height), (640, 480))

    def test_set_frame(self):
        source = StaticFrameSource(np.zeros((10, 20, 3), dtype=np.uint8))
        source.set_frame(np.zeros((30, 40, 3), dtype=np.uint8))
        self.assertEqual(source.get_frame().shape, (30, 40, 3))

        source.set_frame(None)
        self.assertIsNone(source.get_frame())


class TestOpenCVFrameSource(unittest.TestCase):
    """Test cases for OpenCVFrameSource."""

    def setUp(self):
        """Set up test fixtures."""
        self.frame = np.full((120, 160, 3), 7, dtype=np.uint8)
        self.capture = Mock()
        self.capture.isOpened.return_value = True
        self.capture.read.return_value = (True, self.frame)

        patcher = patch("yolo_anchoring.services.frame_source.cv2.VideoCapture",
                        return_value=self.capture)
        self.video_capture = patcher.start()
        self.addCleanup(patcher.stop)

        self.source = OpenCVFrameSource(source="clip.mp4", framerate=100.0)

    def tearDown(self):
        """Clean up test fixtures."""
        self.source.stop_capture()

    def test_get_frame_before_capture(self):
        self.assertIsNone(self.source.get_frame())
        self.assertFalse(self.source.is_capturing())

    def test_start_stop_capture(self):
        self.source.start_capture()
        self.assertTrue(self.source.is_capturing())
        self.video_capture.assert_called_once_with("clip.mp4")

        time.sleep(0.2)

        frame = self.source.get_frame()
        self.assertIsNotNone(frame)
        self.assertTrue(np.array_equal(frame, self.frame))
        self.assertGreater(self.source.frames_captured, 0)

        feed = self.source.get_feed_dimensions()
        self.assertEqual((feed.width, feed.height), (160, 120))

        self.source.stop_capture()
        self.assertFalse(self.source.is_capturing())
        self.capture.release.assert_called_once()

    def test_open_failure(self):
        self.capture.isOpened.return_value = False

        with self.assertRaises(RuntimeError):
            self.source.start_capture()
        self.assertFalse(self.source.is_capturing())

    def test_read_failures_stop_capture(self):
        self.capture.read.return_value = (False, None)
        self.source.max_consecutive_errors = 2

        self.source.start_capture()
        time.sleep(0.2)

        self.assertFalse(self.source.is_capturing())
        self.assertEqual(self.source.consecutive_errors, 2)
        self.assertIsNone(self.source.get_frame())

    def test_source_info(self):
        info = self.source.get_source_info()

        self.assertEqual(info["source"], "clip.mp4")
        self.assertFalse(info["capturing"])
        self.assertIsNone(info["resolution"])


if __name__ == '__main__':
    unittest.main()
