"""Unit tests for the remote YOLO protocol client."""

import unittest
from unittest.mock import Mock
import sys
import os

import requests

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from yolo_anchoring.exceptions import RemoteRequestError
from yolo_anchoring.models.remote import YOLOFormat, YOLOModelName
from yolo_anchoring.services.remote_client import RemoteYOLOClient


ANALYSE_BODY = {
    "success": True,
    "metadata": {
        "names": {"0": "person", "56": "chair"},
        "speed": {"preprocess": 1.5, "inference": 20.0, "postprocess": 0.7},
        "request": {"time_ms": 31.2}
    },
    "result": [
        {"name": "chair", "class_id": 56, "confidence": 0.83,
         "box": {"x1": 10.0, "y1": 20.0, "x2": 110.0, "y2": 220.0}},
        {"name": "person", "class_id": 0, "confidence": 0.91,
         "box": {"x1": 300.0, "y1": 40.0, "x2": 420.0, "y2": 400.0}}
    ]
}


def make_response(status_code=200, body=None, text=None):
    response = Mock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    if body is None:
        response.json.side_effect = ValueError("No JSON")
        response.text = text or ""
    else:
        response.json.return_value = body
        response.text = text if text is not None else str(body)
    return response


class TestRemoteYOLOClient(unittest.TestCase):
    """Test cases for RemoteYOLOClient."""

    def setUp(self):
        self.session = Mock()
        self.client = RemoteYOLOClient("localhost:8000", timeout=5.0, session=self.session)

    def tearDown(self):
        self.client.close()

    def test_analyse_posts_multipart_request(self):
        self.session.post.return_value = make_response(200, ANALYSE_BODY)

        self.client.analyse(b"jpeg-bytes", YOLOModelName.YOLO11M, YOLOFormat.ONNX)

        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "http://localhost:8000/api/analyse")
        self.assertEqual(kwargs["data"], {"format": "onnx", "model": "yolo11m"})
        self.assertEqual(kwargs["files"]["image"][0], "image.jpg")
        self.assertEqual(kwargs["files"]["image"][1], b"jpeg-bytes")
        self.assertEqual(kwargs["timeout"], 5.0)

    def test_analyse_parses_response(self):
        self.session.post.return_value = make_response(200, ANALYSE_BODY)

        response = self.client.analyse(b"jpeg-bytes")

        self.assertTrue(response.success)
        self.assertEqual([r.name for r in response.result], ["chair", "person"])
        self.assertEqual(response.result[0].box.x2, 110.0)
        self.assertEqual(response.metadata.names[56], "chair")
        self.assertAlmostEqual(response.metadata.request.time_ms, 31.2)

    def test_custom_model_selector(self):
        self.session.post.return_value = make_response(200, ANALYSE_BODY)

        self.client.analyse(b"jpeg-bytes", "yolo11n", "ncnn", use_custom_model=True)

        self.assertEqual(self.session.post.call_args[1]["data"]["model"], "custom")

    def test_structured_analyse_error_surfaces_server_message(self):
        self.session.post.return_value = make_response(400, {"success": False, "error": "bad format"})

        with self.assertRaises(RemoteRequestError) as ctx:
            self.client.analyse(b"jpeg-bytes")

        self.assertEqual(str(ctx.exception), "bad format")
        self.assertEqual(ctx.exception.status_code, 400)

    def test_unstructured_status_gives_generic_message(self):
        self.session.post.return_value = make_response(500, text="Internal Server Error")

        with self.assertRaises(RemoteRequestError) as ctx:
            self.client.analyse(b"jpeg-bytes")

        self.assertEqual(ctx.exception.message, "Request failed: 500 Internal Server Error")

    def test_422_is_structured_for_upload_only(self):
        body = {"success": False, "error": "invalid model file"}

        self.session.post.return_value = make_response(422, body, text="unprocessable")
        with self.assertRaises(RemoteRequestError) as ctx:
            self.client.upload_custom_model(b"weights")
        self.assertEqual(ctx.exception.message, "invalid model file")

        self.session.post.return_value = make_response(422, body, text="unprocessable")
        with self.assertRaises(RemoteRequestError) as ctx:
            self.client.analyse(b"jpeg-bytes")
        self.assertEqual(ctx.exception.message, "Request failed: 422 unprocessable")

    def test_upload_custom_model(self):
        self.session.post.return_value = make_response(200, {
            "success": True, "result": "uploaded", "metadata": {"request": {"time_ms": 12.0}}
        })

        response = self.client.upload_custom_model(b"weights")

        args, kwargs = self.session.post.call_args
        self.assertEqual(args[0], "http://localhost:8000/api/custom-model")
        self.assertEqual(kwargs["files"]["model"][0], "model.pt")
        self.assertEqual(response.result, "uploaded")
        self.assertEqual(response.request.time_ms, 12.0)

    def test_transport_failure_wrapped(self):
        self.session.post.side_effect = requests.ConnectionError("connection refused")

        with self.assertRaises(RemoteRequestError) as ctx:
            self.client.analyse(b"jpeg-bytes")

        self.assertIsNone(ctx.exception.status_code)
        self.assertTrue(ctx.exception.message.startswith("Request failed:"))

    def test_invalid_json_body(self):
        self.session.post.return_value = make_response(200, text="<html>")

        with self.assertRaises(RemoteRequestError):
            self.client.analyse(b"jpeg-bytes")

    def test_explicit_scheme_is_kept(self):
        client = RemoteYOLOClient("https://yolo.example.com/", session=self.session)
        self.session.post.return_value = make_response(200, ANALYSE_BODY)
        try:
            client.analyse(b"jpeg-bytes")
        finally:
            client.close()

        self.assertEqual(self.session.post.call_args[0][0], "https://yolo.example.com/api/analyse")

    def test_analyse_async_returns_future(self):
        self.session.post.return_value = make_response(200, ANALYSE_BODY)

        future = self.client.analyse_async(b"jpeg-bytes")

        self.assertEqual(len(future.result(timeout=5.0).result), 2)

    def test_async_failure_raised_from_future(self):
        self.session.post.return_value = make_response(400, {"success": False, "error": "no model uploaded"})

        future = self.client.upload_custom_model_async(b"weights")

        with self.assertRaises(RemoteRequestError):
            future.result(timeout=5.0)


if __name__ == '__main__':
    unittest.main()
