"""HTTP client for the remote YOLO inference server."""

from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Dict, Optional, Tuple, Union

import requests

from ..config.defaults import REMOTE_SETTINGS
from ..exceptions import RemoteRequestError
from ..logging_config import get_logger
from ..models.remote import AnalyseResponse, CustomModelResponse, YOLOFormat, YOLOModelName

logger = get_logger("remote_client")


def _selector(value: Union[str, YOLOModelName, YOLOFormat]) -> str:
    if isinstance(value, (YOLOModelName, YOLOFormat)):
        return value.value
    return str(value).lower()


class RemoteYOLOClient:
    """Request/response wrapper over the ``/api/custom-model`` and ``/api/analyse`` endpoints.

    Every call has a blocking form and an ``_async`` form that runs the same
    request on a worker thread and returns a ``concurrent.futures.Future``.
    Failures raise RemoteRequestError carrying the server's message when the
    server sent a structured ``{success, error}`` body.
    """

    def __init__(self, base_address: str, timeout: float = 10.0,
                 session: Optional[requests.Session] = None,
                 executor: Optional[ThreadPoolExecutor] = None):
        self.base_address = base_address
        self.timeout = timeout
        self.session = session or requests.Session()
        self._owns_executor = executor is None
        self.executor = executor or ThreadPoolExecutor(
            max_workers=REMOTE_SETTINGS["worker_threads"], thread_name_prefix="remote-yolo")

    def _url(self, endpoint: str) -> str:
        if self.base_address.startswith(("http://", "https://")):
            return f"{self.base_address.rstrip('/')}{endpoint}"
        return f"http://{self.base_address}{endpoint}"

    # Custom model upload

    def upload_custom_model(self, model_bytes: bytes) -> CustomModelResponse:
        """Upload a custom ``.pt`` model for later ``use_custom_model`` analyses."""
        files = {"model": (REMOTE_SETTINGS["custom_model_filename"], model_bytes, "application/octet-stream")}
        body = self._post(
            REMOTE_SETTINGS["custom_model_endpoint"],
            files=files,
            structured_statuses=REMOTE_SETTINGS["structured_error_statuses_upload"]
        )
        response = CustomModelResponse.from_dict(body)
        logger.info(f"Custom model uploaded ({len(model_bytes)} bytes, "
                    f"{response.request.time_ms:.1f} ms server time)")
        return response

    def upload_custom_model_async(self, model_bytes: bytes) -> Future:
        return self.executor.submit(self.upload_custom_model, model_bytes)

    # Analysis

    def analyse(self, image_bytes: bytes,
                model: Union[str, YOLOModelName] = YOLOModelName.YOLO11N,
                fmt: Union[str, YOLOFormat] = YOLOFormat.NCNN,
                use_custom_model: bool = False) -> AnalyseResponse:
        """Run the server's detector on a JPEG image.

        When ``use_custom_model`` is set the previously uploaded model is used;
        nothing is uploaded here.
        """
        data = {
            "format": _selector(fmt),
            "model": REMOTE_SETTINGS["custom_model_selector"] if use_custom_model else _selector(model),
        }
        files = {"image": (REMOTE_SETTINGS["image_filename"], image_bytes, "image/jpeg")}
        body = self._post(
            REMOTE_SETTINGS["analyse_endpoint"],
            data=data,
            files=files,
            structured_statuses=REMOTE_SETTINGS["structured_error_statuses_analyse"]
        )
        response = AnalyseResponse.from_dict(body)
        logger.debug(f"Analyse returned {len(response.result)} objects "
                     f"({response.metadata.request.time_ms:.1f} ms server time)")
        return response

    def analyse_async(self, image_bytes: bytes,
                      model: Union[str, YOLOModelName] = YOLOModelName.YOLO11N,
                      fmt: Union[str, YOLOFormat] = YOLOFormat.NCNN,
                      use_custom_model: bool = False) -> Future:
        return self.executor.submit(self.analyse, image_bytes, model, fmt, use_custom_model)

    # Transport

    def _post(self, endpoint: str, files: Dict[str, Tuple], structured_statuses: Tuple[int, ...],
              data: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        url = self._url(endpoint)
        try:
            response = self.session.post(url, data=data, files=files, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Request to {url} failed: {e}")
            raise RemoteRequestError(f"Request failed: {e}") from e

        if response.status_code in structured_statuses:
            message = self._structured_error(response)
            if message is not None:
                logger.warning(f"Server rejected request to {endpoint}: {message}")
                raise RemoteRequestError(message, response.status_code, response.text)

        if not response.ok:
            message = f"Request failed: {response.status_code} {response.text}"
            logger.error(message)
            raise RemoteRequestError(message, response.status_code, response.text)

        try:
            return response.json()
        except ValueError as e:
            raise RemoteRequestError(f"Invalid JSON in response from {endpoint}: {e}",
                                     response.status_code, response.text) from e

    @staticmethod
    def _structured_error(response: requests.Response) -> Optional[str]:
        """The ``error`` field of a ``{success, error}`` body, or None if the body is not one."""
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict) or "error" not in body:
            return None
        return str(body["error"])

    def close(self) -> None:
        if self._owns_executor:
            self.executor.shutdown(wait=False)
        self.session.close()
