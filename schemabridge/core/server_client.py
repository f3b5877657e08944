"""
Backend server transport - forwards translated requests and probes health.
"""

from typing import Any, Dict, Optional

import requests

from . import config
from .errors import ServerError, TranslationError


class ServerClient:
    """Thin requests-based client for the backend server."""

    def __init__(self, base_url: str = None, forward_path: str = None, health_path: str = None,
                 timeout: float = None):
        self.base_url = (base_url or config.SERVER_BASE_URL).rstrip("/")
        self.forward_path = forward_path or config.SERVER_FORWARD_PATH
        self.health_path = health_path or config.SERVER_HEALTH_PATH
        self.timeout = timeout if timeout is not None else config.SERVER_TIMEOUT_SEC

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}" if path and path != "/" else self.base_url + "/"

    def forward(self, payload: Dict[str, Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        """
        POST a server-schema payload and return the JSON response body.

        Raises:
            ServerError: timeout, unreachable, or non-2xx status
            TranslationError: the body is not a JSON object (schema_mismatch)
        """
        url = self._url(self.forward_path)
        try:
            response = requests.post(url, json=payload, headers=headers or {}, timeout=self.timeout)
        except requests.Timeout as e:
            raise ServerError(f"Server timed out after {self.timeout}s", reason=ServerError.TIMEOUT) from e
        except requests.RequestException as e:
            raise ServerError(f"Server unreachable: {e.__class__.__name__}", reason=ServerError.UNREACHABLE) from e

        if not 200 <= response.status_code < 300:
            raise ServerError(f"Server returned HTTP {response.status_code}", reason=ServerError.NON_2XX,
                              status_code=response.status_code)

        try:
            body = response.json()
        except ValueError as e:
            raise TranslationError("Server response is not JSON", reason=TranslationError.SCHEMA_MISMATCH) from e
        if not isinstance(body, dict):
            raise TranslationError("Server response is not a JSON object", reason=TranslationError.SCHEMA_MISMATCH)
        return body

    def probe(self) -> None:
        """
        Active reachability check against the health path.

        Raises:
            ServerError: timeout, unreachable, or non-2xx status
        """
        url = self._url(self.health_path)
        try:
            response = requests.get(url, timeout=self.timeout)
        except requests.Timeout as e:
            raise ServerError("Health probe timed out", reason=ServerError.TIMEOUT) from e
        except requests.RequestException as e:
            raise ServerError(f"Health probe failed: {e.__class__.__name__}", reason=ServerError.UNREACHABLE) from e

        if not 200 <= response.status_code < 300:
            raise ServerError(f"Health probe returned HTTP {response.status_code}", reason=ServerError.NON_2XX,
                              status_code=response.status_code)
