"""
Backend transport: error mapping for forward and probe.
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from schemabridge.core.errors import ServerError, TranslationError
from schemabridge.core.server_client import ServerClient


def http_response(status=200, body=None, json_error=False):
    response = MagicMock()
    response.status_code = status
    if json_error:
        response.json.side_effect = ValueError("Expecting value")
    else:
        response.json.return_value = body
    return response


@pytest.fixture
def client():
    return ServerClient(base_url="http://backend:9000/", forward_path="/users", health_path="/health", timeout=2)


class TestForward:
    @patch("schemabridge.core.server_client.requests.post")
    def test_success(self, mock_post, client):
        mock_post.return_value = http_response(body={"full_name": "Alice Smith", "user_id": "xyz123"})

        body = client.forward({"f_name": "Alice", "l_name": "Smith"}, headers={"X-Trace": "1"})

        assert body == {"full_name": "Alice Smith", "user_id": "xyz123"}
        mock_post.assert_called_once_with(
            "http://backend:9000/users",
            json={"f_name": "Alice", "l_name": "Smith"},
            headers={"X-Trace": "1"},
            timeout=2,
        )

    @patch("schemabridge.core.server_client.requests.post")
    def test_timeout(self, mock_post, client):
        mock_post.side_effect = requests.Timeout("read timed out")

        with pytest.raises(ServerError) as exc_info:
            client.forward({})

        assert exc_info.value.reason == ServerError.TIMEOUT

    @patch("schemabridge.core.server_client.requests.post")
    def test_unreachable(self, mock_post, client):
        mock_post.side_effect = requests.ConnectionError("refused")

        with pytest.raises(ServerError) as exc_info:
            client.forward({})

        assert exc_info.value.reason == ServerError.UNREACHABLE

    @pytest.mark.parametrize("status", [400, 404, 500, 503])
    @patch("schemabridge.core.server_client.requests.post")
    def test_non_2xx(self, mock_post, client, status):
        mock_post.return_value = http_response(status=status, body={"error": "nope"})

        with pytest.raises(ServerError) as exc_info:
            client.forward({})

        assert exc_info.value.reason == ServerError.NON_2XX
        assert exc_info.value.status_code == status
        assert exc_info.value.to_dict()["details"]["status_code"] == status

    @patch("schemabridge.core.server_client.requests.post")
    def test_body_not_json(self, mock_post, client):
        mock_post.return_value = http_response(json_error=True)

        with pytest.raises(TranslationError) as exc_info:
            client.forward({})

        assert exc_info.value.reason == TranslationError.SCHEMA_MISMATCH

    @patch("schemabridge.core.server_client.requests.post")
    def test_body_not_object(self, mock_post, client):
        mock_post.return_value = http_response(body=["a", "b"])

        with pytest.raises(TranslationError):
            client.forward({})


class TestProbe:
    @patch("schemabridge.core.server_client.requests.get")
    def test_healthy(self, mock_get, client):
        mock_get.return_value = http_response(status=204)

        client.probe()

        mock_get.assert_called_once_with("http://backend:9000/health", timeout=2)

    @patch("schemabridge.core.server_client.requests.get")
    def test_unhealthy_status(self, mock_get, client):
        mock_get.return_value = http_response(status=503)

        with pytest.raises(ServerError) as exc_info:
            client.probe()

        assert exc_info.value.reason == ServerError.NON_2XX

    @patch("schemabridge.core.server_client.requests.get")
    def test_timeout(self, mock_get, client):
        mock_get.side_effect = requests.Timeout()

        with pytest.raises(ServerError) as exc_info:
            client.probe()

        assert exc_info.value.reason == ServerError.TIMEOUT


def test_root_forward_path():
    client = ServerClient(base_url="http://backend:9000", forward_path="/", timeout=1)
    assert client._url(client.forward_path) == "http://backend:9000/"
