"""Tests for HTTP transport implementations."""

import unittest
from unittest.mock import MagicMock, patch

import requests

from mcmapi._auth import TokenAuthProvider
from mcmapi._http import HttpClient, StandaloneHttpClient


class TestHttpClientVerbHelpers(unittest.TestCase):
    """Tests for the verb helpers on the HttpClient base class."""

    def setUp(self):
        self.client = MagicMock(spec=HttpClient)
        for verb in ("get", "post", "patch", "delete"):
            setattr(self.client, verb, getattr(HttpClient, verb).__get__(self.client))

    def test_get(self):
        self.client.get("https://x/health", timeout=5)
        self.client.send.assert_called_once_with("GET", "https://x/health", headers=None, timeout=5)

    def test_post(self):
        self.client.post("https://x/items", body={"a": 1})
        self.client.send.assert_called_once_with(
            "POST", "https://x/items", body={"a": 1}, headers=None, timeout=30
        )

    def test_patch(self):
        self.client.patch("https://x/items/1", body={"a": 2})
        self.client.send.assert_called_once_with(
            "PATCH", "https://x/items/1", body={"a": 2}, headers=None, timeout=30
        )

    def test_delete(self):
        self.client.delete("https://x/items/1")
        self.client.send.assert_called_once_with("DELETE", "https://x/items/1", headers=None, timeout=30)


class TestStandaloneHttpClient(unittest.TestCase):
    """Tests for StandaloneHttpClient."""

    def setUp(self):
        self.auth = TokenAuthProvider("abc")
        self.client = StandaloneHttpClient(auth_provider=self.auth)

    def test_requires_auth_provider(self):
        with self.assertRaises(AssertionError):
            StandaloneHttpClient(auth_provider=None)  # type: ignore[arg-type]

    def test_rejects_non_provider(self):
        with self.assertRaises(AssertionError):
            StandaloneHttpClient(auth_provider="abc")  # type: ignore[arg-type]

    @patch("requests.Session.request")
    def test_send_merges_auth_headers(self, mock_request):
        mock_request.return_value = MagicMock(spec=requests.Response)

        self.client.send("POST", "https://x/items", body={"a": 1}, headers={"X-Trace": "1"}, timeout=10)

        mock_request.assert_called_once_with(
            "POST",
            "https://x/items",
            json={"a": 1},
            headers={"Authorization": "Private abc", "X-Trace": "1"},
            timeout=10,
        )

    @patch("requests.Session.request")
    def test_extra_headers_override_auth(self, mock_request):
        self.client.send("GET", "https://x/health", headers={"Authorization": "Shared other"})

        _, kwargs = mock_request.call_args
        self.assertEqual(kwargs["headers"], {"Authorization": "Shared other"})

    @patch("requests.Session.request")
    def test_returns_response_for_any_status(self, mock_request):
        response = MagicMock(spec=requests.Response)
        response.status_code = 429
        mock_request.return_value = response

        self.assertIs(self.client.get("https://x/health"), response)

    @patch("requests.Session.request")
    def test_transport_errors_propagate(self, mock_request):
        mock_request.side_effect = requests.ConnectionError("boom")

        with self.assertRaises(requests.ConnectionError):
            self.client.get("https://x/health")

    def test_rejects_plain_http_by_default(self):
        with self.assertRaises(AssertionError):
            self.client.get("http://x/health")

    @patch("requests.Session.request")
    def test_allows_plain_http_when_disabled(self, mock_request):
        client = StandaloneHttpClient(auth_provider=self.auth, https_only=False)
        client.get("http://localhost/health")
        mock_request.assert_called_once()

    def test_rejects_invalid_timeout(self):
        with self.assertRaises(AssertionError):
            self.client.get("https://x/health", timeout=0)

    def test_reuses_session_within_thread(self):
        self.assertIs(self.client._session(), self.client._session())


if __name__ == "__main__":
    unittest.main()
