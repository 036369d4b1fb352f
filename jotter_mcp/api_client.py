#!/usr/bin/env python3
"""Minimal JSON client for the Jotter HTTP API."""

import json
import urllib.error
import urllib.request

DEFAULT_API_URL = "http://localhost:3000/api"
REQUEST_TIMEOUT = 30


class ApiError(RuntimeError):
    """Non-2xx answer from the API; the message is the response body."""

    def __init__(self, status: int, body: str):
        super().__init__(body or f"HTTP {status}")
        self.status = status
        self.body = body


class ApiClient:
    def __init__(self, base_url: str = DEFAULT_API_URL, timeout: float = REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, body=None):
        data = None
        headers = {}
        if body is not None:
            data = json.dumps(body).encode()
            headers["Content-Type"] = "application/json"
        req = urllib.request.Request(self.base_url + path, data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                raw = resp.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            text = exc.read().decode("utf-8", errors="replace")
            raise ApiError(exc.code, text) from exc
        return json.loads(raw) if raw else None

    def get(self, path: str):
        return self._request("GET", path)

    def post(self, path: str, body: dict):
        return self._request("POST", path, body)

    def patch(self, path: str, body: dict):
        return self._request("PATCH", path, body)

    def delete(self, path: str):
        return self._request("DELETE", path)
