# tracker_client/api.py - HTTP access to the tracker API (requests in a worker thread)
import asyncio
import json
import logging
from typing import Any, Optional, Sequence

import requests

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Any failed call: network error, non-2xx status, or an unreadable body."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def error_message(resp: requests.Response) -> str:
    """Best human-readable message for a failed response."""
    reason = resp.reason or f"HTTP {resp.status_code}"
    try:
        body = resp.text
    except Exception:
        return reason
    if body.strip().startswith("<"):
        return f"Server error ({resp.status_code}). Please check the server logs."
    if "application/json" in resp.headers.get("content-type", ""):
        try:
            data = json.loads(body)
        except ValueError:
            return body or reason
        if isinstance(data, dict):
            return data.get("message") or data.get("error") or reason
        return reason
    return body or reason


class ApiClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def url(self, path: str) -> str:
        return self.base_url + "/" + path.lstrip("/")

    def _send(self, method: str, path: str, data: Any = None) -> requests.Response:
        kwargs = {"timeout": self.timeout}
        if data is not None:
            kwargs["json"] = data
        try:
            return self.session.request(method, self.url(path), **kwargs)
        except requests.RequestException as e:
            raise ApiError(0, f"Network error: {e}") from e

    def request_sync(self, method: str, path: str, data: Any = None) -> Any:
        resp = self._send(method, path, data)
        if not resp.ok:
            raise ApiError(resp.status_code, error_message(resp))
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(resp.status_code, "Could not parse server response") from e

    async def request(self, method: str, path: str, data: Any = None) -> Any:
        """The one suspension point of a mutation: the blocking call runs off-loop."""
        logger.debug("%s %s", method, path)
        return await asyncio.to_thread(self.request_sync, method, path, data)

    async def fetch(self, key: Sequence[Any], on401: str = "throw") -> Any:
        """GET the resource named by a query key, e.g. ("/api/organizations", oid, "students")."""
        path = "/".join(str(part) for part in key)
        try:
            return await self.request("GET", path)
        except ApiError as e:
            if on401 == "return_none" and e.status == 401:
                return None
            raise
