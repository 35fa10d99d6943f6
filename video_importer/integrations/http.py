"""Shared httpx plumbing for the gateway and index clients."""

from __future__ import annotations

from collections.abc import Mapping
import json as jsonlib
from typing import Any

import httpx


class ServiceClientError(RuntimeError):
    """Base exception raised for remote service failures."""

    def __init__(self, message: str, *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class ServiceTimeoutError(ServiceClientError):
    """Raised when a request exceeded the configured timeout."""

    def __init__(self, message: str = "request timed out") -> None:
        super().__init__(message, retryable=True)


class ServiceInvalidResponseError(ServiceClientError):
    """Raised when the upstream payload cannot be decoded."""


class ServiceHTTPStatusError(ServiceClientError):
    """Raised when the upstream service returned a non-success status code."""

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        body: str | None = None,
        retryable: bool = False,
    ) -> None:
        super().__init__(f"{message} (status {status_code})", retryable=retryable)
        self.status_code = status_code
        self.body = body


class ServiceClient:
    """Issue requests against one base URL through a shared ``AsyncClient``."""

    service_name = "service"

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str,
        api_key: str | None = None,
    ) -> None:
        self._http = http
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._api_key = api_key

    @property
    def base_url(self) -> str:
        return self._base_url

    def url(self, path: str) -> str:
        return self._base_url + path.lstrip("/")

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["X-Api-Key"] = self._api_key
        if extra:
            headers.update(extra)
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        content: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """Send a request and return the response whatever its status."""

        try:
            return await self._http.request(
                method,
                self.url(path),
                params=params,
                json=json,
                content=content,
                headers=self._headers(headers),
            )
        except httpx.TimeoutException as exc:
            raise ServiceTimeoutError(
                f"{self.service_name} {method} {path} timed out"
            ) from exc
        except httpx.HTTPError as exc:
            raise ServiceClientError(
                f"{self.service_name} {method} {path} failed: {exc}", retryable=True
            ) from exc

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request and raise unless the response is a 2xx."""

        response = await self._send(method, path, **kwargs)
        if response.is_success:
            return response

        body_preview = response.text[:200]
        status = response.status_code
        raise ServiceHTTPStatusError(
            status,
            f"{self.service_name} {method} {path} was rejected",
            body=body_preview,
            retryable=status >= 500 or status == httpx.codes.TOO_MANY_REQUESTS,
        )

    def _decode_json(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ServiceInvalidResponseError(
                f"{self.service_name} returned invalid JSON"
            ) from exc


def decode_text_payload(response: httpx.Response) -> str:
    """Return a plain identifier from a body that may be a JSON string."""

    text = response.text.strip()
    if not text:
        return ""
    try:
        decoded = jsonlib.loads(text)
    except ValueError:
        return text.strip('"').strip()
    if isinstance(decoded, str):
        return decoded.strip()
    if isinstance(decoded, (int, float)) and not isinstance(decoded, bool):
        return str(decoded)
    return ""


__all__ = [
    "ServiceClient",
    "ServiceClientError",
    "ServiceHTTPStatusError",
    "ServiceInvalidResponseError",
    "ServiceTimeoutError",
    "decode_text_payload",
]
