"""Thin async client for the LMS REST API.

One ``httpx.AsyncClient`` (connection pool) is built at the app root and
shared.  ``LmsApiClient`` is a cheap per-session wrapper that carries the
bearer token, so the token is passed explicitly rather than read from
ambient storage.
"""

from __future__ import annotations

import logging
import time
from typing import Any

import httpx

from portal.clients.errors import (
    ApiError,
    NotFoundError,
    SessionExpiredError,
    UpstreamError,
    UpstreamUnavailableError,
    UpstreamValidationError,
)
from portal.core.metrics import UPSTREAM_DURATION, UPSTREAM_REQUESTS

logger = logging.getLogger(__name__)


def build_http_client(
    base_url: str,
    timeout_seconds: float,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared connection pool.  ``transport`` is for tests."""
    return httpx.AsyncClient(
        base_url=base_url,
        timeout=timeout_seconds,
        headers={"Content-Type": "application/json"},
        transport=transport,
    )


def _error_message(response: httpx.Response) -> str:
    """Pull a human-readable message out of an error body, if there is one."""
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        message = body.get("message") or body.get("detail") or body.get("error")
        if isinstance(message, list):
            return "; ".join(str(m) for m in message)
        if message:
            return str(message)
    return response.reason_phrase


class LmsApiClient:
    """Bearer-authenticated JSON calls against the LMS API."""

    def __init__(self, http: httpx.AsyncClient, token: str | None = None) -> None:
        self._http = http
        self._token = token

    @property
    def token(self) -> str | None:
        return self._token

    def with_token(self, token: str | None) -> LmsApiClient:
        return LmsApiClient(self._http, token)

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        headers = {}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None}

        start = time.monotonic()
        try:
            response = await self._http.request(
                method, path, json=json, params=params or None, headers=headers
            )
        except httpx.HTTPError as e:
            UPSTREAM_REQUESTS.labels(method=method, status="error").inc()
            logger.warning("Upstream %s %s failed: %s", method, path, e)
            raise UpstreamUnavailableError(
                f"LMS API unreachable: {e}", path=path
            ) from e
        finally:
            UPSTREAM_DURATION.labels(method=method).observe(time.monotonic() - start)

        UPSTREAM_REQUESTS.labels(method=method, status=str(response.status_code)).inc()
        logger.debug("Upstream %s %s → %d", method, path, response.status_code)

        if response.is_success:
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                raise UpstreamError(
                    "LMS API returned a non-JSON body",
                    status_code=response.status_code,
                    path=path,
                ) from None

        message = _error_message(response)
        status = response.status_code
        logger.warning(
            "Upstream %s %s rejected  status=%d message=%s",
            method,
            path,
            status,
            message,
        )
        error_cls: type[ApiError]
        if status == 401:
            error_cls = SessionExpiredError
        elif status == 404:
            error_cls = NotFoundError
        elif status in (400, 422):
            error_cls = UpstreamValidationError
        else:
            error_cls = UpstreamError
        raise error_cls(message, status_code=status, path=path)

    async def get(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        return await self.request("GET", path, params=params)

    async def post(self, path: str, json: Any = None) -> Any:
        return await self.request("POST", path, json=json)

    async def put(self, path: str, json: Any = None) -> Any:
        return await self.request("PUT", path, json=json)

    async def patch(self, path: str, json: Any = None) -> Any:
        return await self.request("PATCH", path, json=json)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)
