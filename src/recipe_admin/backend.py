"""
Async client for the recipe backend.

This module wraps a single `httpx.AsyncClient` and translates transport and
status failures into the dashboard's error taxonomy:

- generation calls raise `SubmissionError`
- status checks raise `TransientPollError`
- bucket listing raises `RefreshError`
- bucket deletion raises `DeleteError`

The base URL, API key and timeout come from `BackendSettings`. Tests inject an
`httpx.MockTransport` through the `transport` argument.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from .configuration import BackendSettings
from .errors import DeleteError, RefreshError, SubmissionError, TransientPollError
from .models import JobStatusReport

logger = logging.getLogger(__name__)

STATUS_PATH = "/api/recipes/batch/status/{job_id}"
SEARCH_PATH = "/api/bucket/search"
DELETE_PATH = "/api/bucket/{entry_id}"
STORAGE_INFO_PATH = "/api/storage/info"


async def _log_error_response(response: httpx.Response) -> None:
    if response.is_error:
        logger.error(f"Backend error: {response.request.method} {response.request.url} -> {response.status_code}")


def build_async_client(
    settings: BackendSettings,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Create the `httpx.AsyncClient` shared by every backend call.

    Args:
        settings: Backend connection settings
        transport: Optional transport override (used by tests)

    Returns:
        Client with JSON headers, the API key header when configured, and an
        error-logging response hook
    """
    headers = {"Content-Type": "application/json", "Accept": "application/json"}
    if settings.api_key:
        headers["X-API-Key"] = settings.api_key
    return httpx.AsyncClient(
        base_url=settings.base_url,
        headers=headers,
        timeout=httpx.Timeout(settings.timeout_seconds),
        transport=transport,
        event_hooks={"response": [_log_error_response]},
    )


def _json_body(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {}


def _error_message(response: httpx.Response) -> str:
    body = _json_body(response)
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value.strip():
                return value
    return f"server responded with status {response.status_code}"


class BackendClient:
    """Typed operations over the recipe backend endpoints."""

    def __init__(
        self,
        settings: BackendSettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.settings = settings
        self._http = build_async_client(settings, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def submit_generation(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._http.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise SubmissionError(f"network error: {exc}") from exc

        if response.is_error:
            raise SubmissionError(_error_message(response), status_code=response.status_code)

        body = _json_body(response)
        return body if isinstance(body, dict) else {}

    async def get_job_status(self, job_id: str) -> JobStatusReport:
        try:
            response = await self._http.get(STATUS_PATH.format(job_id=job_id))
        except httpx.HTTPError as exc:
            raise TransientPollError(f"network error: {exc}") from exc

        if response.is_error:
            raise TransientPollError(_error_message(response))

        body = _json_body(response)
        try:
            return JobStatusReport.model_validate(body)
        except ValidationError as exc:
            raise TransientPollError(f"malformed status payload: {exc}") from exc

    async def search_bucket(self) -> Any:
        try:
            response = await self._http.get(SEARCH_PATH)
        except httpx.HTTPError as exc:
            raise RefreshError(f"network error: {exc}") from exc

        if response.is_error:
            raise RefreshError(f"server error (status {response.status_code}): {response.text}")

        try:
            return response.json()
        except ValueError as exc:
            raise RefreshError(f"invalid catalog payload: {exc}") from exc

    async def delete_artifact(self, entry_id: str) -> None:
        try:
            response = await self._http.delete(DELETE_PATH.format(entry_id=entry_id))
        except httpx.HTTPError as exc:
            raise DeleteError(entry_id, f"network error: {exc}") from exc

        if response.is_error:
            raise DeleteError(entry_id, _error_message(response))

    async def get_storage_info(self) -> Dict[str, Any]:
        """
        Fetch the active storage backend description.

        Returns an empty dict on any failure; the storage label is cosmetic and
        callers keep their configured default.
        """
        try:
            response = await self._http.get(STORAGE_INFO_PATH)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Storage info unavailable: {exc}")
            return {}
        return body if isinstance(body, dict) else {}
