"""HTTP transport for the PostgREST endpoint."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Protocol

import aiohttp

from pyschools._constants import USER_AGENT
from pyschools._redact import redact_for_log
from pyschools.config import SchoolsConfig
from pyschools.exceptions import SchoolsApiError, SchoolsTransportError

_logger = logging.getLogger(__name__)

_READ_METHODS = frozenset({"GET", "HEAD"})


class Transport(Protocol):
    """Structural transport interface used by :class:`pyschools.client.SchoolsClient`.

    Having a protocol here makes it easy to pass test doubles while keeping
    the production implementation (`RestTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_body(body: Any) -> str:
    """JSON-encode a request body, writing dates as ISO strings."""
    return json.dumps(body, default=_json_default, separators=(",", ":"))


def _format_filter_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def build_match_params(match: Mapping[str, Any] | None) -> dict[str, str]:
    """Translate ``{"id": 5}`` into PostgREST filters (``{"id": "eq.5"}``)."""
    params: dict[str, str] = {}
    for column, value in (match or {}).items():
        if value is None:
            params[column] = "is.null"
        else:
            params[column] = f"eq.{_format_filter_value(value)}"
    return params


def build_order_param(order_by: str, ascending: bool = True) -> str:
    return f"{order_by}.{'asc' if ascending else 'desc'}"


def _api_error(status: int, text: str, endpoint: str) -> SchoolsApiError:
    """Build an error from a PostgREST error body (``code``/``message``/``details``/``hint``)."""
    try:
        body = json.loads(text) if text else {}
    except json.JSONDecodeError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    message = body.get("message") or body.get("msg") or body.get("error") or text[:200] or f"HTTP {status}"
    return SchoolsApiError(
        str(message),
        code=str(body.get("code") or ""),
        endpoint=endpoint,
        status_code=status,
        details=body.get("details"),
        hint=body.get("hint"),
    )


class RestTransport:
    """PostgREST transport over a shared ``aiohttp`` session."""

    def __init__(self, config: SchoolsConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self, method: str, *, has_body: bool, prefer: str | None) -> dict[str, str]:
        headers: dict[str, str] = {
            "apikey": self._config.anon_key,
            "authorization": f"Bearer {self._config.anon_key}",
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if method in _READ_METHODS:
            headers["accept-profile"] = self._config.schema
        else:
            headers["content-profile"] = self._config.schema
        if has_body:
            headers["content-type"] = "application/json"
        if prefer:
            headers["prefer"] = prefer
        return headers

    async def request(
        self,
        method: str,
        table: str,
        *,
        params: Mapping[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Send one PostgREST request and return the decoded JSON body.

        Returns ``None`` for empty bodies (e.g. ``204 No Content``).
        """
        method = method.upper()
        endpoint = f"/{table}"
        url = f"{self._config.rest_url}{endpoint}"
        data = encode_body(body) if body is not None else None
        headers = self._headers(method, has_body=data is not None, prefer=prefer)

        _logger.debug(
            "%s %s params=%s body=%s",
            method,
            url,
            dict(params or {}),
            redact_for_log(body),
        )

        try:
            async with self._http.request(
                method,
                url,
                params=dict(params or {}),
                data=data,
                headers=headers,
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise SchoolsTransportError(
                f"{method} {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except TimeoutError as exc:
            raise SchoolsTransportError(
                f"{method} {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc

        if status >= 400:
            raise _api_error(status, text, endpoint)

        if not text.strip():
            return None

        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchoolsTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc


def expect_rows(result: Any, endpoint: str) -> list[dict[str, Any]]:
    """Coerce a PostgREST answer into a list of row dicts."""
    if result is None:
        return []
    if isinstance(result, dict):
        return [result]
    if not isinstance(result, list) or not all(isinstance(row, dict) for row in result):
        raise SchoolsTransportError(
            f"Expected a JSON array of rows from {endpoint}, got {type(result).__name__}",
            endpoint=endpoint,
        )
    return result
