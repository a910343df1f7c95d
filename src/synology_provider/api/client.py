# Copyright (c) 2026, Renaud Allard <renaud@allard.it>
# All rights reserved.
#
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are met:
#
# 1. Redistributions of source code must retain the above copyright notice,
#    this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright notice,
#    this list of conditions and the following disclaimer in the documentation
#    and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS"
# AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO, THE
# IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE
# ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR CONTRIBUTORS BE
# LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR
# CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO, PROCUREMENT OF
# SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS
# INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN
# CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE)
# ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

"""Async HTTP client for the Synology DSM Web API."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TYPE_CHECKING, Any
from urllib.parse import urlsplit

import httpx

from synology_provider.api.codec import WireForm, decode, encode
from synology_provider.api.endpoints import Endpoint
from synology_provider.api.errors import (
    ErrorSummary,
    NotAuthenticatedError,
    SessionExpiredError,
    SynologyError,
    TransportError,
    error_from_envelope,
)
from synology_provider.api.models import ApiInfo, Envelope, Session
from synology_provider.api.retry import DEFAULT_RETRY_LIMIT, with_retry

if TYPE_CHECKING:
    from synology_provider.config import ProviderConfig
    from synology_provider.session import SessionManager

log = logging.getLogger(__name__)

ENTRY_PATH = "/webapi/entry.cgi"
QUERY_PATH = "/webapi/query.cgi"
SESSION_COOKIE = "id"
SYNO_TOKEN_HEADER = "X-SYNO-TOKEN"

# APIs that work without a session
PUBLIC_APIS = frozenset({"SYNO.API.Info", "SYNO.API.Auth"})


class SynologyAPI:
    """Async client for the DSM ``/webapi`` endpoints.

    One instance holds one shared ``httpx.AsyncClient`` (connection pool and
    cookie jar) and at most one session. When a :class:`SessionManager` is
    attached, missing or expired sessions are minted through it.
    """

    def __init__(
        self,
        base_url: str,
        *,
        verify: bool = True,
        timeout: float = 30.0,
        retry_limit: int = DEFAULT_RETRY_LIMIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.verify = verify
        self.timeout = timeout
        self.retry_limit = retry_limit
        self.session: Session | None = None
        self.session_manager: SessionManager | None = None
        self._sleep = sleep
        self._api_info: dict[str, ApiInfo] = {}
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: ProviderConfig) -> SynologyAPI:
        return cls(
            config.base_url,
            verify=not config.skip_cert_check,
            timeout=config.timeout,
            retry_limit=config.retry_limit,
        )

    @property
    def host(self) -> str:
        return urlsplit(self.base_url).hostname or ""

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                verify=self.verify,
                timeout=self.timeout,
                http2=True,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=20,
                ),
            )
            if self.session is not None:
                self._set_cookie(self.session.session_id)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> SynologyAPI:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- session ----------------------------------------------------------

    def _set_cookie(self, sid: str) -> None:
        self.client.cookies.set(SESSION_COOKIE, sid, domain=self.host)

    def import_session(self, session: Session) -> None:
        """Adopt an existing session for subsequent calls."""
        self.session = session
        self._set_cookie(session.session_id)

    def export_session(self) -> Session | None:
        return self.session

    def clear_session(self) -> None:
        self.session = None
        if self._client is not None:
            self._client.cookies.clear()

    # -- API discovery ------------------------------------------------------

    async def discover_apis(self) -> None:
        """Discover available APIs via SYNO.API.Info."""
        data = await self.raw_request(
            api="SYNO.API.Info",
            method="query",
            version=1,
            extra_params={"query": "all"},
            path=QUERY_PATH,
        )
        for name, info in (data or {}).items():
            self._api_info[name] = ApiInfo.from_api(info)

        log.debug("Discovered %d APIs", len(self._api_info))

    def _get_api_path(self, api_name: str) -> str:
        """Get CGI path for an API, falling back to entry.cgi."""
        info = self._api_info.get(api_name)
        if info:
            return f"/webapi/{info.path}"
        return ENTRY_PATH

    def _get_api_version(self, api_name: str, requested: int | None = None) -> int:
        """Get version to use for an API call."""
        info = self._api_info.get(api_name)
        if info and requested:
            return min(requested, info.max_version)
        if info:
            return info.max_version
        return requested or 1

    # -- transport ----------------------------------------------------------

    def _base_params(self, api: str, method: str, version: int) -> dict[str, Any]:
        params: dict[str, Any] = {
            "api": api,
            "version": self._get_api_version(api, version),
            "method": method,
        }
        if self.session is not None:
            params["_sid"] = self.session.session_id
        return params

    def _headers(self) -> dict[str, str]:
        if self.session is not None and self.session.syno_token:
            return {SYNO_TOKEN_HEADER: self.session.syno_token}
        return {}

    async def _send(
        self,
        http_method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one HTTP request, retrying transient failures."""

        async def attempt() -> httpx.Response:
            resp = await self.client.request(http_method, url, **kwargs)
            resp.raise_for_status()
            return resp

        try:
            return await with_retry(attempt, self.retry_limit, sleep=self._sleep)
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"HTTP {e.response.status_code} from {e.request.url.path}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def raw_request(
        self,
        api: str,
        method: str,
        version: int = 1,
        extra_params: dict[str, Any] | None = None,
        *,
        known_errors: Iterable[ErrorSummary] = (),
        files: dict[str, tuple[str, bytes, str]] | None = None,
        http_method: str = "GET",
        path: str | None = None,
    ) -> Any:
        """Make a raw API request without session error handling.

        Returns the 'data' field from the response (dict or list).
        """
        url = path or self._get_api_path(api)
        params = self._base_params(api, method, version)
        headers = self._headers()
        log.debug("%s %s.%s v%s", http_method, api, method, params["version"])

        if files:
            resp = await self._send(
                "POST", url, params=params, data=extra_params or {}, files=files, headers=headers
            )
        elif http_method == "POST":
            resp = await self._send(
                "POST", url, params=params, data=extra_params or {}, headers=headers
            )
        else:
            params.update(extra_params or {})
            resp = await self._send("GET", url, params=params, headers=headers)

        try:
            envelope = Envelope.from_api(resp.json())
        except ValueError as e:
            raise TransportError(f"{api}.{method}: response is not a JSON envelope") from e

        if not envelope.success:
            raise error_from_envelope(envelope.error, known_errors, envelope.data) or SynologyError(
                100, data=envelope.data
            )
        return envelope.data

    async def _ensure_session(self, api: str) -> None:
        if api in PUBLIC_APIS or self.session is not None:
            return
        if self.session_manager is None:
            raise NotAuthenticatedError("no session and no credentials configured")
        await self.session_manager.ensure(self)

    async def _with_session(self, api: str, send: Callable[[], Awaitable[Any]]) -> Any:
        await self._ensure_session(api)
        used = self.session
        try:
            return await send()
        except SynologyError as e:
            if not e.is_session_error:
                raise
            if self.session_manager is None:
                raise SessionExpiredError(e.summary, e.code) from e
            log.info("Session error %d, refreshing session", e.code)
            await self.session_manager.refresh(self, stale=used)
        try:
            return await send()
        except SynologyError as e:
            if e.is_session_error:
                raise SessionExpiredError(e.summary, e.code) from e
            raise

    async def request(
        self,
        api: str,
        method: str,
        version: int = 1,
        extra_params: dict[str, Any] | None = None,
        *,
        known_errors: Iterable[ErrorSummary] = (),
        files: dict[str, tuple[str, bytes, str]] | None = None,
        http_method: str = "GET",
    ) -> Any:
        """Make an API request with one session refresh on session errors.

        Returns the 'data' field from the response (dict or list).
        """
        tables = tuple(known_errors)

        async def send() -> Any:
            return await self.raw_request(
                api,
                method,
                version,
                extra_params,
                known_errors=tables,
                files=files,
                http_method=http_method,
            )

        return await self._with_session(api, send)

    async def call(self, entry: Endpoint, req: Any = None) -> Any:
        """Encode ``req``, send it to ``entry`` and decode the response."""
        form = encode(req) if req is not None else WireForm()
        data = await self.request(
            entry.api_name,
            entry.method,
            entry.version,
            form.fields,
            known_errors=entry.known_errors,
            files=form.files or None,
            http_method=entry.http_method,
        )
        if entry.response_type is None:
            return data
        return decode(entry.response_type, data)

    async def download(
        self,
        api: str,
        method: str,
        version: int = 1,
        extra_params: dict[str, Any] | None = None,
        *,
        known_errors: Iterable[ErrorSummary] = (),
    ) -> bytes:
        """Download binary data from an API endpoint."""
        tables = tuple(known_errors)

        async def send() -> bytes:
            params = self._base_params(api, method, version)
            params.update(extra_params or {})
            resp = await self._send(
                "GET", self._get_api_path(api), params=params, headers=self._headers()
            )
            content_type = resp.headers.get("content-type", "")
            if "json" in content_type:
                result = Envelope.from_api(resp.json())
                if not result.success:
                    raise error_from_envelope(result.error, tables) or SynologyError(100)

            content: bytes = resp.content
            return content

        result: bytes = await self._with_session(api, send)
        return result

    async def content_length(self, url: str) -> int:
        """Size of a remote file from its Content-Length header."""
        try:
            async with self.client.stream("GET", url) as resp:
                resp.raise_for_status()
                return int(resp.headers.get("content-length", 0))
        except httpx.HTTPError as e:
            raise TransportError(f"{type(e).__name__}: {e}") from e

    async def fetch(self, url: str) -> bytes:
        """Body of an arbitrary URL, with the same retry policy as API calls."""
        resp = await self._send("GET", url)
        content: bytes = resp.content
        return content
