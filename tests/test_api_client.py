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

"""Tests for API client."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
import respx
from httpx import Response

from conftest import BASE_URL, ENTRY_URL, fail, ok
from synology_provider.api import auth
from synology_provider.api.client import SynologyAPI
from synology_provider.api.errors import (
    NotAuthenticatedError,
    SessionExpiredError,
    SynologyError,
    TransportError,
)
from synology_provider.api.models import Session
from synology_provider.services import filestation
from synology_provider.session import Credentials, Identity, SessionManager, SessionRegistry
from synology_provider.session_cache import MemoryStore


class TestSynologyAPI:
    def test_init(self) -> None:
        api = SynologyAPI(BASE_URL + "/")
        assert api.base_url == BASE_URL
        assert api.host == "192.168.1.100"
        assert api.session is None

    @pytest.mark.asyncio
    @respx.mock
    async def test_discover_apis(self, api: SynologyAPI) -> None:
        respx.get(f"{BASE_URL}/webapi/query.cgi").mock(
            return_value=Response(
                200,
                json=ok(
                    {
                        "SYNO.API.Auth": {"path": "entry.cgi", "minVersion": 1, "maxVersion": 7},
                        "SYNO.FileStation.List": {
                            "path": "entry.cgi",
                            "minVersion": 1,
                            "maxVersion": 2,
                        },
                    }
                ),
            )
        )

        await api.discover_apis()
        assert api._api_info["SYNO.API.Auth"].max_version == 7
        assert api._get_api_version("SYNO.FileStation.List", 3) == 2
        assert api._get_api_version("SYNO.Unknown", 3) == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_raw_request_success(self, api: SynologyAPI) -> None:
        route = respx.get(ENTRY_URL).mock(
            return_value=Response(200, json=ok({"shares": [{"name": "docker"}]}))
        )

        data = await api.raw_request("SYNO.FileStation.List", "list_share", 2)
        assert data["shares"][0]["name"] == "docker"

        request = route.calls.last.request
        assert request.url.params["api"] == "SYNO.FileStation.List"
        assert request.url.params["version"] == "2"
        assert request.url.params["_sid"] == "test-sid-12345"
        assert request.headers["X-SYNO-TOKEN"] == "tok"

    @pytest.mark.asyncio
    @respx.mock
    async def test_raw_request_error(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(return_value=Response(200, json=fail(102)))

        with pytest.raises(SynologyError) as exc_info:
            await api.raw_request("SYNO.Missing", "list")
        assert exc_info.value.code == 102
        assert exc_info.value.summary == "The requested API does not exist"

    @pytest.mark.asyncio
    @respx.mock
    async def test_unknown_envelope_fields_are_ignored(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(
            return_value=Response(200, json={"success": True, "data": {"a": 1}, "extra": "x"})
        )
        assert await api.raw_request("SYNO.Test", "get") == {"a": 1}

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_response(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(return_value=Response(200, text="<html>"))

        with pytest.raises(TransportError):
            await api.raw_request("SYNO.Test", "get")

    @pytest.mark.asyncio
    @respx.mock
    async def test_post_sends_form_body(self, api: SynologyAPI) -> None:
        route = respx.post(ENTRY_URL).mock(return_value=Response(200, json=ok()))

        await api.raw_request(
            "SYNO.Docker.Project", "create", 1, {"name": "web"}, http_method="POST"
        )
        request = route.calls.last.request
        assert request.url.params["method"] == "create"
        assert b"name=web" in request.content

    @pytest.mark.asyncio
    @respx.mock
    async def test_multipart_upload(self, api: SynologyAPI) -> None:
        route = respx.post(ENTRY_URL).mock(return_value=Response(200, json=ok()))

        await filestation.upload(api, "/docker/app/hello.txt", "hello")
        body = route.calls.last.request.content
        assert b'name="path"' in body
        assert b"/docker/app" in body
        assert b'filename="hello.txt"' in body
        assert b"hello" in body


class TestRetry:
    @pytest.mark.asyncio
    @respx.mock
    async def test_server_error_is_retried(self, api: SynologyAPI) -> None:
        route = respx.get(ENTRY_URL).mock(
            side_effect=[Response(503), Response(200, json=ok({"a": 1}))]
        )

        assert await api.raw_request("SYNO.Test", "get") == {"a": 1}
        assert route.call_count == 2

    @pytest.mark.asyncio
    @respx.mock
    async def test_client_error_is_not_retried(self, api: SynologyAPI) -> None:
        route = respx.get(ENTRY_URL).mock(return_value=Response(404))

        with pytest.raises(TransportError):
            await api.raw_request("SYNO.Test", "get")
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_connect_error_exhausts_budget(self, api: SynologyAPI) -> None:
        route = respx.get(ENTRY_URL).mock(side_effect=httpx.ConnectError)

        with pytest.raises(TransportError) as exc_info:
            await api.raw_request("SYNO.Test", "get")
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
        assert route.call_count == api.retry_limit + 1


class TestSessionHandling:
    @pytest.mark.asyncio
    async def test_no_session_no_manager(self, anon_api: SynologyAPI) -> None:
        with pytest.raises(NotAuthenticatedError):
            await anon_api.request("SYNO.FileStation.List", "list_share", 2)

    @pytest.mark.asyncio
    @respx.mock
    async def test_public_api_needs_no_session(self, anon_api: SynologyAPI) -> None:
        route = respx.get(ENTRY_URL).mock(return_value=Response(200, json=ok({"x": 1})))

        assert await anon_api.request("SYNO.API.Auth", "logout", 6) == {"x": 1}
        assert "_sid" not in route.calls.last.request.url.params

    @pytest.mark.asyncio
    @respx.mock
    async def test_session_error_refreshes_once(self, api: SynologyAPI) -> None:
        route = respx.get(ENTRY_URL).mock(
            side_effect=[Response(200, json=fail(119)), Response(200, json=ok({"a": 1}))]
        )

        async def refresh(client: SynologyAPI, stale: Session | None) -> Session:
            fresh = Session(session_id="fresh-sid")
            client.session = fresh
            return fresh

        manager = MagicMock()
        manager.refresh = AsyncMock(side_effect=refresh)
        api.session_manager = manager

        assert await api.request("SYNO.Test", "get") == {"a": 1}
        manager.refresh.assert_awaited_once()
        assert route.calls.last.request.url.params["_sid"] == "fresh-sid"

    @pytest.mark.asyncio
    @respx.mock
    async def test_second_session_error_surfaces(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(return_value=Response(200, json=fail(106)))
        manager = MagicMock()
        manager.refresh = AsyncMock()
        api.session_manager = manager

        with pytest.raises(SessionExpiredError) as exc_info:
            await api.request("SYNO.Test", "get")
        assert exc_info.value.code == 106

    @pytest.mark.asyncio
    @respx.mock
    async def test_session_error_without_manager(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(return_value=Response(200, json=fail(119)))

        with pytest.raises(SessionExpiredError):
            await api.request("SYNO.Test", "get")

    @pytest.mark.asyncio
    @respx.mock
    async def test_late_session_error_adopts_refreshed_session(self, api: SynologyAPI) -> None:
        stale_id = api.session.session_id
        refreshed = asyncio.Event()
        stale_replies = 0

        async def reply(request: httpx.Request) -> Response:
            nonlocal stale_replies
            if request.url.params["_sid"] != stale_id:
                refreshed.set()
                return Response(200, json=ok({"sid": request.url.params["_sid"]}))
            stale_replies += 1
            if stale_replies == 2:
                await refreshed.wait()
            return Response(200, json=fail(119))

        respx.get(ENTRY_URL).mock(side_effect=reply)

        logins = 0

        async def login(client: SynologyAPI, *args: Any, **kwargs: Any) -> Session:
            nonlocal logins
            logins += 1
            session = Session(session_id=f"fresh-{logins}", syno_token="tok")
            client.import_session(session)
            return session

        SessionManager(
            Identity(BASE_URL, "tf", True), Credentials("tf", "p"), SessionRegistry(MemoryStore())
        ).attach(api)

        with patch.object(auth, "login", new=AsyncMock(side_effect=login)):
            first, second = await asyncio.gather(
                api.request("SYNO.Test", "get"), api.request("SYNO.Test", "get")
            )

        assert first == second == {"sid": "fresh-1"}
        assert logins == 1

    def test_export_import_session(self, anon_api: SynologyAPI) -> None:
        session = Session(session_id="abc", syno_token="t")
        anon_api.import_session(session)
        assert anon_api.export_session() == session
        assert anon_api.client.cookies.get("id") == "abc"
        anon_api.clear_session()
        assert anon_api.export_session() is None


class TestDownload:
    @pytest.mark.asyncio
    @respx.mock
    async def test_binary_body(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(
            return_value=Response(
                200, content=b"\x00\x01", headers={"content-type": "application/octet-stream"}
            )
        )
        assert await filestation.download(api, "/docker/a.bin") == b"\x00\x01"

    @pytest.mark.asyncio
    @respx.mock
    async def test_json_error_body(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(return_value=Response(200, json=fail(408)))

        with pytest.raises(SynologyError) as exc_info:
            await filestation.download(api, "/docker/missing")
        assert exc_info.value.summary == "No such file or directory"

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch(self, api: SynologyAPI) -> None:
        respx.get("https://example.com/a.iso").mock(return_value=Response(200, content=b"iso"))
        assert await api.fetch("https://example.com/a.iso") == b"iso"


@pytest.mark.asyncio
async def test_close(api: SynologyAPI) -> None:
    _ = api.client
    await api.close()
    assert api._client is None
