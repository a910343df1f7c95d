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

"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest
import respx
from httpx import Response

from synology_provider.api.client import SynologyAPI
from synology_provider.api.models import Session

BASE_URL = "https://192.168.1.100:5001"
ENTRY_URL = f"{BASE_URL}/webapi/entry.cgi"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


async def no_sleep(delay: float) -> None:
    return None


def ok(data: Any = None) -> dict[str, Any]:
    """Successful DSM envelope."""
    return {"success": True, "data": data}


def fail(code: int, errors: list[Any] | None = None) -> dict[str, Any]:
    """Failed DSM envelope."""
    error: dict[str, Any] = {"code": code}
    if errors is not None:
        error["errors"] = errors
    return {"success": False, "error": error}


@pytest.fixture
def api() -> SynologyAPI:
    """Test API client carrying a session."""
    client = SynologyAPI(BASE_URL, verify=False, retry_limit=2, sleep=no_sleep)
    client.session = Session(session_id="test-sid-12345", syno_token="tok")
    return client


@pytest.fixture
def anon_api() -> SynologyAPI:
    """Test API client without a session."""
    return SynologyAPI(BASE_URL, verify=False, retry_limit=2, sleep=no_sleep)


class FakeDSM:
    """Scripted DSM endpoint for respx.

    Replies are queued per ``api.method``; the last reply of a queue is
    repeated. Every request is recorded with its merged query and form fields.
    """

    def __init__(self, replies: dict[str, Any] | None = None) -> None:
        self.replies: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, dict[str, str]]] = []
        for key, reply in (replies or {}).items():
            self.on(key, reply)

    def on(self, key: str, *replies: Any) -> FakeDSM:
        self.replies.setdefault(key, []).extend(replies)
        return self

    def __call__(self, request: httpx.Request) -> Response:
        fields = dict(request.url.params)
        key = f"{fields['api']}.{fields['method']}"
        if request.headers.get("content-type", "").startswith(FORM_CONTENT_TYPE):
            fields.update(parse_qsl(request.content.decode()))
        self.calls.append((key, fields))
        queue = self.replies.get(key)
        if not queue:
            raise AssertionError(f"unexpected call to {key}")
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        return Response(200, json=reply)

    @property
    def methods(self) -> list[str]:
        return [key for key, _ in self.calls]

    def form(self, key: str) -> dict[str, str]:
        """Fields of the last call to ``key``."""
        for called, fields in reversed(self.calls):
            if called == key:
                return fields
        raise AssertionError(f"{key} was not called")


@pytest.fixture
def dsm() -> Iterator[FakeDSM]:
    """FakeDSM mounted on entry.cgi for the duration of a test."""
    fake = FakeDSM()
    with respx.mock(assert_all_called=False) as router:
        router.route(url__startswith=ENTRY_URL).mock(side_effect=fake)
        yield fake
