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

"""Endpoint catalog.

Each DSM endpoint is declared once with its API name, method, version,
request and response record types and the error tables that apply to it.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

from synology_provider.api.errors import ErrorSummary, InvalidArgumentError


@dataclass(frozen=True, eq=False)
class Endpoint:
    """A single (api, method) pair of the DSM Web API.

    ``known_errors`` lists the endpoint's own table first and the API
    family's common table after it; the global table is always consulted
    last by the error model.
    """

    api_name: str
    method: str
    version: int
    request_type: type | None = None
    response_type: type | None = None
    known_errors: tuple[ErrorSummary, ...] = ()
    http_method: str = "GET"

    @property
    def key(self) -> tuple[str, str]:
        return self.api_name, self.method


class EndpointRegistry:
    """Lookup of endpoints by ``(api_name, method)``."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], Endpoint] = {}

    def register(self, entry: Endpoint) -> Endpoint:
        existing = self._entries.get(entry.key)
        if existing is not None and existing is not entry:
            raise InvalidArgumentError(f"endpoint {entry.api_name}.{entry.method} already registered")
        self._entries[entry.key] = entry
        return entry

    def lookup(self, api_name: str, method: str) -> Endpoint:
        try:
            return self._entries[(api_name, method)]
        except KeyError:
            raise InvalidArgumentError(f"unknown endpoint {api_name}.{method}") from None

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[Endpoint]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)


REGISTRY = EndpointRegistry()


def endpoint(
    api_name: str,
    method: str,
    version: int,
    request_type: type | None = None,
    response_type: type | None = None,
    known_errors: tuple[ErrorSummary, ...] = (),
    http_method: str = "GET",
) -> Endpoint:
    """Declare an endpoint and add it to the global catalog."""
    return REGISTRY.register(
        Endpoint(
            api_name=api_name,
            method=method,
            version=version,
            request_type=request_type,
            response_type=response_type,
            known_errors=known_errors,
            http_method=http_method,
        )
    )
