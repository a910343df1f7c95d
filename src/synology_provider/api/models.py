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

"""Data models for the DSM Web API envelope and sessions."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from synology_provider.api.errors import DecodeError


@dataclass
class Envelope:
    """Uniform JSON wrapper of every DSM response."""

    success: bool
    data: Any = None
    error: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_api(cls, payload: Any) -> Envelope:
        if not isinstance(payload, dict):
            raise DecodeError("envelope", "object", payload)
        success = payload.get("success", False)
        if not isinstance(success, bool):
            raise DecodeError("success", "bool", success)
        error = payload.get("error") or {}
        if not isinstance(error, dict):
            raise DecodeError("error", "object", error)
        return cls(success=success, data=payload.get("data"), error=error)

    @property
    def code(self) -> int:
        return int(self.error.get("code", 0) or 0)


@dataclass(frozen=True)
class Session:
    """A DSM login session.

    ``last_totp_step`` is the 30-second TOTP step the session was minted
    in, zero when no OTP was used.
    """

    session_id: str
    syno_token: str = ""
    issued_at: int = 0
    last_totp_step: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sid": self.session_id,
            "syno_token": self.syno_token,
            "issued_at": self.issued_at,
            "last_totp_step": self.last_totp_step,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        return cls(
            session_id=str(data.get("sid", "")),
            syno_token=str(data.get("syno_token", "")),
            issued_at=int(data.get("issued_at", 0)),
            last_totp_step=int(data.get("last_totp_step", 0)),
        )

    @classmethod
    def from_json(cls, raw: str | bytes) -> Session:
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise DecodeError("session", "object", data)
        return cls.from_dict(data)

    @property
    def short_id(self) -> str:
        """Session id prefix that is safe to log."""
        return self.session_id[:8]


@dataclass
class ApiInfo:
    """API path and supported version range from SYNO.API.Info."""

    path: str
    min_version: int
    max_version: int

    @classmethod
    def from_api(cls, data: dict) -> ApiInfo:  # type: ignore[type-arg]
        return cls(
            path=data.get("path", "entry.cgi"),
            min_version=data.get("minVersion", 1),
            max_version=data.get("maxVersion", 1),
        )
