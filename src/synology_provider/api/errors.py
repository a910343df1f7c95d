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

"""Error model for the DSM Web API.

DSM reports failures as a numeric code plus an optional list of detailed
sub-errors. Codes are resolved to text by walking an ordered list of
code tables (endpoint, API family, global); the first table that knows the
code wins.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

ErrorSummary = Mapping[int, str]

UNKNOWN_ERROR_CODE = "Unknown error code"

# Errors shared by every DSM API, independent of the endpoint
GLOBAL_ERRORS: dict[int, str] = {
    100: "Unknown error",
    101: "No parameter of API, method or version",
    102: "The requested API does not exist",
    103: "The requested method does not exist",
    104: "The requested version does not support the functionality",
    105: "The logged in session does not have permission",
    106: "Session timeout",
    107: "Session interrupted by duplicate login",
    119: "SID not found",
}

# Codes that mean the session itself is gone
SESSION_EXPIRED = 106
SESSION_DUPLICATE_LOGIN = 107
SID_NOT_FOUND = 119
SESSION_ERRORS = frozenset({SESSION_EXPIRED, SESSION_DUPLICATE_LOGIN, SID_NOT_FOUND})


def describe_error(code: int, *summaries: ErrorSummary) -> str:
    """Translate an error code to text, first matching table wins."""
    for summary in summaries:
        if code in summary:
            return summary[code]
    return UNKNOWN_ERROR_CODE


class SynologyProviderError(Exception):
    """Base class for every failure raised by this package."""


class InvalidArgumentError(SynologyProviderError, ValueError):
    """A request could not be encoded or a value failed validation."""


class DecodeError(InvalidArgumentError):
    """A response field did not match its declared type."""

    def __init__(self, field_name: str, expected: str, value: Any) -> None:
        self.field_name = field_name
        self.expected = expected
        self.value = value
        super().__init__(
            f"field {field_name!r}: expected {expected}, got {type(value).__name__}"
        )


class InvalidProjectError(InvalidArgumentError):
    """Compose project failed validation."""


class TransportError(SynologyProviderError):
    """Network or TLS failure talking to DSM."""


class NotFoundError(SynologyProviderError):
    """The requested remote object does not exist."""


class CanceledError(SynologyProviderError):
    """The caller's deadline expired or the operation was cancelled."""


class AuthError(SynologyProviderError):
    """Authentication failure."""

    def __init__(self, message: str, code: int = 0) -> None:
        self.code = code
        super().__init__(message)


class OtpRejectedError(AuthError):
    """DSM rejected the one-time password."""


class NotAuthenticatedError(AuthError):
    """No live session and no credentials to create one."""


class SessionExpiredError(AuthError):
    """Session has expired, needs re-login."""


@dataclass
class ErrorItem:
    """Detailed sub-error of a failed request."""

    code: int
    summary: str = ""
    details: dict[str, Any] = field(default_factory=dict)


class SynologyError(SynologyProviderError):
    """API call failed with a non-zero envelope code."""

    def __init__(
        self,
        code: int,
        summary: str = "",
        errors: list[ErrorItem] | None = None,
        data: Any = None,
    ) -> None:
        self.code = code
        self.data = data
        self.summary = summary or describe_error(code, GLOBAL_ERRORS)
        self.errors: list[ErrorItem] = errors or []
        super().__init__(self.summary)

    @property
    def is_session_error(self) -> bool:
        return self.code in SESSION_ERRORS

    def has_code(self, code: int) -> bool:
        """True if the top-level error or any sub-error carries ``code``."""
        return self.code == code or any(e.code == code for e in self.errors)

    def __str__(self) -> str:
        lines = [f"[{self.code}] {self.summary}"]
        if self.errors:
            lines.append("\tDetails:")
        for item in self.errors:
            line = f"\t\t[{item.code}] {item.summary}"
            if item.details:
                fields = ",".join(f"{k}: {v}" for k, v in item.details.items())
                line += f": [{fields}]"
            lines.append(line)
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"SynologyError(code={self.code}, summary={self.summary!r}, errors={self.errors!r})"


def error_from_envelope(
    error: Mapping[str, Any] | None,
    known_errors: Iterable[ErrorSummary] = (),
    data: Any = None,
) -> SynologyError | None:
    """Build a SynologyError from the ``error`` member of a DSM envelope.

    Returns None when the code is zero. Sub-error details are preserved
    verbatim, including the ``code`` key itself.
    """
    if not error:
        return None
    code = int(error.get("code", 0) or 0)
    if code == 0:
        return None

    tables = [*known_errors, GLOBAL_ERRORS]
    items = []
    for sub in error.get("errors", None) or []:
        if isinstance(sub, Mapping):
            sub_code = int(sub.get("code", 0) or 0)
            details = {k: v for k, v in sub.items()}
        else:
            sub_code = int(sub)
            details = {}
        items.append(
            ErrorItem(code=sub_code, summary=describe_error(sub_code, *tables), details=details)
        )
    return SynologyError(code, describe_error(code, *tables), items, data)
