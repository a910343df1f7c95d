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

"""Authentication calls for the DSM Web API (SYNO.API.Auth)."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from synology_provider.api.errors import (
    AuthError,
    OtpRejectedError,
    SynologyError,
    SynologyProviderError,
)
from synology_provider.api.models import Session

if TYPE_CHECKING:
    from synology_provider.api.client import SynologyAPI

log = logging.getLogger(__name__)

AUTH_API = "SYNO.API.Auth"
AUTH_VERSION = 6

AUTH_ERRORS: dict[int, str] = {
    400: "No such account or incorrect password",
    401: "Account disabled",
    402: "Permission denied",
    403: "2-step verification code required",
    404: "Failed to authenticate 2-step verification code",
    406: "Enforce to authenticate with 2-factor authentication code",
    407: "Blocked IP source",
    408: "Expired password cannot change",
    409: "Expired password",
    410: "Password must be changed",
}

OTP_REJECTED = 404

# Lightweight call used to check that a session is still accepted
PROBE_API = "SYNO.FileStation.Info"
PROBE_METHOD = "get"
PROBE_VERSION = 2


async def login(
    api: SynologyAPI,
    username: str,
    password: str,
    otp_code: str = "",
    *,
    issued_at: int = 0,
    totp_step: int = 0,
) -> Session:
    """Login to DSM and adopt the new session on ``api``."""
    params = {
        "account": username,
        "passwd": password,
        "format": "sid",
        "enable_syno_token": "yes",
    }
    if otp_code:
        params["otp_code"] = otp_code

    try:
        data = await api.raw_request(
            api=AUTH_API,
            method="login",
            version=AUTH_VERSION,
            extra_params=params,
            known_errors=(AUTH_ERRORS,),
        )
    except SynologyError as e:
        if e.code == OTP_REJECTED:
            raise OtpRejectedError(e.summary, e.code) from e
        raise AuthError(e.summary, e.code) from e

    sid = (data or {}).get("sid", "")
    if not sid:
        raise AuthError("Login succeeded but no SID returned")

    session = Session(
        session_id=str(sid),
        syno_token=str(data.get("synotoken", "")),
        issued_at=issued_at,
        last_totp_step=totp_step,
    )
    api.import_session(session)
    return session


async def logout(api: SynologyAPI) -> None:
    """Logout from DSM, invalidating the session."""
    if api.session is None:
        return

    try:
        await api.raw_request(api=AUTH_API, method="logout", version=AUTH_VERSION)
    except SynologyProviderError as e:
        log.debug("Logout failed: %s", e)
    finally:
        api.clear_session()


async def probe(api: SynologyAPI, session: Session) -> bool:
    """Check whether DSM still accepts ``session``.

    Adopts the session on success. Session-level rejections return False;
    any other failure propagates.
    """
    api.import_session(session)
    try:
        await api.raw_request(api=PROBE_API, method=PROBE_METHOD, version=PROBE_VERSION)
    except SynologyError as e:
        if e.is_session_error:
            api.clear_session()
            return False
        raise
    return True
