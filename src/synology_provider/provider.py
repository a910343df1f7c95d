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

"""Provider wiring: configuration to an authenticated API client."""

from __future__ import annotations

import logging

from synology_provider.api.client import SynologyAPI
from synology_provider.api.errors import InvalidArgumentError
from synology_provider.config import ProviderConfig
from synology_provider.resources.base import CATALOG, Catalog
from synology_provider.session import SessionManager, SessionRegistry

log = logging.getLogger(__name__)


async def configure(
    config: ProviderConfig,
    registry: SessionRegistry | None = None,
    *,
    login: bool = True,
    timeout: float | None = None,
) -> SynologyAPI:
    """Validate ``config`` and return a client bound to its session manager.

    With ``login`` the session is established right away (cached session
    reuse or a fresh login); otherwise it is deferred to the first call.
    """
    errors, warnings = config.validate()
    for warning in warnings:
        log.warning("%s", warning)
    if errors:
        raise InvalidArgumentError("; ".join(errors))

    api = SynologyAPI.from_config(config)
    manager = SessionManager.from_config(config, registry)
    manager.attach(api)
    if login:
        try:
            await manager.ensure(api, timeout)
        except BaseException:
            await api.close()
            raise
    return api


def catalog() -> Catalog:
    """Every resource and data source kind, registered on first import."""
    import synology_provider.resources.api_call  # noqa: F401
    import synology_provider.resources.container  # noqa: F401
    import synology_provider.resources.core  # noqa: F401
    import synology_provider.resources.filestation  # noqa: F401
    import synology_provider.resources.virtualization  # noqa: F401

    return CATALOG
