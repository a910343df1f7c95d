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

"""Generic mediator invoking any DSM API method."""

from __future__ import annotations

import logging
from typing import Any

from synology_provider.resources.base import (
    CATALOG,
    WHEN_APPLY,
    WHEN_DESTROY,
    Attribute,
    AttrType,
    Resource,
    Schema,
    at_least,
    matches,
    one_of,
)

log = logging.getLogger(__name__)


@CATALOG.resource
class ApiCallResource(Resource):
    """Calls ``api``/``method`` once, on apply or on destroy, and keeps the result.

    Parameters are sent as query strings exactly as given.
    """

    kind = "api"
    identity = "api"
    schema = Schema(
        "A raw call to the DSM Web API.",
        (
            Attribute(
                "api",
                AttrType.STRING,
                "API name, e.g. SYNO.Core.System.",
                required=True,
                force_new=True,
                validators=(matches(r"SYNO\.[\w.]+", "must be a SYNO.* API name"),),
            ),
            Attribute("method", AttrType.STRING, "Method to invoke.", required=True, force_new=True),
            Attribute("version", AttrType.INT, "API version.", default=1, force_new=True, validators=(at_least(1),)),
            Attribute(
                "parameters",
                AttrType.MAP,
                "Request parameters.",
                force_new=True,
            ),
            Attribute(
                "when",
                AttrType.STRING,
                "Lifecycle step that triggers the call.",
                default=WHEN_APPLY,
                validators=(one_of(WHEN_APPLY, WHEN_DESTROY),),
            ),
            Attribute("result", AttrType.OBJECT, "Data returned by the call.", computed=True),
        ),
    )

    async def _invoke(self, values: dict[str, Any]) -> Any:
        params = {str(k): str(v) for k, v in (values.get("parameters") or {}).items()}
        log.debug("Invoking %s.%s v%s", values["api"], values["method"], values["version"])
        return await self.api.request(
            values["api"],
            values["method"],
            values["version"],
            params,
        )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        result = None
        if values["when"] == WHEN_APPLY:
            result = await self._invoke(values)
        return {**values, "result": result}

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        return dict(state)

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        return {**values, "result": state.get("result")}

    async def _delete(self, state: dict[str, Any]) -> None:
        if state.get("when") == WHEN_DESTROY:
            await self._invoke(state)
