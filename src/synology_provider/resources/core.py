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

"""Core mediators: packages, package feeds, scheduled tasks, event scripts."""

from __future__ import annotations

import logging
from typing import Any

from synology_provider.api.errors import NotFoundError
from synology_provider.resources.base import (
    CATALOG,
    WHEN_APPLY,
    WHEN_DESTROY,
    WHEN_UPGRADE,
    Attribute,
    AttrType,
    DataSource,
    Resource,
    Schema,
    one_of,
    should_run,
    when_attributes,
)
from synology_provider.services import core

log = logging.getLogger(__name__)


@CATALOG.resource
class PackageResource(Resource):
    kind = "core_package"
    identity = "name"
    schema = Schema(
        "An installed DSM package.",
        (
            Attribute("name", AttrType.STRING, "Package id, e.g. ContainerManager.", required=True, force_new=True),
            Attribute("url", AttrType.STRING, "Download URL; looked up in Package Center when unset."),
            Attribute("size", AttrType.INT, "Package size in bytes; looked up when unset.", default=0),
            Attribute("volume_path", AttrType.STRING, "Install volume.", default="/volume1"),
            Attribute("version", AttrType.STRING, "Installed version.", computed=True),
        ),
    )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        name = values["name"]
        try:
            pkg = await core.package_get(self.api, name)
            log.info("Package %s already installed (%s)", name, pkg.version)
        except NotFoundError:
            await core.package_install(
                self.api, name, values["url"] or "", values["size"], values["volume_path"]
            )
        return await self._read(values)

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        pkg = await core.package_get(self.api, state["name"])
        return {**state, "version": pkg.version}

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        return {**values, "version": state.get("version")}

    async def _delete(self, state: dict[str, Any]) -> None:
        await core.package_get(self.api, state["name"])
        await core.package_uninstall(self.api, state["name"])


@CATALOG.resource
class PackageFeedResource(Resource):
    kind = "core_package_feed"
    identity = "url"
    schema = Schema(
        "A third-party Package Center source.",
        (
            Attribute("name", AttrType.STRING, "Display name of the feed.", required=True, force_new=True),
            Attribute("url", AttrType.STRING, "Feed URL.", required=True, force_new=True),
        ),
    )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        await core.feed_add(self.api, values["name"], values["url"])
        return dict(values)

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        for feed in await core.feed_list(self.api):
            if feed.feed == state["url"]:
                return {**state, "name": feed.name}
        raise NotFoundError(f"package feed {state['url']} does not exist")

    async def _delete(self, state: dict[str, Any]) -> None:
        await self._read(state)
        await core.feed_delete(self.api, [state["url"]])


@CATALOG.resource
class TaskResource(Resource):
    kind = "core_task"
    schema = Schema(
        "A user-defined script in Task Scheduler.",
        (
            Attribute("id", AttrType.INT, "Task id.", computed=True),
            Attribute("name", AttrType.STRING, "Task name.", required=True),
            Attribute("script", AttrType.STRING, "Script to run.", required=True),
            Attribute("user", AttrType.STRING, "User the script runs as.", default=core.ROOT_USER),
            Attribute("schedule", AttrType.STRING, "Cron expression; daily when empty.", default=""),
            Attribute("enabled", AttrType.BOOL, "Whether the schedule is active.", default=True),
            *when_attributes(),
        ),
    )

    def _request(self, values: dict[str, Any], task_id: int | None = None) -> core.TaskRequest:
        return core.task_request(
            values["name"],
            values["script"],
            values["user"],
            values["schedule"],
            values["enabled"],
            task_id,
        )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        task_id = await core.task_create(self.api, self._request(values))
        state = {**values, "id": task_id}
        if should_run(values, WHEN_APPLY):
            await core.task_run(self.api, task_id)
        return state

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        task = await core.task_get(self.api, state["id"])
        return {**state, "name": task.name, "user": task.owner, "enabled": task.enable}

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        task_id = await core.task_update(self.api, self._request(values, state["id"]))
        if should_run(values, WHEN_UPGRADE):
            await core.task_run(self.api, task_id)
        return {**values, "id": task_id}

    async def _delete(self, state: dict[str, Any]) -> None:
        await core.task_get(self.api, state["id"])
        if should_run(state, WHEN_DESTROY):
            await core.task_run(self.api, state["id"])
        await core.task_delete(self.api, state["id"])


@CATALOG.resource
class EventResource(Resource):
    kind = "core_event"
    identity = "name"
    schema = Schema(
        "A triggered script run on boot-up or shutdown.",
        (
            Attribute("name", AttrType.STRING, "Event name.", required=True, force_new=True),
            Attribute("script", AttrType.STRING, "Script to run.", required=True),
            Attribute("user", AttrType.STRING, "User the script runs as.", default=core.ROOT_USER),
            Attribute(
                "event",
                AttrType.STRING,
                "Trigger.",
                default="bootup",
                validators=(one_of("bootup", "shutdown"),),
            ),
            *when_attributes(),
        ),
    )

    def _request(self, values: dict[str, Any]) -> core.EventRequest:
        return core.event_request(values["name"], values["script"], values["user"], values["event"])

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        await core.event_create(self.api, self._request(values))
        if should_run(values, WHEN_APPLY):
            await core.event_run(self.api, values["name"])
        return dict(values)

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        info = await core.event_get(self.api, state["name"])
        owner = next(iter(info.owner.values()), state.get("user"))
        return {**state, "script": info.operation, "event": info.event, "user": owner}

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        await core.event_update(self.api, self._request(values))
        if should_run(values, WHEN_UPGRADE):
            await core.event_run(self.api, values["name"])
        return dict(values)

    async def _delete(self, state: dict[str, Any]) -> None:
        await core.event_get(self.api, state["name"])
        if should_run(state, WHEN_DESTROY):
            await core.event_run(self.api, state["name"])
        await core.event_delete(self.api, state["name"])


@CATALOG.data_source
class NetworkDataSource(DataSource):
    kind = "core_network"
    schema = Schema(
        "Host network configuration of the NAS.",
        (
            Attribute("id", AttrType.STRING, computed=True),
            Attribute("server_name", AttrType.STRING, computed=True),
            Attribute("gateway", AttrType.STRING, computed=True),
            Attribute("v6gateway", AttrType.STRING, computed=True),
            Attribute("dns_manual", AttrType.BOOL, computed=True),
            Attribute("dns_primary", AttrType.STRING, computed=True),
            Attribute("dns_secondary", AttrType.STRING, computed=True),
            Attribute("ipv4_first", AttrType.BOOL, computed=True),
            Attribute("multi_gateway", AttrType.BOOL, computed=True),
            Attribute("enable_windomain", AttrType.BOOL, computed=True),
            Attribute("gateway_info", AttrType.MAP, computed=True),
        ),
    )

    async def _read(self, values: dict[str, Any]) -> dict[str, Any]:
        net = await core.network_get(self.api)
        gw = net.gateway_info
        return {
            "id": net.server_name,
            "server_name": net.server_name,
            "gateway": net.gateway,
            "v6gateway": net.v6gateway,
            "dns_manual": net.dns_manual,
            "dns_primary": net.dns_primary,
            "dns_secondary": net.dns_secondary,
            "ipv4_first": net.ipv4_first,
            "multi_gateway": net.multi_gateway,
            "enable_windomain": net.enable_windomain,
            "gateway_info": {
                "interface": gw.ifname,
                "ip": gw.ip,
                "mask": gw.mask,
                "status": gw.status,
                "type": gw.type,
                "use_dhcp": gw.use_dhcp,
            },
        }
