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

"""Container Manager mediators: compose projects, docker networks, container operations."""

from __future__ import annotations

import logging
import posixpath
from typing import Any

from synology_provider import compose
from synology_provider.api.errors import InvalidArgumentError, NotFoundError, SynologyError
from synology_provider.resources.base import (
    CATALOG,
    Attribute,
    AttrType,
    Resource,
    Schema,
    matches,
    one_of,
)
from synology_provider.services import core, docker, filestation

log = logging.getLogger(__name__)

PROJECTS_ROOT = "/projects"


def default_share_path(name: str) -> str:
    return posixpath.join(PROJECTS_ROOT, name)


def _portal(values: dict[str, Any]) -> docker.ServicePortal:
    portal = values.get("service_portal") or {}
    if not portal:
        return docker.ServicePortal()
    return docker.ServicePortal(
        enable_service_portal=bool(portal.get("enable", True)),
        service_portal_name=portal.get("name"),
        service_portal_port=portal.get("port"),
        service_portal_protocol=portal.get("protocol", "http"),
    )


def build_project(values: dict[str, Any]) -> compose.Project:
    """The compose model described by a project's attributes."""
    project = compose.project_from_dict(
        {
            "name": values["name"],
            "services": values.get("services") or {},
            "networks": values.get("networks") or {},
            "volumes": values.get("volumes") or {},
            "secrets": values.get("secrets") or {},
            "configs": values.get("configs") or {},
        }
    )
    return compose.prepare(project)


@CATALOG.resource
class ProjectResource(Resource):
    """A compose project; inline secret and config content lands in its share."""

    kind = "container_project"
    schema = Schema(
        "A Container Manager compose project.",
        (
            Attribute("id", AttrType.STRING, "Project id.", computed=True),
            Attribute("name", AttrType.STRING, "Project name.", required=True, force_new=True),
            Attribute(
                "share_path",
                AttrType.STRING,
                "Shared folder path holding the project files; /projects/<name> when unset.",
                force_new=True,
                validators=(matches(r"/[^/]+(/.*)?", "must be an absolute path inside a share"),),
            ),
            Attribute("services", AttrType.MAP, "Compose services by name.", required=True),
            Attribute("networks", AttrType.MAP, "Compose networks by name."),
            Attribute("volumes", AttrType.MAP, "Compose volumes by name."),
            Attribute("secrets", AttrType.MAP, "Compose secrets by name.", sensitive=True),
            Attribute("configs", AttrType.MAP, "Compose configs by name."),
            Attribute("service_portal", AttrType.MAP, "Web portal: {enable, name, port, protocol}."),
            Attribute("run", AttrType.BOOL, "Build and start the project.", default=True),
            Attribute("content", AttrType.STRING, "Rendered compose document.", computed=True),
            Attribute("status", AttrType.STRING, computed=True),
        ),
    )

    async def _ensure_share(self, share_path: str) -> None:
        share = share_path.strip("/").split("/")[0]
        names = {s.name for s in await filestation.list_shares(self.api)}
        if share not in names:
            volumes = await core.volume_list(self.api)
            if not volumes:
                raise InvalidArgumentError(f"no volume available to create share {share}")
            log.info("Creating share %s on %s", share, volumes[0].volume_path)
            await core.share_create(self.api, share, volumes[0].volume_path)
        try:
            await filestation.get(self.api, share_path)
        except NotFoundError:
            parent, name = posixpath.split(share_path.rstrip("/"))
            await filestation.create_folder(self.api, parent, name, force_parent=True)

    async def _upload_files(self, share_path: str, project: compose.Project) -> None:
        entries: list[compose.Secret | compose.Config] = [
            *project.secrets.values(),
            *project.configs.values(),
        ]
        for entry in entries:
            if entry.content is None or not entry.file:
                continue
            await filestation.upload(
                self.api, posixpath.join(share_path, entry.file), entry.content, overwrite=True
            )

    async def _render(self, values: dict[str, Any], share_path: str) -> str:
        project = build_project(values)
        await self._upload_files(share_path, project)
        return compose.assemble(project)

    async def _stop(self, project: docker.Project) -> None:
        if project.running:
            await docker.project_stop(self.api, project.id)
        await docker.project_clean(self.api, project.id)

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        name = values["name"]
        share_path = values["share_path"] or default_share_path(name)
        build_project(values)
        await self._ensure_share(share_path)
        content = await self._render(values, share_path)
        portal = _portal(values)
        try:
            project_id = await docker.project_create(
                self.api,
                docker.ProjectCreateRequest(
                    name=name, content=content, share_path=share_path, portal=portal
                ),
            )
        except SynologyError as e:
            if not e.has_code(docker.PROJECT_EXISTS):
                raise
            log.info("Project %s already exists, updating it", name)
            existing = await docker.project_get_by_name(self.api, name)
            await self._stop(existing)
            project_id = existing.id
            await docker.project_update(
                self.api,
                docker.ProjectUpdateRequest(id=project_id, content=content, portal=portal),
            )
        if values["run"]:
            await docker.project_build(self.api, project_id)
        return await self._read({**values, "id": project_id, "share_path": share_path})

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        project = await docker.project_get(self.api, state["id"])
        return {
            **state,
            "share_path": project.share_path or state.get("share_path"),
            "content": project.content,
            "status": project.status,
        }

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        share_path = state.get("share_path") or default_share_path(values["name"])
        content = await self._render(values, share_path)
        project = await docker.project_get(self.api, state["id"])
        await self._stop(project)
        await docker.project_update(
            self.api,
            docker.ProjectUpdateRequest(id=project.id, content=content, portal=_portal(values)),
        )
        if values["run"]:
            await docker.project_build(self.api, project.id)
        return await self._read({**values, "id": project.id, "share_path": share_path})

    async def _delete(self, state: dict[str, Any]) -> None:
        project = await docker.project_get(self.api, state["id"])
        await self._stop(project)
        await docker.project_delete(self.api, project.id)


def _network_state(network: docker.Network) -> dict[str, Any]:
    return {
        "id": network.id,
        "name": network.name,
        "driver": network.driver,
        "subnet": network.subnet,
        "ip_range": network.iprange,
        "gateway": network.gateway,
        "enable_ipv6": network.enable_ipv6,
        "ipv6_subnet": network.ipv6_subnet,
        "disable_masquerade": network.disable_masquerade,
        "containers": list(network.containers),
    }


@CATALOG.resource
class NetworkResource(Resource):
    """A docker network.

    DSM cannot change a network in place, so an update detaches every
    container, recreates the network and attaches the same containers again.
    """

    kind = "container_network"
    schema = Schema(
        "A Container Manager network.",
        (
            Attribute("id", AttrType.STRING, "Network id.", computed=True),
            Attribute("name", AttrType.STRING, "Network name.", required=True),
            Attribute(
                "driver", AttrType.STRING, "Network driver.", default="bridge",
                validators=(one_of("bridge", "macvlan", "ipvlan", "overlay"),),
            ),
            Attribute("subnet", AttrType.STRING, "IPv4 subnet in CIDR form."),
            Attribute("ip_range", AttrType.STRING, "Range to allocate addresses from."),
            Attribute("gateway", AttrType.STRING, "IPv4 gateway."),
            Attribute("enable_ipv6", AttrType.BOOL, "Enable IPv6.", default=False),
            Attribute("ipv6_subnet", AttrType.STRING, "IPv6 subnet in CIDR form."),
            Attribute("disable_masquerade", AttrType.BOOL, "Disable IP masquerading.", default=False),
            Attribute("containers", AttrType.LIST, "Attached containers.", computed=True),
        ),
    )

    def _network(self, values: dict[str, Any]) -> docker.Network:
        return docker.Network(
            name=values["name"],
            driver=values["driver"],
            subnet=values["subnet"] or "",
            iprange=values["ip_range"] or "",
            gateway=values["gateway"] or "",
            enable_ipv6=values["enable_ipv6"],
            ipv6_subnet=values["ipv6_subnet"] or "",
            disable_masquerade=values["disable_masquerade"],
        )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        await docker.network_create(self.api, self._network(values))
        created = await docker.network_get_by_name(self.api, values["name"])
        return {**values, "id": created.id, "containers": list(created.containers)}

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        network = await docker.network_get_by_id(self.api, state["id"])
        return {**state, **_network_state(network)}

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        current = await docker.network_get_by_id(self.api, state["id"])
        attached = list(current.containers)
        if attached:
            log.info("Detaching %d containers from %s", len(attached), current.name)
            await docker.network_set_containers(self.api, current.name, [])
        await docker.network_delete(self.api, current)
        await docker.network_create(self.api, self._network(values))
        if attached:
            await docker.network_set_containers(self.api, values["name"], attached)
        created = await docker.network_get_by_name(self.api, values["name"])
        return {**values, "id": created.id, "containers": list(created.containers)}

    async def _delete(self, state: dict[str, Any]) -> None:
        network = await docker.network_get_by_id(self.api, state["id"])
        if network.containers:
            await docker.network_set_containers(self.api, network.name, [])
        await docker.network_delete(self.api, network)


CONTAINER_OPERATIONS = ("start", "stop", "restart")


@CATALOG.resource
class ContainerOperationResource(Resource):
    """Starts, stops or restarts a container when applied.

    Nothing is kept on DSM, so reading returns the stored state and
    destroying only forgets it.
    """

    kind = "container_operation"
    identity = "name"
    schema = Schema(
        "An operation on a Container Manager container.",
        (
            Attribute("name", AttrType.STRING, "Container name.", required=True, force_new=True),
            Attribute(
                "operation",
                AttrType.STRING,
                "Operation to perform.",
                required=True,
                force_new=True,
                validators=(one_of(*CONTAINER_OPERATIONS),),
            ),
        ),
    )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        operation = getattr(docker, f"container_{values['operation']}")
        log.info("Running %s on container %s", values["operation"], values["name"])
        await operation(self.api, values["name"])
        return dict(values)

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        return dict(state)

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        return dict(values)

    async def _delete(self, state: dict[str, Any]) -> None:
        return None
