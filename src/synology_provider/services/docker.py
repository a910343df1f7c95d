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

"""Container Manager service: compose projects, networks and containers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from synology_provider.api.codec import decode, synology_field
from synology_provider.api.endpoints import endpoint
from synology_provider.api.errors import NotFoundError, SynologyError

if TYPE_CHECKING:
    from synology_provider.api.client import SynologyAPI

log = logging.getLogger(__name__)

PROJECT_NOT_FOUND = 2101
PROJECT_EXISTS = 2102
STATUS_RUNNING = "RUNNING"

PROJECT_ERRORS: dict[int, str] = {
    2101: "Project not found",
    2102: "Project already exists",
}

PROJECT_API = "SYNO.Docker.Project"
NETWORK_API = "SYNO.Docker.Network"
CONTAINER_API = "SYNO.Docker.Container"


# -- records ------------------------------------------------------------------


@dataclass
class Project:
    id: str = ""
    name: str = ""
    content: str = ""
    path: str = ""
    share_path: str = ""
    status: str = ""
    state: str = ""
    enable_service_portal: bool = False
    service_portal_name: str = ""
    service_portal_port: int = 0
    service_portal_protocol: str = ""
    containers: list[Any] = field(default_factory=list)
    created_at: str = ""
    updated_at: str = ""

    @property
    def running(self) -> bool:
        return self.status == STATUS_RUNNING


@dataclass
class ProjectCreated:
    id: str = ""


@dataclass
class Network:
    id: str = ""
    name: str = ""
    driver: str = ""
    subnet: str = ""
    iprange: str = ""
    gateway: str = ""
    enable_ipv6: bool = False
    ipv6_subnet: str = ""
    ipv6_gateway: str = ""
    ipv6_iprange: str = ""
    disable_masquerade: bool = False
    containers: list[str] = field(default_factory=list)


@dataclass
class NetworkList:
    networks: list[Network] = synology_field("network", default_factory=list)


# -- requests -----------------------------------------------------------------


@dataclass
class ServicePortal:
    enable_service_portal: bool | None = None
    service_portal_name: str | None = None
    service_portal_port: int | None = None
    service_portal_protocol: str | None = None


@dataclass
class ProjectCreateRequest:
    name: str | None = None
    content: str | None = None
    share_path: str | None = None
    portal: ServicePortal = synology_field(embed=True, default_factory=ServicePortal)


@dataclass
class ProjectUpdateRequest:
    id: str | None = None
    content: str | None = None
    portal: ServicePortal = synology_field(embed=True, default_factory=ServicePortal)


@dataclass
class ProjectRef:
    id: str | None = None


@dataclass
class NetworkCreateRequest:
    name: str | None = None
    driver: str | None = None
    subnet: str | None = None
    iprange: str | None = None
    gateway: str | None = None
    enable_ipv6: bool | None = None
    ipv6_subnet: str | None = None
    disable_masquerade: bool | None = None


@dataclass
class NetworkSetRequest:
    name: str | None = None
    containers: list[str] | None = None


@dataclass
class NetworkRef:
    id: str = ""
    name: str = ""


@dataclass
class NetworkDeleteRequest:
    networks: list[NetworkRef] | None = synology_field("networks", as_json=True)


@dataclass
class ContainerRef:
    name: str | None = None


# -- endpoints ----------------------------------------------------------------

_PROJECT = (PROJECT_ERRORS,)

PROJECT_LIST = endpoint(PROJECT_API, "list", 1, None, None, _PROJECT)
PROJECT_GET = endpoint(PROJECT_API, "get", 1, ProjectRef, Project, _PROJECT)
PROJECT_CREATE = endpoint(
    PROJECT_API, "create", 1, ProjectCreateRequest, ProjectCreated, _PROJECT, "POST"
)
PROJECT_UPDATE = endpoint(PROJECT_API, "update", 1, ProjectUpdateRequest, None, _PROJECT, "POST")
PROJECT_DELETE = endpoint(PROJECT_API, "delete", 1, ProjectRef, None, _PROJECT, "POST")

NETWORK_LIST = endpoint(NETWORK_API, "list", 1, None, NetworkList)
NETWORK_CREATE = endpoint(NETWORK_API, "create", 1, NetworkCreateRequest, None, (), "POST")
NETWORK_SET = endpoint(NETWORK_API, "set", 1, NetworkSetRequest, None, (), "POST")
NETWORK_DELETE = endpoint(NETWORK_API, "delete", 1, NetworkDeleteRequest, None, (), "POST")

CONTAINER_START = endpoint(CONTAINER_API, "start", 1, ContainerRef)
CONTAINER_STOP = endpoint(CONTAINER_API, "stop", 1, ContainerRef)
CONTAINER_RESTART = endpoint(CONTAINER_API, "restart", 1, ContainerRef)


# -- projects -----------------------------------------------------------------


async def project_list(api: SynologyAPI) -> dict[str, Project]:
    """All projects keyed by project id."""
    data = await api.call(PROJECT_LIST) or {}
    return {key: decode(Project, value) for key, value in data.items()}


async def project_get(api: SynologyAPI, project_id: str) -> Project:
    try:
        result: Project = await api.call(PROJECT_GET, ProjectRef(id=project_id))
    except SynologyError as e:
        if e.has_code(PROJECT_NOT_FOUND):
            raise NotFoundError(f"project {project_id} does not exist") from e
        raise
    return result


async def project_get_by_name(api: SynologyAPI, name: str) -> Project:
    for project in (await project_list(api)).values():
        if project.name == name:
            return project
    raise NotFoundError(f"project {name} does not exist")


async def project_create(api: SynologyAPI, req: ProjectCreateRequest) -> str:
    created: ProjectCreated = await api.call(PROJECT_CREATE, req)
    log.debug("Created project %s (%s)", req.name, created.id)
    return created.id


async def project_update(api: SynologyAPI, req: ProjectUpdateRequest) -> None:
    await api.call(PROJECT_UPDATE, req)


async def project_delete(api: SynologyAPI, project_id: str) -> None:
    await api.call(PROJECT_DELETE, ProjectRef(id=project_id))


async def _stream(api: SynologyAPI, method: str, project_id: str) -> str:
    output = await api.download(
        PROJECT_API, method, 1, {"id": project_id}, known_errors=_PROJECT
    )
    log.debug("Project %s %s: %d bytes of output", project_id, method, len(output))
    return output.decode("utf-8", "replace")


async def project_build(api: SynologyAPI, project_id: str) -> str:
    """Build and start a project, returning the streamed compose output."""
    return await _stream(api, "build_stream", project_id)


async def project_stop(api: SynologyAPI, project_id: str) -> str:
    return await _stream(api, "stop_stream", project_id)


async def project_clean(api: SynologyAPI, project_id: str) -> str:
    return await _stream(api, "clean_stream", project_id)


# -- networks -----------------------------------------------------------------


async def network_list(api: SynologyAPI) -> list[Network]:
    data: NetworkList = await api.call(NETWORK_LIST)
    return data.networks


async def network_get_by_id(api: SynologyAPI, network_id: str) -> Network:
    for network in await network_list(api):
        if network.id == network_id:
            return network
    raise NotFoundError(f"network {network_id} does not exist")


async def network_get_by_name(api: SynologyAPI, name: str) -> Network:
    for network in await network_list(api):
        if network.name == name:
            return network
    raise NotFoundError(f"network {name} does not exist")


async def network_create(api: SynologyAPI, network: Network) -> None:
    await api.call(
        NETWORK_CREATE,
        NetworkCreateRequest(
            name=network.name,
            driver=network.driver or "bridge",
            subnet=network.subnet,
            iprange=network.iprange,
            gateway=network.gateway,
            enable_ipv6=network.enable_ipv6,
            ipv6_subnet=network.ipv6_subnet,
            disable_masquerade=network.disable_masquerade,
        ),
    )


async def network_set_containers(api: SynologyAPI, name: str, containers: list[str]) -> None:
    """Replace the set of containers attached to network ``name``."""
    await api.call(NETWORK_SET, NetworkSetRequest(name=name, containers=containers))


async def network_delete(api: SynologyAPI, network: Network) -> None:
    await api.call(
        NETWORK_DELETE,
        NetworkDeleteRequest(networks=[NetworkRef(id=network.id, name=network.name)]),
    )


# -- containers ---------------------------------------------------------------


async def container_start(api: SynologyAPI, name: str) -> None:
    await api.call(CONTAINER_START, ContainerRef(name=name))


async def container_stop(api: SynologyAPI, name: str) -> None:
    await api.call(CONTAINER_STOP, ContainerRef(name=name))


async def container_restart(api: SynologyAPI, name: str) -> None:
    await api.call(CONTAINER_RESTART, ContainerRef(name=name))
