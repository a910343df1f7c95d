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

"""docker-compose document assembly for Container Manager projects.

Projects are described with the dataclasses below and rendered to YAML
with :func:`assemble`. Services come out sorted by name; the keys of each
entry follow the field order of its dataclass. Only set values are
emitted: ``None``, ``False`` and empty collections are left out.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import yaml

from synology_provider.api.codec import decode
from synology_provider.api.errors import InvalidProjectError

log = logging.getLogger(__name__)

DEFAULT_NETWORK = "default"


def _compact(value: Any) -> Any:
    """Plain YAML shape of ``value`` with unset members dropped."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in dataclasses.fields(value):
            if f.metadata.get("compose") is False:
                continue
            item = _compact(getattr(value, f.name))
            if item is None or item is False or item == [] or item == {}:
                continue
            out[f.metadata.get("key", f.name)] = item
        return out
    if isinstance(value, dict):
        return {str(k): _compact(v) if v is not None else {} for k, v in sorted(value.items())}
    if isinstance(value, (list, tuple)):
        return [_compact(v) for v in value]
    return value


def _internal(**kwargs: Any) -> Any:
    """Field kept on the model but not written to the document."""
    return field(metadata={"compose": False}, **kwargs)


# -- top-level entries --------------------------------------------------------


@dataclass
class IpamConfig:
    subnet: str | None = None
    gateway: str | None = None
    ip_range: str | None = None
    aux_addresses: dict[str, str] = field(default_factory=dict)


@dataclass
class Ipam:
    driver: str | None = None
    config: list[IpamConfig] = field(default_factory=list)


@dataclass
class Network:
    name: str | None = None
    driver: str | None = None
    driver_opts: dict[str, str] = field(default_factory=dict)
    ipam: Ipam | None = None
    external: bool = False
    internal: bool = False
    attachable: bool = False
    enable_ipv6: bool = False
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class Volume:
    name: str | None = None
    driver: str | None = None
    driver_opts: dict[str, str] = field(default_factory=dict)
    external: bool = False
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class Secret:
    """A secret backed by a file; inline ``content`` is written next to the project."""

    name: str = _internal(default="")
    file: str | None = None
    content: str | None = _internal(default=None, repr=False)


@dataclass
class Config:
    name: str = _internal(default="")
    file: str | None = None
    external: bool = False
    content: str | None = _internal(default=None, repr=False)


# -- service parts ------------------------------------------------------------


@dataclass
class Port:
    target: int
    published: str | int | None = None
    host_ip: str | None = None
    protocol: str | None = None
    app_protocol: str | None = None
    mode: str | None = None
    name: str | None = None


@dataclass
class ServiceNetwork:
    aliases: list[str] = field(default_factory=list)
    ipv4_address: str | None = None
    ipv6_address: str | None = None
    link_local_ips: list[str] = field(default_factory=list)
    mac_address: str | None = None
    driver_opts: dict[str, str] = field(default_factory=dict)
    priority: int | None = None


@dataclass
class Bind:
    propagation: str | None = None
    create_host_path: bool = False
    selinux: str | None = None


@dataclass
class ServiceVolume:
    target: str
    source: str | None = None
    type: str = "volume"
    read_only: bool = False
    bind: Bind | None = None


@dataclass
class FileReference:
    """Mount of a project secret or config inside a service."""

    source: str
    target: str | None = None
    uid: str | None = None
    gid: str | None = None
    mode: str | None = None


@dataclass
class Dependency:
    condition: str = "service_started"
    restart: bool = False


@dataclass
class HealthCheck:
    test: list[str] = field(default_factory=list)
    interval: str | None = None
    timeout: str | None = None
    start_period: str | None = None
    start_interval: str | None = None
    retries: int | None = None


@dataclass
class Logging:
    driver: str | None = None
    options: dict[str, str] = field(default_factory=dict)


@dataclass
class Ulimit:
    single: int | None = None
    soft: int | None = None
    hard: int | None = None


@dataclass
class Deploy:
    replicas: int | None = None


@dataclass
class Service:
    image: str | None = None
    container_name: str | None = None
    command: list[str] = field(default_factory=list)
    entrypoint: list[str] = field(default_factory=list)
    environment: dict[str, str] = field(default_factory=dict)
    ports: list[Port] = field(default_factory=list)
    networks: dict[str, ServiceNetwork | None] = field(default_factory=dict)
    network_mode: str | None = None
    volumes: list[ServiceVolume] = field(default_factory=list)
    configs: list[FileReference] = field(default_factory=list)
    secrets: list[FileReference] = field(default_factory=list)
    depends_on: dict[str, Dependency] = field(default_factory=dict)
    restart: str | None = None
    user: str | None = None
    privileged: bool = False
    cap_add: list[str] = field(default_factory=list)
    cap_drop: list[str] = field(default_factory=list)
    security_opt: list[str] = field(default_factory=list)
    sysctls: dict[str, str] = field(default_factory=dict)
    tmpfs: list[str] = field(default_factory=list)
    ulimits: dict[str, Ulimit] = field(default_factory=dict)
    dns: list[str] = field(default_factory=list)
    labels: dict[str, str] = field(default_factory=dict)
    mem_limit: str | None = None
    healthcheck: HealthCheck | None = None
    logging: Logging | None = None
    deploy: Deploy | None = None


@dataclass
class Project:
    name: str | None = None
    services: dict[str, Service] = field(default_factory=dict)
    networks: dict[str, Network] = field(default_factory=dict)
    volumes: dict[str, Volume] = field(default_factory=dict)
    secrets: dict[str, Secret] = field(default_factory=dict)
    configs: dict[str, Config] = field(default_factory=dict)


# -- assembly -----------------------------------------------------------------


def _resolve_file(kind: str, key: str, entry: Secret | Config) -> None:
    if not entry.name:
        entry.name = key
    if entry.content and not entry.file:
        entry.file = entry.name
    if entry.file or (isinstance(entry, Config) and entry.external):
        return
    raise InvalidProjectError(f"{kind} {key}: either file or content must be set")


def _check_external(kind: str, key: str, entry: Network | Volume) -> None:
    if entry.external and (entry.driver or entry.driver_opts):
        log.warning("%s %s is external, ignoring driver settings", kind, key)
        entry.driver = None
        entry.driver_opts = {}


def _check_references(project: Project) -> None:
    for name, service in project.services.items():
        for net in service.networks:
            if net != DEFAULT_NETWORK and net not in project.networks:
                raise InvalidProjectError(f"service {name}: undefined network {net}")
        for vol in service.volumes:
            if vol.type == "volume" and vol.source and vol.source not in project.volumes:
                raise InvalidProjectError(f"service {name}: undefined volume {vol.source}")
        for ref in service.secrets:
            if ref.source not in project.secrets:
                raise InvalidProjectError(f"service {name}: undefined secret {ref.source}")
        for ref in service.configs:
            if ref.source not in project.configs:
                raise InvalidProjectError(f"service {name}: undefined config {ref.source}")
        for dep in service.depends_on:
            if dep not in project.services:
                raise InvalidProjectError(f"service {name}: depends on undefined service {dep}")


def prepare(project: Project) -> Project:
    """Validate ``project`` and fill in derived values in place.

    Raises InvalidProjectError on a dangling reference or a secret/config
    with neither ``file`` nor ``content``.
    """
    for key, secret in project.secrets.items():
        _resolve_file("secret", key, secret)
    for key, config in project.configs.items():
        _resolve_file("config", key, config)
    for key, network in project.networks.items():
        _check_external("network", key, network)
    for key, volume in project.volumes.items():
        _check_external("volume", key, volume)
    _check_references(project)
    return project


def to_document(project: Project) -> dict[str, Any]:
    document: dict[str, Any] = _compact(prepare(project))
    return document


def assemble(project: Project) -> str:
    """Render ``project`` as a docker-compose YAML document."""
    return yaml.safe_dump(
        to_document(project), sort_keys=False, default_flow_style=False, allow_unicode=True
    )


def project_from_dict(data: Mapping[str, Any]) -> Project:
    """Build a project from plain mappings, as given in resource attributes.

    Raises DecodeError naming the offending field on a type mismatch.
    """
    result: Project = decode(Project, dict(data))
    return result
