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

"""Virtual Machine Manager mediators: guests, images and guest lookups."""

from __future__ import annotations

import logging
from typing import Any

from synology_provider.api.errors import InvalidArgumentError, SynologyError, SynologyProviderError
from synology_provider.resources.base import (
    CATALOG,
    Attribute,
    AttrType,
    DataSource,
    Resource,
    Schema,
    at_least,
    one_of,
)
from synology_provider.services import virtualization as vm

log = logging.getLogger(__name__)

UNMOUNTED = "unmounted"
MAX_ISOS = 2


def _guest_state(guest: vm.Guest) -> dict[str, Any]:
    return {
        "id": guest.id,
        "name": guest.name,
        "description": guest.description,
        "status": guest.status,
        "storage_id": guest.storage_id,
        "storage_name": guest.storage_name,
        "autorun": guest.autorun,
        "vcpu_num": guest.vcpu_num,
        "vram_size": guest.vram_size,
        "disks": [
            {"id": d.id, "size": d.size, "controller": d.controller, "unmap": d.unmap}
            for d in guest.disks
        ],
        "networks": [
            {"id": n.id, "name": n.name, "mac": n.mac, "model": n.model, "vnic_id": n.vnic_id}
            for n in guest.networks
        ],
    }


def iso_slots(isos: list[dict[str, Any]] | None) -> list[str] | None:
    """Map ``[{image_id, boot}]`` to DSM's two-slot ISO list, boot image first."""
    if not isos:
        return None
    if len(isos) > MAX_ISOS:
        raise InvalidArgumentError(f"iso: at most {MAX_ISOS} images can be mounted")
    slots = [UNMOUNTED] * MAX_ISOS
    for entry in isos:
        slots[0 if entry.get("boot") else 1] = str(entry["image_id"])
    return slots


def _vdisks(disks: list[dict[str, Any]] | None) -> list[vm.NewVDisk] | None:
    if not disks:
        return None
    out = []
    for disk in disks:
        if disk.get("image_id") or disk.get("image_name"):
            out.append(
                vm.NewVDisk(create_type=1, image_id=disk.get("image_id"), image_name=disk.get("image_name"))
            )
        else:
            out.append(vm.NewVDisk(create_type=0, vdisk_size=int(disk.get("size") or 0)))
    return out


def _vnics(networks: list[dict[str, Any]] | None) -> list[vm.NewVNic] | None:
    if not networks:
        return None
    return [vm.NewVNic(n.get("id"), n.get("name"), n.get("mac")) for n in networks]


@CATALOG.resource
class GuestResource(Resource):
    kind = "virtualization_guest"
    identity = "name"
    schema = Schema(
        "A Virtual Machine Manager guest.",
        (
            Attribute("id", AttrType.STRING, "Guest id.", computed=True),
            Attribute("name", AttrType.STRING, "Guest name.", required=True),
            Attribute("storage_id", AttrType.STRING, "Storage to create the guest on.", force_new=True),
            Attribute("storage_name", AttrType.STRING, "Storage to create the guest on.", force_new=True),
            Attribute("vcpu_num", AttrType.INT, "Virtual CPUs.", default=4, validators=(at_least(1),)),
            Attribute("vram_size", AttrType.INT, "Memory in MiB.", default=4096, validators=(at_least(256),)),
            Attribute(
                "disk",
                AttrType.LIST,
                "Virtual disks: {size} or {image_id|image_name}.",
                force_new=True,
            ),
            Attribute("network", AttrType.LIST, "Virtual NICs: {id, name, mac}.", force_new=True),
            Attribute("iso", AttrType.LIST, "Mounted ISO images: {image_id, boot}."),
            Attribute("run", AttrType.BOOL, "Power the guest on after creation.", default=False),
            Attribute("status", AttrType.STRING, computed=True),
        ),
    )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        name = values["name"]
        slots = iso_slots(values["iso"])
        req = vm.GuestCreateRequest(
            guest_name=name,
            storage_id=values["storage_id"],
            storage_name=values["storage_name"],
            vcpu_num=values["vcpu_num"],
            vram_size=values["vram_size"],
            vnics=_vnics(values["network"]),
            vdisks=_vdisks(values["disk"]),
        )
        try:
            guest_id = await vm.guest_create(self.api, req)
        except SynologyError as e:
            if not e.has_code(vm.NAME_CONFLICT):
                raise
            log.info("Guest %s already exists, adopting it", name)
            guest_id = (await vm.guest_get(self.api, name)).id

        if slots:
            await vm.guest_update(self.api, vm.GuestUpdateRequest(guest_id=guest_id, iso_images=slots))
        if values["run"]:
            await vm.guest_power_on(self.api, name)
        return await self._read({**values, "id": guest_id})

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        guest = await vm.guest_get(self.api, state["name"])
        return {
            **state,
            "id": guest.id,
            "vcpu_num": guest.vcpu_num,
            "vram_size": guest.vram_size,
            "status": guest.status,
        }

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        await vm.guest_update(
            self.api,
            vm.GuestUpdateRequest(
                guest_id=state["id"],
                new_guest_name=values["name"] if values["name"] != state["name"] else None,
                vcpu_num=values["vcpu_num"],
                vram_size=values["vram_size"],
                iso_images=iso_slots(values["iso"]) or [UNMOUNTED] * MAX_ISOS,
            ),
        )
        return await self._read({**values, "id": state["id"]})

    async def _delete(self, state: dict[str, Any]) -> None:
        name = state["name"]
        await vm.guest_get(self.api, name)
        try:
            await vm.guest_power_off(self.api, name, force=True)
        except SynologyProviderError as e:
            log.debug("Power off of %s failed: %s", name, e)
        await vm.guest_delete(self.api, name)


@CATALOG.resource
class ImageResource(Resource):
    kind = "virtualization_image"
    identity = "name"
    schema = Schema(
        "A Virtual Machine Manager image imported from a file on the NAS.",
        (
            Attribute("id", AttrType.STRING, "Image id.", computed=True),
            Attribute("name", AttrType.STRING, "Image name.", required=True, force_new=True),
            Attribute("path", AttrType.STRING, "Source file on the NAS.", required=True, force_new=True),
            Attribute(
                "image_type",
                AttrType.STRING,
                "Image kind.",
                default="iso",
                force_new=True,
                validators=(one_of("disk", "vdsm", "iso"),),
            ),
            Attribute("auto_clean", AttrType.BOOL, "Remove the import task when done.", default=True),
            Attribute("storage_id", AttrType.STRING, "Storage holding the image.", force_new=True),
            Attribute("storage_name", AttrType.STRING, "Storage holding the image.", force_new=True),
        ),
    )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        storages = []
        if values["storage_id"]:
            storages.append(vm.StorageRef(id=values["storage_id"]))
        if values["storage_name"]:
            storages.append(vm.StorageRef(name=values["storage_name"]))
        image_id = await vm.image_create(
            self.api,
            vm.ImageCreateRequest(
                name=values["name"],
                file_path=values["path"],
                type=values["image_type"],
                auto_clean_task=values["auto_clean"],
                storages=storages or None,
            ),
        )
        return {**values, "id": image_id}

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        image = await vm.image_get(self.api, state["name"])
        return {**state, "id": image.id, "image_type": image.type or state.get("image_type")}

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        return {**values, "id": state["id"]}

    async def _delete(self, state: dict[str, Any]) -> None:
        await vm.image_get(self.api, state["name"])
        await vm.image_delete(self.api, state["name"])


_GUEST_ATTRIBUTES = (
    Attribute("id", AttrType.STRING, computed=True),
    Attribute("description", AttrType.STRING, computed=True),
    Attribute("status", AttrType.STRING, computed=True),
    Attribute("storage_id", AttrType.STRING, computed=True),
    Attribute("storage_name", AttrType.STRING, computed=True),
    Attribute("autorun", AttrType.INT, computed=True),
    Attribute("vcpu_num", AttrType.INT, computed=True),
    Attribute("vram_size", AttrType.INT, computed=True),
    Attribute("disks", AttrType.LIST, computed=True),
    Attribute("networks", AttrType.LIST, computed=True),
)


@CATALOG.data_source
class GuestDataSource(DataSource):
    kind = "virtualization_guest"
    schema = Schema(
        "One guest, looked up by name.",
        (Attribute("name", AttrType.STRING, "Guest name.", required=True), *_GUEST_ATTRIBUTES),
    )

    async def _read(self, values: dict[str, Any]) -> dict[str, Any]:
        return _guest_state(await vm.guest_get(self.api, values["name"]))


@CATALOG.data_source
class GuestListDataSource(DataSource):
    kind = "virtualization_guest_list"
    schema = Schema(
        "All guests on the host.",
        (Attribute("guests", AttrType.LIST, computed=True),),
    )

    async def _read(self, values: dict[str, Any]) -> dict[str, Any]:
        return {"guests": [_guest_state(g) for g in await vm.guest_list(self.api)]}
