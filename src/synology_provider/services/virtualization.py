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

"""Virtual Machine Manager service: guests, guest power and images."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from synology_provider.api.codec import synology_field
from synology_provider.api.endpoints import endpoint
from synology_provider.api.errors import NotFoundError

if TYPE_CHECKING:
    from synology_provider.api.client import SynologyAPI

log = logging.getLogger(__name__)

NAME_CONFLICT = 403

VIRTUALIZATION_ERRORS: dict[int, str] = {
    401: "Bad parameter",
    402: "Operation failed",
    403: "Name conflict",
    404: "The number of iSCSI LUNs has reached the system limit",
    500: "The cluster is frozen. More than half of the hosts are offline",
    501: "The cluster is in the incompatible mode. Please upgrade to a compatible DSM version",
    502: "The cluster is not ready",
    503: "The host is offline",
    504: "The storage is in invalid",
    505: "Failed to set a host to a virtual machine",
}

# -- records ------------------------------------------------------------------


@dataclass
class VDisk:
    id: str = synology_field("vdisk_id", default="")
    size: int = synology_field("vdisk_size", default=0)
    controller: int = 0
    unmap: bool = False


@dataclass
class VNic:
    id: str = synology_field("network_id", default="")
    name: str = synology_field("network_name", default="")
    mac: str = ""
    model: int = 0
    vnic_id: str = ""


@dataclass
class Guest:
    id: str = synology_field("guest_id", default="")
    name: str = synology_field("guest_name", default="")
    description: str = ""
    status: str = ""
    storage_id: str = ""
    storage_name: str = ""
    autorun: int = 0
    vcpu_num: int = 0
    vram_size: int = 0
    disks: list[VDisk] = synology_field("vdisks", default_factory=list)
    networks: list[VNic] = synology_field("vnics", default_factory=list)


@dataclass
class GuestList:
    guests: list[Guest] = field(default_factory=list)


@dataclass
class GuestCreated:
    id: str = synology_field("guest_id", default="")


@dataclass
class Image:
    id: str = synology_field("image_id", default="")
    name: str = synology_field("image_name", default="")
    status: str = ""
    type: str = ""


@dataclass
class ImageList:
    images: list[Image] = field(default_factory=list)


@dataclass
class ImageTaskInfo:
    image_id: str = ""


@dataclass
class ImageCreated:
    task_id: str = ""
    task_info: ImageTaskInfo = field(default_factory=ImageTaskInfo)


# -- requests -----------------------------------------------------------------


@dataclass
class NewVNic:
    network_id: str | None = None
    network_name: str | None = None
    mac: str | None = None


@dataclass
class NewVDisk:
    create_type: int = 0
    vdisk_size: int | None = None
    image_id: str | None = None
    image_name: str | None = None


@dataclass
class GuestRef:
    guest_id: str | None = None
    guest_name: str | None = None


@dataclass
class GuestCreateRequest:
    guest_name: str | None = None
    storage_id: str | None = None
    storage_name: str | None = None
    vcpu_num: int | None = None
    vram_size: int | None = None
    vnics: list[NewVNic] | None = synology_field("vnics", as_json=True)
    vdisks: list[NewVDisk] | None = synology_field("vdisks", as_json=True)


@dataclass
class GuestUpdateRequest:
    guest_id: str | None = None
    guest_name: str | None = None
    new_guest_name: str | None = None
    vcpu_num: int | None = None
    vram_size: int | None = None
    iso_images: list[str] | None = None


@dataclass
class PowerRequest:
    guest: GuestRef = synology_field(embed=True)
    force_stop: bool | None = None


@dataclass
class StorageRef:
    id: str | None = None
    name: str | None = None


@dataclass
class ImageCreateRequest:
    name: str | None = None
    file_path: str | None = None
    type: str | None = None
    auto_clean_task: bool | None = None
    storages: list[StorageRef] | None = synology_field("storages", as_json=True)


@dataclass
class ImageDeleteRequest:
    image_name: str | None = None


# -- endpoints ----------------------------------------------------------------

_VM = (VIRTUALIZATION_ERRORS,)
GUEST_API = "SYNO.Virtualization.API.Guest"

GUEST_LIST = endpoint(GUEST_API, "list", 1, None, GuestList, _VM)
GUEST_GET = endpoint(GUEST_API, "get", 1, GuestRef, Guest, _VM)
GUEST_CREATE = endpoint(GUEST_API, "create", 1, GuestCreateRequest, GuestCreated, _VM, "POST")
GUEST_SET = endpoint(GUEST_API, "set", 1, GuestUpdateRequest, None, _VM, "POST")
GUEST_DELETE = endpoint(GUEST_API, "delete", 1, GuestRef, None, _VM)
GUEST_POWER_ON = endpoint(f"{GUEST_API}.Action", "poweron", 1, PowerRequest, None, _VM)
GUEST_POWER_OFF = endpoint(f"{GUEST_API}.Action", "poweroff", 1, PowerRequest, None, _VM)
IMAGE_LIST = endpoint(f"{GUEST_API}.Image", "list", 1, None, ImageList, _VM)
IMAGE_CREATE = endpoint(
    f"{GUEST_API}.Image", "create", 1, ImageCreateRequest, ImageCreated, _VM, "POST"
)
IMAGE_DELETE = endpoint(f"{GUEST_API}.Image", "delete", 1, ImageDeleteRequest, None, _VM)


# -- guests -------------------------------------------------------------------


async def guest_list(api: SynologyAPI) -> list[Guest]:
    data: GuestList = await api.call(GUEST_LIST)
    return data.guests


async def guest_get(api: SynologyAPI, name: str) -> Guest:
    """Guest by name; NotFoundError if no guest has that name."""
    for guest in await guest_list(api):
        if guest.name == name:
            result: Guest = await api.call(GUEST_GET, GuestRef(guest_name=name))
            return result
    raise NotFoundError(f"guest {name} does not exist")


async def guest_create(api: SynologyAPI, req: GuestCreateRequest) -> str:
    created: GuestCreated = await api.call(GUEST_CREATE, req)
    return created.id


async def guest_update(api: SynologyAPI, req: GuestUpdateRequest) -> None:
    await api.call(GUEST_SET, req)


async def guest_delete(api: SynologyAPI, name: str) -> None:
    await api.call(GUEST_DELETE, GuestRef(guest_name=name))


async def guest_power_on(api: SynologyAPI, name: str) -> None:
    await api.call(GUEST_POWER_ON, PowerRequest(GuestRef(guest_name=name)))


async def guest_power_off(api: SynologyAPI, name: str, force: bool = False) -> None:
    await api.call(GUEST_POWER_OFF, PowerRequest(GuestRef(guest_name=name), force_stop=force))


# -- images -------------------------------------------------------------------


async def image_list(api: SynologyAPI) -> list[Image]:
    data: ImageList = await api.call(IMAGE_LIST)
    return data.images


async def image_get(api: SynologyAPI, name: str) -> Image:
    for image in await image_list(api):
        if image.name == name:
            return image
    raise NotFoundError(f"image {name} does not exist")


async def image_create(api: SynologyAPI, req: ImageCreateRequest) -> str:
    created: ImageCreated = await api.call(IMAGE_CREATE, req)
    return created.task_info.image_id


async def image_delete(api: SynologyAPI, name: str) -> None:
    await api.call(IMAGE_DELETE, ImageDeleteRequest(image_name=name))
