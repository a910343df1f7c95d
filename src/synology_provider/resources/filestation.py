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

"""FileStation mediators: files, folders, ISO images and host info."""

from __future__ import annotations

import hashlib
import logging
import posixpath
from typing import Any

from synology_provider.api.errors import InvalidArgumentError
from synology_provider.resources.base import (
    CATALOG,
    Attribute,
    AttrType,
    DataSource,
    Resource,
    Schema,
    matches,
)
from synology_provider.services import filestation
from synology_provider.util.iso9660 import cloud_init_iso, iso

log = logging.getLogger(__name__)

_ABSOLUTE = matches(r"/.+", "must be an absolute path")


def _path(**kwargs: Any) -> Attribute:
    return Attribute(
        "path", AttrType.STRING, required=True, force_new=True, validators=(_ABSOLUTE,), **kwargs
    )


_CREATE_PARENTS = Attribute(
    "create_parents", AttrType.BOOL, "Create missing parent folders.", default=True
)
_OVERWRITE = Attribute(
    "overwrite", AttrType.BOOL, "Replace an existing file at the destination.", default=False
)

_STAT_ATTRIBUTES = (
    Attribute("real_path", AttrType.STRING, computed=True),
    Attribute("access_time", AttrType.INT, computed=True),
    Attribute("modified_time", AttrType.INT, computed=True),
    Attribute("change_time", AttrType.INT, computed=True),
    Attribute("create_time", AttrType.INT, computed=True),
)


def _stat(entry: filestation.File) -> dict[str, Any]:
    extra = entry.additional
    return {
        "real_path": extra.real_path,
        "access_time": extra.time.atime,
        "modified_time": extra.time.mtime,
        "change_time": extra.time.ctime,
        "create_time": extra.time.crtime,
    }


class _UploadedFile(Resource):
    """A file whose bytes are produced locally and uploaded to ``path``."""

    identity = "path"

    async def _content(self, values: dict[str, Any]) -> bytes:
        raise NotImplementedError

    async def _put(self, values: dict[str, Any], overwrite: bool) -> dict[str, Any]:
        path = values["path"]
        if not overwrite and await filestation.exists(self.api, path):
            raise InvalidArgumentError(f"{path} already exists and overwrite is false")
        content = await self._content(values)
        await filestation.upload(
            self.api, path, content, create_parents=values["create_parents"], overwrite=True
        )
        return {**values, **_stat(await filestation.get(self.api, path))}

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        return await self._put(values, values["overwrite"])

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        return {**state, **_stat(await filestation.get(self.api, state["path"]))}

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        return await self._put(values, overwrite=True)

    async def _delete(self, state: dict[str, Any]) -> None:
        if await filestation.exists(self.api, state["path"]):
            await filestation.delete(self.api, [state["path"]], recursive=False)


@CATALOG.resource
class FileResource(_UploadedFile):
    kind = "filestation_file"
    schema = Schema(
        "A file on the NAS, from inline content or downloaded from a URL.",
        (
            _path(description="Destination path of the file."),
            Attribute("content", AttrType.STRING, "Inline file content.", sensitive=True),
            Attribute("url", AttrType.STRING, "URL to download the file content from."),
            _CREATE_PARENTS,
            _OVERWRITE,
            Attribute("md5", AttrType.STRING, "MD5 of the file on the NAS.", computed=True),
            *_STAT_ATTRIBUTES,
        ),
    )

    async def _content(self, values: dict[str, Any]) -> bytes:
        if values["url"]:
            log.debug("Downloading %s", values["url"])
            return await self.api.fetch(values["url"])
        return str(values["content"]).encode("utf-8")

    async def _put(self, values: dict[str, Any], overwrite: bool) -> dict[str, Any]:
        if (values["content"] is None) == (values["url"] is None):
            raise InvalidArgumentError("exactly one of content or url must be set")
        state = await super()._put(values, overwrite)
        state["md5"] = await filestation.md5(self.api, values["path"])
        return state

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        out = await super()._read(state)
        out["md5"] = await filestation.md5(self.api, state["path"])
        if state.get("content") is not None:
            local = hashlib.md5(str(state["content"]).encode("utf-8")).hexdigest()
            if local != out["md5"]:
                log.info("%s changed on the NAS", state["path"])
                out["content"] = None
        return out


@CATALOG.resource
class CloudInitResource(_UploadedFile):
    kind = "filestation_cloud_init"
    schema = Schema(
        "A NoCloud cloud-init seed ISO uploaded to the NAS.",
        (
            _path(description="Destination path of the ISO file."),
            Attribute("meta_data", AttrType.STRING, "meta-data document.", default=""),
            Attribute("user_data", AttrType.STRING, "user-data document.", default=""),
            Attribute("network_config", AttrType.STRING, "network-config document.", default=""),
            _CREATE_PARENTS,
            _OVERWRITE,
            *_STAT_ATTRIBUTES,
        ),
    )

    async def _content(self, values: dict[str, Any]) -> bytes:
        return cloud_init_iso(values["meta_data"], values["user_data"], values["network_config"])


@CATALOG.resource
class IsoResource(_UploadedFile):
    kind = "filestation_iso"
    schema = Schema(
        "An ISO image built from inline files and uploaded to the NAS.",
        (
            _path(description="Destination path of the ISO file."),
            Attribute("volume_name", AttrType.STRING, "Volume label.", required=True),
            Attribute("files", AttrType.MAP, "Image contents, path to content.", required=True),
            _CREATE_PARENTS,
            _OVERWRITE,
            *_STAT_ATTRIBUTES,
        ),
    )

    async def _content(self, values: dict[str, Any]) -> bytes:
        return iso(values["volume_name"], values["files"])


@CATALOG.resource
class FolderResource(Resource):
    kind = "filestation_folder"
    identity = "path"
    schema = Schema(
        "A folder on the NAS.",
        (
            _path(description="Full path of the folder."),
            _CREATE_PARENTS,
            Attribute("real_path", AttrType.STRING, computed=True),
        ),
    )

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        parent, name = posixpath.split(values["path"].rstrip("/"))
        await filestation.create_folder(
            self.api, parent or "/", name, force_parent=values["create_parents"]
        )
        return await self._read(values)

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        entry = await filestation.get(self.api, state["path"])
        if not entry.is_dir:
            raise InvalidArgumentError(f"{state['path']} is not a folder")
        return {**state, "real_path": entry.additional.real_path}

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        return {**state, **values, "real_path": state.get("real_path")}

    async def _delete(self, state: dict[str, Any]) -> None:
        if await filestation.exists(self.api, state["path"]):
            await filestation.delete(self.api, [state["path"]], recursive=True)


@CATALOG.data_source
class InfoDataSource(DataSource):
    kind = "filestation_info"
    schema = Schema(
        "FileStation capabilities of the NAS.",
        (
            Attribute("id", AttrType.STRING, computed=True),
            Attribute("hostname", AttrType.STRING, computed=True),
            Attribute("is_manager", AttrType.BOOL, computed=True),
            Attribute("support_sharing", AttrType.BOOL, computed=True),
            Attribute("support_virtual_protocol", AttrType.STRING, computed=True),
        ),
    )

    async def _read(self, values: dict[str, Any]) -> dict[str, Any]:
        info = await filestation.info(self.api)
        protocols = info.support_virtual_protocol
        if isinstance(protocols, list):
            protocols = ",".join(str(p) for p in protocols)
        return {
            "id": info.hostname,
            "hostname": info.hostname,
            "is_manager": info.is_manager,
            "support_sharing": info.support_sharing,
            "support_virtual_protocol": str(protocols or ""),
        }
