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

"""FileStation service: shares, files, folders, uploads and file tasks."""

from __future__ import annotations

import asyncio
import json
import logging
import posixpath
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from synology_provider.api.codec import UploadFile, synology_field
from synology_provider.api.endpoints import endpoint
from synology_provider.api.errors import NotFoundError, SynologyError, SynologyProviderError

if TYPE_CHECKING:
    from synology_provider.api.client import SynologyAPI

log = logging.getLogger(__name__)

POLL_INTERVAL = 1.0
MAX_POLLS = 300

NO_SUCH_FILE = 408

FILESTATION_ERRORS: dict[int, str] = {
    400: "Invalid parameter of file operation",
    401: "Unknown error of file operation",
    402: "System is too busy",
    403: "Invalid user does this file operation",
    404: "Invalid group does this file operation",
    405: "Invalid user and group does this file operation",
    406: "Can't get user/group information from the account server",
    407: "Operation not permitted",
    408: "No such file or directory",
    409: "Non-supported file system",
    410: "Failed to connect internet-based file system (e.g., CIFS)",
    411: "Read-only file system",
    412: "Filename too long in the non-encrypted file system",
    413: "Filename too long in the encrypted file system",
    414: "File already exists",
    415: "Disk quota exceeded",
    416: "No space left on device",
    417: "Input/output error",
    418: "Illegal name or path",
    419: "Illegal file name",
    420: "Illegal file name on FAT file system",
    421: "Device or resource busy",
    599: "No such task of the file operation",
}

CREATE_FOLDER_ERRORS: dict[int, str] = {
    1100: "Failed to create a folder. More information in <errors> object.",
    1101: "The number of folders to the parent folder would exceed the system limitation.",
}

RENAME_ERRORS: dict[int, str] = {
    1200: "Failed to rename it. More information in <errors> object.",
}

DELETE_ERRORS: dict[int, str] = {
    900: "Failed to delete file(s)/folder(s). More information in <errors> object.",
}

UPLOAD_ERRORS: dict[int, str] = {
    1800: (
        "There is no Content-Length information in the HTTP header or the received "
        "size doesn't match the value of Content-Length information in the HTTP header."
    ),
    1801: "Wait too long, no date can be received from client.",
    1802: "No filename information in the last part of file content.",
    1803: "Upload connection is cancelled.",
    1804: "Failed to upload oversized file to FAT file system.",
    1805: "Can't overwrite or skip the existing file, if no overwrite parameter is given.",
}

DEFAULT_ADDITIONAL = ["real_path", "size", "owner", "time", "perm", "type"]


# -- records ------------------------------------------------------------------


@dataclass
class FileStationInfo:
    is_manager: bool = False
    support_sharing: bool = False
    support_virtual_protocol: Any = None
    hostname: str = ""


@dataclass
class FileTime:
    atime: int = 0
    mtime: int = 0
    ctime: int = 0
    crtime: int = 0


@dataclass
class FileOwner:
    user: str = ""
    group: str = ""
    uid: int = 0
    gid: int = 0


@dataclass
class FileAdditional:
    real_path: str = ""
    size: int = 0
    type: str = ""
    owner: FileOwner = field(default_factory=FileOwner)
    time: FileTime = field(default_factory=FileTime)


@dataclass
class File:
    path: str = ""
    name: str = ""
    is_dir: bool = synology_field("isdir", default=False)
    code: int = 0
    additional: FileAdditional = field(default_factory=FileAdditional)


@dataclass
class FileList:
    files: list[File] = field(default_factory=list)
    offset: int = 0
    total: int = 0


@dataclass
class ShareList:
    shares: list[File] = field(default_factory=list)
    offset: int = 0
    total: int = 0


@dataclass
class FolderList:
    folders: list[File] = field(default_factory=list)


@dataclass
class TaskStarted:
    task_id: str = synology_field("taskid", default="")


@dataclass
class DeleteStatus:
    finished: bool = False
    path: str = ""
    processed_num: int = 0
    processing_path: str = ""
    progress: float = 0.0
    total: int = 0


@dataclass
class MD5Status:
    finished: bool = False
    md5: str = ""


# -- requests -----------------------------------------------------------------


@dataclass
class ListShareRequest:
    offset: int | None = None
    limit: int | None = None
    sort_by: str | None = None
    additional: list[str] | None = None


@dataclass
class ListRequest:
    folder_path: str | None = None
    offset: int | None = None
    limit: int | None = None
    sort_by: str | None = None
    pattern: str | None = None
    filetype: str | None = None
    additional: list[str] | None = None


@dataclass
class GetInfoRequest:
    path: list[str] | None = None
    additional: list[str] | None = None


@dataclass
class CreateFolderRequest:
    folder_path: list[str] | None = None
    name: list[str] | None = None
    force_parent: bool | None = None
    additional: list[str] | None = None


@dataclass
class UploadRequest:
    path: str | None = None
    create_parents: bool | None = None
    overwrite: bool | None = None
    file: UploadFile | None = synology_field("file", file=True)


@dataclass
class DeleteStartRequest:
    path: list[str] | None = None
    accurate_progress: bool | None = None
    recursive: bool | None = None


@dataclass
class TaskStatusRequest:
    task_id: str | None = synology_field("taskid")


@dataclass
class RenameRequest:
    path: list[str] | None = None
    name: list[str] | None = None
    additional: list[str] | None = None


@dataclass
class MD5StartRequest:
    file_path: str | None = None


# -- endpoints ----------------------------------------------------------------

_COMMON = (FILESTATION_ERRORS,)

INFO = endpoint("SYNO.FileStation.Info", "get", 2, None, FileStationInfo, _COMMON)
LIST_SHARE = endpoint("SYNO.FileStation.List", "list_share", 2, ListShareRequest, ShareList, _COMMON)
LIST = endpoint("SYNO.FileStation.List", "list", 2, ListRequest, FileList, _COMMON)
GET_INFO = endpoint("SYNO.FileStation.List", "getinfo", 2, GetInfoRequest, FileList, _COMMON)
CREATE_FOLDER = endpoint(
    "SYNO.FileStation.CreateFolder",
    "create",
    2,
    CreateFolderRequest,
    FolderList,
    (CREATE_FOLDER_ERRORS, FILESTATION_ERRORS),
)
UPLOAD = endpoint(
    "SYNO.FileStation.Upload",
    "upload",
    2,
    UploadRequest,
    None,
    (UPLOAD_ERRORS, FILESTATION_ERRORS),
    http_method="POST",
)
DELETE_START = endpoint(
    "SYNO.FileStation.Delete",
    "start",
    2,
    DeleteStartRequest,
    TaskStarted,
    (DELETE_ERRORS, FILESTATION_ERRORS),
)
DELETE_STATUS = endpoint(
    "SYNO.FileStation.Delete",
    "status",
    2,
    TaskStatusRequest,
    DeleteStatus,
    (DELETE_ERRORS, FILESTATION_ERRORS),
)
RENAME = endpoint(
    "SYNO.FileStation.Rename", "rename", 2, RenameRequest, FileList, (RENAME_ERRORS, FILESTATION_ERRORS)
)
MD5_START = endpoint("SYNO.FileStation.MD5", "start", 2, MD5StartRequest, TaskStarted, _COMMON)
MD5_STATUS = endpoint("SYNO.FileStation.MD5", "status", 2, TaskStatusRequest, MD5Status, _COMMON)

DOWNLOAD_API = "SYNO.FileStation.Download"


# -- operations ---------------------------------------------------------------


async def info(api: SynologyAPI) -> FileStationInfo:
    """FileStation capabilities and host name."""
    result: FileStationInfo = await api.call(INFO)
    return result


async def list_shares(api: SynologyAPI, additional: list[str] | None = None) -> list[File]:
    data: ShareList = await api.call(
        LIST_SHARE, ListShareRequest(additional=additional or DEFAULT_ADDITIONAL)
    )
    return data.shares


async def list_files(
    api: SynologyAPI,
    folder_path: str,
    pattern: str | None = None,
    additional: list[str] | None = None,
) -> list[File]:
    data: FileList = await api.call(
        LIST,
        ListRequest(
            folder_path=folder_path,
            pattern=pattern,
            additional=additional or DEFAULT_ADDITIONAL,
        ),
    )
    return data.files


async def get(api: SynologyAPI, path: str) -> File:
    """Metadata of one file or folder.

    Raises NotFoundError when DSM reports the path as missing.
    """
    try:
        data: FileList = await api.call(
            GET_INFO, GetInfoRequest(path=[path], additional=DEFAULT_ADDITIONAL)
        )
    except SynologyError as e:
        if e.has_code(NO_SUCH_FILE):
            raise NotFoundError(f"{path}: no such file or directory") from e
        raise
    if not data.files or data.files[0].code == NO_SUCH_FILE:
        raise NotFoundError(f"{path}: no such file or directory")
    entry = data.files[0]
    if entry.code:
        raise SynologyError(entry.code, FILESTATION_ERRORS.get(entry.code, ""))
    return entry


async def exists(api: SynologyAPI, path: str) -> bool:
    try:
        await get(api, path)
    except NotFoundError:
        return False
    return True


async def create_folder(
    api: SynologyAPI,
    parent: str,
    name: str,
    force_parent: bool = True,
) -> File:
    """Create ``parent/name``, creating missing parents if asked."""
    data: FolderList = await api.call(
        CREATE_FOLDER,
        CreateFolderRequest(
            folder_path=[parent],
            name=[name],
            force_parent=force_parent,
            additional=DEFAULT_ADDITIONAL,
        ),
    )
    if not data.folders:
        return File(path=posixpath.join(parent, name), name=name, is_dir=True)
    return data.folders[0]


async def upload(
    api: SynologyAPI,
    path: str,
    content: bytes | str,
    create_parents: bool = True,
    overwrite: bool = True,
) -> None:
    """Upload ``content`` as the file at ``path``."""
    folder, name = posixpath.split(path)
    await api.call(
        UPLOAD,
        UploadRequest(
            path=folder or "/",
            create_parents=create_parents,
            overwrite=overwrite,
            file=UploadFile(name=name, content=content),
        ),
    )
    log.debug("Uploaded %s (%d bytes)", path, len(content))


async def download(api: SynologyAPI, path: str) -> bytes:
    return await api.download(
        DOWNLOAD_API,
        "download",
        2,
        {"path": json.dumps([path]), "mode": "download"},
        known_errors=_COMMON,
    )


async def _poll(api: SynologyAPI, status_endpoint: Any, task_id: str, what: str) -> Any:
    for _ in range(MAX_POLLS):
        status = await api.call(status_endpoint, TaskStatusRequest(task_id=task_id))
        if status.finished:
            return status
        await asyncio.sleep(POLL_INTERVAL)
    raise SynologyProviderError(f"{what} task {task_id} did not finish")


async def delete(api: SynologyAPI, paths: list[str], recursive: bool = True) -> DeleteStatus:
    """Delete files or folders and wait for the background task to finish."""
    started: TaskStarted = await api.call(
        DELETE_START,
        DeleteStartRequest(path=paths, accurate_progress=True, recursive=recursive),
    )
    status: DeleteStatus = await _poll(api, DELETE_STATUS, started.task_id, "delete")
    log.debug("Deleted %s", ", ".join(paths))
    return status


async def rename(api: SynologyAPI, path: str, name: str) -> File:
    data: FileList = await api.call(
        RENAME, RenameRequest(path=[path], name=[name], additional=DEFAULT_ADDITIONAL)
    )
    if not data.files:
        return File(path=posixpath.join(posixpath.dirname(path), name), name=name)
    return data.files[0]


async def md5(api: SynologyAPI, path: str) -> str:
    """MD5 digest of a file computed on the NAS."""
    started: TaskStarted = await api.call(MD5_START, MD5StartRequest(file_path=path))
    status: MD5Status = await _poll(api, MD5_STATUS, started.task_id, "md5")
    return status.md5
