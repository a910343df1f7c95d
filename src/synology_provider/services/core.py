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

"""Core service: packages, package feeds, scheduled tasks, event scripts,
host network, volumes and shares."""

from __future__ import annotations

import asyncio
import datetime
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from synology_provider.api.codec import synology_field
from synology_provider.api.endpoints import endpoint
from synology_provider.api.errors import InvalidArgumentError, NotFoundError, SynologyProviderError

if TYPE_CHECKING:
    from synology_provider.api.client import SynologyAPI

log = logging.getLogger(__name__)

ROOT_USER = "root"

# DSM schedule repeat_date values
REPEAT_DAILY = 1001
REPEAT_MONTHLY = 1003

PACKAGE_POLL_INTERVAL = 2.0
PACKAGE_MAX_POLLS = 10

PACKAGE_ERRORS: dict[int, str] = {
    4501: "Package does not exist",
    4502: "Package is being installed or uninstalled",
}

# -- records ------------------------------------------------------------------


@dataclass
class PackageAdditional:
    status: str = ""


@dataclass
class Package:
    id: str = ""
    name: str = ""
    version: str = ""
    additional: PackageAdditional = field(default_factory=PackageAdditional)


@dataclass
class PackageList:
    packages: list[Package] = field(default_factory=list)
    total: int = 0


@dataclass
class ServerPackage:
    id: str = ""
    dname: str = ""
    version: str = ""
    link: str = ""
    size: int = 0
    md5: str = ""


@dataclass
class ServerPackageList:
    packages: list[ServerPackage] = field(default_factory=list)


@dataclass
class InstallStarted:
    task_id: str = synology_field("taskid", default="")


@dataclass
class InstallStatus:
    finished: bool = False
    name: str = ""
    status: str = ""
    progress: float = 0.0
    tmp_folder: str = ""
    task_id: str = synology_field("taskid", default="")


@dataclass
class Feed:
    name: str = ""
    feed: str = ""


@dataclass
class FeedList:
    items: list[Feed] = field(default_factory=list)
    total: int = 0


@dataclass
class TaskSchedule:
    """DSM schedule record, sent as a JSON object."""

    date_type: int = 0
    week_day: str = "0,1,2,3,4,5,6"
    monthly_week: list[str] = field(default_factory=list)
    date: str = ""
    hour: int = 0
    minute: int = 0
    repeat_hour: int = 0
    repeat_min: int = 0
    last_work_hour: int = 0
    repeat_date: int = REPEAT_DAILY
    repeat_min_store_config: list[int] = field(default_factory=lambda: [1, 5, 10, 15, 20, 30])
    repeat_hour_store_config: list[int] = field(default_factory=lambda: list(range(1, 24)))


@dataclass
class TaskExtra:
    script: str = ""
    notify_enable: bool = False
    notify_mail: str = ""
    notify_if_error: bool = False


@dataclass
class TaskResult:
    id: int = 0


@dataclass
class TaskSummary:
    id: int = 0
    name: str = ""
    owner: str = ""
    real_owner: str = ""
    type: str = ""
    enable: bool = False
    action: str = ""


@dataclass
class TaskSummaryList:
    tasks: list[TaskSummary] = field(default_factory=list)
    total: int = 0


@dataclass
class EventInfo:
    task_name: str = ""
    owner: dict[str, str] = field(default_factory=dict)
    event: str = ""
    enable: bool = False
    operation: str = ""
    operation_type: str = ""


@dataclass
class GatewayInfo:
    ifname: str = ""
    ip: str = ""
    mask: str = ""
    status: str = ""
    type: str = ""
    use_dhcp: bool = False


@dataclass
class NetworkInfo:
    server_name: str = ""
    gateway: str = ""
    v6gateway: str = ""
    dns_manual: bool = False
    dns_primary: str = ""
    dns_secondary: str = ""
    ipv4_first: bool = False
    multi_gateway: bool = False
    enable_windomain: bool = False
    gateway_info: GatewayInfo = field(default_factory=GatewayInfo)


@dataclass
class Volume:
    volume_path: str = ""
    display_name: str = ""
    status: str = ""


@dataclass
class VolumeList:
    volumes: list[Volume] = field(default_factory=list)


# -- requests -----------------------------------------------------------------


@dataclass
class PackageListRequest:
    additional: list[str] | None = None


@dataclass
class ServerListRequest:
    blqueryonly: bool | None = None
    blloadothers: bool | None = None


@dataclass
class PackageInstallRequest:
    name: str | None = None
    url: str | None = None
    type: int | None = None
    big_install: bool | None = None
    file_size: int | None = None
    path: str | None = synology_field("path", as_json=True)
    force: bool | None = None
    check_codesign: bool | None = None
    installrunpackage: bool | None = None
    extra_values: str | None = None
    volume_path: str | None = None


@dataclass
class InstallStatusRequest:
    task_id: str | None = None


@dataclass
class PackageIdRequest:
    id: str | None = None


@dataclass
class FeedAddRequest:
    name: str | None = None
    feed: str | None = None


@dataclass
class FeedDeleteRequest:
    feeds: list[str] | None = synology_field("list")


@dataclass
class TaskRequest:
    id: int | None = None
    name: str | None = None
    real_owner: str | None = None
    owner: str | None = None
    type: str | None = None
    enable: bool | None = None
    schedule: TaskSchedule | None = synology_field("schedule", as_json=True)
    extra: TaskExtra | None = synology_field("extra", as_json=True)


@dataclass
class TaskRef:
    id: int
    real_owner: str = ROOT_USER


@dataclass
class TaskListRequest:
    tasks: list[TaskRef] | None = synology_field("tasks", as_json=True)


@dataclass
class TaskQueryRequest:
    offset: int | None = None
    limit: int | None = None
    sort_by: str | None = None


@dataclass
class EventRequest:
    task_name: str | None = None
    owner: dict[str, str] | None = synology_field("owner", as_json=True)
    event: str | None = None
    depend_on_task: str | None = None
    enable: bool | None = None
    notify_enable: bool | None = None
    notify_mail: str | None = None
    notify_if_error: bool | None = None
    operation: str | None = None
    operation_type: str | None = None


@dataclass
class EventNameRequest:
    task_name: str | None = None


@dataclass
class VolumeListRequest:
    offset: int | None = None
    limit: int | None = None
    location: str | None = None


@dataclass
class ShareInfo:
    name: str
    vol_path: str
    desc: str = ""


@dataclass
class ShareCreateRequest:
    name: str | None = synology_field("name", as_json=True)
    shareinfo: ShareInfo | None = synology_field("shareinfo", as_json=True)


# -- endpoints ----------------------------------------------------------------

_PKG = (PACKAGE_ERRORS,)

PACKAGE_LIST = endpoint("SYNO.Core.Package", "list", 2, PackageListRequest, PackageList, _PKG)
SERVER_LIST = endpoint(
    "SYNO.Core.Package.Server", "list", 2, ServerListRequest, ServerPackageList, _PKG
)
PACKAGE_INSTALL = endpoint(
    "SYNO.Core.Package.Installation",
    "install",
    1,
    PackageInstallRequest,
    InstallStarted,
    _PKG,
    http_method="POST",
)
PACKAGE_INSTALL_STATUS = endpoint(
    "SYNO.Core.Package.Installation", "status", 1, InstallStatusRequest, InstallStatus, _PKG
)
PACKAGE_UNINSTALL = endpoint(
    "SYNO.Core.Package.Uninstallation", "uninstall", 1, PackageIdRequest, None, _PKG
)
FEED_LIST = endpoint("SYNO.Core.Package.Feed", "list", 1, None, FeedList)
FEED_ADD = endpoint("SYNO.Core.Package.Feed", "add", 1, FeedAddRequest)
FEED_DELETE = endpoint("SYNO.Core.Package.Feed", "delete", 1, FeedDeleteRequest)

TASK_LIST = endpoint("SYNO.Core.TaskScheduler", "list", 3, TaskQueryRequest, TaskSummaryList)
TASK_CREATE = endpoint(
    "SYNO.Core.TaskScheduler", "create", 4, TaskRequest, TaskResult, http_method="POST"
)
TASK_SET = endpoint("SYNO.Core.TaskScheduler", "set", 4, TaskRequest, TaskResult, http_method="POST")
TASK_DELETE = endpoint("SYNO.Core.TaskScheduler", "delete", 2, TaskListRequest)
TASK_RUN = endpoint("SYNO.Core.TaskScheduler", "run", 2, TaskListRequest)
ROOT_TASK_CREATE = endpoint(
    "SYNO.Core.TaskScheduler.Root", "create", 4, TaskRequest, TaskResult, http_method="POST"
)
ROOT_TASK_SET = endpoint(
    "SYNO.Core.TaskScheduler.Root", "set", 4, TaskRequest, TaskResult, http_method="POST"
)

EVENT_CREATE = endpoint("SYNO.Core.EventScheduler", "create", 1, EventRequest, http_method="POST")
EVENT_SET = endpoint("SYNO.Core.EventScheduler", "set", 1, EventRequest, http_method="POST")
EVENT_GET = endpoint("SYNO.Core.EventScheduler", "get", 1, EventNameRequest, EventInfo)
EVENT_DELETE = endpoint("SYNO.Core.EventScheduler", "delete", 1, EventNameRequest)
EVENT_RUN = endpoint("SYNO.Core.EventScheduler", "run", 1, EventNameRequest)
ROOT_EVENT_CREATE = endpoint(
    "SYNO.Core.EventScheduler.Root", "create", 1, EventRequest, http_method="POST"
)
ROOT_EVENT_SET = endpoint("SYNO.Core.EventScheduler.Root", "set", 1, EventRequest, http_method="POST")

NETWORK_GET = endpoint("SYNO.Core.Network", "get", 2, None, NetworkInfo)
VOLUME_LIST = endpoint("SYNO.Core.Storage.Volume", "list", 1, VolumeListRequest, VolumeList)
SHARE_CREATE = endpoint("SYNO.Core.Share", "create", 1, ShareCreateRequest, http_method="POST")


# -- packages -----------------------------------------------------------------


async def list_packages(api: SynologyAPI) -> list[Package]:
    data: PackageList = await api.call(PACKAGE_LIST, PackageListRequest(additional=["status"]))
    return data.packages


async def package_get(api: SynologyAPI, name: str) -> Package:
    """Installed package by id; NotFoundError if it is not installed."""
    for pkg in await list_packages(api):
        if pkg.id == name:
            return pkg
    raise NotFoundError(f"package {name} is not installed")


async def package_find(api: SynologyAPI, name: str) -> ServerPackage:
    """Package by id in the package server catalog."""
    data: ServerPackageList = await api.call(
        SERVER_LIST, ServerListRequest(blqueryonly=False, blloadothers=False)
    )
    for pkg in data.packages:
        if pkg.id == name:
            return pkg
    raise NotFoundError(f"package {name} not found in package center")


async def _wait_install(api: SynologyAPI, task_id: str) -> InstallStatus:
    for _ in range(PACKAGE_MAX_POLLS + 1):
        status: InstallStatus = await api.call(
            PACKAGE_INSTALL_STATUS, InstallStatusRequest(task_id=task_id)
        )
        if status.finished:
            return status
        await asyncio.sleep(PACKAGE_POLL_INTERVAL)
    raise SynologyProviderError(f"package install task {task_id} did not finish")


async def package_install(
    api: SynologyAPI,
    name: str,
    url: str = "",
    size: int = 0,
    volume_path: str = "/volume1",
) -> InstallStatus:
    """Download and install a package.

    The package is first downloaded to a temporary folder on the NAS,
    then installed from there. Each phase is polled until it finishes.
    """
    if not url or not size:
        found = await package_find(api, name)
        url = url or found.link
        size = size or found.size
    if not size:
        size = await api.content_length(url)

    started: InstallStarted = await api.call(
        PACKAGE_INSTALL,
        PackageInstallRequest(name=name, url=url, type=0, big_install=False, file_size=size),
    )
    if not started.task_id:
        raise SynologyProviderError(f"package {name}: download returned no task id")
    downloaded = await _wait_install(api, started.task_id)
    log.info("Package %s downloaded", name)

    installed: InstallStarted = await api.call(
        PACKAGE_INSTALL,
        PackageInstallRequest(
            path=f"{downloaded.tmp_folder}/{downloaded.task_id}",
            installrunpackage=False,
            force=True,
            check_codesign=False,
            type=0,
            extra_values="{}",
            volume_path=volume_path,
        ),
    )
    if not installed.task_id:
        raise SynologyProviderError(f"package {name}: install returned no task id")
    status = await _wait_install(api, installed.task_id)
    log.info("Package %s installed", name)
    return status


async def package_uninstall(api: SynologyAPI, name: str) -> None:
    await api.call(PACKAGE_UNINSTALL, PackageIdRequest(id=name))


# -- package feeds ------------------------------------------------------------


async def feed_list(api: SynologyAPI) -> list[Feed]:
    data: FeedList = await api.call(FEED_LIST)
    return data.items


async def feed_add(api: SynologyAPI, name: str, url: str) -> None:
    await api.call(FEED_ADD, FeedAddRequest(name=name, feed=url))


async def feed_delete(api: SynologyAPI, urls: list[str]) -> None:
    await api.call(FEED_DELETE, FeedDeleteRequest(feeds=urls))


# -- scheduled tasks ----------------------------------------------------------

_CRON_ALIASES = {
    "@hourly": "0 * * * *",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@weekly": "0 0 * * 0",
    "@monthly": "0 0 1 * *",
}


def _cron_number(value: str, low: int, high: int, what: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise InvalidArgumentError(f"schedule: invalid {what} {value!r}") from None
    if not low <= n <= high:
        raise InvalidArgumentError(f"schedule: {what} {n} out of range {low}-{high}")
    return n


def parse_schedule(expr: str) -> TaskSchedule:
    """Translate a five-field cron expression into a DSM schedule.

    Supported forms: fixed minute or ``*/N`` minutes, fixed hour or ``*/N``
    hours, ``*`` or a fixed day of month, ``*`` month, and ``*`` or a
    comma-separated list of weekdays (0-6, Sunday is 0).
    """
    expr = _CRON_ALIASES.get(expr.strip(), expr.strip())
    parts = expr.split()
    if len(parts) != 5:
        raise InvalidArgumentError(f"schedule: expected 5 cron fields, got {len(parts)}")
    minute, hour, dom, month, dow = parts
    schedule = TaskSchedule()

    if minute == "*":
        schedule.repeat_min = 1
    elif minute.startswith("*/"):
        schedule.repeat_min = _cron_number(minute[2:], 1, 59, "minute step")
    else:
        schedule.minute = _cron_number(minute, 0, 59, "minute")

    if hour == "*":
        if not schedule.repeat_min:
            schedule.repeat_hour = 1
    elif hour.startswith("*/"):
        schedule.repeat_hour = _cron_number(hour[2:], 1, 23, "hour step")
    else:
        schedule.hour = _cron_number(hour, 0, 23, "hour")
    if schedule.repeat_min or schedule.repeat_hour:
        schedule.last_work_hour = 23

    if month != "*":
        raise InvalidArgumentError("schedule: month field must be *")

    if dom != "*":
        day = _cron_number(dom, 1, 31, "day of month")
        today = datetime.date.today()
        schedule.date_type = 1
        schedule.repeat_date = REPEAT_MONTHLY
        schedule.date = f"{today.year}/{today.month}/{day}"
    if dow != "*":
        days = sorted({_cron_number(d, 0, 6, "weekday") for d in dow.split(",")})
        schedule.week_day = ",".join(str(d) for d in days)
    return schedule


def default_schedule(now: datetime.datetime | None = None) -> TaskSchedule:
    """Daily schedule starting today."""
    start = (now or datetime.datetime.now()) - datetime.timedelta(minutes=5)
    schedule = TaskSchedule()
    schedule.date = f"{start.year}-{start.month:02d}-{start.day:02d}"
    return schedule


def task_request(
    name: str,
    script: str,
    user: str = ROOT_USER,
    schedule: str = "",
    enable: bool = True,
    task_id: int | None = None,
) -> TaskRequest:
    return TaskRequest(
        id=task_id,
        name=name,
        real_owner=ROOT_USER,
        owner=user,
        type="script",
        enable=enable,
        schedule=parse_schedule(schedule) if schedule else default_schedule(),
        extra=TaskExtra(script=script),
    )


async def task_create(api: SynologyAPI, req: TaskRequest) -> int:
    """Create a task; tasks owned by root go through the Root API."""
    entry = ROOT_TASK_CREATE if req.owner == ROOT_USER else TASK_CREATE
    result: TaskResult = await api.call(entry, req)
    return result.id


async def task_update(api: SynologyAPI, req: TaskRequest) -> int:
    entry = ROOT_TASK_SET if req.owner == ROOT_USER else TASK_SET
    result: TaskResult = await api.call(entry, req)
    return result.id or (req.id or 0)


async def task_list(api: SynologyAPI) -> list[TaskSummary]:
    data: TaskSummaryList = await api.call(
        TASK_LIST, TaskQueryRequest(offset=0, limit=-1, sort_by="name")
    )
    return data.tasks


async def task_get(api: SynologyAPI, task_id: int) -> TaskSummary:
    for task in await task_list(api):
        if task.id == task_id:
            return task
    raise NotFoundError(f"task {task_id} does not exist")


async def task_delete(api: SynologyAPI, task_id: int) -> None:
    await api.call(TASK_DELETE, TaskListRequest(tasks=[TaskRef(task_id)]))


async def task_run(api: SynologyAPI, task_id: int) -> None:
    await api.call(TASK_RUN, TaskListRequest(tasks=[TaskRef(task_id)]))


# -- event scripts ------------------------------------------------------------


def event_request(name: str, script: str, user: str = ROOT_USER, event: str = "") -> EventRequest:
    return EventRequest(
        task_name=name,
        owner={"0": user},
        event=event or "bootup",
        depend_on_task="",
        enable=True,
        notify_enable=False,
        notify_mail="",
        notify_if_error=False,
        operation=script,
        operation_type="script",
    )


def _owned_by_root(req: EventRequest) -> bool:
    return any(user == ROOT_USER for user in (req.owner or {}).values())


async def event_create(api: SynologyAPI, req: EventRequest) -> None:
    """Create an event script; root-owned events go through the Root API."""
    await api.call(ROOT_EVENT_CREATE if _owned_by_root(req) else EVENT_CREATE, req)


async def event_update(api: SynologyAPI, req: EventRequest) -> None:
    await api.call(ROOT_EVENT_SET if _owned_by_root(req) else EVENT_SET, req)


async def event_get(api: SynologyAPI, name: str) -> EventInfo:
    """Event script by name; NotFoundError if no task carries that name."""
    if not any(t.name == name for t in await task_list(api)):
        raise NotFoundError(f"event {name} does not exist")
    result: EventInfo = await api.call(EVENT_GET, EventNameRequest(task_name=name))
    return result


async def event_delete(api: SynologyAPI, name: str) -> None:
    await api.call(EVENT_DELETE, EventNameRequest(task_name=name))


async def event_run(api: SynologyAPI, name: str) -> None:
    await api.call(EVENT_RUN, EventNameRequest(task_name=name))


# -- host ---------------------------------------------------------------------


async def network_get(api: SynologyAPI) -> NetworkInfo:
    result: NetworkInfo = await api.call(NETWORK_GET)
    return result


async def volume_list(api: SynologyAPI) -> list[Volume]:
    data: VolumeList = await api.call(
        VOLUME_LIST, VolumeListRequest(offset=0, limit=-1, location="internal")
    )
    return data.volumes


async def share_create(api: SynologyAPI, name: str, vol_path: str) -> None:
    await api.call(
        SHARE_CREATE, ShareCreateRequest(name=name, shareinfo=ShareInfo(name=name, vol_path=vol_path))
    )
