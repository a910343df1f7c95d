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

"""Tests for the FileStation, Core, Virtualization and Docker services."""

from __future__ import annotations

import datetime
import json

import pytest

from conftest import FakeDSM, fail, ok
from synology_provider.api.client import SynologyAPI
from synology_provider.api.errors import InvalidArgumentError, NotFoundError, SynologyError
from synology_provider.services import core, docker, filestation
from synology_provider.services import virtualization as vm


class TestFileStation:
    @pytest.mark.asyncio
    async def test_get(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.FileStation.List.getinfo",
            ok({"files": [{"path": "/docker/app", "name": "app", "isdir": True}]}),
        )
        entry = await filestation.get(api, "/docker/app")

        assert entry.is_dir
        assert entry.name == "app"
        form = dsm.form("SYNO.FileStation.List.getinfo")
        assert json.loads(form["path"]) == ["/docker/app"]

    @pytest.mark.asyncio
    async def test_get_missing_entry(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.FileStation.List.getinfo", ok({"files": [{"path": "/x", "code": 408}]}))
        with pytest.raises(NotFoundError):
            await filestation.get(api, "/x")

    @pytest.mark.asyncio
    async def test_exists(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.FileStation.List.getinfo", fail(408), ok({"files": [{"path": "/y"}]}))
        assert not await filestation.exists(api, "/x")
        assert await filestation.exists(api, "/y")

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.FileStation.List.getinfo", fail(407))
        with pytest.raises(SynologyError) as exc:
            await filestation.get(api, "/x")
        assert exc.value.summary == "Operation not permitted"

    @pytest.mark.asyncio
    async def test_delete_polls_until_finished(
        self, api: SynologyAPI, dsm: FakeDSM, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(filestation, "POLL_INTERVAL", 0)
        dsm.on("SYNO.FileStation.Delete.start", ok({"taskid": "FileStation_1"}))
        dsm.on(
            "SYNO.FileStation.Delete.status",
            ok({"finished": False}),
            ok({"finished": False}),
            ok({"finished": True, "path": "/docker/old"}),
        )
        status = await filestation.delete(api, ["/docker/old"])

        assert status.finished
        assert dsm.methods.count("SYNO.FileStation.Delete.status") == 3
        assert dsm.form("SYNO.FileStation.Delete.status")["taskid"] == "FileStation_1"
        assert dsm.form("SYNO.FileStation.Delete.start")["recursive"] == "true"

    @pytest.mark.asyncio
    async def test_md5(
        self, api: SynologyAPI, dsm: FakeDSM, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(filestation, "POLL_INTERVAL", 0)
        dsm.on("SYNO.FileStation.MD5.start", ok({"taskid": "md5-1"}))
        dsm.on(
            "SYNO.FileStation.MD5.status",
            ok({"finished": False}),
            ok({"finished": True, "md5": "d41d8cd98f00b204e9800998ecf8427e"}),
        )
        assert await filestation.md5(api, "/docker/a.iso") == "d41d8cd98f00b204e9800998ecf8427e"

    @pytest.mark.asyncio
    async def test_create_folder(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.FileStation.CreateFolder.create",
            ok({"folders": [{"path": "/docker/app", "name": "app", "isdir": True}]}),
        )
        folder = await filestation.create_folder(api, "/docker", "app")

        assert folder.path == "/docker/app"
        form = dsm.form("SYNO.FileStation.CreateFolder.create")
        assert json.loads(form["folder_path"]) == ["/docker"]
        assert form["force_parent"] == "true"


class TestCoreSchedule:
    def test_fixed_time(self) -> None:
        schedule = core.parse_schedule("30 4 * * *")
        assert (schedule.hour, schedule.minute) == (4, 30)
        assert schedule.repeat_min == 0
        assert schedule.repeat_hour == 0
        assert schedule.week_day == "0,1,2,3,4,5,6"

    def test_minute_step(self) -> None:
        schedule = core.parse_schedule("*/15 * * * *")
        assert schedule.repeat_min == 15
        assert schedule.repeat_hour == 0
        assert schedule.last_work_hour == 23

    def test_hourly_alias(self) -> None:
        schedule = core.parse_schedule("@hourly")
        assert schedule.minute == 0
        assert schedule.repeat_hour == 1

    def test_weekdays(self) -> None:
        assert core.parse_schedule("0 2 * * 5,1,1").week_day == "1,5"

    def test_monthly(self) -> None:
        schedule = core.parse_schedule("0 3 15 * *")
        assert schedule.repeat_date == core.REPEAT_MONTHLY
        assert schedule.date.endswith("/15")

    @pytest.mark.parametrize("expr", ["* * *", "61 * * * *", "0 0 * 1 *", "0 0 * * 7", "x 0 * * *"])
    def test_rejected(self, expr: str) -> None:
        with pytest.raises(InvalidArgumentError):
            core.parse_schedule(expr)

    def test_default_schedule(self) -> None:
        schedule = core.default_schedule(datetime.datetime(2026, 3, 1, 0, 2))
        assert schedule.date == "2026-02-28"
        assert schedule.repeat_date == core.REPEAT_DAILY


class TestCoreTasks:
    @pytest.mark.asyncio
    async def test_root_task_uses_root_api(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Core.TaskScheduler.Root.create", ok({"id": 12}))
        task_id = await core.task_create(api, core.task_request("backup", "echo hi", schedule="0 1 * * *"))

        assert task_id == 12
        form = dsm.form("SYNO.Core.TaskScheduler.Root.create")
        assert form["owner"] == "root"
        assert json.loads(form["extra"])["script"] == "echo hi"
        assert json.loads(form["schedule"])["hour"] == 1

    @pytest.mark.asyncio
    async def test_user_task_uses_plain_api(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Core.TaskScheduler.create", ok({"id": 3}))
        assert await core.task_create(api, core.task_request("t", "true", user="admin")) == 3

    @pytest.mark.asyncio
    async def test_task_get(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.Core.TaskScheduler.list",
            ok({"tasks": [{"id": 1, "name": "a"}, {"id": 2, "name": "b", "enable": True}]}),
        )
        task = await core.task_get(api, 2)
        assert task.name == "b"
        with pytest.raises(NotFoundError):
            await core.task_get(api, 9)

    @pytest.mark.asyncio
    async def test_task_run(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Core.TaskScheduler.run", ok())
        await core.task_run(api, 7)
        tasks = json.loads(dsm.form("SYNO.Core.TaskScheduler.run")["tasks"])
        assert tasks == [{"id": 7, "real_owner": "root"}]

    @pytest.mark.asyncio
    async def test_event_get_requires_task(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Core.TaskScheduler.list", ok({"tasks": []}))
        with pytest.raises(NotFoundError):
            await core.event_get(api, "boot")
        assert "SYNO.Core.EventScheduler.get" not in dsm.methods

    @pytest.mark.asyncio
    async def test_event_create_as_root(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Core.EventScheduler.Root.create", ok())
        await core.event_create(api, core.event_request("boot", "echo up"))
        form = dsm.form("SYNO.Core.EventScheduler.Root.create")
        assert json.loads(form["owner"]) == {"0": "root"}
        assert form["event"] == "bootup"


class TestCorePackages:
    @pytest.mark.asyncio
    async def test_package_get(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.Core.Package.list",
            ok({"packages": [{"id": "ContainerManager", "version": "24.0.2-1535"}]}),
        )
        assert (await core.package_get(api, "ContainerManager")).version == "24.0.2-1535"
        with pytest.raises(NotFoundError):
            await core.package_get(api, "Virtualization")

    @pytest.mark.asyncio
    async def test_install_looks_up_url_and_polls(
        self, api: SynologyAPI, dsm: FakeDSM, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(core, "PACKAGE_POLL_INTERVAL", 0)
        dsm.on(
            "SYNO.Core.Package.Server.list",
            ok({"packages": [{"id": "Git", "link": "https://pkg/git.spk", "size": 1024}]}),
        )
        dsm.on(
            "SYNO.Core.Package.Installation.install",
            ok({"taskid": "dl-1"}),
            ok({"taskid": "inst-1"}),
        )
        dsm.on(
            "SYNO.Core.Package.Installation.status",
            ok({"finished": False}),
            ok({"finished": True, "tmp_folder": "/volume1/@tmp", "taskid": "dl-1"}),
            ok({"finished": True, "status": "running", "taskid": "inst-1"}),
        )
        status = await core.package_install(api, "Git")

        assert status.status == "running"
        installs = [f for k, f in dsm.calls if k == "SYNO.Core.Package.Installation.install"]
        assert installs[0]["url"] == "https://pkg/git.spk"
        assert installs[0]["file_size"] == "1024"
        assert json.loads(installs[1]["path"]) == "/volume1/@tmp/dl-1"
        assert installs[1]["volume_path"] == "/volume1"


class TestVirtualization:
    @pytest.mark.asyncio
    async def test_guest_get_scans_list(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.Virtualization.API.Guest.list",
            ok({"guests": [{"guest_id": "g1", "guest_name": "web"}]}),
        )
        dsm.on(
            "SYNO.Virtualization.API.Guest.get",
            ok(
                {
                    "guest_id": "g1",
                    "guest_name": "web",
                    "vcpu_num": 2,
                    "vdisks": [{"vdisk_id": "d1", "vdisk_size": 10240}],
                    "vnics": [{"network_id": "n1", "network_name": "Default VM Network"}],
                }
            ),
        )
        guest = await vm.guest_get(api, "web")

        assert guest.id == "g1"
        assert guest.disks[0].size == 10240
        assert guest.networks[0].name == "Default VM Network"
        assert dsm.form("SYNO.Virtualization.API.Guest.get")["guest_name"] == "web"

    @pytest.mark.asyncio
    async def test_guest_missing(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Virtualization.API.Guest.list", ok({"guests": []}))
        with pytest.raises(NotFoundError):
            await vm.guest_get(api, "web")
        assert dsm.methods == ["SYNO.Virtualization.API.Guest.list"]

    @pytest.mark.asyncio
    async def test_name_conflict_summary(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Virtualization.API.Guest.create", fail(403))
        with pytest.raises(SynologyError) as exc:
            await vm.guest_create(api, vm.GuestCreateRequest(guest_name="web"))
        assert exc.value.has_code(vm.NAME_CONFLICT)
        assert exc.value.summary == "Name conflict"

    @pytest.mark.asyncio
    async def test_image_create_returns_image_id(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.Virtualization.API.Guest.Image.create",
            ok({"task_id": "t1", "task_info": {"image_id": "img-9"}}),
        )
        image_id = await vm.image_create(
            api,
            vm.ImageCreateRequest(
                name="seed", file_path="/docker/seed.iso", storages=[vm.StorageRef(name="vol1")]
            ),
        )
        assert image_id == "img-9"
        storages = json.loads(dsm.form("SYNO.Virtualization.API.Guest.Image.create")["storages"])
        assert storages == [{"name": "vol1"}]


class TestDocker:
    @pytest.mark.asyncio
    async def test_project_list_keyed_by_id(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.Docker.Project.list",
            ok(
                {
                    "p1": {"id": "p1", "name": "web", "status": "RUNNING"},
                    "p2": {"id": "p2", "name": "db", "status": "STOPPED"},
                }
            ),
        )
        projects = await docker.project_list(api)

        assert set(projects) == {"p1", "p2"}
        assert projects["p1"].running
        assert not projects["p2"].running
        assert (await docker.project_get_by_name(api, "db")).id == "p2"
        with pytest.raises(NotFoundError):
            await docker.project_get_by_name(api, "cache")

    @pytest.mark.asyncio
    async def test_project_get_not_found(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Docker.Project.get", fail(2101))
        with pytest.raises(NotFoundError):
            await docker.project_get(api, "p1")

    @pytest.mark.asyncio
    async def test_project_create_sends_portal_fields(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Docker.Project.create", ok({"id": "p1"}))
        project_id = await docker.project_create(
            api,
            docker.ProjectCreateRequest(
                name="web",
                content="services: {}\n",
                share_path="/projects/web",
                portal=docker.ServicePortal(enable_service_portal=False),
            ),
        )
        assert project_id == "p1"
        form = dsm.form("SYNO.Docker.Project.create")
        assert form["share_path"] == "/projects/web"
        assert form["enable_service_portal"] == "false"
        assert "service_portal_name" not in form

    @pytest.mark.asyncio
    async def test_network_lookup_scans_list(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on(
            "SYNO.Docker.Network.list",
            ok({"network": [{"id": "n1", "name": "bridge"}, {"id": "n2", "name": "lan"}]}),
        )
        assert (await docker.network_get_by_name(api, "lan")).id == "n2"
        assert (await docker.network_get_by_id(api, "n1")).name == "bridge"
        with pytest.raises(NotFoundError):
            await docker.network_get_by_id(api, "n9")

    @pytest.mark.asyncio
    async def test_network_delete_sends_json(self, api: SynologyAPI, dsm: FakeDSM) -> None:
        dsm.on("SYNO.Docker.Network.delete", ok())
        await docker.network_delete(api, docker.Network(id="n2", name="lan"))
        networks = json.loads(dsm.form("SYNO.Docker.Network.delete")["networks"])
        assert networks == [{"id": "n2", "name": "lan"}]
