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

"""Tests for the wire codec."""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass, field

import pytest

from synology_provider.api.codec import (
    UploadFile,
    decode,
    decode_form,
    encode,
    synology_field,
    to_json,
    zero_value,
)
from synology_provider.api.errors import DecodeError, InvalidArgumentError


class Color(enum.Enum):
    RED = "red"
    BLUE = "blue"


@dataclass
class Paging:
    offset: int | None = None
    limit: int | None = None


@dataclass
class ListRequest:
    folder_path: str | None = None
    additional: list[str] | None = None
    recursive: bool | None = None
    color: Color | None = None
    paging: Paging = synology_field(embed=True, default_factory=Paging)
    _internal: str = "hidden"
    skipped: str | None = synology_field("-", default="never")
    renamed: str | None = synology_field("taskid")


@dataclass
class Owner:
    user: str = ""
    uid: int = 0


@dataclass
class Entry:
    path: str = ""
    is_dir: bool = synology_field("isdir", default=False)
    size: int = 0
    owner: Owner = field(default_factory=Owner)
    tags: list[str] = field(default_factory=list)
    note: str | None = None


@dataclass
class EntryList:
    files: list[Entry] = field(default_factory=list)
    total: int = 0


class TestEncode:
    def test_unset_fields_are_omitted(self) -> None:
        form = encode(ListRequest(folder_path="/docker"))
        assert form.fields == {"folder_path": "/docker"}

    def test_scalars_sequences_and_embedded(self) -> None:
        form = encode(
            ListRequest(
                folder_path="/docker",
                additional=["real_path", "size"],
                recursive=False,
                color=Color.BLUE,
                paging=Paging(offset=0, limit=100),
                renamed="abc",
            )
        )
        assert form.fields == {
            "folder_path": "/docker",
            "additional": '["real_path","size"]',
            "recursive": "false",
            "color": "blue",
            "offset": "0",
            "limit": "100",
            "taskid": "abc",
        }

    def test_empty_sequence_is_literal_brackets(self) -> None:
        assert encode(ListRequest(additional=[])).fields == {"additional": "[]"}

    def test_private_and_suppressed_fields(self) -> None:
        fields = encode(ListRequest()).fields
        assert "_internal" not in fields
        assert "skipped" not in fields
        assert "-" not in fields

    def test_nested_record_without_embed_is_rejected(self) -> None:
        @dataclass
        class Bad:
            owner: Owner | None = None

        with pytest.raises(InvalidArgumentError):
            encode(Bad(owner=Owner()))

    def test_as_json_records_use_wire_names(self) -> None:
        @dataclass
        class Req:
            entries: list[Entry] | None = synology_field("entries", as_json=True)

        form = encode(Req(entries=[Entry(path="/a", is_dir=True)]))
        payload = json.loads(form.fields["entries"])
        assert payload[0]["isdir"] is True
        assert "note" not in payload[0]

    def test_file_part(self) -> None:
        @dataclass
        class Upload:
            path: str | None = None
            file: UploadFile | None = synology_field("file", file=True)

        form = encode(Upload(path="/docker", file=UploadFile(name="a.txt", content="hi")))
        assert form.fields == {"path": "/docker"}
        assert form.files == {"file": ("a.txt", b"hi", "application/octet-stream")}

    def test_non_record(self) -> None:
        with pytest.raises(InvalidArgumentError):
            encode({"path": "/"})

    def test_to_json_is_compact(self) -> None:
        assert to_json({"a": [1, 2]}) == '{"a":[1,2]}'


class TestDecode:
    def test_nested_records(self) -> None:
        data = {
            "files": [
                {"path": "/a", "isdir": True, "size": 3, "owner": {"user": "admin", "uid": 1024}},
            ],
            "total": 1,
        }
        result = decode(EntryList, data)
        assert result.total == 1
        assert result.files[0].is_dir is True
        assert result.files[0].owner.user == "admin"
        assert result.files[0].tags == []

    def test_unknown_keys_are_ignored(self) -> None:
        result = decode(Entry, {"path": "/a", "surprise": {"x": 1}})
        assert result.path == "/a"

    def test_missing_keys_decode_as_zero_values(self) -> None:
        result = decode(Entry, {})
        assert result == Entry()
        assert result.note is None

    def test_none_payload(self) -> None:
        assert decode(EntryList, None) == EntryList()

    def test_type_mismatch_names_the_field(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode(EntryList, {"files": [{"isdir": "yes"}]})
        assert exc_info.value.field_name == "files[0].isdir"

    def test_bool_is_not_int(self) -> None:
        with pytest.raises(DecodeError):
            decode(Entry, {"size": True})

    def test_zero_value(self) -> None:
        assert zero_value(int) == 0
        assert zero_value(list[str]) == []
        assert zero_value(str | None) is None


class TestDecodeForm:
    def test_inverse_of_encode(self) -> None:
        req = ListRequest(
            folder_path="/docker",
            additional=["real_path"],
            recursive=True,
            color=Color.RED,
            paging=Paging(offset=5, limit=10),
        )
        back = decode_form(ListRequest, encode(req).fields)
        assert back.folder_path == "/docker"
        assert back.additional == ["real_path"]
        assert back.recursive is True
        assert back.color is Color.RED
        assert back.paging == Paging(offset=5, limit=10)
