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

"""In-memory ISO9660 image writer.

Builds a primary (ECMA-119) hierarchy plus a Joliet supplementary
hierarchy over the same file extents, so readers see the original
lower-case names (``user-data``) while plain ISO9660 readers see the
mangled upper-case ones (``USER_DATA.;1``).

Layout, in 2048-byte sectors::

    0-15   system area (zeros)
    16     primary volume descriptor
    17     Joliet supplementary volume descriptor
    18     volume descriptor set terminator
    19..   path tables (L and M, primary then Joliet)
    ..     directory extents (primary then Joliet)
    ..     file data

All timestamps are fixed and children are sorted by identifier, so the
same input always produces the same bytes.
"""

from __future__ import annotations

import logging
import re
import struct
from collections.abc import Mapping
from dataclasses import dataclass, field

from synology_provider.api.errors import InvalidArgumentError

log = logging.getLogger(__name__)

SECTOR = 2048
SYSTEM_AREA = 16

CLOUD_INIT_LABEL = "cidata"
META_DATA = "meta-data"
USER_DATA = "user-data"
NETWORK_CONFIG = "network-config"

JOLIET_ESCAPE = b"%/E"  # UCS-2 level 3
JOLIET_MAX_NAME = 64
ISO_MAX_NAME = 30

_RECORD_DATE = bytes([100, 1, 1, 0, 0, 0, 0])  # 2000-01-01 00:00:00 UTC
_VOLUME_DATE = b"2000010100000000\x00"
_NO_DATE = b"0000000000000000\x00"

_NOT_D_CHARS = re.compile(r"[^A-Z0-9_]")
_JOLIET_FORBIDDEN = re.compile(r"[*/:;?\\]")


def _both16(value: int) -> bytes:
    return struct.pack("<H", value) + struct.pack(">H", value)


def _both32(value: int) -> bytes:
    return struct.pack("<I", value) + struct.pack(">I", value)


def _sectors(length: int) -> int:
    return (length + SECTOR - 1) // SECTOR


@dataclass(eq=False)
class _Entry:
    name: str
    parent: _Entry | None = None
    data: bytes | None = None
    children: dict[str, _Entry] = field(default_factory=dict)
    extent: int = 0

    @property
    def is_dir(self) -> bool:
        return self.data is None


def _iso_name(name: str, is_dir: bool) -> str:
    upper = name.upper()
    if is_dir:
        return _NOT_D_CHARS.sub("_", upper)[: ISO_MAX_NAME + 1] or "_"
    stem, dot, ext = upper.rpartition(".")
    if not dot:
        stem, ext = upper, ""
    stem = _NOT_D_CHARS.sub("_", stem) or "_"
    ext = _NOT_D_CHARS.sub("_", ext)[:8]
    return f"{stem[: ISO_MAX_NAME - len(ext)]}.{ext};1"


def _unique(candidate: str, taken: set[str], limit: int) -> str:
    """Make ``candidate`` distinct from its siblings with a ``~N`` suffix."""
    if candidate not in taken:
        return candidate
    head, sep, tail = candidate.partition(".")
    n = 1
    while True:
        suffix = f"~{n}"
        name = f"{head[: max(1, limit - len(tail) - len(sep) - len(suffix))]}{suffix}{sep}{tail}"
        if name not in taken:
            return name
        n += 1


class _Hierarchy:
    """Directory tree as seen by one volume descriptor."""

    def __init__(self, root: _Entry, joliet: bool) -> None:
        self.root = root
        self.joliet = joliet
        self.names: dict[_Entry, bytes] = {}
        self.extent: dict[_Entry, int] = {}
        self.size: dict[_Entry, int] = {}
        self._assign_names(root)
        self.dirs = self._ordered_dirs()

    def _identifier(self, entry: _Entry) -> str:
        if self.joliet:
            return _JOLIET_FORBIDDEN.sub("_", entry.name)[:JOLIET_MAX_NAME]
        return _iso_name(entry.name, entry.is_dir)

    def _encode(self, name: str) -> bytes:
        return name.encode("utf-16-be") if self.joliet else name.encode("ascii")

    def _assign_names(self, directory: _Entry) -> None:
        taken: set[str] = set()
        limit = JOLIET_MAX_NAME if self.joliet else ISO_MAX_NAME
        for key in sorted(directory.children):
            child = directory.children[key]
            name = _unique(self._identifier(child), taken, limit)
            taken.add(name)
            self.names[child] = self._encode(name)
            if child.is_dir:
                self._assign_names(child)

    def children(self, directory: _Entry) -> list[_Entry]:
        return sorted(directory.children.values(), key=lambda e: self.names[e])

    def _ordered_dirs(self) -> list[_Entry]:
        # Breadth first with sorted children yields path table order.
        dirs = [self.root]
        i = 0
        while i < len(dirs):
            dirs.extend(c for c in self.children(dirs[i]) if c.is_dir)
            i += 1
        return dirs

    def directory_length(self, directory: _Entry) -> int:
        lengths = [34, 34] + [_record_length(self.names[c]) for c in self.children(directory)]
        used = 0
        sectors = 1
        for length in lengths:
            if used + length > SECTOR:
                sectors += 1
                used = 0
            used += length
        return sectors * SECTOR

    def record(self, ident: bytes, entry: _Entry) -> bytes:
        if entry.is_dir:
            return _record(ident, self.extent[entry], self.size[entry], True)
        assert entry.data is not None
        return _record(ident, entry.extent, len(entry.data), False)

    def directory(self, directory: _Entry) -> bytes:
        records = [
            self.record(b"\x00", directory),
            self.record(b"\x01", directory.parent or directory),
        ]
        records += [self.record(self.names[c], c) for c in self.children(directory)]
        out = bytearray()
        for rec in records:
            room = SECTOR - len(out) % SECTOR
            if len(rec) > room:
                out += bytes(room)
            out += rec
        out += bytes(self.size[directory] - len(out))
        return bytes(out)

    def path_table(self, big_endian: bool) -> bytes:
        number = {d: i + 1 for i, d in enumerate(self.dirs)}
        fmt = ">BBIH" if big_endian else "<BBIH"
        out = bytearray()
        for d in self.dirs:
            ident = b"\x00" if d is self.root else self.names[d]
            parent = 1 if d.parent is None else number[d.parent]
            out += struct.pack(fmt, len(ident), 0, self.extent[d], parent) + ident
            if len(ident) % 2:
                out += b"\x00"
        return bytes(out)

    def text(self, value: str, size: int) -> bytes:
        if self.joliet:
            raw = value.encode("utf-16-be")[: size - size % 2]
            return (raw + b"\x00 " * size)[:size]
        raw = value.encode("ascii", "replace")[:size]
        return raw + b" " * (size - len(raw))


def _record_length(ident: bytes) -> int:
    return 33 + len(ident) + (1 if len(ident) % 2 == 0 else 0)


def _record(ident: bytes, extent: int, length: int, is_dir: bool) -> bytes:
    rec = (
        struct.pack("<BB", _record_length(ident), 0)
        + _both32(extent)
        + _both32(length)
        + _RECORD_DATE
        + bytes([2 if is_dir else 0, 0, 0])
        + _both16(1)
        + bytes([len(ident)])
        + ident
    )
    if len(ident) % 2 == 0:
        rec += b"\x00"
    return rec


class ImageWriter:
    """Collects files and renders them as one ISO9660 + Joliet image."""

    def __init__(self, volume_name: str) -> None:
        self.volume_name = volume_name
        self.root = _Entry("")

    def add_file(self, path: str, content: bytes | str) -> None:
        """Add ``content`` at ``path``, creating intermediate directories."""
        parts = path.strip("/").split("/")
        if not path.strip("/") or any(p in ("", ".", "..") for p in parts):
            raise InvalidArgumentError(f"invalid ISO path: {path!r}")
        if isinstance(content, str):
            data = content.encode("utf-8")
        elif isinstance(content, (bytes, bytearray, memoryview)):
            data = bytes(content)
        else:
            kind = type(content).__name__
            raise InvalidArgumentError(f"{path}: content must be text or bytes, not {kind}")

        node = self.root
        for part in parts[:-1]:
            child = node.children.get(part)
            if child is None:
                child = node.children[part] = _Entry(part, parent=node)
            elif not child.is_dir:
                raise InvalidArgumentError(f"{path}: {part} is a file")
            node = child
        existing = node.children.get(parts[-1])
        if existing is not None and existing.is_dir:
            raise InvalidArgumentError(f"{path}: is a directory")
        node.children[parts[-1]] = _Entry(parts[-1], parent=node, data=data)

    def _files(self, directory: _Entry) -> list[_Entry]:
        out: list[_Entry] = []
        for key in sorted(directory.children):
            child = directory.children[key]
            out.extend(self._files(child) if child.is_dir else [child])
        return out

    def write(self) -> bytes:
        primary = _Hierarchy(self.root, joliet=False)
        joliet = _Hierarchy(self.root, joliet=True)
        hierarchies = (primary, joliet)

        # Path table sizes depend only on names; extents are filled below.
        for h in hierarchies:
            for d in h.dirs:
                h.extent[d] = 0
        pt_sizes = [len(h.path_table(False)) for h in hierarchies]

        lba = SYSTEM_AREA + 3
        tables: list[tuple[int, int, int]] = []
        for size in pt_sizes:
            l_table = lba
            m_table = lba + _sectors(size)
            tables.append((l_table, m_table, size))
            lba = m_table + _sectors(size)

        for h in hierarchies:
            for d in h.dirs:
                h.size[d] = h.directory_length(d)
                h.extent[d] = lba
                lba += h.size[d] // SECTOR

        files = self._files(self.root)
        for entry in files:
            assert entry.data is not None
            entry.extent = lba if entry.data else 0
            lba += _sectors(len(entry.data))

        total = lba
        image = bytearray(total * SECTOR)

        def put(sector: int, data: bytes) -> None:
            image[sector * SECTOR : sector * SECTOR + len(data)] = data

        for kind, h, (l_table, m_table, size) in zip((1, 2), hierarchies, tables):
            put(SYSTEM_AREA + kind - 1, self._descriptor(kind, h, total, l_table, m_table, size))
            put(l_table, h.path_table(False))
            put(m_table, h.path_table(True))
            for d in h.dirs:
                put(h.extent[d], h.directory(d))
        put(SYSTEM_AREA + 2, b"\xffCD001\x01")
        for entry in files:
            if entry.data:
                put(entry.extent, entry.data)

        log.debug(
            "Built ISO %r: %d files, %d sectors", self.volume_name, len(files), total
        )
        return bytes(image)

    def _descriptor(
        self, kind: int, h: _Hierarchy, total: int, l_table: int, m_table: int, size: int
    ) -> bytes:
        vd = bytearray(SECTOR)
        vd[0] = kind
        vd[1:7] = b"CD001\x01"
        vd[8:40] = h.text("", 32)
        vd[40:72] = h.text(self.volume_name, 32)
        vd[80:88] = _both32(total)
        if h.joliet:
            vd[88:91] = JOLIET_ESCAPE
        vd[120:124] = _both16(1)
        vd[124:128] = _both16(1)
        vd[128:132] = _both16(SECTOR)
        vd[132:140] = _both32(size)
        vd[140:144] = struct.pack("<I", l_table)
        vd[148:152] = struct.pack(">I", m_table)
        vd[156:190] = h.record(b"\x00", h.root)
        vd[190:318] = h.text("", 128)
        vd[318:446] = h.text("", 128)
        vd[446:574] = h.text("", 128)
        vd[574:702] = h.text("", 128)
        vd[702:739] = h.text("", 37)
        vd[739:776] = h.text("", 37)
        vd[776:813] = h.text("", 37)
        vd[813:830] = _VOLUME_DATE
        vd[830:847] = _VOLUME_DATE
        vd[847:864] = _NO_DATE
        vd[864:881] = _NO_DATE
        vd[881] = 1
        return bytes(vd)


def iso(volume_name: str, files: Mapping[str, bytes | str]) -> bytes:
    """Image with volume label ``volume_name`` holding ``files`` (path to content)."""
    writer = ImageWriter(volume_name)
    for path in sorted(files):
        writer.add_file(path, files[path])
    return writer.write()


def cloud_init_iso(meta_data: str = "", user_data: str = "", network_config: str = "") -> bytes:
    """NoCloud seed image: only the non-empty documents are included."""
    members = {
        META_DATA: meta_data,
        USER_DATA: user_data,
        NETWORK_CONFIG: network_config,
    }
    return iso(CLOUD_INIT_LABEL, {name: body for name, body in members.items() if body})
