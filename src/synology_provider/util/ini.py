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

"""INI rendering for configuration files shipped to the NAS or a guest."""

from __future__ import annotations

import configparser
import io
from collections.abc import Mapping
from typing import Any

from synology_provider.api.errors import InvalidArgumentError


def _scalar(key: str, value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(_scalar(key, v) for v in value)
    if isinstance(value, Mapping):
        raise InvalidArgumentError(f"{key}: sections cannot be nested")
    if value is None:
        return ""
    return str(value)


def ini_encode(data: Mapping[str, Any]) -> str:
    """Render ``data`` as INI text.

    Scalar members come first as bare ``key = value`` lines; mapping
    members become ``[section]`` blocks. Keys keep their case and order.
    """
    out = io.StringIO()
    sections: dict[str, Mapping[str, Any]] = {}
    for key, value in data.items():
        if isinstance(value, Mapping):
            sections[key] = value
        else:
            out.write(f"{key} = {_scalar(key, value)}\n")
    if not sections:
        return out.getvalue()
    if out.tell():
        out.write("\n")

    parser = configparser.ConfigParser(interpolation=None, default_section="\0")
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    for name, members in sections.items():
        parser.add_section(name)
        for key, value in members.items():
            parser.set(name, key, _scalar(f"{name}.{key}", value))
    parser.write(out)
    return out.getvalue().rstrip("\n") + "\n"
