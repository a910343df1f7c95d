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

"""Wire codec for DSM requests and responses.

Request records are dataclasses. Each field is sent under its wire name:
the ``name`` given to :func:`synology_field`, or the lowercased attribute
name. Attributes starting with ``_`` are private unless they carry an
explicit wire name, and the name ``"-"`` suppresses a field. ``None`` means
"unset" and is never sent.

Responses are projected onto dataclasses with the same metadata. Missing
keys decode as zero values and unknown keys are ignored; only a type
mismatch at a named field is an error.
"""

from __future__ import annotations

import dataclasses
import enum
import json
import types
import typing
from collections.abc import Mapping
from dataclasses import MISSING, dataclass, field
from typing import Any

from synology_provider.api.errors import DecodeError, InvalidArgumentError

METADATA_KEY = "synology"
SUPPRESS = "-"


@dataclass(frozen=True)
class FieldSpec:
    """Wire metadata attached to a dataclass field."""

    name: str | None = None
    embed: bool = False
    file: bool = False
    as_json: bool = False


@dataclass
class UploadFile:
    """File part of a multipart request."""

    name: str
    content: bytes | str = b""
    content_type: str = "application/octet-stream"

    @property
    def data(self) -> bytes:
        if isinstance(self.content, str):
            return self.content.encode()
        return self.content


@dataclass
class WireForm:
    """Encoded request: form fields plus optional multipart file parts."""

    fields: dict[str, str] = field(default_factory=dict)
    files: dict[str, tuple[str, bytes, str]] = field(default_factory=dict)


def synology_field(
    name: str | None = None,
    *,
    embed: bool = False,
    file: bool = False,
    as_json: bool = False,
    default: Any = MISSING,
    default_factory: Any = MISSING,
) -> Any:
    """Declare a dataclass field with wire metadata."""
    spec = FieldSpec(name=name, embed=embed, file=file, as_json=as_json)
    kwargs: dict[str, Any] = {"metadata": {METADATA_KEY: spec}}
    if default_factory is not MISSING:
        kwargs["default_factory"] = default_factory
    elif default is not MISSING:
        kwargs["default"] = default
    elif not embed:
        kwargs["default"] = None
    return field(**kwargs)


def _spec(f: dataclasses.Field[Any]) -> FieldSpec | None:
    spec = f.metadata.get(METADATA_KEY)
    return spec if isinstance(spec, FieldSpec) else None


def wire_name(f: dataclasses.Field[Any]) -> str | None:
    """Wire name of a field, or None if the field is not serialized."""
    spec = _spec(f)
    if spec is not None and spec.name:
        return None if spec.name == SUPPRESS else spec.name
    if f.name.startswith("_"):
        return None
    return f.name.lower()


def _scalar(value: Any, where: str) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    raise InvalidArgumentError(f"{where}: unsupported value of type {type(value).__name__}")


def _json_value(value: Any) -> Any:
    """Plain JSON shape of a value, records rendered with their wire names."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        out: dict[str, Any] = {}
        for f in dataclasses.fields(value):
            key = wire_name(f)
            item = getattr(value, f.name)
            if key is None or item is None:
                continue
            out[key] = _json_value(item)
        return out
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Mapping):
        return {str(k): _json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_value(v) for v in value]
    return value


def to_json(value: Any) -> str:
    return json.dumps(_json_value(value), separators=(",", ":"))


def _encode_into(record: Any, form: WireForm) -> None:
    for f in dataclasses.fields(record):
        spec = _spec(f) or FieldSpec()
        value = getattr(record, f.name)
        if value is None:
            continue

        if spec.embed:
            if not dataclasses.is_dataclass(value):
                raise InvalidArgumentError(f"{f.name}: embedded field must be a record")
            _encode_into(value, form)
            continue

        key = wire_name(f)
        if key is None:
            continue

        if spec.file:
            if not isinstance(value, UploadFile):
                raise InvalidArgumentError(f"{f.name}: file field must be an UploadFile")
            form.files[key] = (value.name, value.data, value.content_type)
        elif spec.as_json:
            form.fields[key] = to_json(value)
        elif dataclasses.is_dataclass(value):
            raise InvalidArgumentError(
                f"{f.name}: nested record must be embedded or sent as JSON"
            )
        elif isinstance(value, Mapping):
            raise InvalidArgumentError(f"{f.name}: mapping values must be sent as JSON")
        elif isinstance(value, (list, tuple)):
            items = [v.value if isinstance(v, enum.Enum) else v for v in value]
            for item in items:
                if not isinstance(item, (str, int)) or isinstance(item, bool):
                    raise InvalidArgumentError(
                        f"{f.name}: sequences may hold only strings or integers"
                    )
            form.fields[key] = json.dumps(items, separators=(",", ":"))
        else:
            form.fields[key] = _scalar(value, f.name)


def encode(record: Any) -> WireForm:
    """Encode a request record into form fields and file parts."""
    if not dataclasses.is_dataclass(record) or isinstance(record, type):
        raise InvalidArgumentError(f"cannot encode {type(record).__name__}: not a record")
    form = WireForm()
    _encode_into(record, form)
    return form


# -- decoding ---------------------------------------------------------------


def _hints(cls: type) -> dict[str, Any]:
    return typing.get_type_hints(cls)


def _is_optional(tp: Any) -> tuple[bool, Any]:
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        if len(args) == 1:
            return True, args[0]
    return False, tp


def zero_value(tp: Any) -> Any:
    """Zero value for a declared type."""
    optional, inner = _is_optional(tp)
    if optional or tp is Any:
        return None
    origin = typing.get_origin(inner) or inner
    if dataclasses.is_dataclass(origin):
        return decode(origin, {})
    if origin in (list, tuple):
        return []
    if origin in (dict, Mapping):
        return {}
    if origin is bool:
        return False
    if origin is int:
        return 0
    if origin is float:
        return 0.0
    if origin is str:
        return ""
    if origin is bytes:
        return b""
    return None


def _default(f: dataclasses.Field[Any], tp: Any) -> Any:
    if f.default is not MISSING:
        return f.default
    if f.default_factory is not MISSING:
        return f.default_factory()
    return zero_value(tp)


def _decode_value(tp: Any, value: Any, where: str) -> Any:
    if tp is Any:
        return value
    optional, tp = _is_optional(tp)
    if value is None:
        return None if optional else zero_value(tp)

    origin = typing.get_origin(tp)
    args = typing.get_args(tp)

    if origin in (list, tuple):
        if not isinstance(value, list):
            raise DecodeError(where, "list", value)
        item_tp = args[0] if args else Any
        return [_decode_value(item_tp, v, f"{where}[{i}]") for i, v in enumerate(value)]
    if origin in (dict, Mapping):
        if not isinstance(value, Mapping):
            raise DecodeError(where, "object", value)
        val_tp = args[1] if len(args) == 2 else Any
        return {str(k): _decode_value(val_tp, v, f"{where}.{k}") for k, v in value.items()}
    if dataclasses.is_dataclass(tp):
        return _decode_record(tp, value, where)
    if isinstance(tp, type) and issubclass(tp, enum.Enum):
        try:
            return tp(value)
        except ValueError as e:
            raise DecodeError(where, tp.__name__, value) from e
    if tp is bool:
        if not isinstance(value, bool):
            raise DecodeError(where, "bool", value)
        return value
    if tp is int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise DecodeError(where, "int", value)
        return value
    if tp is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise DecodeError(where, "float", value)
        return float(value)
    if tp is str:
        if not isinstance(value, str):
            raise DecodeError(where, "str", value)
        return value
    return value


def _decode_record(cls: type, data: Any, where: str) -> Any:
    if not isinstance(data, Mapping):
        raise DecodeError(where or cls.__name__, "object", data)
    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        tp = hints.get(f.name, Any)
        spec = _spec(f) or FieldSpec()
        if spec.embed:
            kwargs[f.name] = _decode_record(_is_optional(tp)[1], data, where)
            continue
        key = wire_name(f)
        path = f"{where}.{key}" if where else str(key)
        if key is None or key not in data:
            kwargs[f.name] = _default(f, tp)
            continue
        kwargs[f.name] = _decode_value(tp, data[key], path)
    return cls(**kwargs)


def decode(cls: type, data: Any) -> Any:
    """Project a decoded JSON ``data`` member onto a response record."""
    if data is None:
        data = {}
    return _decode_record(cls, data, "")


def decode_form(cls: type, form: Mapping[str, str]) -> Any:
    """Parse encoded form fields back into a request record.

    This is the inverse of :func:`encode` for scalar, sequence, JSON and
    embedded fields. Absent fields come back as their declared default.
    """
    hints = _hints(cls)
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        tp = hints.get(f.name, Any)
        spec = _spec(f) or FieldSpec()
        if spec.embed:
            kwargs[f.name] = decode_form(_is_optional(tp)[1], form)
            continue
        key = wire_name(f)
        if key is None or key not in form or spec.file:
            if f.default is not MISSING or f.default_factory is not MISSING:
                kwargs[f.name] = _default(f, tp)
            else:
                kwargs[f.name] = None
            continue
        raw = form[key]
        _, inner = _is_optional(tp)
        origin = typing.get_origin(inner) or inner
        if spec.as_json or origin in (list, tuple, dict, Mapping):
            kwargs[f.name] = _decode_value(tp, json.loads(raw), key)
        elif origin is bool:
            kwargs[f.name] = raw == "true"
        elif origin is int:
            kwargs[f.name] = int(raw)
        elif origin is float:
            kwargs[f.name] = float(raw)
        elif isinstance(origin, type) and issubclass(origin, enum.Enum):
            kwargs[f.name] = origin(type(next(iter(origin)).value)(raw))
        else:
            kwargs[f.name] = raw
    return cls(**kwargs)
