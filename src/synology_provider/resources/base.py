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

"""Resource mediator plumbing: schema descriptors and the CRUD base classes.

A mediator turns declarative desired state (a plain ``dict`` keyed by
attribute name) into DSM calls. The host drives it through four
coroutines; each accepts a deadline in seconds::

    state = await FileResource(api).create({"path": "/x/a.txt", "content": "hi"})
    state = await FileResource(api).read(state)      # may raise ResourceGone
    state = await FileResource(api).update(state, plan)
    await FileResource(api).delete(state)
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar, TypeVar

from synology_provider.api.errors import CanceledError, InvalidArgumentError, NotFoundError

if TYPE_CHECKING:
    from synology_provider.api.client import SynologyAPI

log = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R", bound="Resource")
D = TypeVar("D", bound="DataSource")

Validator = Callable[[str, Any], None]

WHEN_APPLY = "apply"
WHEN_UPGRADE = "upgrade"
WHEN_DESTROY = "destroy"


class ResourceGone(Exception):
    """The remote object no longer exists; the host should drop it from state."""

    def __init__(self, kind: str, identity: str) -> None:
        self.kind = kind
        self.identity = identity
        super().__init__(f"{kind} {identity} is gone")


class AttrType(enum.Enum):
    STRING = "string"
    INT = "int"
    BOOL = "bool"
    FLOAT = "float"
    LIST = "list"
    MAP = "map"
    OBJECT = "object"


_PYTHON_TYPES: dict[AttrType, tuple[type, ...]] = {
    AttrType.STRING: (str,),
    AttrType.INT: (int,),
    AttrType.BOOL: (bool,),
    AttrType.FLOAT: (int, float),
    AttrType.LIST: (list, tuple),
    AttrType.MAP: (dict,),
    AttrType.OBJECT: (object,),
}


# -- validators ---------------------------------------------------------------


def one_of(*choices: Any) -> Validator:
    def check(name: str, value: Any) -> None:
        if value not in choices:
            allowed = ", ".join(str(c) for c in choices)
            raise InvalidArgumentError(f"{name}: {value!r} is not one of {allowed}")

    return check


def matches(pattern: str, message: str) -> Validator:
    compiled = re.compile(pattern)

    def check(name: str, value: Any) -> None:
        if not compiled.fullmatch(str(value)):
            raise InvalidArgumentError(f"{name}: {message}")

    return check


def at_least(minimum: int) -> Validator:
    def check(name: str, value: Any) -> None:
        if value < minimum:
            raise InvalidArgumentError(f"{name}: must be at least {minimum}")

    return check


def each(validator: Validator) -> Validator:
    def check(name: str, value: Any) -> None:
        for i, item in enumerate(value):
            validator(f"{name}[{i}]", item)

    return check


# -- schema -------------------------------------------------------------------


@dataclass(frozen=True)
class Attribute:
    name: str
    type: AttrType
    description: str = ""
    required: bool = False
    computed: bool = False
    sensitive: bool = False
    force_new: bool = False
    default: Any = None
    validators: tuple[Validator, ...] = ()

    @property
    def optional(self) -> bool:
        return not self.required


@dataclass(frozen=True)
class Schema:
    """Attribute descriptors of one resource or data source kind."""

    description: str
    attributes: tuple[Attribute, ...] = ()

    def __getitem__(self, name: str) -> Attribute:
        for attr in self.attributes:
            if attr.name == name:
                return attr
        raise KeyError(name)

    @property
    def names(self) -> list[str]:
        return [a.name for a in self.attributes]

    def validate(self, values: Mapping[str, Any]) -> dict[str, Any]:
        """Check ``values`` against the schema and fill in defaults."""
        unknown = set(values) - set(self.names)
        if unknown:
            raise InvalidArgumentError(f"unknown attributes: {', '.join(sorted(unknown))}")

        out: dict[str, Any] = {}
        for attr in self.attributes:
            value = values.get(attr.name)
            if value is None:
                if attr.required:
                    raise InvalidArgumentError(f"{attr.name}: attribute is required")
                out[attr.name] = attr.default
                continue
            if not isinstance(value, _PYTHON_TYPES[attr.type]) or (
                attr.type in (AttrType.INT, AttrType.FLOAT) and isinstance(value, bool)
            ):
                raise InvalidArgumentError(f"{attr.name}: expected {attr.type.value}")
            for validator in attr.validators:
                validator(attr.name, value)
            out[attr.name] = value
        return out

    def replaced_by(self, state: Mapping[str, Any], plan: Mapping[str, Any]) -> list[str]:
        """Names of force-new attributes whose planned value differs from state."""
        return [
            a.name
            for a in self.attributes
            if a.force_new and plan.get(a.name) is not None and plan.get(a.name) != state.get(a.name)
        ]


def when_attributes() -> tuple[Attribute, ...]:
    """``run`` and ``when`` attributes shared by runnable kinds."""
    return (
        Attribute("run", AttrType.BOOL, "Run the object after the matching lifecycle step.", default=False),
        Attribute(
            "when",
            AttrType.STRING,
            "Lifecycle step that triggers the run.",
            default=WHEN_APPLY,
            validators=(one_of(WHEN_APPLY, WHEN_UPGRADE, WHEN_DESTROY),),
        ),
    )


def should_run(values: Mapping[str, Any], step: str) -> bool:
    return bool(values.get("run")) and values.get("when", WHEN_APPLY) == step


async def with_deadline(aw: Awaitable[T], timeout: float | None) -> T:
    """Await ``aw`` for at most ``timeout`` seconds."""
    if timeout is None:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout)
    except asyncio.TimeoutError as e:
        raise CanceledError(f"deadline of {timeout}s exceeded") from e


# -- mediators ----------------------------------------------------------------


class Resource:
    """Base class for managed kinds.

    Subclasses set ``kind`` and ``schema`` and implement ``_create``,
    ``_read``, ``_update`` and ``_delete`` on validated values. A
    NotFoundError from ``_read`` becomes ResourceGone; one from ``_delete``
    is success.
    """

    kind: ClassVar[str] = ""
    schema: ClassVar[Schema]
    identity: ClassVar[str] = "id"

    def __init__(self, api: SynologyAPI) -> None:
        self.api = api

    def _identity(self, state: Mapping[str, Any]) -> str:
        return str(state.get(self.identity) or "")

    async def create(self, plan: Mapping[str, Any], timeout: float | None = None) -> dict[str, Any]:
        values = self.schema.validate(plan)
        log.debug("Creating %s %s", self.kind, self._identity(values))
        return await with_deadline(self._create(values), timeout)

    async def read(self, state: Mapping[str, Any], timeout: float | None = None) -> dict[str, Any]:
        try:
            return await with_deadline(self._read(dict(state)), timeout)
        except NotFoundError as e:
            log.info("%s %s no longer exists", self.kind, self._identity(state))
            raise ResourceGone(self.kind, self._identity(state)) from e

    async def update(
        self,
        state: Mapping[str, Any],
        plan: Mapping[str, Any],
        timeout: float | None = None,
    ) -> dict[str, Any]:
        values = self.schema.validate(plan)
        replaced = self.schema.replaced_by(state, values)
        if replaced:
            log.info(
                "Replacing %s %s (%s changed)",
                self.kind,
                self._identity(state),
                ", ".join(replaced),
            )
            return await with_deadline(self._replace(dict(state), values), timeout)
        return await with_deadline(self._update(dict(state), values), timeout)

    async def delete(self, state: Mapping[str, Any], timeout: float | None = None) -> None:
        try:
            await with_deadline(self._delete(dict(state)), timeout)
        except NotFoundError:
            log.debug("%s %s already absent", self.kind, self._identity(state))

    async def _replace(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        try:
            await self._delete(state)
        except NotFoundError:
            log.debug("%s %s already absent", self.kind, self._identity(state))
        return await self._create(values)

    async def _create(self, values: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    async def _read(self, state: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    async def _update(self, state: dict[str, Any], values: dict[str, Any]) -> dict[str, Any]:
        return await self._replace(state, values)

    async def _delete(self, state: dict[str, Any]) -> None:
        raise NotImplementedError


class DataSource:
    """Read-only mediator."""

    kind: ClassVar[str] = ""
    schema: ClassVar[Schema]

    def __init__(self, api: SynologyAPI) -> None:
        self.api = api

    async def read(self, config: Mapping[str, Any] | None = None, timeout: float | None = None) -> dict[str, Any]:
        values = self.schema.validate({k: v for k, v in (config or {}).items() if v is not None})
        return await with_deadline(self._read(values), timeout)

    async def _read(self, values: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError


@dataclass
class Catalog:
    """Kinds exposed to the host, by name."""

    resources: dict[str, type[Resource]] = field(default_factory=dict)
    data_sources: dict[str, type[DataSource]] = field(default_factory=dict)

    def resource(self, cls: type[R]) -> type[R]:
        if cls.kind in self.resources:
            raise InvalidArgumentError(f"duplicate resource kind {cls.kind}")
        self.resources[cls.kind] = cls
        return cls

    def data_source(self, cls: type[D]) -> type[D]:
        if cls.kind in self.data_sources:
            raise InvalidArgumentError(f"duplicate data source kind {cls.kind}")
        self.data_sources[cls.kind] = cls
        return cls

    def schemas(self) -> dict[str, Schema]:
        out = {k: v.schema for k, v in self.resources.items()}
        out.update({f"data.{k}": v.schema for k, v in self.data_sources.items()})
        return out


CATALOG = Catalog()
