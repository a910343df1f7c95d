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

"""DSM session lifecycle.

A :class:`SessionManager` owns the login state of one identity (host, user,
skip_cert_check). It reuses the in-process session when there is one,
otherwise a cached record that still passes the liveness probe, and only
then logs in. Concurrent callers for one identity share a single login
through the :class:`SessionRegistry` singleflight barrier.

With an OTP secret every login waits for the start of a fresh 30-second
TOTP step and never reuses a step already spent on this identity.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import pyotp

from synology_provider.api import auth
from synology_provider.api.errors import (
    CanceledError,
    NotAuthenticatedError,
    OtpRejectedError,
    SynologyProviderError,
)
from synology_provider.api.models import Session
from synology_provider.session_cache import SessionStore, cache_key, open_store

if TYPE_CHECKING:
    from synology_provider.api.client import SynologyAPI
    from synology_provider.config import ProviderConfig

log = logging.getLogger(__name__)

TOTP_PERIOD = 30
TOTP_GUARD = 0.15

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class SessionState(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    TOTP_WAIT = "totp_wait"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


def totp_step(t: float) -> int:
    return int(t // TOTP_PERIOD)


def next_boundary(t: float) -> int:
    """Start of the TOTP step following the one containing ``t``."""
    return (totp_step(t) + 1) * TOTP_PERIOD


@dataclass(frozen=True)
class Identity:
    host: str
    user: str
    skip_cert_check: bool

    @property
    def key(self) -> str:
        return cache_key(self.host, self.user, self.skip_cert_check)


@dataclass
class Credentials:
    user: str
    password: str = field(default="", repr=False)
    otp_secret: str = field(default="", repr=False)

    @property
    def normalized_secret(self) -> str:
        return self.otp_secret.replace(" ", "").upper()


@dataclass
class _Flight:
    task: asyncio.Future[Session]
    waiters: int = 0


class SessionRegistry:
    """Process-wide session bookkeeping keyed by identity cache key.

    Holds the published session of each identity, its state, the highest
    TOTP step spent on it, the in-flight login barriers and the cache store.
    """

    def __init__(self, store: SessionStore | None = None) -> None:
        self.store = store if store is not None else SessionStore()
        self._sessions: dict[str, Session] = {}
        self._states: dict[str, SessionState] = {}
        self._steps: dict[str, int] = {}
        self._inflight: dict[str, _Flight] = {}

    def state(self, key: str) -> SessionState:
        return self._states.get(key, SessionState.UNAUTHENTICATED)

    def set_state(self, key: str, state: SessionState) -> None:
        self._states[key] = state

    def published(self, key: str) -> Session | None:
        return self._sessions.get(key)

    async def publish(self, key: str, session: Session) -> None:
        """Persist, then expose, a freshly validated session."""
        await asyncio.to_thread(self.store.save, key, session)
        self._sessions[key] = session
        self.record_step(key, session.last_totp_step)
        self._states[key] = SessionState.AUTHENTICATED

    async def withdraw(self, key: str) -> None:
        self._sessions.pop(key, None)
        await asyncio.to_thread(self.store.delete, key)
        self._states[key] = SessionState.UNAUTHENTICATED

    def last_step(self, key: str) -> int:
        return self._steps.get(key, 0)

    def record_step(self, key: str, step: int) -> None:
        if step > self._steps.get(key, 0):
            self._steps[key] = step

    def in_flight(self, key: str) -> bool:
        return key in self._inflight

    async def singleflight(
        self,
        key: str,
        factory: Callable[[], Awaitable[Session]],
        timeout: float | None = None,
    ) -> Session:
        """Run ``factory`` once for all concurrent callers of ``key``.

        A caller whose ``timeout`` expires gets CanceledError; the shared
        attempt is cancelled only when no caller is left waiting on it.
        """
        flight = self._inflight.get(key)
        if flight is None:
            flight = _Flight(asyncio.ensure_future(factory()))
            self._inflight[key] = flight
            flight.task.add_done_callback(lambda t: self._land(key, t))

        flight.waiters += 1
        try:
            return await asyncio.wait_for(asyncio.shield(flight.task), timeout)
        except asyncio.TimeoutError as e:
            raise CanceledError("deadline exceeded waiting for DSM session") from e
        finally:
            flight.waiters -= 1
            if flight.waiters == 0 and not flight.task.done():
                flight.task.cancel()

    def _land(self, key: str, task: asyncio.Future[Session]) -> None:
        flight = self._inflight.get(key)
        if flight is not None and flight.task is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            log.debug("Session attempt failed: %s", task.exception())


class SessionManager:
    """Login state machine for one identity."""

    def __init__(
        self,
        identity: Identity,
        credentials: Credentials,
        registry: SessionRegistry | None = None,
        *,
        clock: Clock = time.time,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.identity = identity
        self.credentials = credentials
        self.registry = registry if registry is not None else SessionRegistry()
        self._clock = clock
        self._sleep = sleep

    @classmethod
    def from_config(
        cls, config: ProviderConfig, registry: SessionRegistry | None = None
    ) -> SessionManager:
        if registry is None:
            registry = SessionRegistry(open_store(config.session_cache_mode, config.cache_path))
        return cls(
            Identity(config.base_url, config.user, config.skip_cert_check),
            Credentials(config.user, config.password, config.otp_secret),
            registry,
        )

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def state(self) -> SessionState:
        return self.registry.state(self.key)

    def attach(self, api: SynologyAPI) -> None:
        api.session_manager = self

    async def ensure(self, api: SynologyAPI, timeout: float | None = None) -> Session:
        """Make sure ``api`` carries a live session, logging in if needed."""
        session = self.registry.published(self.key)
        if session is not None and self.state is SessionState.AUTHENTICATED:
            api.import_session(session)
            return session
        session = await self.registry.singleflight(
            self.key, lambda: self._establish(api), timeout
        )
        api.import_session(session)
        return session

    async def refresh(
        self, api: SynologyAPI, stale: Session | None, timeout: float | None = None
    ) -> Session:
        """Replace a session that DSM rejected."""
        current = self.registry.published(self.key)
        if current is not None and stale is not None and current.session_id != stale.session_id:
            api.import_session(current)
            return current
        if current is not None:
            log.info("Session %s expired", current.short_id)
            await self.registry.withdraw(self.key)
        api.clear_session()
        return await self.ensure(api, timeout)

    async def logout(self, api: SynologyAPI) -> None:
        await auth.logout(api)
        await self.registry.withdraw(self.key)

    async def _establish(self, api: SynologyAPI) -> Session:
        prior = self.state
        try:
            cached = await asyncio.to_thread(self.registry.store.load, self.key)
            if cached is not None:
                self.registry.record_step(self.key, cached.last_totp_step)
                if await auth.probe(api, cached):
                    log.info("Reusing cached session %s", cached.short_id)
                    await self.registry.publish(self.key, cached)
                    return cached
                log.info("Cached session %s expired", cached.short_id)
                await asyncio.to_thread(self.registry.store.delete, self.key)
            return await self._login(api)
        except asyncio.CancelledError:
            self.registry.set_state(self.key, prior)
            raise

    async def _login(self, api: SynologyAPI) -> Session:
        if not self.credentials.user or not self.credentials.password:
            raise NotAuthenticatedError("no live session and no credentials configured")

        try:
            try:
                session = await self._attempt(api)
            except OtpRejectedError:
                log.warning("OTP code rejected, retrying at the next TOTP step")
                session = await self._attempt(api)
        except SynologyProviderError:
            self.registry.set_state(self.key, SessionState.FAILED)
            raise

        log.info("Logged in to %s as %s", self.identity.host, self.credentials.user)
        await self.registry.publish(self.key, session)
        return session

    async def _attempt(self, api: SynologyAPI) -> Session:
        step = 0
        code = ""
        if self.credentials.otp_secret:
            self.registry.set_state(self.key, SessionState.TOTP_WAIT)
            step = await self._wait_for_fresh_step()
            code = pyotp.TOTP(self.credentials.normalized_secret).at(step * TOTP_PERIOD)
            self.registry.record_step(self.key, step)

        self.registry.set_state(self.key, SessionState.AUTHENTICATING)
        return await auth.login(
            api,
            self.credentials.user,
            self.credentials.password,
            code,
            issued_at=int(self._clock()),
            totp_step=step,
        )

    async def _wait_for_fresh_step(self) -> int:
        """Sleep until a TOTP step that has not been used yet begins."""
        now = self._clock()
        boundary = next_boundary(now)
        last = self.registry.last_step(self.key)
        while totp_step(boundary) <= last:
            boundary += TOTP_PERIOD
        delay = boundary - now + TOTP_GUARD
        log.warning("Waiting %.2fs for the next TOTP step", delay)
        await self._sleep(delay)
        return totp_step(boundary)
