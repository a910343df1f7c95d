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

"""Persistent DSM session cache.

Sessions are stored as JSON records keyed by ``synology:<sha1>`` where the
hash covers the identity triple (host, user, skip_cert_check). Backends:

* ``off``: nothing is kept
* ``memory``: process-local dictionary
* ``file``: one AES-GCM sealed file per identity under the cache directory
* ``keyring``: the OS secret service through ``keyring``
* ``auto``: keyring when a usable backend exists, file otherwise
"""

from __future__ import annotations

import hashlib
import logging
import os
import secrets
from pathlib import Path

import keyring
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from keyring.backends import fail

from synology_provider.api.errors import DecodeError, InvalidArgumentError
from synology_provider.api.models import Session
from synology_provider.config import DEFAULT_CACHE_DIR

log = logging.getLogger(__name__)

SERVICE_NAME = "terraform-provider-synology"
KEY_PREFIX = "synology:"

_BLOB_MAGIC = b"SYS1"
_NONCE_SIZE = 12
_KEY_FILE = ".key"


def session_key(host: str, user: str, skip_cert_check: bool) -> str:
    """Unhashed identity string; NUL cannot occur in a host or user name."""
    return f"{host}\x00{user}\x00{'true' if skip_cert_check else 'false'}"


def cache_key(host: str, user: str, skip_cert_check: bool) -> str:
    digest = hashlib.sha1(session_key(host, user, skip_cert_check).encode()).hexdigest()
    return KEY_PREFIX + digest


class SessionStore:
    """Base store: keeps nothing."""

    name = "off"

    def load(self, key: str) -> Session | None:
        return None

    def save(self, key: str, session: Session) -> None:
        return None

    def delete(self, key: str) -> None:
        return None


class MemoryStore(SessionStore):
    name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, str] = {}

    def load(self, key: str) -> Session | None:
        raw = self._records.get(key)
        return Session.from_json(raw) if raw else None

    def save(self, key: str, session: Session) -> None:
        self._records[key] = session.to_json()

    def delete(self, key: str) -> None:
        self._records.pop(key, None)


class FileStore(SessionStore):
    """Directory of sealed session records.

    Each file holds ``magic | nonce | AES-GCM(json)`` with the cache key as
    associated data, so a record copied under another identity's name
    fails to open. Writes go through a temporary file and ``os.replace``.
    """

    name = "file"

    def __init__(self, directory: Path, key: bytes | None = None) -> None:
        self.directory = Path(directory)
        self._key = key

    def _ensure_dir(self) -> None:
        self.directory.mkdir(mode=0o700, parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not key.startswith(KEY_PREFIX) or "/" in key or os.sep in key:
            raise InvalidArgumentError(f"invalid cache key {key!r}")
        return self.directory / key

    def _aead(self) -> AESGCM:
        if self._key is None:
            self._key = self._load_or_create_key()
        return AESGCM(self._key)

    def _load_or_create_key(self) -> bytes:
        self._ensure_dir()
        path = self.directory / _KEY_FILE
        if path.exists():
            data = path.read_bytes()
            if len(data) == 32:
                return data
            log.warning("Session cache key %s is malformed, replacing it", path)
        data = AESGCM.generate_key(bit_length=256)
        self._write_atomic(path, data)
        return data

    def _write_atomic(self, path: Path, data: bytes) -> None:
        tmp = path.with_name(f".{path.name}.{secrets.token_hex(4)}.tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise

    def load(self, key: str) -> Session | None:
        path = self._path(key)
        if not path.exists():
            return None
        blob = path.read_bytes()
        if not blob.startswith(_BLOB_MAGIC):
            log.warning("Discarding unreadable cached session %s", path.name)
            path.unlink(missing_ok=True)
            return None
        nonce = blob[len(_BLOB_MAGIC) : len(_BLOB_MAGIC) + _NONCE_SIZE]
        sealed = blob[len(_BLOB_MAGIC) + _NONCE_SIZE :]
        try:
            raw = self._aead().decrypt(nonce, sealed, key.encode())
            return Session.from_json(raw)
        except (InvalidTag, ValueError, DecodeError):
            log.warning("Discarding unreadable cached session %s", path.name)
            path.unlink(missing_ok=True)
            return None

    def save(self, key: str, session: Session) -> None:
        path = self._path(key)
        self._ensure_dir()
        nonce = secrets.token_bytes(_NONCE_SIZE)
        sealed = self._aead().encrypt(nonce, session.to_json().encode(), key.encode())
        self._write_atomic(path, _BLOB_MAGIC + nonce + sealed)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class KeyringStore(SessionStore):
    """Session records in the OS keyring under SERVICE_NAME."""

    name = "keyring"

    def __init__(self, service: str = SERVICE_NAME) -> None:
        self.service = service

    def load(self, key: str) -> Session | None:
        raw = keyring.get_password(self.service, key)
        if not raw:
            return None
        try:
            return Session.from_json(raw)
        except (ValueError, DecodeError):
            log.warning("Discarding unreadable cached session in keyring")
            self.delete(key)
            return None

    def save(self, key: str, session: Session) -> None:
        keyring.set_password(self.service, key, session.to_json())

    def delete(self, key: str) -> None:
        try:
            keyring.delete_password(self.service, key)
        except keyring.errors.PasswordDeleteError:
            pass


def keyring_available() -> bool:
    """True if keyring resolved to a backend that can store secrets."""
    try:
        backend = keyring.get_keyring()
    except keyring.errors.KeyringError:
        return False
    if isinstance(backend, fail.Keyring):
        return False
    return float(getattr(backend, "priority", 0)) > 0


def open_store(mode: str, path: Path | str | None = None) -> SessionStore:
    """Build the session store for a cache mode."""
    directory = Path(path) if path else DEFAULT_CACHE_DIR
    if mode == "off":
        return SessionStore()
    if mode == "memory":
        return MemoryStore()
    if mode == "file":
        return FileStore(directory)
    if mode == "keyring":
        if keyring_available():
            return KeyringStore()
        log.warning("No usable keyring backend, caching sessions in memory")
        return MemoryStore()
    if mode == "auto":
        if keyring_available():
            return KeyringStore()
        log.info("No usable keyring backend, caching sessions in %s", directory)
        return FileStore(directory)
    raise InvalidArgumentError(f"unknown session cache mode {mode!r}")
