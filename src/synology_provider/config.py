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

"""Provider configuration: explicit options, environment fallbacks and
XDG-compliant TOML profiles."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

import tomli_w

from synology_provider.api.retry import DEFAULT_RETRY_LIMIT


def _config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME", "")
    base = Path(xdg) if xdg else Path.home() / ".config"
    return base / "synology-provider"


def _cache_dir() -> Path:
    xdg = os.environ.get("XDG_CACHE_HOME", "")
    base = Path(xdg) if xdg else Path.home() / ".cache"
    return base / "terraform-provider-synology" / "sessions"


CONFIG_DIR = _config_dir()
CONFIG_FILE = CONFIG_DIR / "config.toml"
DEFAULT_CACHE_DIR = _cache_dir()

CACHE_MODES = ("auto", "keyring", "file", "memory", "off")

_OTP_RE = re.compile(r"^[A-Z2-7= ]+$")

ENV_HOST = "SYNOLOGY_HOST"
ENV_USER = "SYNOLOGY_USER"
ENV_PASSWORD = "SYNOLOGY_PASSWORD"
ENV_OTP_SECRET = "SYNOLOGY_OTP_SECRET"
ENV_SKIP_CERT_CHECK = "SYNOLOGY_SKIP_CERT_CHECK"
ENV_SESSION_CACHE = "SYNOLOGY_SESSION_CACHE"
ENV_SESSION_CACHE_PATH = "SYNOLOGY_SESSION_CACHE_PATH"


def parse_bool(value: str | None, default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    v = value.strip().lower()
    if v in ("1", "true", "yes", "on"):
        return True
    if v in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


@dataclass
class ProviderConfig:
    """Connection settings for one DSM appliance."""

    host: str = ""
    user: str = ""
    password: str = field(default="", repr=False)
    otp_secret: str = field(default="", repr=False)
    skip_cert_check: bool = True
    session_cache_mode: str = "off"
    session_cache_path: str = ""
    timeout: float = 30.0
    retry_limit: int = DEFAULT_RETRY_LIMIT
    name: str = "default"

    @property
    def base_url(self) -> str:
        """Scheme, host and port of the DSM web server, https by default."""
        host = self.host.strip()
        if not host:
            return ""
        if "://" not in host:
            host = f"https://{host}"
        parts = urlsplit(host)
        netloc = parts.hostname or ""
        if ":" in netloc:
            netloc = f"[{netloc}]"
        if parts.port:
            netloc = f"{netloc}:{parts.port}"
        return f"{parts.scheme}://{netloc}"

    @property
    def cache_path(self) -> Path:
        return Path(self.session_cache_path) if self.session_cache_path else DEFAULT_CACHE_DIR

    @classmethod
    def from_env(
        cls,
        host: str | None = None,
        user: str | None = None,
        password: str | None = None,
        otp_secret: str | None = None,
        skip_cert_check: bool | None = None,
        session_cache_mode: str | None = None,
        session_cache_path: str | None = None,
        **kwargs: Any,
    ) -> ProviderConfig:
        """Build a config where every option left as None falls back to
        its SYNOLOGY_* environment variable."""
        env = os.environ
        if skip_cert_check is None:
            skip_cert_check = parse_bool(env.get(ENV_SKIP_CERT_CHECK), True)
        return cls(
            host=host if host is not None else env.get(ENV_HOST, ""),
            user=user if user is not None else env.get(ENV_USER, ""),
            password=password if password is not None else env.get(ENV_PASSWORD, ""),
            otp_secret=otp_secret if otp_secret is not None else env.get(ENV_OTP_SECRET, ""),
            skip_cert_check=skip_cert_check,
            session_cache_mode=(
                session_cache_mode
                if session_cache_mode is not None
                else env.get(ENV_SESSION_CACHE, "") or "off"
            ),
            session_cache_path=(
                session_cache_path
                if session_cache_path is not None
                else env.get(ENV_SESSION_CACHE_PATH, "")
            ),
            **kwargs,
        )

    def validate(self) -> tuple[list[str], list[str]]:
        """Return (errors, warnings) for this configuration."""
        errors: list[str] = []
        warnings: list[str] = []

        if not self.host:
            errors.append(f"host is required (option or {ENV_HOST})")
        else:
            parts = urlsplit(self.base_url)
            if parts.scheme not in ("http", "https") or not parts.hostname:
                errors.append(f"host {self.host!r} is not a valid URL")
        if not self.user:
            errors.append(f"user is required (option or {ENV_USER})")
        if not self.password:
            errors.append(f"password is required (option or {ENV_PASSWORD})")

        if self.otp_secret:
            if not 16 <= len(self.otp_secret) <= 32 or not _OTP_RE.match(self.otp_secret):
                errors.append("otp_secret must be 16 to 32 characters of base32 [A-Z2-7= ]")

        if self.session_cache_mode not in CACHE_MODES:
            errors.append(
                f"session_cache.mode {self.session_cache_mode!r} must be one of "
                + ", ".join(CACHE_MODES)
            )
        elif self.session_cache_path and self.session_cache_mode != "file":
            warnings.append(
                f"session_cache.path is ignored when mode is {self.session_cache_mode!r}"
            )

        return errors, warnings

    def to_dict(self) -> dict[str, Any]:
        """Profile data safe to persist; secrets are left out."""
        data: dict[str, Any] = {
            "host": self.host,
            "user": self.user,
            "skip_cert_check": self.skip_cert_check,
            "session_cache": {"mode": self.session_cache_mode},
        }
        if self.session_cache_path:
            data["session_cache"]["path"] = self.session_cache_path
        return data

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> ProviderConfig:
        cache = data.get("session_cache", {})
        return cls.from_env(
            host=data.get("host"),
            user=data.get("user"),
            skip_cert_check=data.get("skip_cert_check"),
            session_cache_mode=cache.get("mode"),
            session_cache_path=cache.get("path"),
            name=name,
        )


@dataclass
class AppConfig:
    """Saved connection profiles."""

    default_profile: str = ""
    profiles: dict[str, ProviderConfig] = field(default_factory=dict)

    def profile(self, name: str = "") -> ProviderConfig:
        """Named profile, the default one, or a pure environment config."""
        name = name or self.default_profile
        if name in self.profiles:
            return self.profiles[name]
        if name:
            raise KeyError(f"no such profile: {name}")
        return ProviderConfig.from_env()


def load_config() -> AppConfig:
    """Load configuration from TOML file."""
    if not CONFIG_FILE.exists():
        return AppConfig()

    with open(CONFIG_FILE, "rb") as f:
        data = tomllib.load(f)

    profiles: dict[str, ProviderConfig] = {}
    for name, pdata in data.get("profiles", {}).items():
        profiles[name] = ProviderConfig.from_dict(name, pdata)

    general = data.get("general", {})
    return AppConfig(
        default_profile=general.get("default_profile", ""),
        profiles=profiles,
    )


def save_config(config: AppConfig) -> None:
    """Write configuration to TOML file."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    data: dict[str, Any] = {
        "general": {"default_profile": config.default_profile},
        "profiles": {name: p.to_dict() for name, p in config.profiles.items()},
    }

    with open(CONFIG_FILE, "wb") as f:
        tomli_w.dump(data, f)


def add_profile(config: AppConfig, profile: ProviderConfig) -> None:
    """Add or update a connection profile."""
    config.profiles[profile.name] = profile
    if not config.default_profile:
        config.default_profile = profile.name
    save_config(config)


def remove_profile(config: AppConfig, name: str) -> None:
    """Remove a connection profile."""
    config.profiles.pop(name, None)
    if config.default_profile == name:
        config.default_profile = next(iter(config.profiles), "")
    save_config(config)
