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

"""Tests for configuration management."""

from __future__ import annotations

from pathlib import Path

import pytest

from synology_provider.config import (
    ENV_HOST,
    ENV_OTP_SECRET,
    ENV_PASSWORD,
    ENV_SESSION_CACHE,
    ENV_SESSION_CACHE_PATH,
    ENV_SKIP_CERT_CHECK,
    ENV_USER,
    AppConfig,
    ProviderConfig,
    add_profile,
    load_config,
    parse_bool,
    remove_profile,
    save_config,
)

_ENV = (
    ENV_HOST,
    ENV_USER,
    ENV_PASSWORD,
    ENV_OTP_SECRET,
    ENV_SKIP_CERT_CHECK,
    ENV_SESSION_CACHE,
    ENV_SESSION_CACHE_PATH,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    import synology_provider.config as cfg

    path = tmp_path / "config.toml"
    monkeypatch.setattr(cfg, "CONFIG_FILE", path)
    monkeypatch.setattr(cfg, "CONFIG_DIR", tmp_path)
    return path


class TestProviderConfig:
    def test_base_url_defaults_to_https(self) -> None:
        assert ProviderConfig(host="nas:5001").base_url == "https://nas:5001"

    def test_base_url_keeps_scheme(self) -> None:
        assert ProviderConfig(host="http://nas:5000/webui").base_url == "http://nas:5000"

    def test_base_url_ipv6(self) -> None:
        assert ProviderConfig(host="https://[fe80::1]:5001").base_url == "https://[fe80::1]:5001"

    def test_env_fallbacks(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_HOST, "nas:5001")
        monkeypatch.setenv(ENV_USER, "tf")
        monkeypatch.setenv(ENV_PASSWORD, "p")
        monkeypatch.setenv(ENV_SKIP_CERT_CHECK, "false")
        monkeypatch.setenv(ENV_SESSION_CACHE, "memory")

        config = ProviderConfig.from_env()
        assert config.host == "nas:5001"
        assert config.user == "tf"
        assert config.password == "p"
        assert config.skip_cert_check is False
        assert config.session_cache_mode == "memory"

    def test_explicit_options_win(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv(ENV_USER, "env-user")
        assert ProviderConfig.from_env(user="tf").user == "tf"

    def test_defaults(self) -> None:
        config = ProviderConfig.from_env()
        assert config.skip_cert_check is True
        assert config.session_cache_mode == "off"

    def test_valid(self) -> None:
        config = ProviderConfig(host="nas:5001", user="tf", password="p", otp_secret="JBSWY3DPEHPK3PXP")
        assert config.validate() == ([], [])

    def test_missing_options(self) -> None:
        errors, _ = ProviderConfig().validate()
        assert len(errors) == 3

    def test_bad_otp_secret(self) -> None:
        config = ProviderConfig(host="nas", user="tf", password="p", otp_secret="not-base32!")
        errors, _ = config.validate()
        assert any("otp_secret" in e for e in errors)

    def test_bad_cache_mode(self) -> None:
        config = ProviderConfig(host="nas", user="tf", password="p", session_cache_mode="cloud")
        errors, _ = config.validate()
        assert any("session_cache.mode" in e for e in errors)

    def test_cache_path_warning(self) -> None:
        config = ProviderConfig(
            host="nas", user="tf", password="p", session_cache_mode="memory", session_cache_path="/tmp/x"
        )
        errors, warnings = config.validate()
        assert errors == []
        assert len(warnings) == 1

    def test_to_dict_leaves_out_secrets(self) -> None:
        config = ProviderConfig(host="nas", user="tf", password="p", otp_secret="JBSWY3DPEHPK3PXP")
        data = config.to_dict()
        assert "password" not in data
        assert "otp_secret" not in data
        assert data["session_cache"] == {"mode": "off"}


class TestParseBool:
    @pytest.mark.parametrize("raw", ["1", "true", "YES", " on "])
    def test_true(self, raw: str) -> None:
        assert parse_bool(raw, False) is True

    @pytest.mark.parametrize("raw", ["0", "false", "No", "off"])
    def test_false(self, raw: str) -> None:
        assert parse_bool(raw, True) is False

    def test_default(self) -> None:
        assert parse_bool(None, True) is True
        assert parse_bool("", False) is False

    def test_invalid(self) -> None:
        with pytest.raises(ValueError):
            parse_bool("maybe", True)


class TestSaveLoadConfig:
    def test_missing_file(self, config_file: Path) -> None:
        assert load_config() == AppConfig()

    def test_round_trip(self, config_file: Path) -> None:
        config = AppConfig(default_profile="mynas")
        config.profiles["mynas"] = ProviderConfig(
            name="mynas",
            host="192.168.1.100:5001",
            user="tf",
            password="secret",
            skip_cert_check=False,
            session_cache_mode="file",
            session_cache_path="/var/cache/dsm",
        )

        save_config(config)
        assert config_file.exists()
        assert b"secret" not in config_file.read_bytes()

        loaded = load_config()
        assert loaded.default_profile == "mynas"
        profile = loaded.profile()
        assert profile.host == "192.168.1.100:5001"
        assert profile.user == "tf"
        assert profile.skip_cert_check is False
        assert profile.session_cache_mode == "file"
        assert profile.session_cache_path == "/var/cache/dsm"

    def test_password_comes_from_env(self, config_file: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        save_config(AppConfig(profiles={"nas": ProviderConfig(name="nas", host="nas", user="tf")}))
        monkeypatch.setenv(ENV_PASSWORD, "from-env")
        assert load_config().profile("nas").password == "from-env"

    def test_unknown_profile(self, config_file: Path) -> None:
        with pytest.raises(KeyError):
            load_config().profile("nope")


class TestAddRemoveProfile:
    def test_add_profile_sets_default(self, config_file: Path) -> None:
        config = AppConfig()
        add_profile(config, ProviderConfig(name="nas1", host="10.0.0.1"))

        assert config.default_profile == "nas1"
        assert "nas1" in load_config().profiles

    def test_remove_profile_updates_default(self, config_file: Path) -> None:
        config = AppConfig(default_profile="nas1")
        config.profiles["nas1"] = ProviderConfig(name="nas1", host="10.0.0.1")
        config.profiles["nas2"] = ProviderConfig(name="nas2", host="10.0.0.2")

        remove_profile(config, "nas1")
        assert config.default_profile == "nas2"
        assert list(load_config().profiles) == ["nas2"]
