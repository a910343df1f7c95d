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

"""Tests for INI rendering."""

from __future__ import annotations

import configparser

import pytest

from synology_provider.api.errors import InvalidArgumentError
from synology_provider.util.ini import ini_encode


class TestIniEncode:
    def test_sections(self) -> None:
        text = ini_encode({"server": {"Host": "nas", "port": 5001, "tls": True}})
        assert text == "[server]\nHost = nas\nport = 5001\ntls = true\n"

    def test_top_level_keys_come_first(self) -> None:
        text = ini_encode({"name": "app", "db": {"user": "tf"}, "debug": False})
        assert text == "name = app\ndebug = false\n\n[db]\nuser = tf\n"

    def test_lists_are_comma_joined(self) -> None:
        assert ini_encode({"s": {"dns": ["1.1.1.1", "9.9.9.9"]}}) == "[s]\ndns = 1.1.1.1,9.9.9.9\n"

    def test_readable_by_configparser(self) -> None:
        parser = configparser.ConfigParser(interpolation=None)
        parser.read_string(ini_encode({"a": {"x": "1"}, "b": {"y": "%2"}}))
        assert parser["a"]["x"] == "1"
        assert parser["b"]["y"] == "%2"

    def test_nested_sections_rejected(self) -> None:
        with pytest.raises(InvalidArgumentError):
            ini_encode({"a": {"b": {"c": 1}}})

    def test_empty(self) -> None:
        assert ini_encode({}) == ""
