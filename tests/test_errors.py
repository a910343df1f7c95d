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

"""Tests for the DSM error model."""

from __future__ import annotations

import pytest
import respx
from httpx import Response

from conftest import ENTRY_URL, fail
from synology_provider.api.client import SynologyAPI
from synology_provider.api.errors import (
    GLOBAL_ERRORS,
    UNKNOWN_ERROR_CODE,
    DecodeError,
    ErrorItem,
    InvalidArgumentError,
    SynologyError,
    describe_error,
    error_from_envelope,
)
from synology_provider.services import filestation


class TestDescribeError:
    def test_first_table_wins(self) -> None:
        assert describe_error(408, {408: "endpoint"}, {408: "family"}, GLOBAL_ERRORS) == "endpoint"

    def test_falls_through_to_global(self) -> None:
        assert describe_error(105, {408: "endpoint"}, GLOBAL_ERRORS) == GLOBAL_ERRORS[105]

    def test_unknown(self) -> None:
        assert describe_error(31337, GLOBAL_ERRORS) == UNKNOWN_ERROR_CODE


class TestErrorFromEnvelope:
    def test_zero_code(self) -> None:
        assert error_from_envelope({"code": 0}) is None
        assert error_from_envelope(None) is None

    def test_sub_errors_keep_details(self) -> None:
        err = error_from_envelope(
            {"code": 1100, "errors": [{"code": 408, "path": "/docker/x"}]},
            (filestation.CREATE_FOLDER_ERRORS, filestation.FILESTATION_ERRORS),
        )
        assert err is not None
        assert err.code == 1100
        assert err.errors[0].code == 408
        assert err.errors[0].details == {"code": 408, "path": "/docker/x"}

    def test_bare_integer_sub_errors(self) -> None:
        err = error_from_envelope({"code": 900, "errors": [408]}, (filestation.DELETE_ERRORS,))
        assert err is not None
        assert err.errors == [ErrorItem(code=408, summary=UNKNOWN_ERROR_CODE, details={})]

    def test_has_code_sees_sub_errors(self) -> None:
        err = SynologyError(1100, errors=[ErrorItem(code=414)])
        assert err.has_code(1100)
        assert err.has_code(414)
        assert not err.has_code(408)


class TestSynologyError:
    def test_default_summary_from_global_table(self) -> None:
        assert SynologyError(106).summary == "Session timeout"
        assert SynologyError(106).is_session_error

    def test_str_lists_sub_errors(self) -> None:
        err = SynologyError(
            1100, "Failed", [ErrorItem(code=408, summary="No such file", details={"path": "/a"})]
        )
        text = str(err)
        assert text.splitlines()[0] == "[1100] Failed"
        assert "[408] No such file: [path: /a]" in text

    def test_decode_error_is_invalid_argument(self) -> None:
        err = DecodeError("files[0].isdir", "bool", "yes")
        assert isinstance(err, InvalidArgumentError)
        assert "files[0].isdir" in str(err)


class TestCreateFolderErrorMapping:
    @pytest.mark.asyncio
    @respx.mock
    async def test_create_folder_failure(self, api: SynologyAPI) -> None:
        respx.get(ENTRY_URL).mock(return_value=Response(200, json=fail(1100, [{"code": 408}])))

        with pytest.raises(SynologyError) as exc_info:
            await filestation.create_folder(api, "/docker", "app")

        err = exc_info.value
        assert err.code == 1100
        assert err.summary.startswith("Failed to create a folder")
        assert len(err.errors) == 1
        assert err.errors[0].code == 408
        assert err.errors[0].summary == "No such file or directory"
