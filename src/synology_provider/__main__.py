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

"""Diagnostic entry point: log in and show host info, or build a seed ISO."""

import argparse
import asyncio
import logging
import re
import sys
from pathlib import Path

_REDACT_RE = re.compile(
    r"(passwd|otp_code|_sid|account|SynoToken)([=:]\s*['\"]?)[^&\s\"',}]+",
    re.IGNORECASE,
)

log = logging.getLogger("synology_provider")


class _RedactFilter(logging.Filter):
    """Strip passwords, OTP codes, session IDs, tokens and usernames from log messages."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _REDACT_RE.sub(r"\1\2***", record.getMessage())
            record.args = None
        return True


def setup_logging(debug: bool) -> None:
    level = logging.DEBUG if debug else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
    )
    for handler in logging.getLogger().handlers:
        handler.addFilter(_RedactFilter())

    # Suppress chatty third-party loggers in debug mode
    for name in ("hpack", "httpcore"):
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


async def _info(profile: str) -> int:
    from synology_provider.config import load_config
    from synology_provider.provider import configure
    from synology_provider.services import filestation

    config = load_config().profile(profile)
    api = await configure(config)
    try:
        info = await filestation.info(api)
        print(f"hostname:        {info.hostname}")
        print(f"is_manager:      {info.is_manager}")
        print(f"support_sharing: {info.support_sharing}")
        print(f"protocols:       {info.support_virtual_protocol}")
        if api.session_manager is not None:
            await api.session_manager.logout(api)
    finally:
        await api.close()
    return 0


def _iso(args: argparse.Namespace) -> int:
    from synology_provider.util.iso9660 import cloud_init_iso

    def read(path: str | None) -> str:
        return Path(path).read_text() if path else ""

    image = cloud_init_iso(read(args.meta_data), read(args.user_data), read(args.network_config))
    Path(args.output).write_bytes(image)
    log.info("Wrote %s (%d bytes)", args.output, len(image))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="synology_provider")
    parser.add_argument("--debug", action="store_true", help="verbose logging")
    parser.add_argument("--profile", default="", help="connection profile from config.toml")
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("info", help="log in and print FileStation info")
    iso = sub.add_parser("iso", help="write a cloud-init seed ISO")
    iso.add_argument("output")
    iso.add_argument("--meta-data")
    iso.add_argument("--user-data")
    iso.add_argument("--network-config")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.debug)

    from synology_provider.api.errors import SynologyProviderError

    try:
        if args.command == "iso":
            return _iso(args)
        return asyncio.run(_info(args.profile))
    except (SynologyProviderError, KeyError, OSError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
