#!/usr/bin/env python3
"""MCP stdio server: Content-Length framed JSON-RPC over stdin/stdout.

Tools run in-process against the place codec; no HTTP server is needed.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from typing import BinaryIO, Optional

from mcp_common import handle_request as mcp_handle_request
from mcp_common import tool_call

MIN_PYTHON = (3, 10)
DEBUG = os.environ.get("ROBLOX_MCP_DEBUG", "").strip().lower() in {"1", "true", "yes", "on"}

logger = logging.getLogger("roblox_mcp_server")


class _NoMessage(Exception):
    pass


def _read_message(stream: BinaryIO) -> Optional[dict]:
    headers = {}
    while True:
        line = stream.readline()
        if not line:
            return None
        if line in (b"\r\n", b"\n"):
            break
        try:
            key, value = line.decode("utf-8").split(":", 1)
        except ValueError:
            continue
        headers[key.strip().lower()] = value.strip()

    try:
        length = int(headers.get("content-length", "0"))
    except ValueError:
        length = 0
    if length <= 0:
        raise _NoMessage()
    body = stream.read(length)
    if not body:
        raise _NoMessage()
    try:
        return json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug("Failed to decode JSON message: %s", exc)
        raise _NoMessage() from exc


def _send_message(stream: BinaryIO, payload: dict) -> None:
    data = json.dumps(payload).encode("utf-8")
    stream.write(b"Content-Length: " + str(len(data)).encode("utf-8") + b"\r\n\r\n")
    stream.write(data)
    stream.flush()


def serve(stdin: BinaryIO, stdout: BinaryIO) -> None:
    while True:
        try:
            req = _read_message(stdin)
        except _NoMessage:
            continue
        if req is None:
            logger.debug("Stdin closed; exiting.")
            break
        if not isinstance(req, dict):
            logger.debug("Ignoring non-object message")
            continue
        logger.debug("Received method=%s id=%s", req.get("method"), req.get("id"))
        res = mcp_handle_request(req, tool_call)
        if res:
            _send_message(stdout, res)


def main() -> int:
    # stdout carries the protocol; logs go to stderr only.
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if DEBUG else logging.WARNING,
        format="[%(asctime)s] %(name)s %(levelname)s: %(message)s",
    )
    if sys.version_info < MIN_PYTHON:
        sys.stderr.write(
            f"Roblox MCP requires Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ "
            f"(found {sys.version_info.major}.{sys.version_info.minor}).\n"
        )
        sys.stderr.flush()
        return 1
    logger.debug("Startup ok. Python %s.%s", sys.version_info.major, sys.version_info.minor)
    serve(sys.stdin.buffer, sys.stdout.buffer)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
