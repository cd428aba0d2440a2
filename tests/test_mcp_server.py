from __future__ import annotations

import io
import json

import roblox_mcp_server as stdio
from mcp_common import handle_request, tool_call

from .conftest import SAMPLE_PLACE


def _frame(payload: dict) -> bytes:
    data = json.dumps(payload).encode("utf-8")
    return b"Content-Length: " + str(len(data)).encode("utf-8") + b"\r\n\r\n" + data


def _responses(raw: bytes) -> list:
    out = []
    stream = io.BytesIO(raw)
    while True:
        msg = stdio._read_message(stream)
        if msg is None:
            return out
        out.append(msg)


def test_serve_answers_framed_requests():
    stdin = io.BytesIO(
        _frame({"jsonrpc": "2.0", "id": 1, "method": "initialize", "params": {"protocolVersion": "2025-03-26"}})
        + _frame({"jsonrpc": "2.0", "method": "notifications/initialized"})
        + b"Content-Length: 0\r\n\r\n"
        + _frame({"jsonrpc": "2.0", "id": 2, "method": "tools/list"})
    )
    stdout = io.BytesIO()
    stdio.serve(stdin, stdout)
    first, second = _responses(stdout.getvalue())
    assert first["result"]["protocolVersion"] == "2025-03-26"
    assert first["result"]["serverInfo"]["name"] == "Roblox MCP"
    assert second["id"] == 2
    assert len(second["result"]["tools"]) == 3


def test_serve_runs_tools_in_process():
    call = {
        "jsonrpc": "2.0",
        "id": 5,
        "method": "tools/call",
        "params": {"name": "get_place_summary", "arguments": {"xml": SAMPLE_PLACE}},
    }
    stdout = io.BytesIO()
    stdio.serve(io.BytesIO(_frame(call)), stdout)
    (reply,) = _responses(stdout.getvalue())
    summary = json.loads(reply["result"]["content"][0]["text"])
    assert summary["instanceCount"] == 5
    assert "Workspace" in summary["services"]


def test_garbage_body_is_skipped():
    stdin = io.BytesIO(b"Content-Length: 3\r\n\r\n{x}" + _frame({"jsonrpc": "2.0", "id": 9, "method": "ping"}))
    stdout = io.BytesIO()
    stdio.serve(stdin, stdout)
    (reply,) = _responses(stdout.getvalue())
    assert reply == {"jsonrpc": "2.0", "id": 9, "result": {"ok": True}}


def test_tool_call_argument_errors():
    assert tool_call("get_place_summary", {})["isError"] is True
    assert tool_call("apply_plan", {"xml": SAMPLE_PLACE, "plan": []})["isError"] is True
    assert "Unknown tool" in tool_call("explode", {"xml": SAMPLE_PLACE})["content"][0]["text"]


def test_validate_plan_tool_reports_place_errors():
    plan = {"operations": [{"type": "deleteInstance", "target": "Workspace/Nowhere"}]}
    result = tool_call("validate_plan", {"xml": SAMPLE_PLACE, "plan": plan})
    assert result["isError"] is True
    assert json.loads(result["content"][0]["text"])["kind"] == "UnknownInstance"


def test_unknown_method_and_notification():
    assert handle_request({"id": 3, "method": "nope"}, tool_call)["error"]["code"] == -32601
    assert handle_request({"method": "nope"}, tool_call) is None
