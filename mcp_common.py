from __future__ import annotations

import json
from typing import Any, Callable, Dict, Optional

from roblox_mcp.codec import decode
from roblox_mcp.errors import PlaceError
from roblox_mcp.pipeline import apply_plan_to_bytes
from roblox_mcp.plan import parse_plan_data
from roblox_mcp.summary import build_summary
from roblox_mcp.validator import validate

MCP_SERVER_INFO = {"name": "Roblox MCP", "version": "0.1.0"}

_PLACE_XML = {"type": "string", "description": "Place file contents (.rbxlx XML)."}
_PLAN = {
    "type": "object",
    "description": "Edit plan: {operations: [...]} or legacy {add: [...], subtract: [...]}.",
}


def tool_list() -> Dict[str, Any]:
    return {
        "tools": [
            {
                "name": "get_place_summary",
                "description": "Decode a place file and return instance counts, class histogram and a tree dump.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "xml": _PLACE_XML,
                        "maxLines": {"type": "integer", "description": "Bound on tree dump lines."},
                    },
                    "required": ["xml"],
                },
            },
            {
                "name": "validate_plan",
                "description": "Check an edit plan against a place without applying it.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "xml": _PLACE_XML,
                        "plan": _PLAN,
                        "checkReferences": {"type": "boolean"},
                    },
                    "required": ["xml", "plan"],
                },
            },
            {
                "name": "apply_plan",
                "description": "Validate and apply an edit plan; returns the edited place file.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "xml": _PLACE_XML,
                        "plan": _PLAN,
                        "checkReferences": {"type": "boolean"},
                    },
                    "required": ["xml", "plan"],
                },
            },
        ]
    }


def text_result(text: str, is_error: bool = False) -> Dict[str, Any]:
    result: Dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


# Shared by the HTTP routes and the stdio server; all raise PlaceError.
def place_summary(xml: str, max_lines: Optional[int] = None) -> Dict[str, Any]:
    return build_summary(decode(xml.encode("utf-8")), max_lines=max_lines)


def validate_place_plan(xml: str, plan: Dict[str, Any], check_references: bool = False) -> Dict[str, Any]:
    document = decode(xml.encode("utf-8"))
    parsed = parse_plan_data(plan, document=document)
    validated = validate(document, parsed, check_references=check_references)
    return {
        "ok": True,
        "operationCount": len(validated),
        "operations": parsed.describe(),
        "warnings": [w.to_dict() for w in validated.warnings],
    }


def apply_place_plan(xml: str, plan: Dict[str, Any], check_references: bool = False) -> Dict[str, Any]:
    result = apply_plan_to_bytes(xml.encode("utf-8"), plan, check_references=check_references)
    out = result.to_dict()
    out["ok"] = True
    out["xml"] = result.output.decode("utf-8")
    return out


def tool_call(name: str, args: Dict[str, Any]) -> Dict[str, Any]:
    xml = args.get("xml")
    if not isinstance(xml, str):
        return text_result("xml must be a string", is_error=True)
    check_refs = bool(args.get("checkReferences"))
    try:
        if name == "get_place_summary":
            res = place_summary(xml, args.get("maxLines"))
        elif name in ("validate_plan", "apply_plan"):
            plan = args.get("plan")
            if not isinstance(plan, dict):
                return text_result("plan must be an object", is_error=True)
            handler = validate_place_plan if name == "validate_plan" else apply_place_plan
            res = handler(xml, plan, check_refs)
        else:
            return text_result(f"Unknown tool: {name}", is_error=True)
    except PlaceError as exc:
        return text_result(json.dumps(exc.to_dict(), indent=2), is_error=True)
    return text_result(json.dumps(res, indent=2))


def handle_request(
    req: Dict[str, Any],
    tool_call: Callable[[str, Dict[str, Any]], Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    req_id = req.get("id")
    method = req.get("method")
    params = req.get("params") or {}

    if method == "initialize":
        protocol = params.get("protocolVersion") or "2024-11-05"
        return {
            "jsonrpc": "2.0",
            "id": req_id,
            "result": {
                "protocolVersion": protocol,
                "serverInfo": MCP_SERVER_INFO,
                "capabilities": {"tools": {"listChanged": False}},
            },
        }

    if method == "tools/list":
        return {"jsonrpc": "2.0", "id": req_id, "result": tool_list()}

    if method == "tools/call":
        name = params.get("name")
        args = params.get("arguments") or {}
        return {"jsonrpc": "2.0", "id": req_id, "result": tool_call(name, args)}

    if method == "ping":
        return {"jsonrpc": "2.0", "id": req_id, "result": {"ok": True}}

    # Notifications carry no id and get no response.
    if req_id is None:
        return None
    return {
        "jsonrpc": "2.0",
        "id": req_id,
        "error": {"code": -32601, "message": f"Method not found: {method}"},
    }
