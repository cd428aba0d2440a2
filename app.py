# app.py
# Roblox MCP: local place editing server (FastAPI)
#
# Endpoints:
#   GET  /health
#   POST /place/summary   (decode + summary)
#   POST /place/validate  (decode + parse plan + validate; nothing applied)
#   POST /place/apply     (validate + apply; returns edited XML)
#   POST /place/edit      (ask the model companion for a plan, then apply)
#   POST /mcp             (MCP over HTTP)
#   GET  /mcp             (MCP info/health)
# Note: keep the endpoint list above in sync with any new routes.

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel

from companion.config import resolve_config
from companion.service import HeadlessService
from mcp_common import apply_place_plan, place_summary as build_place_summary, validate_place_plan
from mcp_common import handle_request as mcp_handle_request
from mcp_common import tool_call as mcp_tool_call
from mcp_common import tool_list as mcp_tool_list
from roblox_mcp import __version__
from roblox_mcp.errors import (
    ApplyCancelled,
    ApplyInternal,
    CollaboratorError,
    PlaceError,
)
from roblox_mcp.pipeline import run_edit

logger = logging.getLogger(__name__)

APP_VERSION = __version__

# ----------------------------
# Models
# ----------------------------

class PlaceIn(BaseModel):
    xml: str
    maxLines: Optional[int] = None

class PlanIn(BaseModel):
    xml: str
    plan: Dict[str, Any]
    checkReferences: bool = False

class EditIn(BaseModel):
    xml: str
    prompt: str
    context: Optional[str] = None
    adapter: Optional[str] = None
    checkReferences: bool = False

# ----------------------------
# State
# ----------------------------

app = FastAPI(title="Roblox MCP", version=APP_VERSION)

_svc_lock = threading.RLock()
_service: Optional[HeadlessService] = None


def _get_service() -> HeadlessService:
    global _service
    with _svc_lock:
        if _service is None:
            _service = HeadlessService(resolve_config())
        return _service


def set_service(service: Optional[HeadlessService]) -> None:
    """Swap the companion service (tests, embedding)."""
    global _service
    with _svc_lock:
        _service = service

# ----------------------------
# Helpers
# ----------------------------

def _status_for(exc: PlaceError) -> int:
    if isinstance(exc, ApplyCancelled):
        return 409
    if isinstance(exc, ApplyInternal):
        return 500
    if isinstance(exc, CollaboratorError):
        return 502
    return 422


def _http_error(exc: PlaceError) -> HTTPException:
    logger.info("Request failed at %s: %s", exc.stage, exc)
    return HTTPException(status_code=_status_for(exc), detail=exc.to_dict())

# ----------------------------
# Routes
# ----------------------------

@app.get("/health")
def health():
    return {
        "ok": True,
        "serverName": "RobloxMCP",
        "version": APP_VERSION,
        "endpoints": {
            "health": "/health",
            "place_summary": "/place/summary",
            "place_validate": "/place/validate",
            "place_apply": "/place/apply",
            "place_edit": "/place/edit",
            "mcp": "/mcp",
        },
    }


@app.post("/place/summary")
def place_summary(inp: PlaceIn):
    try:
        return {"ok": True, "summary": build_place_summary(inp.xml, inp.maxLines)}
    except PlaceError as exc:
        raise _http_error(exc) from exc


@app.post("/place/validate")
def place_validate(inp: PlanIn):
    try:
        return validate_place_plan(inp.xml, inp.plan, inp.checkReferences)
    except PlaceError as exc:
        raise _http_error(exc) from exc


@app.post("/place/apply")
def place_apply(inp: PlanIn):
    try:
        return apply_place_plan(inp.xml, inp.plan, inp.checkReferences)
    except PlaceError as exc:
        raise _http_error(exc) from exc


@app.post("/place/edit")
def place_edit(inp: EditIn):
    try:
        adapter = _get_service().resolve_adapter(inp.adapter)
    except Exception as exc:
        raise HTTPException(status_code=500, detail=f"CompanionInitFailed: {exc}") from exc

    try:
        result = run_edit(
            inp.xml.encode("utf-8"),
            inp.prompt,
            adapter,
            context=inp.context,
            check_references=inp.checkReferences,
        )
    except PlaceError as exc:
        raise _http_error(exc) from exc

    out = result.to_dict()
    out.update({"ok": True, "xml": result.output.decode("utf-8"), "adapter": adapter.name, "model": adapter.model})
    return out

# ----------------------------
# MCP
# ----------------------------

def _mcp_stream(payload: Dict[str, Any]):
    data = json.dumps(payload, ensure_ascii=True)
    yield f"event: message\ndata: {data}\n\n"


@app.post("/mcp")
def mcp_http(payload: Dict[str, Any], request: Request):
    response = mcp_handle_request(payload, mcp_tool_call)
    if response is None:
        return Response(status_code=204)
    accept = request.headers.get("accept") or ""
    if "text/event-stream" in accept.lower():
        return StreamingResponse(_mcp_stream(response), media_type="text/event-stream")
    return JSONResponse(content=response)


@app.get("/mcp")
def mcp_info():
    return {"ok": True, "transport": "http", "tools": [t["name"] for t in mcp_tool_list()["tools"]]}


if __name__ == "__main__":
    import argparse
    import sys

    parser = argparse.ArgumentParser(description="Run the local Roblox MCP place editing server.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=3030)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    try:
        import uvicorn
    except Exception:
        print("Missing dependency: uvicorn. Install with `python -m pip install uvicorn`.", file=sys.stderr)
        raise

    uvicorn.run("app:app", host=args.host, port=args.port, reload=args.reload)
