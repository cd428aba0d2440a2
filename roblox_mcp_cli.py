#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from companion.config import resolve_config
from companion.service import HeadlessService
from roblox_mcp.codec import decode
from roblox_mcp.errors import PlaceError
from roblox_mcp.pipeline import EditResult, apply_plan_to_bytes, request_plan, run_edit
from roblox_mcp.plan import EditPlan, parse_plan_text
from roblox_mcp.validator import validate

API_KEY_ENV = "GEMINI_API_KEY"
DEBUG_ENV = "ROBLOX_MCP_DEBUG"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="roblox-mcp",
        description="Edit a Roblox place file (.rbxlx) from a natural-language prompt.",
    )
    parser.add_argument("-f", "--file", required=True, help="Path to the .rbxlx place file")
    parser.add_argument("-k", "--api-key", default=None, help=f"Gemini API key (default: ${API_KEY_ENV})")
    parser.add_argument("-p", "--prompt", default=None, help="What to change in the place")
    parser.add_argument("-c", "--context", default=None, help="Optional text file forwarded to the model as context")
    parser.add_argument("-o", "--output", default=None, help="Where to write the result (default: overwrite --file)")
    parser.add_argument("--config", default=None, help="Companion config.json (default: $ROBLOX_MCP_CONFIG or built-in)")
    parser.add_argument("--adapter", default=None, help="Adapter name from the config")
    parser.add_argument("--plan", default=None, help="Apply this plan JSON file instead of asking the model")
    parser.add_argument("--dry-run", action="store_true", help="Validate and print the plan without writing")
    parser.add_argument("--check-references", action="store_true", help="Warn about refs left dangling by deletes")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def _configure_logging(verbose: bool) -> None:
    debug = verbose or os.environ.get(DEBUG_ENV, "").strip().lower() in {"1", "true", "yes"}
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _write_atomic_bytes(path: Path, data: bytes) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        tmp.write_bytes(data)
        tmp.replace(path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise


def _resolve_adapter(args: argparse.Namespace):
    svc = HeadlessService(resolve_config(args.config))
    api_key = args.api_key or os.environ.get(API_KEY_ENV)
    if api_key:
        svc.apply_secrets(by_type={"gemini": {"api_key": api_key}})
    adapter = svc.resolve_adapter(args.adapter)
    if adapter.type == "gemini" and not adapter.is_available():
        return None
    return adapter


def _print_plan(plan: EditPlan) -> None:
    if plan.summary:
        print(f"Plan: {plan.summary}")
    for idx, line in enumerate(plan.describe(), start=1):
        print(f"  {idx}. {line}")


def _print_result(result: EditResult, target: Path) -> None:
    _print_plan(result.plan)
    for warning in result.warnings:
        print(f"Warning: {warning.message}")
    print(f"Wrote {len(result.output)} bytes to {target} ({len(result.document) - 1} instances).")


def _dry_run(source: bytes, args: argparse.Namespace, plan_text: Optional[str], adapter, context: Optional[str]) -> int:
    document = decode(source)
    if plan_text is not None:
        plan = parse_plan_text(plan_text, document=document)
    else:
        plan, _ = request_plan(document, args.prompt, adapter, context)
    validated = validate(document, plan, check_references=args.check_references)
    _print_plan(plan)
    for warning in validated.warnings:
        print(f"Warning: {warning.message}")
    print(f"Dry run: {len(validated)} operations validated, nothing written.")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    if not args.plan and not args.prompt:
        parser.error("--prompt is required unless --plan is given")

    path = Path(args.file).expanduser()
    try:
        source = path.read_bytes()
        context = Path(args.context).expanduser().read_text(encoding="utf-8") if args.context else None
        plan_text = Path(args.plan).expanduser().read_text(encoding="utf-8") if args.plan else None
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2

    adapter = None
    if plan_text is None:
        try:
            adapter = _resolve_adapter(args)
        except (OSError, ValueError, RuntimeError) as exc:
            print(f"Error: {exc}", file=sys.stderr)
            return 2
        if adapter is None:
            print(f"Error: no API key. Pass --api-key or set {API_KEY_ENV}.", file=sys.stderr)
            return 2

    target = Path(args.output).expanduser() if args.output else path
    try:
        if args.dry_run:
            return _dry_run(source, args, plan_text, adapter, context)
        if plan_text is not None:
            result = apply_plan_to_bytes(source, plan_text, check_references=args.check_references)
        else:
            print("Asking the model for an edit plan...")
            result = run_edit(source, args.prompt, adapter, context=context, check_references=args.check_references)
    except PlaceError as exc:
        print(f"{exc.stage} failed [{exc.kind}]: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled; nothing written.", file=sys.stderr)
        return 130

    try:
        _write_atomic_bytes(target, result.output)
    except OSError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    _print_result(result, target)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
