from __future__ import annotations

import argparse
from typing import List, Optional

from .service import HeadlessService

# Raw model smoke test: send one prompt through an adapter and print the reply.

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Roblox MCP model companion")
    parser.add_argument("--config", default=None, help="Path to config.json (default: $ROBLOX_MCP_CONFIG or built-in)")
    parser.add_argument("--adapter", default=None, help="Adapter name override")
    parser.add_argument("--system", default=None, help="System prompt")
    parser.add_argument("--prompt", default=None, help="User prompt")
    parser.add_argument("--stream", action="store_true", help="Stream output")
    parser.add_argument("--list", action="store_true", help="List configured adapters and exit")
    parser.add_argument("--models", action="store_true", help="List models the adapter can reach and exit")
    args = parser.parse_args(argv)

    svc = HeadlessService.from_path(args.config)

    if args.list:
        for cfg in svc.config.adapters:
            marker = "*" if cfg.name == svc.config.default_adapter else " "
            state = "enabled" if cfg.enabled else "disabled"
            print(f"{marker} {cfg.name} ({cfg.type}, {state})")
        return 0
    if args.models:
        adapter = svc.resolve_adapter(args.adapter)
        try:
            models = adapter.list_models()
        except NotImplementedError as exc:
            print(exc)
            return 1
        for item in models:
            print(item.get("id", ""))
        return 0
    if not args.prompt:
        parser.error("--prompt is required unless --list or --models is given")

    if args.stream:
        adapter = svc.resolve_adapter(args.adapter)
        for chunk in adapter.stream(args.prompt, system=args.system):
            print(chunk, end="", flush=True)
        print()
        return 0

    result = svc.complete(args.prompt, system=args.system, adapter_name=args.adapter)
    print(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
