from __future__ import annotations

import os
from collections import Counter
from typing import Any, Dict, List, Optional

from .codec import format_float
from .scene import Document, Instance
from .values import CFrame, Color3, EnumValue, Number, PropertyValue, String, Vector3

SUMMARY_MAX_LINES = int(os.environ.get("ROBLOX_MCP_SUMMARY_MAX_LINES", "400"))

# Properties worth showing the model in the tree dump.
_SHOWN_PROPERTIES = ("CFrame", "size", "Size", "Color", "Material", "Transparency", "Anchored", "Shape", "shape")


def _short_value(value: PropertyValue) -> str:
    if isinstance(value, CFrame):
        return "pos(" + ", ".join(format_float(v) for v in value.position) + ")"
    if isinstance(value, Vector3):
        return f"({format_float(value.x)}, {format_float(value.y)}, {format_float(value.z)})"
    if isinstance(value, Color3):
        return "rgb(" + ", ".join(str(int(round(c * 255))) for c in (value.r, value.g, value.b)) + ")"
    if isinstance(value, EnumValue):
        return f"{value.enum_name}:{value.value}"
    if isinstance(value, Number):
        return format_float(value.value)
    if isinstance(value, String):
        return repr(value.value[:40])
    return str(getattr(value, "value", value.kind.value))


def _describe(inst: Instance) -> str:
    shown = [f"{name}={_short_value(inst.properties[name])}" for name in _SHOWN_PROPERTIES if name in inst.properties]
    extra = f" [{'; '.join(shown)}]" if shown else ""
    return f"{inst.class_name} {inst.name!r} (id {inst.id}){extra}"


def tree_lines(document: Document, max_lines: Optional[int] = None) -> List[str]:
    limit = SUMMARY_MAX_LINES if max_lines is None else max_lines
    lines: List[str] = []
    stack = [(child, 0) for child in reversed(document.root.children)]
    total = len(document) - 1
    while stack:
        inst, depth = stack.pop()
        if len(lines) >= limit:
            lines.append(f"... {total - len(lines)} more instances omitted")
            break
        lines.append("  " * depth + _describe(inst))
        stack.extend((child, depth + 1) for child in reversed(inst.children))
    return lines


def build_summary(document: Document, max_lines: Optional[int] = None) -> Dict[str, Any]:
    """JSON-serializable overview of a document for the model collaborator."""
    histogram = Counter(inst.class_name for inst in document.descendants(document.root))
    return {
        "version": document.version,
        "rootId": document.root.id,
        "instanceCount": len(document) - 1,
        "classHistogram": dict(sorted(histogram.items(), key=lambda kv: (-kv[1], kv[0]))),
        "services": [child.name for child in document.root.children],
        "tree": tree_lines(document, max_lines=max_lines),
    }
