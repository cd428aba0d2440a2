from __future__ import annotations

import json
from typing import Any, Dict, Optional

from .schema import MATERIALS

SYSTEM_PROMPT = (
    "You edit Roblox places. Respond only with raw JSON that a JSON parser can read directly: "
    "no Markdown code fences, no commentary."
)

PLAN_EXAMPLE = {
    "summary": "Add an anchored floor and remove the old baseplate",
    "operations": [
        {
            "type": "createInstance",
            "className": "Part",
            "parent": "Workspace",
            "tempId": "$floor",
            "name": "Floor",
            "properties": {
                "size": {"type": "Vector3", "value": [64, 1, 64]},
                "CFrame": {"type": "CFrame", "value": {"position": [0, 0, 0]}},
                "Color": {"type": "Color3", "value": [0.4, 0.4, 0.4]},
                "Material": {"type": "Enum", "value": "Concrete"},
            },
        },
        {"type": "setProperty", "target": "$floor", "property": "Anchored", "value": {"type": "Bool", "value": True}},
        {"type": "reparent", "target": "Workspace/Lamp", "newParent": "$floor"},
        {"type": "deleteInstance", "target": "Workspace/Baseplate"},
    ],
}

SCHEMA_RULES = "\n".join(
    [
        "Edit plan rules:",
        "Return an object with an optional summary and an ordered operations list.",
        "Operation types: createInstance, setProperty, reparent, deleteInstance.",
        "createInstance requires: type, className, parent. Optional: name, tempId, properties.",
        "setProperty requires: type, target, property, value.",
        "reparent requires: type, target, newParent. deleteInstance requires: type, target.",
        'Refer to instances by id (an integer from the tree), by path like "Workspace/House/Door",',
        'or by a tempId such as "$door" declared by an earlier createInstance.',
        "Paths always name instances as they are before the plan runs.",
        "Every value is {\"type\": T, \"value\": V}. Types: Vector3 [x, y, z]; CFrame {position: [x, y, z],",
        "rotation: 9 numbers, optional}; Color3 [r, g, b] in 0..1; Bool; Number; Int; String;",
        "Content (asset url); Enum (item name or number); BrickColor (number); Ref (instance); UDim2",
        "[xScale, xOffset, yScale, yOffset].",
        "Parts use the lower-case property name size. Script code goes in the Source String property.",
        "Never delete or move the root, and never move an instance under its own descendant.",
    ]
)


def material_table() -> str:
    return ", ".join(f"{name}={value}" for name, value in MATERIALS.items())


def build_prompt(summary: Optional[Dict[str, Any]], user_prompt: str, context: Optional[str] = None) -> str:
    parts = [SCHEMA_RULES]
    parts.append("Example:\n" + json.dumps(PLAN_EXAMPLE, indent=2))
    parts.append("Material values: " + material_table())
    if summary:
        parts.append("Place summary:")
        parts.append(json.dumps(summary, indent=2))
    if context:
        parts.append("Additional context for your consideration:")
        parts.append(context)
    parts.append("User request:")
    parts.append(user_prompt)
    return "\n\n".join(p for p in parts if p).strip()
