"""Edit plans proposed by the model: wire models, value parsing, response parsing."""

from __future__ import annotations

import itertools
import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from .codec import format_float
from .errors import PlanParseError
from .scene import Document
from .schema import enum_item_value, guess_enum_name
from .values import (
    IDENTITY_ROTATION,
    Bool,
    CFrame,
    Color3,
    EnumValue,
    InstanceRef,
    Number,
    PropertyValue,
    RawBlob,
    String,
    Vector3,
    is_property_value,
)

# int: document id; "$name": placeholder from an earlier createInstance; other str: path.
Target = Union[int, str]

PLACEHOLDER_PREFIX = "$"
DEFAULT_LEGACY_PARENT = "Workspace"

# Bare names a legacy target_parent may use, mapped to their place paths.
SERVICE_PATHS: Dict[str, str] = {
    name: name
    for name in (
        "Workspace",
        "StarterPlayer",
        "Lighting",
        "ReplicatedStorage",
        "ServerScriptService",
        "ServerStorage",
        "SoundService",
        "Chat",
        "Teams",
    )
}
SERVICE_PATHS["StarterPlayerScripts"] = "StarterPlayer/StarterPlayerScripts"
SERVICE_PATHS["StarterCharacterScripts"] = "StarterPlayer/StarterCharacterScripts"


def is_placeholder(target: object) -> bool:
    return isinstance(target, str) and target.startswith(PLACEHOLDER_PREFIX)


# ----------------------------
# Wire values: {"type": "Vector3", "value": [0, 1, 0]}
# ----------------------------

def _number(raw: Any, what: str) -> float:
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise ValueError(f"{what} must be a number, got {raw!r}")
    return float(raw)


def _triple(raw: Any, keys: tuple, what: str) -> List[float]:
    if isinstance(raw, (list, tuple)):
        if len(raw) != 3:
            raise ValueError(f"{what} must have 3 components")
        return [_number(v, what) for v in raw]
    if isinstance(raw, dict):
        lowered = {str(k).lower(): v for k, v in raw.items()}
        return [_number(lowered.get(k, 0.0), what) for k in keys]
    raise ValueError(f"{what} must be an array or object")


def _wire_vector3(raw: Any, prop: str) -> PropertyValue:
    x, y, z = _triple(raw, ("x", "y", "z"), "Vector3")
    return Vector3(x, y, z)


def _wire_cframe(raw: Any, prop: str) -> PropertyValue:
    if isinstance(raw, (list, tuple)) and len(raw) == 12:
        values = [_number(v, "CFrame") for v in raw]
        return CFrame(tuple(values[:3]), tuple(values[3:]))
    if not isinstance(raw, dict):
        raise ValueError("CFrame must be an object with position and rotation")
    if "position" not in raw:
        raise ValueError("CFrame missing position")
    position = tuple(_triple(raw["position"], ("x", "y", "z"), "CFrame position"))
    rotation = raw.get("rotation")
    # Anything other than a full 3x3 basis falls back to identity.
    if isinstance(rotation, (list, tuple)) and len(rotation) == 9:
        basis = tuple(_number(v, "CFrame rotation") for v in rotation)
    else:
        basis = IDENTITY_ROTATION
    return CFrame(position, basis)


def _color_components(raw: Any) -> List[float]:
    values = _triple(raw, ("r", "g", "b"), "Color3")
    # Accept 0..255 components from models that ignore the 0..1 convention.
    if any(v > 1.0 for v in values):
        values = [v / 255.0 for v in values]
    return values


def _wire_color3(raw: Any, prop: str) -> PropertyValue:
    r, g, b = _color_components(raw)
    return Color3(r, g, b, "Color3")


def _wire_color3uint8(raw: Any, prop: str) -> PropertyValue:
    r, g, b = _color_components(raw)
    return Color3(r, g, b, "Color3uint8")


def _wire_bool(raw: Any, prop: str) -> PropertyValue:
    if not isinstance(raw, bool):
        raise ValueError("Bool must be a boolean")
    return Bool(raw)


def _wire_float(xml_type: str):
    def parse(raw: Any, prop: str) -> PropertyValue:
        return Number(_number(raw, "Number"), xml_type)

    return parse


def _wire_int(xml_type: str):
    def parse(raw: Any, prop: str) -> PropertyValue:
        value = _number(raw, "Int")
        if not value.is_integer():
            raise ValueError(f"Int must be integral, got {raw!r}")
        return Number(int(value), xml_type)

    return parse


def _wire_string(raw: Any, prop: str) -> PropertyValue:
    text = raw if isinstance(raw, str) else json.dumps(raw)
    return String(text, "ProtectedString" if prop == "Source" else "string")


def _wire_protected(raw: Any, prop: str) -> PropertyValue:
    if not isinstance(raw, str):
        raise ValueError("ProtectedString must be a string")
    return String(raw, "ProtectedString")


def _wire_content(raw: Any, prop: str) -> PropertyValue:
    if raw is None:
        return String("", "Content")
    if not isinstance(raw, str):
        raise ValueError("Content must be a string")
    return String(raw, "Content")


def _wire_enum(raw: Any, prop: str) -> PropertyValue:
    enum_name = guess_enum_name(prop)
    if isinstance(raw, str):
        value = enum_item_value(enum_name, raw.split(".")[-1])
        if value is None:
            raise ValueError(f"Unknown {enum_name} item {raw!r}")
        return EnumValue(enum_name, value, "token")
    number = _number(raw, "Enum")
    if not number.is_integer() or number < 0:
        raise ValueError(f"Enum must be a non-negative integer, got {raw!r}")
    return EnumValue(enum_name, int(number), "token")


def _wire_brickcolor(raw: Any, prop: str) -> PropertyValue:
    number = _number(raw, "BrickColor")
    if not number.is_integer() or number <= 0:
        raise ValueError(f"Invalid BrickColor number: {raw!r}")
    return EnumValue("BrickColor", int(number), "BrickColor")


def _wire_ref(raw: Any, prop: str) -> PropertyValue:
    if raw is None:
        return InstanceRef(None)
    if isinstance(raw, bool) or not isinstance(raw, (int, str)):
        raise ValueError("Ref must be an instance id, placeholder, path, or null")
    return InstanceRef(raw)


def _wire_udim2(raw: Any, prop: str) -> PropertyValue:
    if not isinstance(raw, (list, tuple)) or len(raw) != 4:
        raise ValueError("UDim2 must have 4 components [xScale, xOffset, yScale, yOffset]")
    xs, xo, ys, yo = (_number(v, "UDim2") for v in raw)
    payload = (
        f"<XS>{format_float(xs)}</XS><XO>{int(xo)}</XO>"
        f"<YS>{format_float(ys)}</YS><YO>{int(yo)}</YO>"
    )
    return RawBlob("UDim2", payload.encode("utf-8"))


_WIRE_PARSERS = {
    "vector3": _wire_vector3,
    "cframe": _wire_cframe,
    "coordinateframe": _wire_cframe,
    "color3": _wire_color3,
    "color3uint8": _wire_color3uint8,
    "bool": _wire_bool,
    "boolean": _wire_bool,
    "number": _wire_float("float"),
    "float": _wire_float("float"),
    "float32": _wire_float("float"),
    "double": _wire_float("double"),
    "float64": _wire_float("double"),
    "int": _wire_int("int"),
    "int32": _wire_int("int"),
    "int64": _wire_int("int64"),
    "string": _wire_string,
    "protectedstring": _wire_protected,
    "content": _wire_content,
    "enum": _wire_enum,
    "token": _wire_enum,
    "brickcolor": _wire_brickcolor,
    "ref": _wire_ref,
    "udim2": _wire_udim2,
}


def parse_wire_value(raw: Any, property_name: str = "") -> PropertyValue:
    if is_property_value(raw):
        return raw
    if not isinstance(raw, dict) or "type" not in raw:
        raise ValueError(f"Property {property_name or '?'} must be an object with type and value")
    type_name = str(raw.get("type") or "")
    parser = _WIRE_PARSERS.get(type_name.lower())
    if parser is None:
        raise ValueError(f"Unsupported value type {type_name!r} for {property_name or '?'}")
    return parser(raw.get("value"), property_name)


# ----------------------------
# Operations
# ----------------------------

class _Operation(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class CreateInstance(_Operation):
    type: Literal["createInstance"] = "createInstance"
    className: str = Field(min_length=1)
    parent: Target
    name: Optional[str] = None
    tempId: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("tempId")
    @classmethod
    def _placeholder(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value.startswith(PLACEHOLDER_PREFIX):
            return value
        return PLACEHOLDER_PREFIX + value

    @field_validator("properties", mode="before")
    @classmethod
    def _values(cls, raw: Any) -> Dict[str, Any]:
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError("properties must be an object")
        return {str(k): parse_wire_value(v, str(k)) for k, v in raw.items()}

    @model_validator(mode="after")
    def _name_property(self) -> "CreateInstance":
        if self.name and "Name" not in self.properties:
            self.properties["Name"] = String(self.name)
        return self


class SetProperty(_Operation):
    type: Literal["setProperty"] = "setProperty"
    target: Target
    property: str = Field(min_length=1)
    value: Any

    @model_validator(mode="before")
    @classmethod
    def _value(cls, data: Any) -> Any:
        if isinstance(data, dict) and "value" in data:
            data = dict(data)
            data["value"] = parse_wire_value(data["value"], str(data.get("property") or ""))
        return data


class Reparent(_Operation):
    type: Literal["reparent"] = "reparent"
    target: Target
    newParent: Target


class DeleteInstance(_Operation):
    type: Literal["deleteInstance"] = "deleteInstance"
    target: Target


Operation = Annotated[
    Union[CreateInstance, SetProperty, Reparent, DeleteInstance],
    Field(discriminator="type"),
]


class EditPlan(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    operations: List[Operation] = Field(default_factory=list)
    summary: Optional[str] = None

    def describe(self) -> List[str]:
        return [describe_operation(op) for op in self.operations]


def describe_operation(op: Any) -> str:
    if isinstance(op, CreateInstance):
        label = f" {op.name!r}" if op.name else ""
        temp = f" as {op.tempId}" if op.tempId else ""
        return f"createInstance {op.className}{label} under {op.parent}{temp} ({len(op.properties)} properties)"
    if isinstance(op, SetProperty):
        return f"setProperty {op.target}.{op.property} = {op.value!r}"
    if isinstance(op, Reparent):
        return f"reparent {op.target} -> {op.newParent}"
    if isinstance(op, DeleteInstance):
        return f"deleteInstance {op.target}"
    return repr(op)


# ----------------------------
# Normalization of loosely shaped model output
# ----------------------------

_TYPE_ALIASES = {
    "create": "createInstance",
    "createinstance": "createInstance",
    "create_instance": "createInstance",
    "add": "createInstance",
    "set": "setProperty",
    "setproperty": "setProperty",
    "set_property": "setProperty",
    "move": "reparent",
    "reparent": "reparent",
    "setparent": "reparent",
    "moveinstance": "reparent",
    "delete": "deleteInstance",
    "deleteinstance": "deleteInstance",
    "delete_instance": "deleteInstance",
    "remove": "deleteInstance",
    "destroy": "deleteInstance",
    "destroyinstance": "deleteInstance",
}


def _first(out: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if out.get(key) is not None:
            return out[key]
    return None


def normalize_operation(raw: Any) -> List[Any]:
    """Map alias spellings onto the canonical operation shape.

    ``setProperties`` expands into one ``setProperty`` per entry.
    """
    if not isinstance(raw, dict):
        return [raw]
    out = dict(raw)
    raw_type = str(_first(out, "type", "op", "action") or "").strip()
    lower = raw_type.lower()

    if lower in {"setproperties", "set_properties"}:
        target = _first(out, "target", "path", "targetPath", "id")
        props = _first(out, "properties", "props", "values") or {}
        if not isinstance(props, dict):
            return [out]
        return [
            {"type": "setProperty", "target": target, "property": key, "value": value}
            for key, value in props.items()
        ]

    op_type = _TYPE_ALIASES.get(lower, raw_type)
    out["type"] = op_type

    if op_type == "createInstance":
        if out.get("className") is None:
            out["className"] = _first(out, "class", "class_name")
        if out.get("parent") is None:
            out["parent"] = _first(out, "parentId", "parentPath", "parent_path", "target_parent")
        if out.get("tempId") is None:
            out["tempId"] = _first(out, "temp_id", "placeholder")
    elif op_type in {"setProperty", "reparent", "deleteInstance"}:
        if out.get("target") is None:
            out["target"] = _first(out, "targetId", "path", "targetPath", "id")

    if op_type == "setProperty" and out.get("property") is None:
        out["property"] = _first(out, "key", "name")
    if op_type == "reparent" and out.get("newParent") is None:
        out["newParent"] = _first(out, "newParentId", "newParentPath", "parentPath", "parent")
    return [out]


def normalize_operations(raw_ops: Any) -> List[Any]:
    if not isinstance(raw_ops, list):
        raise PlanParseError("operations must be a list")
    out: List[Any] = []
    for raw in raw_ops:
        out.extend(normalize_operation(raw))
    return out


# ----------------------------
# Legacy add/subtract modifications
# ----------------------------

def plan_from_modification(data: Dict[str, Any], document: Optional[Document] = None) -> EditPlan:
    """Convert ``{"add": [...], "subtract": [...]}`` into an ordered plan.

    Removals come first; added items default to Workspace and nested children
    are created under their parent's placeholder. A ``target_parent`` naming a
    service is mapped to its path; given the ``document``, services it lacks are
    created ahead of the first add that needs them.
    """
    ops: List[Dict[str, Any]] = []
    counter = itertools.count(1)
    created: Dict[str, str] = {}

    subtract = data.get("subtract") or []
    add = data.get("add") or []
    if not isinstance(subtract, list) or not isinstance(add, list):
        raise PlanParseError("add and subtract must be lists")

    for path in subtract:
        ops.append({"type": "deleteInstance", "target": str(path)})

    def ensure_service(path: str) -> Target:
        if path in created:
            return created[path]
        if document is None or document.find_by_path(path) is not None:
            return path
        head, _, leaf = path.rpartition("/")
        parent = ensure_service(head) if head else document.root.id
        temp_id = f"{PLACEHOLDER_PREFIX}service{leaf}"
        ops.append({"type": "createInstance", "className": leaf, "parent": parent, "name": leaf, "tempId": temp_id})
        created[path] = temp_id
        return temp_id

    def legacy_parent(target: Any) -> Target:
        if isinstance(target, int):
            return target
        path = SERVICE_PATHS.get(str(target or DEFAULT_LEGACY_PARENT), str(target or DEFAULT_LEGACY_PARENT))
        if path in SERVICE_PATHS.values():
            return ensure_service(path)
        return path

    def visit(item: Any, parent: Target) -> None:
        if not isinstance(item, dict):
            raise PlanParseError(f"Added item must be an object, got {item!r}")
        temp_id = f"{PLACEHOLDER_PREFIX}add{next(counter)}"
        ops.append(
            {
                "type": "createInstance",
                "className": item.get("class") or item.get("className"),
                "parent": parent,
                "name": item.get("name"),
                "tempId": temp_id,
                "properties": item.get("properties") or {},
            }
        )
        for child in item.get("children") or []:
            visit(child, temp_id)

    for item in add:
        if not isinstance(item, dict):
            raise PlanParseError(f"Added item must be an object, got {item!r}")
        visit(item, legacy_parent(item.get("target_parent")))

    return _validate_plan({"operations": ops, "summary": data.get("summary")})


# ----------------------------
# Model response -> EditPlan
# ----------------------------

def _strip_response(text: str) -> str:
    body = (text or "").strip()
    start_tag, end_tag = "<actions_json>", "</actions_json>"
    start = body.find(start_tag)
    end = body.find(end_tag)
    if start >= 0 and end > start:
        return body[start + len(start_tag) : end].strip()
    if body.startswith("```"):
        body = body.split("\n", 1)[1] if "\n" in body else ""
        if body.rstrip().endswith("```"):
            body = body.rstrip()[:-3]
        return body.strip()
    return body


def parse_plan_text(text: str, document: Optional[Document] = None) -> EditPlan:
    body = _strip_response(text)
    if not body:
        raise PlanParseError("Model response is empty")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        # Prose around a single object: keep the outermost braces.
        start, end = body.find("{"), body.rfind("}")
        if start < 0 or end <= start:
            raise PlanParseError(f"Model response is not valid JSON: {exc}") from exc
        try:
            data = json.loads(body[start : end + 1])
        except json.JSONDecodeError:
            raise PlanParseError(f"Model response is not valid JSON: {exc}") from exc
    return parse_plan_data(data, document=document)


def parse_plan_data(data: Any, document: Optional[Document] = None) -> EditPlan:
    """Accept an operation list, ``{operations}``/``{actions}``, or a legacy add/subtract.

    ``document`` lets legacy modifications resolve and create services.
    """
    if isinstance(data, list):
        data = {"operations": data}
    if not isinstance(data, dict):
        raise PlanParseError("Edit plan must be a JSON object")
    if "operations" in data or "actions" in data:
        raw_ops = data["operations"] if "operations" in data else data["actions"]
        return _validate_plan({"operations": normalize_operations(raw_ops), "summary": data.get("summary")})
    if "add" in data or "subtract" in data:
        return plan_from_modification(data, document=document)
    raise PlanParseError("Edit plan has neither operations nor add/subtract")


def _validate_plan(payload: Dict[str, Any]) -> EditPlan:
    try:
        return EditPlan.model_validate(payload)
    except PydanticValidationError as exc:
        problems = [
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}"
            for err in exc.errors()[:5]
        ]
        raise PlanParseError(f"Invalid edit plan ({exc.error_count()} error(s)): {'; '.join(problems)}") from exc
