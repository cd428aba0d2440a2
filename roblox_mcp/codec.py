"""Place file (.rbxlx / .rbxmx) codec.

decode() turns the XML byte stream into a Document; encode() writes it back.
Property types the codec does not model are kept as RawBlob with their inner
markup untouched, and top-level elements other than <Item>/<Meta> are kept
verbatim, so untouched data survives a round trip.
"""

from __future__ import annotations

import logging
import math
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple, Union
from xml.sax.saxutils import escape

from .errors import InvalidStructure, MalformedProperty, UnresolvedReference
from .scene import Document, Instance
from .schema import enum_name_for
from .values import (
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
)

logger = logging.getLogger(__name__)

ROOT_TAG = "roblox"
ROOT_ATTRIBUTES = (
    'xmlns:xmime="http://www.w3.org/2005/05/xmlmime" '
    'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
    'xsi:noNamespaceSchemaLocation="http://www.roblox.com/roblox.xsd"'
)
NULL_REFERENTS = {"", "null", "nil"}
CFRAME_TAG = "CoordinateFrame"
CFRAME_FIELDS = ("X", "Y", "Z", "R00", "R01", "R02", "R10", "R11", "R12", "R20", "R21", "R22")

_ATTR_ENTITIES = {'"': "&quot;", "\n": "&#10;", "\t": "&#9;", "\r": "&#13;"}
# Parsers normalize a literal CR to LF, so text CRs must stay character references.
_TEXT_ENTITIES = {"\r": "&#13;"}


# ----------------------------
# Decode
# ----------------------------

def decode(data: Union[bytes, str]) -> Document:
    try:
        root_el = ET.fromstring(data)
    except ET.ParseError as exc:
        line, column = exc.position
        raise InvalidStructure(
            f"Place file is not well-formed XML: {exc}",
            location=f"line {line}, column {column}",
        ) from exc

    if root_el.tag != ROOT_TAG:
        raise InvalidStructure(f"Expected <{ROOT_TAG}> as the top-level element, found <{root_el.tag}>")

    doc = Document()
    doc.version = root_el.get("version") or doc.version
    referents: Dict[str, int] = {}
    pending_refs: List[Tuple[Instance, str, str]] = []
    raw_count = 0

    # Pass 1: build the tree and register every referent.
    pending: List[Tuple[ET.Element, Instance]] = []
    seen_item = False
    for child in root_el:
        if child.tag == "Item":
            seen_item = True
            pending.append((child, doc.root))
        elif child.tag == "Meta":
            doc.meta[child.get("name") or ""] = child.text or ""
        elif seen_item:
            doc.epilogue.append(_element_bytes(child))
        else:
            doc.prologue.append(_element_bytes(child))

    pending.reverse()
    while pending:
        item_el, parent = pending.pop()
        class_name = item_el.get("class")
        referent = item_el.get("referent")
        if not class_name:
            raise InvalidStructure("<Item> is missing its class attribute", location=_item_location(referent))

        inst = Instance(doc.allocate_id(), class_name)
        if referent and referent not in NULL_REFERENTS:
            if referent in referents:
                raise InvalidStructure(f"Duplicate referent {referent}", location=_item_location(referent))
            referents[referent] = inst.id

        children: List[ET.Element] = []
        for sub in item_el:
            if sub.tag == "Properties":
                raw_count += _decode_properties(sub, inst, referent, pending_refs)
            elif sub.tag == "Item":
                children.append(sub)
            else:
                logger.warning("Ignoring unexpected <%s> inside %s", sub.tag, _item_location(referent))
        doc.insert(inst, parent)
        for sub in reversed(children):
            pending.append((sub, inst))

    # Pass 2: references may point forward in the file, so resolve them last.
    for inst, prop_name, target in pending_refs:
        target_id = referents.get(target)
        if target_id is None:
            raise UnresolvedReference(
                f"Property {prop_name} references undefined referent {target}",
                instance_id=inst.id,
                location=f"{inst.class_name}.{prop_name}",
            )
        inst.properties[prop_name] = InstanceRef(target_id)

    logger.debug(
        "Decoded place: %d instances, %d refs, %d raw properties",
        len(doc),
        len(pending_refs),
        raw_count,
    )
    return doc


def _item_location(referent: Optional[str]) -> str:
    return f"Item {referent or '<no referent>'}"


def _decode_properties(
    props_el: ET.Element,
    inst: Instance,
    referent: Optional[str],
    pending_refs: List[Tuple[Instance, str, str]],
) -> int:
    raw_count = 0
    for prop_el in props_el:
        name = prop_el.get("name")
        location = f"{_item_location(referent)} <{prop_el.tag}>"
        if not name:
            raise MalformedProperty("Property element has no name attribute", instance_id=inst.id, location=location)
        location = f"{_item_location(referent)} {inst.class_name}.{name}"
        if prop_el.tag == "Ref":
            target = (prop_el.text or "").strip()
            inst.properties[name] = InstanceRef(None)
            if target not in NULL_REFERENTS:
                pending_refs.append((inst, name, target))
            continue
        try:
            value = _decode_value(prop_el, inst.class_name, name)
        except (ValueError, KeyError) as exc:
            raise MalformedProperty(
                f"Malformed <{prop_el.tag}> value: {exc}",
                instance_id=inst.id,
                location=location,
            ) from exc
        if isinstance(value, RawBlob):
            raw_count += 1
        inst.properties[name] = value
    return raw_count


def _decode_value(el: ET.Element, class_name: str, name: str) -> PropertyValue:
    tag = el.tag
    text = el.text or ""

    if tag == "bool":
        flag = text.strip().lower()
        if flag not in ("true", "false"):
            raise ValueError(f"expected true/false, got {text!r}")
        return Bool(flag == "true")
    if tag in ("float", "double"):
        return Number(_parse_float(text), tag)
    if tag in ("int", "int64"):
        return Number(_parse_int(text), tag)
    if tag == "string":
        return String(text, "string")
    if tag == "ProtectedString":
        return String(text, "ProtectedString")
    if tag == "Content":
        kids = list(el)
        if len(kids) == 1 and kids[0].tag == "url":
            return String(kids[0].text or "", "Content")
        if len(kids) == 1 and kids[0].tag == "null":
            return String("", "Content")
        return RawBlob(tag, _inner_bytes(el))
    if tag == "Vector3":
        x, y, z = _components(el, ("X", "Y", "Z"))
        return Vector3(x, y, z)
    if tag == CFRAME_TAG:
        values = _components(el, CFRAME_FIELDS)
        return CFrame(tuple(values[:3]), tuple(values[3:]))
    if tag == "Color3":
        if len(el) == 0:
            # Older files store Color3 as a packed integer.
            r, g, b = _unpack_color(text)
            return Color3(r, g, b, "Color3")
        r, g, b = _components(el, ("R", "G", "B"))
        return Color3(r, g, b, "Color3")
    if tag == "Color3uint8":
        r, g, b = _unpack_color(text)
        return Color3(r, g, b, "Color3uint8")
    if tag == "token":
        return EnumValue(enum_name_for(class_name, name), _parse_int(text), "token")
    if tag == "BrickColor":
        return EnumValue("BrickColor", _parse_int(text), "BrickColor")
    return RawBlob(tag, _inner_bytes(el))


def _components(el: ET.Element, names: Tuple[str, ...]) -> List[float]:
    found = {child.tag: child.text or "" for child in el}
    missing = [n for n in names if n not in found]
    if missing:
        raise ValueError(f"missing component(s) {', '.join(missing)}")
    return [_parse_float(found[n]) for n in names]


def _parse_float(text: str) -> float:
    return float(text.strip())


def _parse_int(text: str) -> int:
    return int(text.strip())


def _unpack_color(text: str) -> Tuple[float, float, float]:
    packed = int(text.strip())
    return (
        ((packed >> 16) & 0xFF) / 255.0,
        ((packed >> 8) & 0xFF) / 255.0,
        (packed & 0xFF) / 255.0,
    )


def _inner_bytes(el: ET.Element) -> bytes:
    parts = [_text(el.text or "")]
    for child in el:
        # tostring() includes the child's tail, which is exactly the inner text between siblings.
        parts.append(_markup(child))
    return "".join(parts).encode("utf-8")


def _element_bytes(el: ET.Element) -> bytes:
    el.tail = None
    return _markup(el).encode("utf-8")


def _markup(el: ET.Element) -> str:
    # tostring() escapes CR in attributes but not in text; any CR left is text.
    return ET.tostring(el, encoding="unicode").replace("\r", "&#13;")


# ----------------------------
# Encode
# ----------------------------

def encode(document: Document) -> bytes:
    referents = {inst.id: f"RBX{idx}" for idx, inst in enumerate(document.descendants(document.root))}
    lines = [f'<{ROOT_TAG} {ROOT_ATTRIBUTES} version="{_attr(document.version)}">']
    for name, value in document.meta.items():
        lines.append(f'\t<Meta name="{_attr(name)}">{_text(value)}</Meta>')
    for raw in document.prologue:
        lines.append("\t" + raw.decode("utf-8"))
    for child in document.root.children:
        _encode_item(child, 1, lines, referents)
    for raw in document.epilogue:
        lines.append("\t" + raw.decode("utf-8"))
    lines.append(f"</{ROOT_TAG}>")
    return ("\n".join(lines) + "\n").encode("utf-8")


def _encode_item(inst: Instance, depth: int, lines: List[str], referents: Dict[int, str]) -> None:
    indent = "\t" * depth
    lines.append(f'{indent}<Item class="{_attr(inst.class_name)}" referent="{referents[inst.id]}">')
    lines.append(f"{indent}\t<Properties>")
    for name, value in inst.properties.items():
        lines.append(f"{indent}\t\t{_encode_property(inst, name, value, referents)}")
    lines.append(f"{indent}\t</Properties>")
    for child in inst.children:
        _encode_item(child, depth + 1, lines, referents)
    lines.append(f"{indent}</Item>")


def _encode_property(inst: Instance, name: str, value: PropertyValue, referents: Dict[int, str]) -> str:
    attr = f'name="{_attr(name)}"'
    if isinstance(value, Bool):
        return f"<bool {attr}>{'true' if value.value else 'false'}</bool>"
    if isinstance(value, Number):
        text = _format_int(value.value) if value.xml_type in ("int", "int64") else format_float(value.value)
        return f"<{value.xml_type} {attr}>{text}</{value.xml_type}>"
    if isinstance(value, String):
        if value.xml_type == "Content":
            inner = f"<url>{_text(value.value)}</url>" if value.value else "<null></null>"
            return f"<Content {attr}>{inner}</Content>"
        if value.xml_type == "ProtectedString" and "]]>" not in value.value and "\r" not in value.value:
            return f"<ProtectedString {attr}><![CDATA[{value.value}]]></ProtectedString>"
        return f"<{value.xml_type} {attr}>{_text(value.value)}</{value.xml_type}>"
    if isinstance(value, Vector3):
        inner = _fields(("X", "Y", "Z"), (value.x, value.y, value.z))
        return f"<Vector3 {attr}>{inner}</Vector3>"
    if isinstance(value, CFrame):
        inner = _fields(CFRAME_FIELDS, tuple(value.position) + tuple(value.rotation))
        return f"<{CFRAME_TAG} {attr}>{inner}</{CFRAME_TAG}>"
    if isinstance(value, Color3):
        if value.xml_type == "Color3uint8":
            return f"<Color3uint8 {attr}>{_pack_color(value)}</Color3uint8>"
        inner = _fields(("R", "G", "B"), (value.r, value.g, value.b))
        return f"<Color3 {attr}>{inner}</Color3>"
    if isinstance(value, EnumValue):
        return f"<{value.xml_type} {attr}>{int(value.value)}</{value.xml_type}>"
    if isinstance(value, InstanceRef):
        referent = referents.get(value.target) if isinstance(value.target, int) else None
        if referent is None:
            if value.target is not None:
                logger.warning("Writing dangling reference %s.%s -> %s as null", inst.class_name, name, value.target)
            referent = "null"
        return f"<Ref {attr}>{referent}</Ref>"
    if isinstance(value, RawBlob):
        return f"<{value.type_tag} {attr}>{value.payload.decode('utf-8')}</{value.type_tag}>"
    raise TypeError(f"Unsupported property value for {name}: {value!r}")


def _fields(names: Tuple[str, ...], values: Tuple[float, ...]) -> str:
    return "".join(f"<{n}>{format_float(v)}</{n}>" for n, v in zip(names, values))


def format_float(value: float) -> str:
    value = float(value)
    if math.isnan(value):
        return "NAN"
    if math.isinf(value):
        return "INF" if value > 0 else "-INF"
    if value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def _format_int(value: Union[int, float]) -> str:
    return str(int(value))


def _pack_color(color: Color3) -> int:
    def channel(c: float) -> int:
        return int(round(min(max(float(c), 0.0), 1.0) * 255))

    return 0xFF000000 | (channel(color.r) << 16) | (channel(color.g) << 8) | channel(color.b)


def _attr(value: str) -> str:
    return escape(value, _ATTR_ENTITIES)


def _text(value: str) -> str:
    return escape(value, _TEXT_ENTITIES)
