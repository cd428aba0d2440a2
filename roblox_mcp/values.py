"""Typed property values for place instances.

Every value an instance property can hold is one of the frozen dataclasses
below. ``RawBlob`` keeps anything the codec does not model explicitly so a
decode/encode cycle never drops data.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Tuple, Union


class PropertyKind(str, Enum):
    BOOL = "Bool"
    NUMBER = "Number"
    STRING = "String"
    VECTOR3 = "Vector3"
    CFRAME = "CFrame"
    COLOR3 = "Color3"
    ENUM = "Enum"
    REF = "Ref"
    RAW = "Raw"


NUMBER_XML_TYPES = ("float", "double", "int", "int64")
STRING_XML_TYPES = ("string", "ProtectedString", "Content")
ENUM_XML_TYPES = ("token", "BrickColor")
COLOR3_XML_TYPES = ("Color3", "Color3uint8")

IDENTITY_ROTATION = (1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True)
class Bool:
    value: bool
    kind: ClassVar[PropertyKind] = PropertyKind.BOOL


@dataclass(frozen=True)
class Number:
    value: Union[int, float]
    xml_type: str = "float"
    kind: ClassVar[PropertyKind] = PropertyKind.NUMBER


@dataclass(frozen=True)
class String:
    value: str
    xml_type: str = "string"
    kind: ClassVar[PropertyKind] = PropertyKind.STRING


@dataclass(frozen=True)
class Vector3:
    x: float
    y: float
    z: float
    kind: ClassVar[PropertyKind] = PropertyKind.VECTOR3


@dataclass(frozen=True)
class CFrame:
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    # Row-major 3x3 basis: R00 R01 R02 R10 ... R22.
    rotation: Tuple[float, ...] = IDENTITY_ROTATION
    kind: ClassVar[PropertyKind] = PropertyKind.CFRAME

    def __post_init__(self) -> None:
        if len(self.position) != 3:
            raise ValueError("CFrame position needs 3 components")
        if len(self.rotation) != 9:
            raise ValueError("CFrame rotation needs 9 components")


@dataclass(frozen=True)
class Color3:
    r: float
    g: float
    b: float
    xml_type: str = "Color3"
    kind: ClassVar[PropertyKind] = PropertyKind.COLOR3


@dataclass(frozen=True)
class EnumValue:
    enum_name: str
    value: int
    xml_type: str = "token"
    kind: ClassVar[PropertyKind] = PropertyKind.ENUM


@dataclass(frozen=True)
class InstanceRef:
    # Document id once resolved; plans may carry a placeholder or path string
    # until validation resolves it.
    target: Union[int, str, None] = None
    kind: ClassVar[PropertyKind] = PropertyKind.REF


@dataclass(frozen=True)
class RawBlob:
    type_tag: str
    payload: bytes
    kind: ClassVar[PropertyKind] = PropertyKind.RAW


PropertyValue = Union[Bool, Number, String, Vector3, CFrame, Color3, EnumValue, InstanceRef, RawBlob]

VALUE_TYPES = (Bool, Number, String, Vector3, CFrame, Color3, EnumValue, InstanceRef, RawBlob)

_XML_TYPES = {
    PropertyKind.NUMBER: NUMBER_XML_TYPES,
    PropertyKind.STRING: STRING_XML_TYPES,
    PropertyKind.ENUM: ENUM_XML_TYPES,
    PropertyKind.COLOR3: COLOR3_XML_TYPES,
}


def is_property_value(value: object) -> bool:
    return isinstance(value, VALUE_TYPES)


def kind_of(value: PropertyValue) -> PropertyKind:
    return value.kind


def coerce_xml_type(value: PropertyValue, xml_type: Optional[str]) -> PropertyValue:
    """Re-tag ``value`` with ``xml_type`` when the tag belongs to its kind.

    Integer tags are only applied to integral numbers so nothing is rounded away.
    """
    if not xml_type:
        return value
    allowed = _XML_TYPES.get(value.kind)
    if not allowed or xml_type not in allowed or value.xml_type == xml_type:
        return value
    if isinstance(value, Number) and xml_type in ("int", "int64"):
        if not float(value.value).is_integer():
            return value
        return Number(int(value.value), xml_type)
    if isinstance(value, Number):
        return Number(float(value.value), xml_type)
    return dataclasses.replace(value, xml_type=xml_type)
