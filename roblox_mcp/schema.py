"""Class schema data: which value kind each known class property expects.

Lookups walk ``CLASS_PARENTS`` so a Part inherits BasePart and Instance
properties. Anything not listed here is accepted as-is by the validator.
"""

from __future__ import annotations

from typing import Dict, NamedTuple, Optional, Tuple

from .values import PropertyKind

K = PropertyKind


class PropertySpec(NamedTuple):
    kind: PropertyKind
    # Preferred on-disk tag; for RAW this is the required type tag.
    xml_type: Optional[str] = None
    enum: Optional[str] = None


def _bool() -> PropertySpec:
    return PropertySpec(K.BOOL)


def _float() -> PropertySpec:
    return PropertySpec(K.NUMBER, "float")


def _double() -> PropertySpec:
    return PropertySpec(K.NUMBER, "double")


def _int() -> PropertySpec:
    return PropertySpec(K.NUMBER, "int")


def _string() -> PropertySpec:
    return PropertySpec(K.STRING, "string")


def _content() -> PropertySpec:
    return PropertySpec(K.STRING, "Content")


def _color() -> PropertySpec:
    return PropertySpec(K.COLOR3, "Color3")


def _token(enum: str) -> PropertySpec:
    return PropertySpec(K.ENUM, "token", enum)


def _raw(tag: str) -> PropertySpec:
    return PropertySpec(K.RAW, tag)


_VECTOR3 = PropertySpec(K.VECTOR3)
_CFRAME = PropertySpec(K.CFRAME)
_REF = PropertySpec(K.REF)

CLASS_PARENTS: Dict[str, str] = {
    "PVInstance": "Instance",
    "BasePart": "PVInstance",
    "FormFactorPart": "BasePart",
    "Part": "FormFactorPart",
    "WedgePart": "FormFactorPart",
    "CornerWedgePart": "BasePart",
    "TrussPart": "BasePart",
    "SpawnLocation": "Part",
    "Seat": "Part",
    "MeshPart": "BasePart",
    "PartOperation": "BasePart",
    "UnionOperation": "PartOperation",
    "NegateOperation": "PartOperation",
    "Model": "PVInstance",
    "WorldRoot": "Model",
    "Workspace": "WorldRoot",
    "Folder": "Instance",
    "Lighting": "Instance",
    "Camera": "Instance",
    "LuaSourceContainer": "Instance",
    "BaseScript": "LuaSourceContainer",
    "Script": "BaseScript",
    "LocalScript": "Script",
    "ModuleScript": "LuaSourceContainer",
    "FaceInstance": "Instance",
    "Decal": "FaceInstance",
    "Texture": "Decal",
    "Light": "Instance",
    "PointLight": "Light",
    "SpotLight": "Light",
    "SurfaceLight": "Light",
    "Sound": "Instance",
    "Attachment": "Instance",
    "JointInstance": "Instance",
    "Weld": "JointInstance",
    "WeldConstraint": "Instance",
    "ParticleEmitter": "Instance",
    "LayerCollector": "Instance",
    "ScreenGui": "LayerCollector",
    "GuiObject": "Instance",
    "Frame": "GuiObject",
    "TextLabel": "GuiObject",
    "TextButton": "GuiObject",
    "ImageLabel": "GuiObject",
    "StringValue": "Instance",
    "IntValue": "Instance",
    "NumberValue": "Instance",
    "BoolValue": "Instance",
    "ObjectValue": "Instance",
    "Vector3Value": "Instance",
    "CFrameValue": "Instance",
    "Color3Value": "Instance",
}

CLASS_PROPERTIES: Dict[str, Dict[str, PropertySpec]] = {
    "Instance": {
        "Name": _string(),
        "Archivable": _bool(),
    },
    "BasePart": {
        "Anchored": _bool(),
        "CanCollide": _bool(),
        "CanTouch": _bool(),
        "CanQuery": _bool(),
        "CastShadow": _bool(),
        "Locked": _bool(),
        "Massless": _bool(),
        "CFrame": _CFRAME,
        # The format spells Size in lower case for parts.
        "size": _VECTOR3,
        "Size": _VECTOR3,
        "Color": _color(),
        "Color3uint8": PropertySpec(K.COLOR3, "Color3uint8"),
        "BrickColor": PropertySpec(K.ENUM, "BrickColor", "BrickColor"),
        "Material": _token("Material"),
        "Transparency": _float(),
        "Reflectance": _float(),
        "Velocity": _VECTOR3,
        "RotVelocity": _VECTOR3,
        "TopSurface": _token("SurfaceType"),
        "BottomSurface": _token("SurfaceType"),
        "LeftSurface": _token("SurfaceType"),
        "RightSurface": _token("SurfaceType"),
        "FrontSurface": _token("SurfaceType"),
        "BackSurface": _token("SurfaceType"),
    },
    "Part": {
        "shape": _token("PartType"),
        "Shape": _token("PartType"),
    },
    "SpawnLocation": {
        "Duration": _int(),
        "Neutral": _bool(),
        "AllowTeamChangeOnTouch": _bool(),
        "TeamColor": PropertySpec(K.ENUM, "BrickColor", "BrickColor"),
    },
    "MeshPart": {
        "MeshId": _content(),
        "TextureID": _content(),
    },
    "Model": {
        "PrimaryPart": _REF,
        "LevelOfDetail": _token("ModelLevelOfDetail"),
    },
    "Workspace": {
        "CurrentCamera": _REF,
        "Gravity": _float(),
        "FilteringEnabled": _bool(),
    },
    "Lighting": {
        "Ambient": _color(),
        "OutdoorAmbient": _color(),
        "FogColor": _color(),
        "Brightness": _float(),
        "ClockTime": _float(),
        "FogEnd": _float(),
        "FogStart": _float(),
        "GlobalShadows": _bool(),
    },
    "Camera": {
        "CFrame": _CFRAME,
        "Focus": _CFRAME,
        "FieldOfView": _float(),
        "CameraSubject": _REF,
        "CameraType": _token("CameraType"),
    },
    "LuaSourceContainer": {
        "Source": PropertySpec(K.STRING, "ProtectedString"),
        "LinkedSource": _content(),
    },
    "BaseScript": {
        "Disabled": _bool(),
        "RunContext": _token("RunContext"),
    },
    "FaceInstance": {
        "Face": _token("NormalId"),
    },
    "Decal": {
        "Texture": _content(),
        "Color3": _color(),
        "Transparency": _float(),
    },
    "Texture": {
        "StudsPerTileU": _float(),
        "StudsPerTileV": _float(),
    },
    "Light": {
        "Brightness": _float(),
        "Color": _color(),
        "Enabled": _bool(),
        "Shadows": _bool(),
    },
    "PointLight": {"Range": _float()},
    "SpotLight": {"Range": _float(), "Angle": _float(), "Face": _token("NormalId")},
    "SurfaceLight": {"Range": _float(), "Angle": _float(), "Face": _token("NormalId")},
    "Sound": {
        "SoundId": _content(),
        "Volume": _float(),
        "Looped": _bool(),
        "Playing": _bool(),
    },
    "Attachment": {"CFrame": _CFRAME, "Visible": _bool()},
    "JointInstance": {
        "Part0": _REF,
        "Part1": _REF,
        "C0": _CFRAME,
        "C1": _CFRAME,
        "Enabled": _bool(),
    },
    "WeldConstraint": {"Part0": _REF, "Part1": _REF, "Enabled": _bool()},
    "ParticleEmitter": {
        "Enabled": _bool(),
        "Rate": _float(),
        "Texture": _content(),
        "Speed": _raw("NumberRange"),
        "Lifetime": _raw("NumberRange"),
    },
    "LayerCollector": {"Enabled": _bool(), "ResetOnSpawn": _bool()},
    "GuiObject": {
        "BackgroundColor3": _color(),
        "BackgroundTransparency": _float(),
        "BorderSizePixel": _int(),
        "Position": _raw("UDim2"),
        "Size": _raw("UDim2"),
        "Visible": _bool(),
        "ZIndex": _int(),
    },
    "TextLabel": {
        "Text": _string(),
        "TextColor3": _color(),
        "TextSize": _float(),
        "TextScaled": _bool(),
        "Font": _token("Font"),
    },
    "TextButton": {
        "Text": _string(),
        "TextColor3": _color(),
        "TextSize": _float(),
        "TextScaled": _bool(),
        "Font": _token("Font"),
    },
    "ImageLabel": {"Image": _content(), "ImageTransparency": _float()},
    "StringValue": {"Value": _string()},
    "IntValue": {"Value": PropertySpec(K.NUMBER, "int64")},
    "NumberValue": {"Value": _double()},
    "BoolValue": {"Value": _bool()},
    "ObjectValue": {"Value": _REF},
    "Vector3Value": {"Value": _VECTOR3},
    "CFrameValue": {"Value": _CFRAME},
    "Color3Value": {"Value": _color()},
}

MATERIALS: Dict[str, int] = {
    "Plastic": 256,
    "SmoothPlastic": 272,
    "Neon": 288,
    "Wood": 512,
    "WoodPlanks": 528,
    "Marble": 784,
    "Basalt": 788,
    "Slate": 800,
    "CrackedLava": 804,
    "Concrete": 816,
    "Limestone": 820,
    "Granite": 832,
    "Pavement": 836,
    "Brick": 848,
    "Pebble": 864,
    "Cobblestone": 880,
    "Rock": 896,
    "Sandstone": 912,
    "CorrodedMetal": 1040,
    "DiamondPlate": 1056,
    "Foil": 1072,
    "Metal": 1088,
    "Grass": 1280,
    "LeafyGrass": 1284,
    "Sand": 1296,
    "Fabric": 1312,
    "Snow": 1328,
    "Mud": 1344,
    "Ground": 1360,
    "Asphalt": 1376,
    "Salt": 1392,
    "Ice": 1536,
    "Glacier": 1552,
    "Glass": 1568,
    "ForceField": 1584,
    "Air": 1792,
    "Water": 2048,
    "Cardboard": 2304,
    "Carpet": 2305,
    "CeramicTiles": 2306,
    "ClayRoofTiles": 2307,
    "RoofShingles": 2308,
    "Leather": 2309,
    "Plaster": 2310,
    "Rubber": 2311,
}

ENUM_ITEMS: Dict[str, Dict[str, int]] = {
    "Material": MATERIALS,
    "PartType": {"Ball": 0, "Block": 1, "Cylinder": 2, "Wedge": 3, "CornerWedge": 4},
    "NormalId": {"Right": 0, "Top": 1, "Back": 2, "Left": 3, "Bottom": 4, "Front": 5},
    "RunContext": {"Legacy": 0, "Server": 1, "Client": 2, "Plugin": 3},
    "SurfaceType": {
        "Smooth": 0,
        "Glue": 1,
        "Weld": 2,
        "Studs": 3,
        "Inlet": 4,
        "Universal": 5,
        "Hinge": 6,
        "Motor": 7,
        "SteppingMotor": 8,
        "SmoothNoOutlines": 10,
    },
    "CameraType": {"Fixed": 0, "Attach": 1, "Watch": 2, "Track": 3, "Follow": 4, "Custom": 5, "Scriptable": 6, "Orbital": 7},
}


# The file format stores some properties under a different name than the API.
_ALIAS_GROUPS = (
    ("Color", "Color3uint8"),
    ("Size", "size"),
    ("Shape", "shape"),
    ("FormFactor", "formFactorRaw"),
)

PROPERTY_ALIASES: Dict[str, Tuple[str, ...]] = {
    name: tuple(other for other in group if other != name) for group in _ALIAS_GROUPS for name in group
}


def property_aliases(property_name: str) -> Tuple[str, ...]:
    return PROPERTY_ALIASES.get(property_name, ())


def expected_property(class_name: str, property_name: str) -> Optional[PropertySpec]:
    current: Optional[str] = class_name
    seen = set()
    while current and current not in seen:
        seen.add(current)
        spec = CLASS_PROPERTIES.get(current, {}).get(property_name)
        if spec is not None:
            return spec
        current = CLASS_PARENTS.get(current) or ("Instance" if current != "Instance" else None)
    return None


def enum_name_for(class_name: str, property_name: str) -> str:
    spec = expected_property(class_name, property_name)
    if spec is not None and spec.enum:
        return spec.enum
    return property_name


def enum_item_value(enum_name: str, item: str) -> Optional[int]:
    items = ENUM_ITEMS.get(enum_name)
    if not items:
        return None
    if item in items:
        return items[item]
    lowered = item.lower()
    for key, value in items.items():
        if key.lower() == lowered:
            return value
    return None


def guess_enum_name(property_name: str) -> str:
    """Enum name for a property when the owning class is not known yet."""
    for props in CLASS_PROPERTIES.values():
        spec = props.get(property_name)
        if spec is not None and spec.enum:
            return spec.enum
    return property_name
