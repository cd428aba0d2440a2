from __future__ import annotations

import json

import pytest

from roblox_mcp.codec import decode
from roblox_mcp.errors import PlanParseError
from roblox_mcp.pipeline import apply_plan_to_bytes
from roblox_mcp.plan import (
    CreateInstance,
    DeleteInstance,
    EditPlan,
    Reparent,
    SetProperty,
    normalize_operations,
    parse_plan_data,
    parse_plan_text,
    parse_wire_value,
    plan_from_modification,
)
from roblox_mcp.values import (
    IDENTITY_ROTATION,
    Bool,
    CFrame,
    Color3,
    EnumValue,
    InstanceRef,
    Number,
    RawBlob,
    String,
    Vector3,
)

PLAN = {
    "summary": "floor",
    "operations": [
        {
            "type": "createInstance",
            "className": "Part",
            "parent": "Workspace",
            "tempId": "floor",
            "name": "Floor",
            "properties": {"size": {"type": "Vector3", "value": [4, 1, 2]}},
        },
        {"type": "setProperty", "target": "$floor", "property": "Anchored", "value": {"type": "Bool", "value": True}},
        {"type": "reparent", "target": 12, "newParent": "Workspace/House"},
        {"type": "deleteInstance", "target": "Workspace/Old"},
    ],
}


def test_parse_canonical_plan():
    plan = parse_plan_data(PLAN)
    assert isinstance(plan, EditPlan)
    create, set_op, move, delete = plan.operations
    assert isinstance(create, CreateInstance)
    assert create.tempId == "$floor"
    assert create.properties == {"size": Vector3(4.0, 1.0, 2.0), "Name": String("Floor")}
    assert isinstance(set_op, SetProperty) and set_op.value == Bool(True)
    assert isinstance(move, Reparent) and move.target == 12 and move.newParent == "Workspace/House"
    assert isinstance(delete, DeleteInstance) and delete.target == "Workspace/Old"
    assert plan.summary == "floor"
    assert plan.describe()[2] == "reparent 12 -> Workspace/House"


def test_parse_text_strips_code_fences():
    text = "```json\n" + json.dumps(PLAN) + "\n```"
    assert len(parse_plan_text(text).operations) == 4


def test_parse_text_reads_actions_block():
    text = "Here you go <actions_json>" + json.dumps(PLAN["operations"]) + "</actions_json>"
    assert len(parse_plan_text(text).operations) == 4


def test_parse_text_recovers_object_from_prose():
    text = "Here is the plan:\n" + json.dumps(PLAN) + "\nLet me know!"
    assert parse_plan_text(text).summary == "floor"


@pytest.mark.parametrize("text", ["", "not json", "42", '{"nothing": []}', "{oops}"])
def test_parse_text_errors(text):
    with pytest.raises(PlanParseError):
        parse_plan_text(text)


def test_schema_errors_become_plan_parse_errors():
    with pytest.raises(PlanParseError) as info:
        parse_plan_data({"operations": [{"type": "createInstance", "parent": "Workspace"}]})
    assert info.value.stage == "plan"
    with pytest.raises(PlanParseError):
        parse_plan_data({"operations": [{"type": "explode", "target": 1}]})


@pytest.mark.parametrize(
    "wire, expected",
    [
        ({"type": "Vector3", "value": {"x": 1, "y": 2, "z": 3}}, Vector3(1.0, 2.0, 3.0)),
        ({"type": "CFrame", "value": {"position": [1, 2, 3]}}, CFrame((1.0, 2.0, 3.0), IDENTITY_ROTATION)),
        ({"type": "Color3", "value": [255, 0, 0]}, Color3(1.0, 0.0, 0.0)),
        ({"type": "Color3", "value": [0.2, 0.4, 0.6]}, Color3(0.2, 0.4, 0.6)),
        ({"type": "Float32", "value": 0.5}, Number(0.5, "float")),
        ({"type": "Double", "value": 1}, Number(1.0, "double")),
        ({"type": "Int64", "value": 3}, Number(3, "int64")),
        ({"type": "Content", "value": "rbxassetid://1"}, String("rbxassetid://1", "Content")),
        ({"type": "BrickColor", "value": 21}, EnumValue("BrickColor", 21, "BrickColor")),
        ({"type": "Ref", "value": "$door"}, InstanceRef("$door")),
        ({"type": "Ref", "value": None}, InstanceRef(None)),
    ],
)
def test_wire_values(wire, expected):
    assert parse_wire_value(wire, "Whatever") == expected


def test_enum_by_name_uses_enum_table():
    assert parse_wire_value({"type": "Enum", "value": "Concrete"}, "Material") == EnumValue("Material", 816)
    assert parse_wire_value({"type": "Enum", "value": "Enum.Material.neon"}, "Material") == EnumValue("Material", 288)
    assert parse_wire_value({"type": "Enum", "value": 2}, "Shape") == EnumValue("PartType", 2)
    with pytest.raises(ValueError):
        parse_wire_value({"type": "Enum", "value": "Lava"}, "Material")


def test_source_strings_become_protected():
    assert parse_wire_value({"type": "String", "value": "print(1)"}, "Source") == String("print(1)", "ProtectedString")
    assert parse_wire_value({"type": "String", "value": "x"}, "Name") == String("x", "string")


def test_udim2_becomes_raw_markup():
    value = parse_wire_value({"type": "UDim2", "value": [0.5, 10, 0, -4]}, "Size")
    assert value == RawBlob("UDim2", b"<XS>0.5</XS><XO>10</XO><YS>0</YS><YO>-4</YO>")


@pytest.mark.parametrize(
    "wire",
    [
        {"type": "Int", "value": 2.5},
        {"type": "Bool", "value": "yes"},
        {"type": "Vector3", "value": [1, 2]},
        {"type": "CFrame", "value": {"rotation": []}},
        {"type": "Quaternion", "value": [0, 0, 0, 1]},
        {"value": 3},
    ],
)
def test_bad_wire_values(wire):
    with pytest.raises(ValueError):
        parse_wire_value(wire, "P")


def test_bad_wire_value_inside_plan_is_a_parse_error():
    with pytest.raises(PlanParseError):
        parse_plan_data(
            {"operations": [{"type": "setProperty", "target": 2, "property": "X", "value": {"type": "Int", "value": 0.1}}]}
        )


def test_alias_normalization():
    ops = normalize_operations(
        [
            {"type": "create", "class": "Part", "parentPath": "Workspace", "name": "P"},
            {"op": "setProperties", "path": "Workspace/P", "properties": {"Anchored": {"type": "Bool", "value": False}}},
            {"action": "move", "path": "Workspace/P", "parent": "Workspace/House"},
            {"type": "destroy", "id": 7},
        ]
    )
    assert [op["type"] for op in ops] == ["createInstance", "setProperty", "reparent", "deleteInstance"]
    plan = parse_plan_data({"actions": ops})
    assert plan.operations[0].className == "Part"
    assert plan.operations[1].property == "Anchored"
    assert plan.operations[2].newParent == "Workspace/House"
    assert plan.operations[3].target == 7


def test_bare_operation_list_is_accepted():
    plan = parse_plan_data(PLAN["operations"])
    assert len(plan.operations) == 4


def test_legacy_modification_conversion():
    data = {
        "subtract": ["Workspace/Old"],
        "add": [
            {
                "class": "Model",
                "name": "Hut",
                "properties": {},
                "children": [
                    {"class": "Part", "name": "Wall", "properties": {"Anchored": {"type": "Bool", "value": True}}},
                ],
            },
            {"class": "PointLight", "name": "Glow", "target_parent": "Lighting"},
        ],
    }
    plan = plan_from_modification(data)
    delete, hut, wall, glow = plan.operations
    assert isinstance(delete, DeleteInstance) and delete.target == "Workspace/Old"
    assert hut.parent == "Workspace" and hut.properties["Name"] == String("Hut")
    assert wall.parent == hut.tempId
    assert wall.properties["Anchored"] == Bool(True)
    assert glow.parent == "Lighting"
    # parse_plan_data routes the legacy shape the same way
    assert len(parse_plan_data(data).operations) == 4


def test_legacy_service_names_map_to_paths():
    data = {"add": [{"class": "LocalScript", "name": "Hud", "target_parent": "StarterPlayerScripts"}]}
    (create,) = plan_from_modification(data).operations
    assert create.parent == "StarterPlayer/StarterPlayerScripts"


PLAYER_PLACE = b"""<roblox version="4">
\t<Item class="Workspace" referent="RBX0"><Properties><string name="Name">Workspace</string></Properties></Item>
\t<Item class="StarterPlayer" referent="RBX1">
\t\t<Properties><string name="Name">StarterPlayer</string></Properties>
\t\t<Item class="StarterPlayerScripts" referent="RBX2"><Properties><string name="Name">StarterPlayerScripts</string></Properties></Item>
\t</Item>
</roblox>
"""


def test_legacy_service_target_resolves_in_the_place():
    data = {"add": [{"class": "LocalScript", "name": "Hud", "target_parent": "StarterPlayerScripts"}]}
    result = apply_plan_to_bytes(PLAYER_PLACE, data)
    assert len(result.plan.operations) == 1
    hud = decode(result.output).find_by_path("StarterPlayer/StarterPlayerScripts/Hud")
    assert hud is not None and hud.class_name == "LocalScript"


def test_missing_services_are_created_ahead_of_the_adds(sample_doc, sample_bytes):
    data = {
        "add": [
            {"class": "LocalScript", "name": "Hud", "target_parent": "StarterPlayerScripts"},
            {"class": "Folder", "name": "Shared", "target_parent": "ReplicatedStorage"},
            {"class": "LocalScript", "name": "Menu", "target_parent": "StarterPlayerScripts"},
            {"class": "PointLight", "name": "Glow", "target_parent": "Lighting"},
        ]
    }
    plan = parse_plan_data(data, document=sample_doc)
    player, scripts, hud, storage, shared, menu, glow = plan.operations
    assert (player.className, player.parent) == ("StarterPlayer", sample_doc.root.id)
    assert (scripts.className, scripts.parent) == ("StarterPlayerScripts", player.tempId)
    assert hud.parent == menu.parent == scripts.tempId
    assert (storage.className, storage.parent) == ("ReplicatedStorage", sample_doc.root.id)
    assert shared.parent == storage.tempId
    assert glow.parent == "Lighting"

    updated = decode(apply_plan_to_bytes(sample_bytes, data).output)
    assert updated.find_by_path("StarterPlayer/StarterPlayerScripts/Menu") is not None
    assert updated.find_by_path("ReplicatedStorage/Shared").class_name == "Folder"
    assert len(updated.find_by_path("Lighting").children) == 1
