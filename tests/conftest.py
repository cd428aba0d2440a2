from __future__ import annotations

import pytest

from roblox_mcp.codec import decode

SAMPLE_PLACE = """<roblox xmlns:xmime="http://www.w3.org/2005/05/xmlmime" xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" xsi:noNamespaceSchemaLocation="http://www.roblox.com/roblox.xsd" version="4">
\t<Meta name="ExplicitAutoJoints">true</Meta>
\t<External>null</External>
\t<External>nil</External>
\t<Item class="Workspace" referent="RBXWS">
\t\t<Properties>
\t\t\t<string name="Name">Workspace</string>
\t\t\t<Ref name="CurrentCamera">RBXCAM</Ref>
\t\t\t<float name="Gravity">196.2</float>
\t\t</Properties>
\t\t<Item class="Camera" referent="RBXCAM">
\t\t\t<Properties>
\t\t\t\t<string name="Name">Camera</string>
\t\t\t\t<CoordinateFrame name="CFrame"><X>0</X><Y>20</Y><Z>20</Z><R00>1</R00><R01>0</R01><R02>0</R02><R10>0</R10><R11>0.8</R11><R12>0.6</R12><R20>0</R20><R21>-0.6</R21><R22>0.8</R22></CoordinateFrame>
\t\t\t</Properties>
\t\t</Item>
\t\t<Item class="Model" referent="RBXHOUSE">
\t\t\t<Properties>
\t\t\t\t<string name="Name">House</string>
\t\t\t\t<Ref name="PrimaryPart">RBXDOOR</Ref>
\t\t\t</Properties>
\t\t\t<Item class="Part" referent="RBXDOOR">
\t\t\t\t<Properties>
\t\t\t\t\t<string name="Name">Door</string>
\t\t\t\t\t<bool name="Anchored">true</bool>
\t\t\t\t\t<Vector3 name="size"><X>4</X><Y>7</Y><Z>1</Z></Vector3>
\t\t\t\t\t<Color3uint8 name="Color3uint8">4294901760</Color3uint8>
\t\t\t\t\t<token name="Material">512</token>
\t\t\t\t\t<float name="Transparency">0</float>
\t\t\t\t\t<PhysicalProperties name="CustomPhysicalProperties"><CustomPhysics>true</CustomPhysics><Density>0.7</Density><Friction>0.3</Friction></PhysicalProperties>
\t\t\t\t</Properties>
\t\t\t</Item>
\t\t</Item>
\t</Item>
\t<Item class="Lighting" referent="RBXLIGHT">
\t\t<Properties>
\t\t\t<string name="Name">Lighting</string>
\t\t\t<Color3 name="Ambient"><R>0.5</R><G>0.5</G><B>0.5</B></Color3>
\t\t</Properties>
\t</Item>
\t<SharedStrings></SharedStrings>
</roblox>
"""

PHYSICS_MARKUP = (
    b"<CustomPhysics>true</CustomPhysics><Density>0.7</Density><Friction>0.3</Friction>"
)


@pytest.fixture()
def sample_bytes() -> bytes:
    return SAMPLE_PLACE.encode("utf-8")


@pytest.fixture()
def sample_doc(sample_bytes):
    return decode(sample_bytes)


@pytest.fixture()
def ids(sample_doc):
    """Instance ids of the sample place, by name."""
    return {inst.name: inst.id for inst in sample_doc.walk() if inst is not sample_doc.root}


@pytest.fixture(autouse=True)
def _isolate_config_env(monkeypatch):
    for name in ("ROBLOX_MCP_CONFIG", "ROBLOX_MCP_ADAPTER", "ROBLOX_MCP_MODEL"):
        monkeypatch.delenv(name, raising=False)
