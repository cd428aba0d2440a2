from __future__ import annotations

import json
import threading

import pytest

from companion.adapters.echo import EchoAdapter
from roblox_mcp.codec import decode
from roblox_mcp.errors import ApplyCancelled, CollaboratorError, InvalidStructure, PlanParseError
from roblox_mcp.pipeline import apply_plan_to_bytes, run_edit
from roblox_mcp.prompts import SYSTEM_PROMPT, build_prompt
from roblox_mcp.summary import build_summary, tree_lines

PLAN = {
    "summary": "Add a lamp",
    "operations": [
        {
            "type": "createInstance",
            "className": "Part",
            "parent": "Workspace",
            "tempId": "$lamp",
            "name": "Lamp",
            "properties": {"Material": {"type": "Enum", "value": "Neon"}},
        },
        {"type": "createInstance", "className": "PointLight", "parent": "$lamp"},
    ],
}


class RecordingAdapter:
    name = "recording"
    type = "recording"

    def __init__(self, reply):
        self.reply = reply
        self.calls = []

    def complete(self, prompt, system=None):
        self.calls.append((prompt, system))
        return self.reply


class FailingAdapter:
    def complete(self, prompt, system=None):
        raise RuntimeError("Gemini request failed: 429 quota")


def test_run_edit_with_canned_model_reply(sample_bytes):
    adapter = EchoAdapter("echo", {"response": PLAN})
    result = run_edit(sample_bytes, "add a lamp", adapter)
    lamp = result.document.find_by_path("Workspace/Lamp")
    assert lamp is not None and lamp.class_name == "Part"
    assert [c.class_name for c in lamp.children] == ["PointLight"]
    assert decode(result.output).find_by_path("Workspace/Lamp/PointLight") is not None
    assert result.response_text == json.dumps(PLAN)
    info = result.to_dict()
    assert info["operationCount"] == 2
    assert info["instanceCount"] == 7
    assert info["summary"] == "Add a lamp"


def test_prompt_carries_summary_request_and_context(sample_bytes):
    adapter = RecordingAdapter(json.dumps({"operations": []}))
    run_edit(sample_bytes, "make it night", adapter, context="House style: medieval")
    ((prompt, system),) = adapter.calls
    assert system == SYSTEM_PROMPT
    assert "make it night" in prompt
    assert "House style: medieval" in prompt
    assert '"instanceCount": 5' in prompt
    assert "Neon=288" in prompt


def test_collaborator_failure_is_wrapped(sample_bytes):
    with pytest.raises(CollaboratorError) as info:
        run_edit(sample_bytes, "anything", FailingAdapter())
    assert "429" in str(info.value)
    assert info.value.stage == "model"


def test_unparsable_reply(sample_bytes):
    with pytest.raises(PlanParseError):
        run_edit(sample_bytes, "anything", RecordingAdapter("Sure! I added a lamp."))


def test_cancel_after_model_call(sample_bytes):
    event = threading.Event()

    class CancellingAdapter(RecordingAdapter):
        def complete(self, prompt, system=None):
            event.set()
            return super().complete(prompt, system)

    with pytest.raises(ApplyCancelled):
        run_edit(sample_bytes, "add", CancellingAdapter(json.dumps(PLAN)), cancel_event=event)


def test_decode_errors_stop_before_the_model_call():
    adapter = RecordingAdapter("{}")
    with pytest.raises(InvalidStructure):
        run_edit(b"<place/>", "add", adapter)
    assert adapter.calls == []


def test_apply_plan_to_bytes_accepts_text_and_dicts(sample_bytes):
    from_dict = apply_plan_to_bytes(sample_bytes, PLAN)
    from_text = apply_plan_to_bytes(sample_bytes, "```json\n" + json.dumps(PLAN) + "\n```")
    assert from_dict.output == from_text.output
    assert from_dict.response_text is None


def test_warnings_travel_with_the_result(sample_bytes):
    plan = {"operations": [{"type": "deleteInstance", "target": "Workspace/Camera"}]}
    result = apply_plan_to_bytes(sample_bytes, plan, check_references=True)
    assert [w.property_name for w in result.warnings] == ["CurrentCamera"]
    assert result.to_dict()["warnings"][0]["property"] == "CurrentCamera"


def test_summary_counts(sample_doc):
    summary = build_summary(sample_doc)
    assert summary["instanceCount"] == 5
    assert summary["classHistogram"] == {"Camera": 1, "Lighting": 1, "Model": 1, "Part": 1, "Workspace": 1}
    assert summary["services"] == ["Workspace", "Lighting"]
    assert summary["tree"][0].startswith("Workspace 'Workspace' (id 2)")
    door_line = next(line for line in summary["tree"] if "'Door'" in line)
    assert door_line.startswith("    Part")
    assert "Material=Material:512" in door_line
    json.dumps(summary)


def test_tree_dump_is_bounded(sample_doc):
    lines = tree_lines(sample_doc, max_lines=2)
    assert len(lines) == 3
    assert lines[-1] == "... 3 more instances omitted"


def test_build_prompt_without_summary():
    prompt = build_prompt(None, "hello")
    assert prompt.endswith("User request:\n\nhello")
    assert "Place summary" not in prompt
