"""End-to-end edit pipeline.

bytes -> decode -> summary -> model -> plan -> validate -> apply -> encode -> bytes.
Every stage raises a PlaceError subclass on failure; nothing is written here,
callers persist ``EditResult.output`` only after a successful run.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .codec import decode, encode
from .engine import apply_plan
from .errors import ApplyCancelled, CollaboratorError, DanglingReferenceWarning
from .plan import EditPlan, parse_plan_data, parse_plan_text
from .prompts import SYSTEM_PROMPT, build_prompt
from .scene import Document
from .summary import build_summary
from .validator import ValidatedPlan, validate

logger = logging.getLogger(__name__)


@dataclass
class EditResult:
    document: Document
    output: bytes
    plan: EditPlan
    validated: ValidatedPlan
    warnings: List[DanglingReferenceWarning] = field(default_factory=list)
    response_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.plan.summary,
            "operations": self.plan.describe(),
            "operationCount": len(self.plan.operations),
            "instanceCount": len(self.document) - 1,
            "warnings": [w.to_dict() for w in self.warnings],
        }


def request_plan(
    document: Document,
    prompt: str,
    adapter: Any,
    context: Optional[str] = None,
) -> tuple:
    """Ask the model collaborator for a plan; returns ``(plan, raw_text)``."""
    request = build_prompt(build_summary(document), prompt, context)
    logger.debug("Prompt is %d characters", len(request))
    try:
        text = adapter.complete(request, system=SYSTEM_PROMPT)
    except Exception as exc:
        raise CollaboratorError(f"Model call failed: {exc}") from exc
    logger.debug("Model replied with %d characters", len(text or ""))
    return parse_plan_text(text, document=document), text


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise ApplyCancelled("Edit was cancelled upstream")


def apply_to_document(
    document: Document,
    plan: EditPlan,
    cancel_event: Optional[threading.Event] = None,
    check_references: bool = False,
) -> tuple:
    """Validate and apply; returns ``(new_document, validated_plan)``."""
    validated = validate(document, plan, check_references=check_references)
    _check_cancelled(cancel_event)
    return apply_plan(document, validated, cancel_event=cancel_event), validated


def apply_plan_to_bytes(
    source: Union[bytes, str],
    plan: Union[EditPlan, Dict[str, Any], str],
    cancel_event: Optional[threading.Event] = None,
    check_references: bool = False,
) -> EditResult:
    document = decode(source)
    if isinstance(plan, str):
        plan = parse_plan_text(plan, document=document)
    elif not isinstance(plan, EditPlan):
        plan = parse_plan_data(plan, document=document)
    updated, validated = apply_to_document(document, plan, cancel_event, check_references)
    return EditResult(
        document=updated,
        output=encode(updated),
        plan=plan,
        validated=validated,
        warnings=list(validated.warnings),
    )


def run_edit(
    source: Union[bytes, str],
    prompt: str,
    adapter: Any,
    context: Optional[str] = None,
    cancel_event: Optional[threading.Event] = None,
    check_references: bool = False,
) -> EditResult:
    document = decode(source)
    plan, text = request_plan(document, prompt, adapter, context)
    _check_cancelled(cancel_event)
    logger.info("Model proposed %d operations", len(plan.operations))
    updated, validated = apply_to_document(document, plan, cancel_event, check_references)
    return EditResult(
        document=updated,
        output=encode(updated),
        plan=plan,
        validated=validated,
        warnings=list(validated.warnings),
        response_text=text,
    )
