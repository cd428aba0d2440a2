from __future__ import annotations

import dataclasses
import logging
import threading
from typing import Dict, Optional

from .errors import ApplyCancelled, ApplyInternal, PlaceError
from .scene import Document, Instance
from .schema import enum_name_for, expected_property
from .validator import (
    Key,
    ResolvedCreate,
    ResolvedDelete,
    ResolvedOperation,
    ResolvedReparent,
    ResolvedSet,
    ValidatedPlan,
)
from .values import EnumValue, InstanceRef, PropertyValue, coerce_xml_type

logger = logging.getLogger(__name__)


def apply_plan(
    document: Document,
    validated: ValidatedPlan,
    cancel_event: Optional[threading.Event] = None,
) -> Document:
    """Apply ``validated`` to a clone of ``document`` and return the clone.

    The caller's document is never touched; on any failure the clone is dropped.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise ApplyCancelled("Edit was cancelled before apply started")

    working = document.clone()
    placeholders: Dict[str, int] = {}
    for op in validated.operations:
        if cancel_event is not None and cancel_event.is_set():
            raise ApplyCancelled("Edit was cancelled", operation_index=op.index)
        try:
            _apply_one(working, op, placeholders)
        except PlaceError:
            raise
        except Exception as exc:
            raise ApplyInternal(
                f"Operation failed after validation: {exc}",
                operation_index=op.index,
            ) from exc

    logger.info("Applied %d operations; document now has %d instances", len(validated.operations), len(working))
    return working


def _apply_one(doc: Document, op: ResolvedOperation, placeholders: Dict[str, int]) -> None:
    if isinstance(op, ResolvedCreate):
        parent = _lookup(doc, op.parent, placeholders)
        inst = Instance(doc.allocate_id(), op.class_name)
        # Registered first: initial properties may reference the new instance.
        placeholders[op.key] = inst.id
        for name, value in op.properties.items():
            inst.properties[name] = _prepare_value(inst, name, value, placeholders)
        doc.insert(inst, parent)
    elif isinstance(op, ResolvedSet):
        inst = _lookup(doc, op.target, placeholders)
        inst.properties[op.property] = _prepare_value(inst, op.property, op.value, placeholders)
    elif isinstance(op, ResolvedReparent):
        doc.move(_lookup(doc, op.target, placeholders), _lookup(doc, op.new_parent, placeholders))
    elif isinstance(op, ResolvedDelete):
        doc.detach(_lookup(doc, op.target, placeholders))
    else:
        raise TypeError(f"Unknown operation {op!r}")


def _lookup(doc: Document, key: Key, placeholders: Dict[str, int]) -> Instance:
    if isinstance(key, str):
        return doc.require(placeholders[key])
    return doc.require(key)


def _prepare_value(inst: Instance, name: str, value: PropertyValue, placeholders: Dict[str, int]) -> PropertyValue:
    if isinstance(value, InstanceRef) and isinstance(value.target, str):
        return InstanceRef(placeholders[value.target])
    if isinstance(value, EnumValue):
        enum_name = "BrickColor" if value.xml_type == "BrickColor" else enum_name_for(inst.class_name, name)
        value = dataclasses.replace(value, enum_name=enum_name)
    existing = inst.properties.get(name)
    if existing is not None and existing.kind == value.kind:
        return coerce_xml_type(value, getattr(existing, "xml_type", None))
    spec = expected_property(inst.class_name, name)
    if spec is not None:
        return coerce_xml_type(value, spec.xml_type)
    return value
