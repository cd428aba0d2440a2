"""Checks an EditPlan against a simulated view of a Document.

Nothing here mutates the document. The first fatal problem is raised as a
ValidationError subclass; dangling-reference advisories are collected on the
returned ValidatedPlan.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple, Union

from .errors import (
    CycleDetected,
    DanglingReferenceWarning,
    InvalidOperation,
    TypeMismatch,
    UnknownInstance,
    UnknownParent,
)
from .plan import CreateInstance, DeleteInstance, EditPlan, Reparent, SetProperty, is_placeholder
from .scene import Document
from .schema import expected_property, property_aliases
from .values import InstanceRef, PropertyKind, PropertyValue, RawBlob

logger = logging.getLogger(__name__)

MAX_OPERATIONS = int(os.environ.get("ROBLOX_MCP_MAX_OPERATIONS", "500"))

# A document id, or a "$placeholder" for an instance the plan creates.
Key = Union[int, str]


@dataclass(frozen=True)
class ResolvedCreate:
    index: int
    class_name: str
    parent: Key
    key: str
    properties: Dict[str, PropertyValue]


@dataclass(frozen=True)
class ResolvedSet:
    index: int
    target: Key
    property: str
    value: PropertyValue


@dataclass(frozen=True)
class ResolvedReparent:
    index: int
    target: Key
    new_parent: Key


@dataclass(frozen=True)
class ResolvedDelete:
    index: int
    target: Key


ResolvedOperation = Union[ResolvedCreate, ResolvedSet, ResolvedReparent, ResolvedDelete]


@dataclass
class ValidatedPlan:
    operations: List[ResolvedOperation]
    warnings: List[DanglingReferenceWarning] = field(default_factory=list)
    summary: Optional[str] = None

    def __len__(self) -> int:
        return len(self.operations)


class _Simulation:
    """Parent/child/class bookkeeping for the document as the plan would leave it."""

    def __init__(self, document: Document) -> None:
        self.document = document
        self.parent: Dict[Key, Optional[Key]] = {}
        self.children: Dict[Key, List[Key]] = {}
        self.class_name: Dict[Key, str] = {}
        self.kinds: Dict[Tuple[Key, str], PropertyKind] = {}
        self.assigned: Dict[Tuple[Key, str], PropertyValue] = {}
        self.deleted: Set[Key] = set()
        self.placeholders: Set[str] = set()
        for inst in document.walk():
            parent = inst.parent
            self.parent[inst.id] = parent.id if parent is not None else None
            self.children[inst.id] = [c.id for c in inst.children]
            self.class_name[inst.id] = inst.class_name

    def alive(self, key: Key) -> bool:
        return key in self.class_name and key not in self.deleted

    def subtree(self, key: Key) -> List[Key]:
        out = []
        stack = [key]
        while stack:
            node = stack.pop()
            out.append(node)
            stack.extend(self.children.get(node, ()))
        return out

    def is_ancestor(self, ancestor: Key, node: Key) -> bool:
        current = self.parent.get(node)
        while current is not None:
            if current == ancestor:
                return True
            current = self.parent.get(current)
        return False

    def has_property(self, key: Key, prop: str) -> bool:
        if (key, prop) in self.assigned:
            return True
        if isinstance(key, int):
            inst = self.document.get(key)
            return inst is not None and prop in inst.properties
        return False

    def stored_name(self, key: Key, prop: str) -> str:
        """The spelling already present on the instance, so a set replaces it."""
        if self.has_property(key, prop):
            return prop
        for alias in property_aliases(prop):
            if self.has_property(key, alias):
                return alias
        return prop

    def existing_kind(self, key: Key, prop: str) -> Optional[PropertyKind]:
        kind = self.kinds.get((key, prop))
        if kind is not None:
            return kind
        if isinstance(key, int):
            inst = self.document.get(key)
            if inst is not None and prop in inst.properties:
                return inst.properties[prop].kind
        return None


def validate(
    document: Document,
    plan: EditPlan,
    check_references: bool = False,
    max_operations: Optional[int] = None,
) -> ValidatedPlan:
    limit = MAX_OPERATIONS if max_operations is None else max_operations
    if len(plan.operations) > limit:
        raise InvalidOperation(f"Plan has too many operations: {len(plan.operations)} > {limit}")

    sim = _Simulation(document)
    resolved: List[ResolvedOperation] = []

    for idx, op in enumerate(plan.operations):
        if isinstance(op, CreateInstance):
            resolved.append(_check_create(sim, idx, op))
        elif isinstance(op, SetProperty):
            resolved.append(_check_set(sim, idx, op))
        elif isinstance(op, Reparent):
            resolved.append(_check_reparent(sim, idx, op))
        elif isinstance(op, DeleteInstance):
            resolved.append(_check_delete(sim, idx, op))
        else:
            raise InvalidOperation(f"Unsupported operation {op!r}", operation_index=idx)

    warnings = _dangling_references(sim) if check_references else []
    for warning in warnings:
        logger.info("Dangling reference: %s", warning.message)
    logger.debug("Validated %d operations (%d warnings)", len(resolved), len(warnings))
    return ValidatedPlan(operations=resolved, warnings=warnings, summary=plan.summary)


def _resolve(sim: _Simulation, ref: Union[int, str], idx: int, error=UnknownInstance) -> Key:
    if isinstance(ref, int):
        key: Optional[Key] = ref
        label = f"id {ref}"
    elif is_placeholder(ref):
        if ref not in sim.placeholders:
            raise error(f"Placeholder {ref} is not created by an earlier operation", operation_index=idx)
        key = ref
        label = ref
    else:
        # Paths name instances as the document was before the plan.
        inst = sim.document.find_by_path(ref)
        if inst is None:
            raise error(f"No instance at path {ref!r}", operation_index=idx, location=ref)
        key = inst.id
        label = f"{ref!r} (id {inst.id})"
    if key in sim.deleted:
        raise error(f"Instance {label} was deleted earlier in the plan", operation_index=idx)
    if not sim.alive(key):
        raise error(f"Unknown instance {label}", operation_index=idx)
    return key


def _instance_id(key: Key) -> Optional[int]:
    return key if isinstance(key, int) else None


def _check_value(
    sim: _Simulation,
    idx: int,
    key: Key,
    prop: str,
    value: PropertyValue,
    requested: Optional[str] = None,
) -> PropertyValue:
    class_name = sim.class_name[key]
    spec = expected_property(class_name, prop)
    expected = spec.kind if spec is not None else sim.existing_kind(key, prop)
    location = f"{class_name}.{requested or prop}"
    if expected is not None and value.kind != expected:
        raise TypeMismatch(
            f"{location} expects {expected.value}, got {value.kind.value}",
            operation_index=idx,
            instance_id=_instance_id(key),
            location=location,
        )
    if spec is not None and spec.kind == PropertyKind.RAW and isinstance(value, RawBlob):
        if spec.xml_type and value.type_tag != spec.xml_type:
            raise TypeMismatch(
                f"{location} expects {spec.xml_type}, got {value.type_tag}",
                operation_index=idx,
                instance_id=_instance_id(key),
                location=location,
            )
    if isinstance(value, InstanceRef) and value.target is not None:
        value = InstanceRef(_resolve(sim, value.target, idx))
    sim.kinds[(key, prop)] = value.kind
    sim.assigned[(key, prop)] = value
    return value


def _check_create(sim: _Simulation, idx: int, op: CreateInstance) -> ResolvedCreate:
    parent = _resolve(sim, op.parent, idx, error=UnknownParent)
    if op.tempId is not None and op.tempId in sim.placeholders:
        raise InvalidOperation(f"Placeholder {op.tempId} is declared twice", operation_index=idx)
    key = op.tempId or f"$op{idx}"
    sim.placeholders.add(key)
    sim.class_name[key] = op.className
    sim.parent[key] = parent
    sim.children[key] = []
    sim.children[parent].append(key)
    properties = {name: _check_value(sim, idx, key, name, value) for name, value in op.properties.items()}
    return ResolvedCreate(idx, op.className, parent, key, properties)


def _check_set(sim: _Simulation, idx: int, op: SetProperty) -> ResolvedSet:
    target = _resolve(sim, op.target, idx)
    prop = sim.stored_name(target, op.property)
    if prop != op.property:
        logger.debug("Setting %s as stored property %s", op.property, prop)
    value = _check_value(sim, idx, target, prop, op.value, requested=op.property)
    return ResolvedSet(idx, target, prop, value)


def _check_reparent(sim: _Simulation, idx: int, op: Reparent) -> ResolvedReparent:
    target = _resolve(sim, op.target, idx)
    new_parent = _resolve(sim, op.newParent, idx, error=UnknownParent)
    if target == sim.document.root.id:
        raise InvalidOperation("The root instance cannot be reparented", operation_index=idx, instance_id=target)
    if target == new_parent or sim.is_ancestor(target, new_parent):
        raise CycleDetected(
            f"Moving {target} under {new_parent} would make it its own ancestor",
            operation_index=idx,
            instance_id=_instance_id(target),
        )
    old_parent = sim.parent[target]
    if old_parent is not None:
        sim.children[old_parent].remove(target)
    sim.children[new_parent].append(target)
    sim.parent[target] = new_parent
    return ResolvedReparent(idx, target, new_parent)


def _check_delete(sim: _Simulation, idx: int, op: DeleteInstance) -> ResolvedDelete:
    target = _resolve(sim, op.target, idx)
    if target == sim.document.root.id:
        raise InvalidOperation("The root instance cannot be deleted", operation_index=idx, instance_id=target)
    old_parent = sim.parent[target]
    if old_parent is not None:
        sim.children[old_parent].remove(target)
    sim.deleted.update(sim.subtree(target))
    return ResolvedDelete(idx, target)


def _dangling_references(sim: _Simulation) -> List[DanglingReferenceWarning]:
    """Refs from surviving instances into deleted subtrees, one per property."""
    if not sim.deleted:
        return []
    warnings: List[DanglingReferenceWarning] = []
    seen: Set[Tuple[Key, str]] = set()

    def report(key: Key, prop: str, target: Key) -> None:
        if (key, prop) in seen:
            return
        seen.add((key, prop))
        warnings.append(
            DanglingReferenceWarning(
                f"{sim.class_name[key]}.{prop} on {key} still references deleted instance {target}",
                instance_id=key if isinstance(key, int) else -1,
                property_name=prop,
                target_id=target if isinstance(target, int) else -1,
            )
        )

    for (key, prop), value in sim.assigned.items():
        if sim.alive(key) and isinstance(value, InstanceRef) and value.target in sim.deleted:
            report(key, prop, value.target)
    for inst in sim.document.walk():
        if inst.id in sim.deleted:
            continue
        for prop, value in inst.properties.items():
            if (inst.id, prop) in sim.assigned:
                continue
            if isinstance(value, InstanceRef) and value.target in sim.deleted:
                report(inst.id, prop, value.target)
    return warnings
