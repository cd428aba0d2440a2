from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

from .values import InstanceRef, PropertyValue, String

ROOT_CLASS = "DataModel"
# Leading path segments that name the root itself.
ROOT_ALIASES = {"game", "DataModel"}


@dataclass(eq=False)
class Instance:
    id: int
    class_name: str
    properties: Dict[str, PropertyValue] = field(default_factory=dict)
    children: List["Instance"] = field(default_factory=list, repr=False)
    _parent: Optional["weakref.ReferenceType[Instance]"] = field(default=None, repr=False)

    @property
    def parent(self) -> Optional["Instance"]:
        if self._parent is None:
            return None
        return self._parent()

    @property
    def name(self) -> str:
        value = self.properties.get("Name")
        if isinstance(value, String):
            return value.value
        return self.class_name


class Document:
    """A decoded place: one root instance plus an id -> instance table.

    Ids come from ``next_id``; the table answers lookups in O(1) and is kept in
    sync by ``insert``/``detach``.
    """

    def __init__(self, root_class: str = ROOT_CLASS) -> None:
        self.next_id = 1
        self._index: Dict[int, Instance] = {}
        self.root = Instance(self.allocate_id(), root_class)
        self._index[self.root.id] = self.root
        self.version = "4"
        self.meta: Dict[str, str] = {}
        # Raw top-level markup before/after the instance items, kept verbatim.
        self.prologue: List[bytes] = []
        self.epilogue: List[bytes] = []

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, instance_id: object) -> bool:
        return instance_id in self._index

    def allocate_id(self) -> int:
        value = self.next_id
        self.next_id += 1
        return value

    def get(self, instance_id: int) -> Optional[Instance]:
        return self._index.get(instance_id)

    def require(self, instance_id: int) -> Instance:
        inst = self._index.get(instance_id)
        if inst is None:
            raise KeyError(f"Unknown instance id: {instance_id}")
        return inst

    def create(
        self,
        class_name: str,
        parent: Instance,
        properties: Optional[Dict[str, PropertyValue]] = None,
        index: Optional[int] = None,
    ) -> Instance:
        inst = Instance(self.allocate_id(), class_name, dict(properties or {}))
        self.insert(inst, parent, index=index)
        return inst

    def insert(self, instance: Instance, parent: Instance, index: Optional[int] = None) -> None:
        if parent.id not in self._index:
            raise KeyError(f"Parent {parent.id} is not part of this document")
        if instance.parent is not None:
            raise ValueError(f"Instance {instance.id} already has a parent")
        for node in self._subtree(instance):
            if node.id in self._index:
                raise ValueError(f"Duplicate instance id: {node.id}")
        if index is None:
            parent.children.append(instance)
        else:
            parent.children.insert(index, instance)
        instance._parent = weakref.ref(parent)
        for node in self._subtree(instance):
            self._index[node.id] = node
            if node.id >= self.next_id:
                self.next_id = node.id + 1

    def detach(self, instance: Instance) -> List[Instance]:
        """Remove ``instance`` and its descendants; returns the removed nodes."""
        if instance is self.root:
            raise ValueError("The root instance cannot be removed")
        parent = instance.parent
        if parent is not None:
            parent.children = [c for c in parent.children if c is not instance]
        instance._parent = None
        removed = list(self._subtree(instance))
        for node in removed:
            self._index.pop(node.id, None)
        return removed

    def move(self, instance: Instance, new_parent: Instance, index: Optional[int] = None) -> None:
        if instance is self.root:
            raise ValueError("The root instance cannot be reparented")
        if instance is new_parent or self.is_ancestor(instance, new_parent):
            raise ValueError(f"Moving {instance.id} under {new_parent.id} would create a cycle")
        old_parent = instance.parent
        if old_parent is not None:
            old_parent.children = [c for c in old_parent.children if c is not instance]
        if index is None:
            new_parent.children.append(instance)
        else:
            new_parent.children.insert(index, instance)
        instance._parent = weakref.ref(new_parent)

    def is_ancestor(self, ancestor: Instance, node: Instance) -> bool:
        current = node.parent
        while current is not None:
            if current is ancestor:
                return True
            current = current.parent
        return False

    def walk(self, start: Optional[Instance] = None) -> Iterator[Instance]:
        """Pre-order traversal in child order."""
        stack = [start or self.root]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def descendants(self, instance: Instance) -> Iterator[Instance]:
        walker = self.walk(instance)
        next(walker)
        return walker

    def path_of(self, instance: Instance) -> str:
        names = []
        current: Optional[Instance] = instance
        while current is not None and current is not self.root:
            names.append(current.name)
            current = current.parent
        return "/".join(reversed(names))

    def find_by_path(self, path: str) -> Optional[Instance]:
        parts = [p for p in path.strip().split("/") if p]
        if parts and parts[0] in ROOT_ALIASES:
            parts = parts[1:]
        current = self.root
        for part in parts:
            match = None
            for child in current.children:
                if child.name == part:
                    match = child
                    break
            if match is None:
                return None
            current = match
        return current

    def clone(self) -> "Document":
        doc = Document.__new__(Document)
        doc.next_id = self.next_id
        doc._index = {}
        doc.version = self.version
        doc.meta = dict(self.meta)
        doc.prologue = list(self.prologue)
        doc.epilogue = list(self.epilogue)
        doc.root = Instance(self.root.id, self.root.class_name, dict(self.root.properties))
        doc._index[doc.root.id] = doc.root
        # Values are immutable, so copying the property dicts is enough.
        pending: List[Tuple[Instance, Instance]] = [(self.root, doc.root)]
        while pending:
            src, dst = pending.pop()
            for child in src.children:
                copy = Instance(child.id, child.class_name, dict(child.properties))
                copy._parent = weakref.ref(dst)
                dst.children.append(copy)
                doc._index[copy.id] = copy
                pending.append((child, copy))
        return doc

    @staticmethod
    def _subtree(instance: Instance) -> Iterator[Instance]:
        stack = [instance]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))


def graph_signature(document: Document) -> tuple:
    """Shape of the tree with refs expressed as pre-order positions.

    Two documents with the same signature hold the same instances, classes,
    properties, and child order, whatever their ids or referents were.
    """
    positions = {inst.id: idx for idx, inst in enumerate(document.walk())}

    def value_sig(value: PropertyValue):
        if isinstance(value, InstanceRef):
            if value.target is None:
                return ("Ref", None)
            return ("Ref", positions.get(value.target, ("missing", value.target)))
        return value

    def node_sig(inst: Instance) -> tuple:
        props = tuple((name, value_sig(v)) for name, v in inst.properties.items())
        return (inst.class_name, props, tuple(node_sig(c) for c in inst.children))

    return node_sig(document.root)


def same_graph(a: Document, b: Document) -> bool:
    return graph_signature(a) == graph_signature(b)
