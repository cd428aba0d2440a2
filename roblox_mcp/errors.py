from __future__ import annotations

from typing import Optional


class PlaceError(Exception):
    """Base class for every failure the place pipeline surfaces to callers."""

    stage = "pipeline"

    def __init__(
        self,
        message: str,
        *,
        instance_id: Optional[int] = None,
        location: Optional[str] = None,
        operation_index: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.instance_id = instance_id
        self.location = location
        self.operation_index = operation_index

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        out = {"kind": self.kind, "stage": self.stage, "message": self.message}
        if self.instance_id is not None:
            out["instanceId"] = self.instance_id
        if self.location:
            out["location"] = self.location
        if self.operation_index is not None:
            out["operationIndex"] = self.operation_index
        return out

    def __str__(self) -> str:
        parts = [self.message]
        if self.operation_index is not None:
            parts.append(f"operation {self.operation_index}")
        if self.instance_id is not None:
            parts.append(f"instance {self.instance_id}")
        if self.location:
            parts.append(f"at {self.location}")
        if len(parts) == 1:
            return self.message
        return f"{parts[0]} ({', '.join(parts[1:])})"


# Decode
class DecodeError(PlaceError):
    stage = "decode"


class InvalidStructure(DecodeError):
    pass


class MalformedProperty(DecodeError):
    pass


class UnresolvedReference(DecodeError):
    pass


# Plan parsing (model response -> EditPlan)
class PlanParseError(PlaceError):
    stage = "plan"


# Validation
class ValidationError(PlaceError):
    stage = "validate"


class UnknownParent(ValidationError):
    pass


class UnknownInstance(ValidationError):
    pass


class TypeMismatch(ValidationError):
    pass


class CycleDetected(ValidationError):
    pass


class InvalidOperation(ValidationError):
    pass


class DanglingReferenceWarning(UserWarning):
    """Advisory only: a deleted instance is still referenced elsewhere.

    Collected on the validated plan and reported next to a successful result.
    """

    def __init__(self, message: str, *, instance_id: int, property_name: str, target_id: int) -> None:
        super().__init__(message)
        self.message = message
        self.instance_id = instance_id
        self.property_name = property_name
        self.target_id = target_id

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "instanceId": self.instance_id,
            "property": self.property_name,
            "targetId": self.target_id,
        }


# Apply
class ApplyError(PlaceError):
    stage = "apply"


class ApplyInternal(ApplyError):
    pass


class ApplyCancelled(ApplyError):
    pass


# External model call
class CollaboratorError(PlaceError):
    stage = "model"
