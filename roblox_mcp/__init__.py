from .codec import decode, encode
from .engine import apply_plan
from .errors import DanglingReferenceWarning, PlaceError
from .pipeline import EditResult, apply_plan_to_bytes, run_edit
from .plan import EditPlan, parse_plan_data, parse_plan_text
from .scene import Document, Instance, same_graph
from .validator import ValidatedPlan, validate

__version__ = "0.1.0"

__all__ = [
    "DanglingReferenceWarning",
    "Document",
    "EditPlan",
    "EditResult",
    "Instance",
    "PlaceError",
    "ValidatedPlan",
    "apply_plan",
    "apply_plan_to_bytes",
    "decode",
    "encode",
    "parse_plan_data",
    "parse_plan_text",
    "run_edit",
    "same_graph",
    "validate",
]
