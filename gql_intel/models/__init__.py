from .operation_schema import Capture, KIND_ORDER, Operation, OperationKind, is_required_type

__all__ = [
    "Capture",
    "KIND_ORDER",
    "Operation",
    "OperationKind",
    "is_required_type",
]
