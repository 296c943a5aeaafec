"""
Type Inference - structural type guesses from captured JSON responses

Deliberately lossy: no unions, no nullability merging, lists are described by
their first element only.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

STRING = "String"
INT = "Int"
FLOAT = "Float"
BOOLEAN = "Boolean"
NULL = "Null"
UNKNOWN = "Unknown"
OBJECT = "Object"
LIST = "List"


@dataclass(frozen=True)
class TypeNode:
    """Inferred type: a scalar, an Object with fields, or a List of one element type."""

    kind: str
    fields: Dict[str, "TypeNode"] = field(default_factory=dict)
    of: Optional["TypeNode"] = None

    def to_dict(self) -> Any:
        """JSON-ready form: scalars as bare names, composites as {"type": ...} objects."""
        if self.kind == OBJECT:
            return {
                "type": OBJECT,
                "fields": {name: node.to_dict() for name, node in self.fields.items()},
            }
        if self.kind == LIST:
            return {
                "type": LIST,
                "of": self.of.to_dict() if self.of is not None else UNKNOWN,
            }
        return self.kind


def infer_type(value: Any) -> TypeNode:
    if value is None:
        return TypeNode(NULL)
    # bool first: True/False are ints in Python
    if isinstance(value, bool):
        return TypeNode(BOOLEAN)
    if isinstance(value, int):
        return TypeNode(INT)
    if isinstance(value, float):
        return TypeNode(INT if value.is_integer() else FLOAT)
    if isinstance(value, str):
        return TypeNode(STRING)
    if isinstance(value, dict):
        return TypeNode(OBJECT, fields={str(k): infer_type(v) for k, v in value.items()})
    if isinstance(value, (list, tuple)):
        if not value:
            return TypeNode(LIST, of=TypeNode(UNKNOWN))
        return TypeNode(LIST, of=infer_type(value[0]))
    return TypeNode(UNKNOWN)


def infer_response_types(captures: Iterable) -> Dict[str, TypeNode]:
    """
    Infer a type per top-level response key across all captures.

    Later responses overwrite earlier inferences for the same key.
    """
    types: Dict[str, TypeNode] = {}
    for capture in captures:
        response = capture.response
        if not isinstance(response, dict):
            continue
        for key, value in response.items():
            types[str(key)] = infer_type(value)
    return types
