#!/usr/bin/env python3
"""
Operation Schema - Pydantic models for recovered GraphQL operations and network captures

Rules:
- kind: MUST be query, mutation or subscription
- name: empty names are stored as None (anonymous operation)
- variables: declared type strings are kept verbatim, never validated
- both models are frozen: a changed operation is a new instance
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OperationKind(str, Enum):
    QUERY = "query"
    MUTATION = "mutation"
    SUBSCRIPTION = "subscription"


# Group order used by the exporters
KIND_ORDER = (OperationKind.QUERY, OperationKind.MUTATION, OperationKind.SUBSCRIPTION)


class Operation(BaseModel):
    """One query/mutation/subscription definition."""

    model_config = ConfigDict(frozen=True)

    kind: OperationKind
    name: Optional[str] = None
    variables: Dict[str, str] = Field(default_factory=dict)
    fields: Tuple[str, ...] = ()
    raw_text: str = ""

    @field_validator('kind', mode='before')
    @classmethod
    def validate_kind(cls, v):
        if isinstance(v, str):
            v = v.strip().lower()
        return v

    @field_validator('name', mode='before')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('variables', mode='before')
    @classmethod
    def validate_variables(cls, v) -> Dict[str, str]:
        if not v:
            return {}
        return {str(name): str(type_).strip() for name, type_ in dict(v).items()}

    @property
    def signature(self) -> str:
        """`kind name($a: T, $b: U)` in declaration order."""
        sig = self.kind.value
        if self.name:
            sig += f" {self.name}"
        if self.variables:
            params = ", ".join(f"${name}: {type_}" for name, type_ in self.variables.items())
            sig += f"({params})"
        return sig

    def variable_types(self) -> Dict[str, Dict[str, Any]]:
        """Declared type plus required flag (trailing `!`) per variable."""
        return {
            name: {"type": type_, "required": is_required_type(type_)}
            for name, type_ in self.variables.items()
        }


class Capture(BaseModel):
    """One observed network exchange that looks like a GraphQL call."""

    model_config = ConfigDict(frozen=True)

    query: str = ""
    variables: Dict[str, Any] = Field(default_factory=dict)
    response: Optional[Any] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_url: str = ""
    operation_name: Optional[str] = None

    @field_validator('variables', mode='before')
    @classmethod
    def validate_variables(cls, v) -> Dict[str, Any]:
        # Clients sometimes send `variables: null` or a JSON-encoded string
        if not isinstance(v, dict):
            return {}
        return v

    @property
    def has_response(self) -> bool:
        return self.response is not None


def is_required_type(type_string: str) -> bool:
    """A declared variable type is required when it ends with `!`."""
    return (type_string or "").strip().endswith("!")
