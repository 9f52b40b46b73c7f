from __future__ import annotations
from typing import Optional


class FlowError(Exception):
    """Base for every failure a flow run can end in. `kind` is the tag callers log."""
    kind = "FlowError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class SchemaViolation(FlowError):
    kind = "SchemaViolation"

    def __init__(self, path: str, expected: str, actual: str, message: Optional[str] = None):
        self.path = path
        self.expected = expected
        self.actual = actual
        super().__init__(message or f"{path}: expected {expected}, got {actual}")

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({"path": self.path, "expected": self.expected, "actual": self.actual})
        return data


class OutputSchemaViolation(SchemaViolation):
    kind = "OutputSchemaViolation"


class TemplateBindingError(FlowError):
    kind = "TemplateBindingError"


class UnsupportedMediaError(FlowError):
    kind = "UnsupportedMediaError"


class ModelUnavailable(FlowError):
    kind = "ModelUnavailable"


class ToolArgumentError(FlowError):
    kind = "ToolArgumentError"

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"Invalid arguments for tool '{tool_name}': {message}")
