# reengine/core/exceptions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class BaseEngineError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(BaseEngineError):
    """Record not found."""
    def __init__(self, message: str = "Record not found", **kwargs):
        super().__init__(message, status_code=404, **kwargs)


class ValidationError(BaseEngineError):
    """Input validation error."""
    def __init__(self, message: str = "Validation error", **kwargs):
        super().__init__(message, status_code=422, **kwargs)


class ConflictError(BaseEngineError):
    """Record conflict."""
    def __init__(self, message: str = "Record conflict", **kwargs):
        super().__init__(message, status_code=409, **kwargs)


class InvalidTransitionError(ConflictError):
    """Approval status transition not allowed."""

    def __init__(self, approval_id: str, current: str, target: str):
        super().__init__(
            f"Approval {approval_id} cannot move from {current} to {target}",
            code="invalid_transition",
            details={"approval_id": approval_id, "from": current, "to": target},
        )
        self.approval_id = approval_id
        self.current = current
        self.target = target


class StoreError(BaseEngineError):
    """Record store error."""
    def __init__(self, message: str = "Store error", **kwargs):
        super().__init__(message, status_code=500, **kwargs)


class SchemaError(StoreError):
    """A table on disk does not match its schema."""


class HeaderMismatchError(SchemaError):
    def __init__(self, file: str, expected: List[str], found: List[str]):
        super().__init__(
            f"CSV headers mismatch for {file}\n"
            f"Expected: {','.join(expected)}\n"
            f"Found:    {','.join(found)}",
            code="header_mismatch",
            details={"file": file, "expected": list(expected), "found": list(found)},
        )
        self.file = file
        self.expected = list(expected)
        self.found = list(found)


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    value: Any = None


class RecordValidationError(SchemaError):
    def __init__(self, table: str, errors: List[FieldError], row_number: Optional[int] = None):
        where = f"{table} row {row_number}" if row_number is not None else table
        summary = "; ".join(f"{e.field}: {e.message}" for e in errors)
        super().__init__(
            f"Invalid record in {where}: {summary}",
            code="invalid_record",
            details={
                "table": table,
                "row_number": row_number,
                "errors": [{"field": e.field, "message": e.message} for e in errors],
            },
        )
        self.table = table
        self.errors = list(errors)
        self.row_number = row_number


class StorageWriteError(StoreError):
    """Writing a table to disk failed."""
    def __init__(self, message: str = "Storage write failed", **kwargs):
        super().__init__(message, code=kwargs.pop("code", "storage_write_failed"), **kwargs)


class AdapterError(BaseEngineError):
    """Channel adapter error."""
    def __init__(self, message: str = "Channel adapter error", **kwargs):
        super().__init__(message, status_code=502, **kwargs)
