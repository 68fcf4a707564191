"""
core/results.py -- Tagged result envelope returned by every server action.

Shape on the wire:
    {"success": true}                       or
    {"success": true, "data": {...}}        or
    {"success": false, "error": "message"}

Actions never raise for expected failures. They catch, log, and return
ActionResult.fail(...) so templates and JSON routes render one shape.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ValidationError


class ActionResult(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ActionResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ActionResult":
        # An empty error would render as a silent failure in the UI.
        return cls(success=False, error=error or "Something went wrong")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def first_error(exc: ValidationError) -> str:
    """Return the first human-readable message from a pydantic ValidationError."""
    errors = exc.errors()
    if not errors:
        return "Invalid input"
    return str(errors[0].get("msg") or "Invalid input")
