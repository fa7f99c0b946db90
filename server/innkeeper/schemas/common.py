"""Common Pydantic schemas."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class Violation(BaseModel):
    """Validation error violation."""

    path: str = Field(..., description="JSON path to the invalid field")
    message: str = Field(..., description="Validation error message")


class Problem(BaseModel):
    """RFC 9457 Problem Details response."""

    type: Optional[str] = Field(None, description="Problem type URI")
    title: str = Field(..., description="Short human-readable summary")
    status: int = Field(..., description="HTTP status code")
    detail: Optional[str] = Field(None, description="Human-readable explanation")
    instance: Optional[str] = Field(None, description="URI reference for this occurrence")
    code: Optional[str] = Field(None, description="Engine reason code")
    retryable: Optional[bool] = Field(None, description="Whether the operation can be retried")
    context: Optional[Dict[str, Any]] = Field(None, description="Identifiers involved in the rejection")
    violations: Optional[List[Violation]] = Field(None, description="Validation errors")


# Documented error bodies shared by every engine route
PROBLEM_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    404: {"model": Problem, "description": "Room or booking not found"},
    409: {"model": Problem, "description": "Conflict or invalid lifecycle state"},
    422: {"model": Problem, "description": "Invalid dates, guest count or amount"},
    503: {"model": Problem, "description": "Lock timeout or persistence unavailable; retry later"},
}
