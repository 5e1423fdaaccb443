"""
Pydantic schemas for the SOS API.

Only response bodies are modelled here. The request body is validated by
``backend.app.alerts.validator`` so that every violated field is reported
in one 400 response in the service's own error format.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class SosRequestExample(BaseModel):
    """Documented request shape (OpenAPI only)."""
    recipients: List[str] = Field(
        ..., examples=[["mom@example.com", "+919876543210"]],
        description="Email addresses, E.164 phone numbers or push device tokens",
    )
    message: str = Field(..., examples=["I need help. Please call me."])
    senderEmail: Optional[str] = Field(None, examples=["me@example.com"])
    includeLocation: bool = Field(False, description="Append the recent location timeline")


class SosSuccessResponse(BaseModel):
    """Alert accepted by one channel."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    via: str = Field(..., examples=["api"], description="Channel that accepted the alert")
    request_id: str = Field(..., alias="requestId")


class FieldViolationOut(BaseModel):
    field: str
    reason: str


class AttemptSummary(BaseModel):
    channel: str
    outcome: str
    error_kind: Optional[str] = None


class ErrorResponse(BaseModel):
    """Error body shared by every non-2xx response."""
    model_config = ConfigDict(populate_by_name=True)

    error: str
    code: str = Field(..., examples=["VALIDATION_ERROR"])
    request_id: str = Field(..., alias="requestId")
    fields: Optional[List[FieldViolationOut]] = None
    attempts: Optional[List[AttemptSummary]] = None
