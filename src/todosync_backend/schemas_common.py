from __future__ import annotations

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Error body shared by every endpoint."""

    error: str
    message: str
    request_id: str | None = None
    details: object | None = None


class HealthResponse(BaseModel):
    ok: bool = True
