"""Response envelopes shared by every endpoint.

Success bodies are {"data": ...}. Failures are
{"error": {"code": ..., "message": ..., "details": [...]}} and are only
built by the exception handlers in app.main.
"""

from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class DataResponse(BaseModel, Generic[T]):
    """Success envelope, e.g. DataResponse(data=flow.snapshot())."""

    data: T


class ErrorDetail(BaseModel):
    """Body of the error envelope.

    Attributes:
        code: Stable machine-readable code, e.g. "STEP_VALIDATION_FAILED".
        message: Text safe to show the provider.
        details: Extra context such as the failing field or redirect hints.
    """

    code: str
    message: str
    details: list[dict] | None = None


class ErrorResponse(BaseModel):
    error: ErrorDetail
