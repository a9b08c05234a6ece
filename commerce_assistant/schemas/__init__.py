"""Pydantic schemas for request/response validation."""

from commerce_assistant.schemas.common import HealthResponse

__all__ = [
    "HealthResponse",
]
