"""
Base Pydantic schemas with common patterns.

The public API speaks camelCase JSON (``instanceId``, ``hasQr``, ``createdAt``);
Python code uses snake_case attributes and the alias generator bridges the two.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    """Base schema with common configuration."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
        validate_assignment=True,
        str_strip_whitespace=True,
    )

    def to_response(self) -> dict:
        """camelCase dict without unset optional fields."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ErrorResponse(BaseModel):
    """Error response schema."""

    error: str = Field(..., description="Error message")
    code: Optional[str] = Field(None, description="Error code")
    details: Optional[object] = Field(None, description="Detailed error information")
