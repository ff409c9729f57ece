"""
Base schemas shared by request and response DTOs.
"""

from pydantic import BaseModel, ConfigDict


class StandardizedModel(BaseModel):
    """Response base: reads ORM objects/dataclasses, serializes enums by value."""

    model_config = ConfigDict(use_enum_values=True, populate_by_name=True, from_attributes=True)


class StrictRequestModel(BaseModel):
    """Request DTO base that always forbids unexpected fields."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True, str_strip_whitespace=True)
