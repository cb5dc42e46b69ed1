"""Request and response models for the HTTP API."""

from __future__ import annotations

import math
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt, StrictStr, field_validator

Coordinate = Union[StrictInt, StrictFloat]


class LoginPayload(BaseModel):
    username: StrictStr
    password: StrictStr


class AnnotationPayload(BaseModel):
    """Body accepted by ``POST /api/annotations``. Unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")

    text: StrictStr = Field(..., min_length=1, description="Annotation text, truncated on save.")
    x: Coordinate = Field(..., description="Horizontal position.")
    y: Coordinate = Field(..., description="Vertical position.")

    @field_validator("x", "y", mode="before")
    @classmethod
    def reject_non_finite(cls, value):
        if isinstance(value, bool):
            raise ValueError("Coordinates must be numbers.")
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("Coordinates must be finite.")
        return value


class Annotation(BaseModel):
    id: str
    text: str
    x: Coordinate
    y: Coordinate
    userId: str
    createdAt: str


class SuccessResponse(BaseModel):
    success: bool = True
