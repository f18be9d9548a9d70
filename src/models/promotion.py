from __future__ import annotations

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from config.settings import settings
from src.models.enums import PromotionStatus


class PromotionRequestFields(BaseModel):
    """What a citizen submits when asking to become an organizer."""

    model_config = ConfigDict(str_strip_whitespace=True)

    organization: str = Field(..., min_length=1, max_length=300)
    designation: str = Field(..., min_length=1, max_length=200)
    reason: str = Field(..., max_length=2000)
    contact_number: str = Field(..., min_length=1, max_length=20)

    @field_validator("reason")
    @classmethod
    def _reason_long_enough(cls, value: str) -> str:
        minimum = settings.promotion_reason_min_length
        if len(value) < minimum:
            raise ValueError(f"reason must be at least {minimum} characters")
        return value


class OrganizerPromotionRequest(BaseModel):
    """A user's request to be promoted to the ``organizer`` role."""

    request_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    organization: str
    designation: str
    reason: str
    contact_number: str
    status: PromotionStatus = PromotionStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    remarks: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: int = 0
