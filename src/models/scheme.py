from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, SkipValidation, field_validator, model_validator

from src.models.enums import SchemeStatus
from src.models.rule import Rule


class SchemeDetails(BaseModel):
    """Organizer-supplied content of a scheme."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1)
    benefits: str = Field(..., min_length=1)
    ministry: str = Field(..., min_length=1, max_length=300)
    rules: list[Rule] = Field(default_factory=list)


class SchemeUpdate(BaseModel):
    """Partial edit of a draft or rejected scheme.  Unset fields are kept."""

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str | None = Field(default=None, min_length=1, max_length=300)
    description: str | None = Field(default=None, min_length=1)
    benefits: str | None = Field(default=None, min_length=1)
    ministry: str | None = Field(default=None, min_length=1, max_length=300)
    rules: list[Rule] | None = None


class Scheme(BaseModel):
    """A government scheme and its position in the approval lifecycle.

    ``active`` is only meaningful (and only ever ``True``) while the scheme
    is ``approved``; only approved, active schemes are offered for matching.
    """

    scheme_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str
    description: str
    benefits: str
    ministry: str
    status: SchemeStatus = SchemeStatus.DRAFT
    active: bool = False
    # Stored rules are kept as written; new rules are validated on input.
    rules: list[SkipValidation[Rule]] = Field(default_factory=list)
    created_by: str
    approved_by: str | None = None
    remarks: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: int = 0

    @field_validator("rules", mode="before")
    @classmethod
    def _rehydrate_stored_rules(cls, value: Any) -> Any:
        if isinstance(value, list):
            return [Rule.from_stored(rule) if isinstance(rule, dict) else rule for rule in value]
        return value

    @model_validator(mode="after")
    def _active_requires_approval(self) -> Scheme:
        if self.active and self.status != SchemeStatus.APPROVED:
            raise ValueError("only approved schemes can be active")
        return self

    @property
    def total_weight(self) -> int:
        return sum(rule.weight for rule in self.rules)

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> Scheme:
        """Rehydrate a stored scheme, keeping stored rules as written."""
        return cls.model_validate({**document, "rules": document.get("rules") or []})


class SchemeSummary(BaseModel):
    """Public-facing subset of a scheme returned with match results."""

    scheme_id: str
    name: str
    description: str
    benefits: str
    ministry: str

    @classmethod
    def of(cls, scheme: Scheme) -> SchemeSummary:
        return cls(
            scheme_id=scheme.scheme_id,
            name=scheme.name,
            description=scheme.description,
            benefits=scheme.benefits,
            ministry=scheme.ministry,
        )
