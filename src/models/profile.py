"""Citizen profile models used as read-only input to matching.

The profile itself lives in the external user-profile store; this module
only describes its shape and how it is flattened for rule evaluation and
frozen into an application snapshot.
"""

from __future__ import annotations

import hashlib
from collections.abc import Mapping
from datetime import date
from typing import Any

import orjson
from pydantic import BaseModel, ConfigDict, Field

from src.models.enums import (
    Category,
    Disability,
    Education,
    Gender,
    MaritalStatus,
    RuleField,
    UserRole,
)


class CitizenProfile(BaseModel):
    """Profile attributes relevant to eligibility and applications.

    Every attribute is optional: an unset attribute simply never satisfies
    a rule.  ``maritalStatus`` is accepted as an alias for
    ``marital_status`` since profile stores often use camelCase keys.
    """

    model_config = ConfigDict(populate_by_name=True)

    # ----------------------------------------------------------------
    # Identity / contact (snapshot only, never matched)
    # ----------------------------------------------------------------
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    date_of_birth: date | None = None

    # ----------------------------------------------------------------
    # Matched attributes
    # ----------------------------------------------------------------
    age: int | None = Field(default=None, ge=0)
    income: float | None = Field(default=None, ge=0)
    category: Category | None = None
    education: Education | None = None
    gender: Gender | None = None
    marital_status: MaritalStatus | None = Field(default=None, alias="maritalStatus")
    state: str | None = None
    disability: Disability | bool | None = None
    occupation: str | None = None

    # ----------------------------------------------------------------
    # Other demographics
    # ----------------------------------------------------------------
    district: str | None = None
    religion: str | None = None

    def to_match_profile(self) -> dict[str, Any]:
        """Flatten into the attribute map rule evaluation reads from."""
        return {field.value: getattr(self, field.value) for field in RuleField}

    def to_snapshot_fields(self) -> dict[str, Any]:
        """All populated attributes, JSON-ready, for an applicant snapshot."""
        return self.model_dump(mode="json", exclude_none=True)


class UserAccount(BaseModel):
    """Identity-store record: who a user is and what role they hold."""

    user_id: str
    role: UserRole = UserRole.USER
    profile: CitizenProfile = Field(default_factory=CitizenProfile)


class Actor(BaseModel):
    """The authenticated caller of a workflow operation."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def profile_fingerprint(profile: Mapping[str, Any]) -> str:
    """Deterministic short hash of a flat profile.

    Used to identify a profile in logs without writing its contents, and
    together with a scheme ``version`` as a match-result cache key.
    """
    payload = orjson.dumps(
        dict(profile),
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
        default=str,
    )
    return hashlib.sha256(payload).hexdigest()[:16]
