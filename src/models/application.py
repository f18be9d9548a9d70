"""Scheme application models.

An application pairs a citizen with one scheme.  The applicant's details
are copied into an immutable :class:`ApplicantSnapshot` at submission time
so a later profile edit can never change what a reviewer sees.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, date, datetime
from typing import Any, Final
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from src.errors import ValidationError
from src.models.enums import (
    ApplicationStatus,
    Category,
    Disability,
    Education,
    Gender,
    MaritalStatus,
)

# Snapshot field -> label shown when the profile is incomplete.
REQUIRED_APPLICANT_FIELDS: Final[dict[str, str]] = {
    "name": "Full Name",
    "email": "Email Address",
    "phone": "Phone Number",
    "age": "Age",
    "gender": "Gender",
    "category": "Category",
    "state": "State",
    "education": "Education",
}


class ApplicantSnapshot(BaseModel):
    """Frozen copy of the applicant's profile taken at submission."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    email: str
    phone: str
    age: int = Field(..., ge=0)
    gender: Gender
    category: Category
    state: str
    education: Education
    date_of_birth: date | None = None
    religion: str | None = None
    marital_status: MaritalStatus | None = Field(default=None, alias="maritalStatus")
    district: str | None = None
    occupation: str | None = None
    income: float | None = Field(default=None, ge=0)
    disability: Disability | bool | None = None

    @classmethod
    def capture(cls, details: Mapping[str, Any]) -> ApplicantSnapshot:
        """Copy ``details`` into a snapshot, reporting every missing field.

        Blank strings count as missing; so do blank optional enum values,
        which are dropped rather than rejected.
        """
        cleaned = {
            key: value
            for key, value in details.items()
            if value is not None and not (isinstance(value, str) and not value.strip())
        }
        missing = [
            label for key, label in REQUIRED_APPLICANT_FIELDS.items() if key not in cleaned
        ]
        if missing:
            raise ValidationError(
                "Please complete your profile before applying. "
                f"Missing fields: {', '.join(missing)}",
                {"missing_fields": missing},
            )
        try:
            return cls.model_validate(cleaned)
        except PydanticValidationError as exc:
            raise ValidationError.from_pydantic(exc, "Invalid applicant details") from exc


class BankDetails(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    account_number: str | None = None
    ifsc_code: str | None = None
    bank_name: str | None = None
    branch_name: str | None = None


class ApplicationData(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    purpose: str = Field(..., min_length=1, max_length=2000)
    bank_details: BankDetails | None = None
    aadhaar_number: str | None = None
    remarks: str | None = None


class DocumentRef(BaseModel):
    name: str
    url: str


class ApplicationDocuments(BaseModel):
    """References (URLs) to documents already placed in blob storage."""

    model_config = ConfigDict(str_strip_whitespace=True)

    marksheet: str = Field(..., min_length=1)
    income_certificate: str | None = None
    category_certificate: str | None = None
    other_documents: list[DocumentRef] = Field(default_factory=list, max_length=5)


class SchemeApplication(BaseModel):
    """A citizen's application to one scheme.

    ``pending`` moves to ``approved`` or ``rejected`` once; both are final.
    """

    application_id: str = Field(default_factory=lambda: uuid4().hex)
    user_id: str
    scheme_id: str
    status: ApplicationStatus = ApplicationStatus.PENDING
    applicant_snapshot: ApplicantSnapshot
    application_data: ApplicationData
    documents: ApplicationDocuments
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    version: int = 0
