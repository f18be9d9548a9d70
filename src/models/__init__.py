from src.models.application import (
    ApplicantSnapshot,
    ApplicationData,
    ApplicationDocuments,
    BankDetails,
    DocumentRef,
    SchemeApplication,
)
from src.models.enums import (
    ApplicationStatus,
    Category,
    Disability,
    Education,
    FieldKind,
    Gender,
    MaritalStatus,
    PromotionStatus,
    RuleField,
    RuleOperator,
    SchemeStatus,
    UserRole,
)
from src.models.profile import Actor, CitizenProfile, UserAccount, profile_fingerprint
from src.models.promotion import OrganizerPromotionRequest, PromotionRequestFields
from src.models.rule import Rule, normalize_generated_rules, parse_rules
from src.models.scheme import Scheme, SchemeDetails, SchemeSummary, SchemeUpdate

__all__ = [
    "Actor",
    "ApplicantSnapshot",
    "ApplicationData",
    "ApplicationDocuments",
    "ApplicationStatus",
    "BankDetails",
    "Category",
    "CitizenProfile",
    "Disability",
    "DocumentRef",
    "Education",
    "FieldKind",
    "Gender",
    "MaritalStatus",
    "OrganizerPromotionRequest",
    "PromotionRequestFields",
    "PromotionStatus",
    "Rule",
    "RuleField",
    "RuleOperator",
    "Scheme",
    "SchemeApplication",
    "SchemeDetails",
    "SchemeStatus",
    "SchemeSummary",
    "SchemeUpdate",
    "UserAccount",
    "UserRole",
    "normalize_generated_rules",
    "parse_rules",
    "profile_fingerprint",
]
