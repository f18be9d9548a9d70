from __future__ import annotations

from enum import StrEnum


class RuleField(StrEnum):
    """Profile attributes a scheme rule may test."""

    __slots__ = ()

    AGE = "age"
    INCOME = "income"
    CATEGORY = "category"
    EDUCATION = "education"
    STATE = "state"
    GENDER = "gender"
    MARITAL_STATUS = "marital_status"
    DISABILITY = "disability"
    OCCUPATION = "occupation"


class RuleOperator(StrEnum):
    __slots__ = ()

    EQ = "=="
    NE = "!="
    LT = "<"
    LTE = "<="
    GT = ">"
    GTE = ">="
    IN = "in"
    NOT_IN = "not in"


class FieldKind(StrEnum):
    __slots__ = ()

    NUMERIC = "numeric"
    CATEGORICAL = "categorical"
    BOOLEAN = "boolean"
    TEXT = "text"


class SchemeStatus(StrEnum):
    __slots__ = ()

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class ApplicationStatus(StrEnum):
    __slots__ = ()

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class PromotionStatus(StrEnum):
    __slots__ = ()

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(StrEnum):
    __slots__ = ()

    USER = "user"
    ORGANIZER = "organizer"
    ADMIN = "admin"


# ---------------------------------------------------------------------------
# Profile vocabularies
# ---------------------------------------------------------------------------


class Category(StrEnum):
    """Social category."""

    __slots__ = ()

    GENERAL = "General"
    OBC = "OBC"
    SC = "SC"
    ST = "ST"
    EWS = "EWS"


class Gender(StrEnum):
    __slots__ = ()

    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class MaritalStatus(StrEnum):
    __slots__ = ()

    SINGLE = "Single"
    MARRIED = "Married"
    WIDOWED = "Widowed"
    DIVORCED = "Divorced"
    SEPARATED = "Separated"


class Education(StrEnum):
    __slots__ = ()

    BELOW_10TH = "Below 10th"
    TENTH_PASS = "10th Pass"
    TWELFTH_PASS = "12th Pass"
    GRADUATE = "Graduate"
    POST_GRADUATE = "Post Graduate"
    DOCTORATE = "Doctorate"


class Disability(StrEnum):
    __slots__ = ()

    NONE = "None"
    PHYSICAL = "Physical"
    VISUAL = "Visual"
    HEARING = "Hearing"
    MENTAL = "Mental"
    MULTIPLE = "Multiple"
