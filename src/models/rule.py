"""Eligibility rule model.

A rule is a single ``(field, operator, value, weight)`` criterion.  Whether
an operator makes sense for a field is decided here, at construction time,
so a rule like ``category < "SC"`` is rejected up front instead of silently
scoring as a miss forever.

Field kinds:

* numeric (``age``, ``income``) -- every operator; ``in``/``not in`` take a
  list of numbers.
* categorical (``category``, ``education``, ``gender``, ``marital_status``,
  ``state``) and text (``occupation``) -- ``==``, ``!=``, ``in``, ``not in``.
* boolean (``disability``) -- ``==`` and ``!=`` with ``true``/``false``.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic import ValidationError as PydanticValidationError

from config.settings import settings
from src.errors import ValidationError
from src.models.enums import (
    Category,
    Education,
    FieldKind,
    Gender,
    MaritalStatus,
    RuleField,
    RuleOperator,
)

Scalar = bool | int | float | str
RuleValue = Scalar | tuple[Scalar, ...]

FIELD_KINDS: Final[dict[RuleField, FieldKind]] = {
    RuleField.AGE: FieldKind.NUMERIC,
    RuleField.INCOME: FieldKind.NUMERIC,
    RuleField.CATEGORY: FieldKind.CATEGORICAL,
    RuleField.EDUCATION: FieldKind.CATEGORICAL,
    RuleField.STATE: FieldKind.CATEGORICAL,
    RuleField.GENDER: FieldKind.CATEGORICAL,
    RuleField.MARITAL_STATUS: FieldKind.CATEGORICAL,
    RuleField.DISABILITY: FieldKind.BOOLEAN,
    RuleField.OCCUPATION: FieldKind.TEXT,
}

COMPARISON_OPERATORS: Final[frozenset[RuleOperator]] = frozenset({
    RuleOperator.LT,
    RuleOperator.LTE,
    RuleOperator.GT,
    RuleOperator.GTE,
})

MEMBERSHIP_OPERATORS: Final[frozenset[RuleOperator]] = frozenset({
    RuleOperator.IN,
    RuleOperator.NOT_IN,
})

_EQUALITY_OPERATORS: Final[frozenset[RuleOperator]] = frozenset({
    RuleOperator.EQ,
    RuleOperator.NE,
})

ALLOWED_OPERATORS: Final[dict[FieldKind, frozenset[RuleOperator]]] = {
    FieldKind.NUMERIC: frozenset(RuleOperator),
    FieldKind.CATEGORICAL: _EQUALITY_OPERATORS | MEMBERSHIP_OPERATORS,
    FieldKind.TEXT: _EQUALITY_OPERATORS | MEMBERSHIP_OPERATORS,
    FieldKind.BOOLEAN: _EQUALITY_OPERATORS,
}

# Closed vocabularies; ``state`` and ``occupation`` are free text.
_VOCABULARIES: Final[dict[RuleField, type[StrEnum]]] = {
    RuleField.CATEGORY: Category,
    RuleField.EDUCATION: Education,
    RuleField.GENDER: Gender,
    RuleField.MARITAL_STATUS: MaritalStatus,
}

EDUCATION_ALIASES: Final[dict[str, str]] = {
    "PhD": Education.DOCTORATE.value,
}


def canonical_education(value: Any) -> Any:
    """Map education aliases (``PhD``) onto the canonical vocabulary."""
    if isinstance(value, str):
        return EDUCATION_ALIASES.get(value, value)
    return value


class Rule(BaseModel):
    """One weighted eligibility criterion.  Immutable."""

    model_config = ConfigDict(frozen=True)

    field: RuleField
    operator: RuleOperator
    value: RuleValue
    weight: int = Field(default_factory=lambda: settings.default_rule_weight, ge=1, le=100)

    @model_validator(mode="before")
    @classmethod
    def _apply_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict) or data.get("field") != RuleField.EDUCATION:
            return data
        value = data.get("value")
        if isinstance(value, (list, tuple)):
            value = [canonical_education(v) for v in value]
        else:
            value = canonical_education(value)
        return {**data, "value": value}

    @model_validator(mode="after")
    def _check_operator_compatibility(self) -> Rule:
        kind = FIELD_KINDS[self.field]
        if self.operator not in ALLOWED_OPERATORS[kind]:
            raise ValueError(
                f"operator '{self.operator}' is not valid for {kind} field '{self.field}'"
            )

        if self.operator in MEMBERSHIP_OPERATORS:
            if not isinstance(self.value, tuple) or not self.value:
                raise ValueError(f"operator '{self.operator}' requires a non-empty list value")
            items: tuple[Scalar, ...] = self.value
        else:
            if isinstance(self.value, tuple):
                raise ValueError(f"operator '{self.operator}' requires a single value, not a list")
            items = (self.value,)

        for item in items:
            _check_item(self.field, kind, item)
        return self

    @property
    def kind(self) -> FieldKind:
        return FIELD_KINDS[self.field]

    @property
    def label(self) -> str:
        """Short human-readable form, e.g. ``age <= 30``."""
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return f"{self.field} {self.operator} {value!r}"

    @classmethod
    def from_stored(cls, data: dict[str, Any]) -> Rule:
        """Rehydrate a persisted rule without construction-time checks.

        Rules written before validation was enforced may carry values the
        evaluator treats defensively (e.g. ``in`` with a scalar).  Unknown
        operators are kept verbatim so evaluation reports them.
        """
        field = data.get("field")
        operator = data.get("operator")
        value = data.get("value")
        if field in RuleField._value2member_map_:
            field = RuleField(field)
        if operator in RuleOperator._value2member_map_:
            operator = RuleOperator(operator)
        if isinstance(value, list):
            value = tuple(value)
        return cls.model_construct(
            field=field,
            operator=operator,
            value=value,
            weight=data.get("weight", settings.default_rule_weight),
        )


def _check_item(field: RuleField, kind: FieldKind, item: Scalar) -> None:
    if kind is FieldKind.NUMERIC:
        if isinstance(item, bool) or not isinstance(item, (int, float)) or not math.isfinite(item):
            raise ValueError(f"field '{field}' requires numeric values, got {item!r}")
        return

    if kind is FieldKind.BOOLEAN:
        if not isinstance(item, bool):
            raise ValueError(f"field '{field}' requires true/false, got {item!r}")
        return

    if not isinstance(item, str) or not item.strip():
        raise ValueError(f"field '{field}' requires non-empty text values, got {item!r}")

    vocabulary = _VOCABULARIES.get(field)
    if vocabulary is not None and item not in vocabulary._value2member_map_:
        allowed = ", ".join(m.value for m in vocabulary)
        raise ValueError(f"'{item}' is not a valid {field}; expected one of: {allowed}")


# ---------------------------------------------------------------------------
# Rule-set parsing
# ---------------------------------------------------------------------------


def parse_rules(raw_rules: list[Any]) -> list[Rule]:
    """Validate a list of rule dicts (or ``Rule`` instances) into ``Rule``s.

    Every invalid rule is reported, keyed by its index, in a single
    :class:`~src.errors.ValidationError`.
    """
    rules: list[Rule] = []
    errors: list[dict[str, Any]] = []

    for index, raw in enumerate(raw_rules):
        if isinstance(raw, Rule):
            rules.append(raw)
            continue
        try:
            rules.append(Rule.model_validate(raw))
        except PydanticValidationError as exc:
            for err in exc.errors(include_url=False):
                loc = ".".join(str(part) for part in err["loc"])
                errors.append({
                    "rule": index,
                    "field": loc or "rule",
                    "message": err["msg"],
                })

    if errors:
        raise ValidationError("Invalid eligibility rules", {"errors": errors})
    return rules


def normalize_generated_rules(raw_rules: list[dict[str, Any]]) -> list[Rule]:
    """Clean up a rule set produced by an external generator, then validate it.

    Generators commonly emit ``"25"`` for ages and ``"PhD"`` for education.
    Numeric strings on numeric fields become numbers (list items that do not
    parse are dropped); education aliases are canonicalised by ``Rule``.
    """
    cleaned: list[Any] = []
    for raw in raw_rules:
        if not isinstance(raw, dict):
            cleaned.append(raw)
            continue
        rule = dict(raw)
        if FIELD_KINDS.get(rule.get("field")) is FieldKind.NUMERIC:  # type: ignore[arg-type]
            value = rule.get("value")
            if isinstance(value, str):
                number = _parse_number(value)
                if number is not None:
                    rule["value"] = number
            elif isinstance(value, list):
                numbers = [
                    _parse_number(v) if isinstance(v, str) else v for v in value
                ]
                rule["value"] = [n for n in numbers if n is not None]
        cleaned.append(rule)

    return parse_rules(cleaned)


def _parse_number(text: str) -> int | float | None:
    try:
        number = float(text.strip())
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number
