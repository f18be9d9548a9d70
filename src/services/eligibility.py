"""Weighted eligibility matching.

Three layers, leaf first:

* :func:`evaluate_rule` -- one ``(profile value, operator, rule value)``
  check.  Pure; an absent profile value never matches.
* :func:`score_scheme` -- weighted percentage of a profile against one
  scheme's rules, plus the rules that matched (in scheme order, for
  "why you match" explanations).
* :class:`MatchingService` -- scores a profile against a whole catalog and
  ranks the result by percentage, ties kept in catalog order.

The catalog handed to :class:`MatchingService` must already be limited to
approved, active schemes; fetching it is the caller's job.

A "no match" is a ``0`` score, never an exception.  Exceptions are raised
only for structurally broken rule data (unknown operator, a non-numeric
comparison operand) so bad scheme configuration surfaces instead of
quietly depressing scores.
"""

from __future__ import annotations

import math
import time
from collections.abc import Mapping, Sequence
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import Any, Final

import structlog
from pydantic import BaseModel, Field, SkipValidation

from config.settings import settings
from src.errors import RuleConfigurationError, ValidationError
from src.models.enums import RuleField, RuleOperator
from src.models.profile import profile_fingerprint
from src.models.rule import (
    ALLOWED_OPERATORS,
    COMPARISON_OPERATORS,
    FIELD_KINDS,
    MEMBERSHIP_OPERATORS,
    Rule,
    canonical_education,
)
from src.models.scheme import Scheme, SchemeSummary

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------


class MatchScore(BaseModel):
    """Weighted score of one profile against one scheme."""

    percentage: int = Field(..., ge=0, le=100)
    matched_rules: list[SkipValidation[Rule]] = Field(default_factory=list)
    matched_weight: int = 0
    total_weight: int = 0


class SchemeMatch(BaseModel):
    """One ranked entry returned by :meth:`MatchingService.find_matches`."""

    scheme: SchemeSummary
    percentage: int = Field(..., ge=0, le=100)
    matched_rules: list[SkipValidation[Rule]] = Field(default_factory=list)
    matched_weight: int = 0
    total_weight: int = 0


# ---------------------------------------------------------------------------
# Profile attribute resolution
# ---------------------------------------------------------------------------

# Rule field -> alternative profile key (profile stores use camelCase).
_PROFILE_KEY_ALIASES: Final[dict[str, str]] = {
    RuleField.MARITAL_STATUS.value: "maritalStatus",
}

_NO_DISABILITY: Final[frozenset[str]] = frozenset({"", "none"})


def resolve_profile_value(profile: Mapping[str, Any], rule: Rule) -> Any:
    """Read the profile attribute ``rule`` tests, normalised for comparison.

    * ``marital_status`` falls back to ``maritalStatus``.
    * ``disability`` against a boolean rule value: profiles record the kind
      of disability (``"None"``, ``"Visual"``, ...), so any value other than
      ``"None"``/``""`` means ``True``.
    * ``education`` aliases (``PhD``) map to the canonical vocabulary.
    """
    field = str(rule.field)
    value = profile.get(field)
    if value is None and field in _PROFILE_KEY_ALIASES:
        value = profile.get(_PROFILE_KEY_ALIASES[field])
    if value is None:
        return None

    if field == RuleField.DISABILITY and isinstance(rule.value, bool) and not isinstance(value, bool):
        return str(value).strip().lower() not in _NO_DISABILITY
    if field == RuleField.EDUCATION:
        return canonical_education(value)
    return value


def _rule_value(rule: Rule) -> Any:
    if rule.field != RuleField.EDUCATION:
        return rule.value
    if isinstance(rule.value, (list, tuple)):
        return [canonical_education(v) for v in rule.value]
    return canonical_education(rule.value)


# ---------------------------------------------------------------------------
# Rule evaluation
# ---------------------------------------------------------------------------


def loose_equals(left: Any, right: Any) -> bool:
    """Equality used by ``==``, ``!=``, ``in`` and ``not in``.

    Policy, applied in order:

    1. If either side is a string, both sides are compared as text.
       Numbers render canonically (``25.0`` -> ``"25"``), booleans as
       ``"true"``/``"false"``.  So ``"25" == 25`` holds and ``"true" == True``
       holds; comparison is case-sensitive.
    2. Otherwise, if both sides are numbers or booleans, they are compared
       numerically with ``True``/``False`` counting as ``1``/``0``.
    3. Otherwise plain Python equality.
    """
    if isinstance(left, str) or isinstance(right, str):
        return _as_text(left) == _as_text(right)
    if _is_number_like(left) and _is_number_like(right):
        return float(left) == float(right)
    return bool(left == right)


def evaluate_rule(profile_value: Any, operator: RuleOperator | str, rule_value: Any) -> bool:
    """Evaluate one rule against one profile attribute.

    Returns ``False`` whenever ``profile_value`` is ``None``.  ``in`` and
    ``not in`` with a non-list ``rule_value`` also return ``False`` (and log
    a warning) so one malformed stored rule cannot break a whole match pass.

    Raises
    ------
    RuleConfigurationError
        ``operator`` is not a known operator, or a comparison rule value is
        not numeric.
    ValidationError
        A comparison is attempted on a non-numeric profile value.
    """
    op = _coerce_operator(operator)

    if profile_value is None:
        return False

    if op is RuleOperator.EQ:
        return loose_equals(profile_value, rule_value)
    if op is RuleOperator.NE:
        return not loose_equals(profile_value, rule_value)

    if op in COMPARISON_OPERATORS:
        left = _to_number(profile_value, origin="profile")
        right = _to_number(rule_value, origin="rule")
        if op is RuleOperator.LT:
            return left < right
        if op is RuleOperator.LTE:
            return left <= right
        if op is RuleOperator.GT:
            return left > right
        return left >= right

    # Membership (``in`` / ``not in``)
    if not isinstance(rule_value, (list, tuple)):
        logger.warning(
            "rule.malformed_membership_value",
            operator=str(op),
            value_type=type(rule_value).__name__,
        )
        return False
    found = any(loose_equals(profile_value, item) for item in rule_value)
    return found if op is RuleOperator.IN else not found


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def check_stored_rule(rule: Rule) -> None:
    """Reject rule data that cannot be scored.

    Rules loaded with :meth:`Rule.from_stored` skip construction-time
    checks, so the field, the operator for that field kind and the weight
    are checked again here.  ``in``/``not in`` with a scalar value passes
    and scores as a miss.
    """
    operator = _coerce_operator(rule.operator)
    kind = FIELD_KINDS.get(rule.field) if isinstance(rule.field, str) else None
    if kind is None:
        raise RuleConfigurationError(
            f"Unknown rule field {rule.field!r}",
            {"field": str(rule.field)},
        )
    if operator not in ALLOWED_OPERATORS[kind]:
        raise RuleConfigurationError(
            f"Operator '{operator}' is not valid for {kind} field '{rule.field}'",
            {"field": str(rule.field), "operator": str(operator)},
        )
    weight = rule.weight
    if isinstance(weight, bool) or not isinstance(weight, int) or not 1 <= weight <= 100:
        raise RuleConfigurationError(
            f"Rule weight must be an integer from 1 to 100, got {weight!r}",
            {"field": str(rule.field), "weight": weight},
        )


def score_scheme(profile: Mapping[str, Any], scheme: Scheme) -> MatchScore:
    """Score ``profile`` against every rule of ``scheme``.

    ``percentage = round_half_up(100 * matched_weight / total_weight)``,
    rounded once at the end.  A scheme without rules scores ``0``.

    Raises :class:`~src.errors.RuleConfigurationError` for a rule the
    evaluator cannot interpret (see :func:`check_stored_rule`).
    """
    total_weight = 0
    matched_weight = 0
    matched: list[Rule] = []

    for rule in scheme.rules:
        check_stored_rule(rule)
        total_weight += rule.weight
        if evaluate_rule(resolve_profile_value(profile, rule), rule.operator, _rule_value(rule)):
            matched_weight += rule.weight
            matched.append(rule)

    if total_weight <= 0:
        return MatchScore(percentage=0, total_weight=total_weight)

    # Integer round-half-up of 100 * matched / total.
    percentage = int((200 * matched_weight + total_weight) // (2 * total_weight))

    return MatchScore(
        percentage=percentage,
        matched_rules=matched,
        matched_weight=matched_weight,
        total_weight=total_weight,
    )


# ---------------------------------------------------------------------------
# Matching service
# ---------------------------------------------------------------------------


class MatchingService:
    """Ranks an approved, active scheme catalog for one profile.

    Stateless apart from its configuration; safe to share across requests.
    Schemes are scored independently, so catalogs at or above
    ``parallel_threshold`` schemes are scored on a thread pool.  The ranking
    is identical either way.
    """

    __slots__ = ("_max_workers", "_parallel_threshold")

    def __init__(
        self,
        *,
        parallel_threshold: int | None = None,
        max_workers: int | None = None,
    ) -> None:
        self._parallel_threshold = (
            settings.match_parallel_threshold if parallel_threshold is None else parallel_threshold
        )
        self._max_workers = settings.match_max_workers if max_workers is None else max_workers

    def find_matches(
        self,
        profile: Mapping[str, Any],
        catalog: Sequence[Scheme],
    ) -> list[SchemeMatch]:
        """Score every scheme and return them best first.

        All schemes are returned, including 0% matches.  Equal percentages
        keep their relative catalog order.
        """
        start = time.perf_counter()
        scores = self._score_all(profile, catalog)

        matches = [
            SchemeMatch(
                scheme=SchemeSummary.of(scheme),
                percentage=score.percentage,
                matched_rules=score.matched_rules,
                matched_weight=score.matched_weight,
                total_weight=score.total_weight,
            )
            for scheme, score in zip(catalog, scores, strict=True)
        ]
        # list.sort is stable, also with reverse=True.
        matches.sort(key=lambda m: m.percentage, reverse=True)

        logger.info(
            "matching.completed",
            profile=profile_fingerprint(profile),
            schemes=len(catalog),
            full_matches=sum(1 for m in matches if m.percentage == 100),
            top_percentage=matches[0].percentage if matches else None,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return matches

    def _score_all(self, profile: Mapping[str, Any], catalog: Sequence[Scheme]) -> list[MatchScore]:
        scorer = partial(score_scheme, profile)
        if self._parallel_threshold and len(catalog) >= self._parallel_threshold:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                return list(pool.map(scorer, catalog))
        return [scorer(scheme) for scheme in catalog]


# ---------------------------------------------------------------------------
# Module-level utilities
# ---------------------------------------------------------------------------


def _coerce_operator(operator: RuleOperator | str) -> RuleOperator:
    if isinstance(operator, RuleOperator):
        return operator
    try:
        return RuleOperator(operator)
    except ValueError:
        raise RuleConfigurationError(
            f"Unknown rule operator {operator!r}",
            {"operator": str(operator)},
        ) from None


def _is_number_like(value: Any) -> bool:
    return isinstance(value, (bool, int, float))


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _to_number(value: Any, *, origin: str) -> float:
    """Coerce a comparison operand to a number.

    Booleans count as ``1``/``0``; numeric strings are parsed.
    """
    number: float | None = None
    if isinstance(value, bool):
        number = float(value)
    elif isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            number = None

    if number is None or math.isnan(number):
        message = f"Comparison needs a numeric {origin} value, got {value!r}"
        if origin == "rule":
            raise RuleConfigurationError(message, {"value": repr(value)})
        raise ValidationError(message, {"value": repr(value)})
    return number
