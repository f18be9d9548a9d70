"""Scheme lifecycle state machine.

::

    draft ──submit──> pending ──approve──> approved (active ⇄ inactive)
      ^                  │
      │                  └──reject──> rejected ──submit──> pending
      └─ update/delete       (update allowed while draft or rejected)

Every method is pure: it validates the caller and the transition, then
returns an updated copy of the scheme.  Persisting the copy (with a
compare-and-swap on ``version``) is the caller's job.  An illegal call
always raises; nothing is ever a silent no-op.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Final

from src.errors import InvalidTransitionError, UnauthorizedError, ValidationError
from src.models.enums import SchemeStatus, UserRole
from src.models.profile import Actor
from src.models.scheme import Scheme, SchemeDetails, SchemeUpdate


class SchemeAction(StrEnum):
    __slots__ = ()

    UPDATE = "update"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    TOGGLE_ACTIVE = "toggle_active"
    DELETE = "delete"


_EDITABLE: Final[frozenset[SchemeStatus]] = frozenset({SchemeStatus.DRAFT, SchemeStatus.REJECTED})

_ALLOWED_FROM: Final[dict[SchemeAction, frozenset[SchemeStatus]]] = {
    SchemeAction.UPDATE: _EDITABLE,
    SchemeAction.SUBMIT: _EDITABLE,
    SchemeAction.APPROVE: frozenset({SchemeStatus.PENDING}),
    SchemeAction.REJECT: frozenset({SchemeStatus.PENDING}),
    SchemeAction.TOGGLE_ACTIVE: frozenset({SchemeStatus.APPROVED}),
    SchemeAction.DELETE: frozenset({SchemeStatus.DRAFT}),
}


class SchemeLifecycle:
    """Legal transitions and field mutability for a :class:`Scheme`."""

    __slots__ = ()

    @staticmethod
    def allowed_actions(scheme: Scheme) -> frozenset[SchemeAction]:
        """Actions the current status permits, ignoring who is asking."""
        return frozenset(
            action for action, states in _ALLOWED_FROM.items() if scheme.status in states
        )

    # ------------------------------------------------------------------
    # Organizer operations
    # ------------------------------------------------------------------

    def create(self, owner: Actor, details: SchemeDetails) -> Scheme:
        if owner.role != UserRole.ORGANIZER:
            raise UnauthorizedError(
                "Only organizers can create schemes",
                {"role": str(owner.role)},
            )
        return Scheme(
            name=details.name,
            description=details.description,
            benefits=details.benefits,
            ministry=details.ministry,
            rules=list(details.rules),
            created_by=owner.user_id,
        )

    def update(self, scheme: Scheme, actor: Actor, changes: SchemeUpdate) -> Scheme:
        """Apply organizer edits.  ``created_by`` and status are untouched."""
        self._require_owner(scheme, actor)
        self._guard(scheme, SchemeAction.UPDATE)

        update: dict[str, Any] = {
            name: getattr(changes, name)
            for name in changes.model_fields_set
            if getattr(changes, name) is not None
        }
        if "rules" in update:
            update["rules"] = list(update["rules"])
        update["updated_at"] = _now()
        return scheme.model_copy(update=update)

    def submit(self, scheme: Scheme, actor: Actor) -> Scheme:
        """Send for admin review, clearing remarks from a previous rejection."""
        self._require_owner(scheme, actor)
        self._guard(scheme, SchemeAction.SUBMIT)
        if not scheme.rules:
            raise ValidationError(
                "A scheme needs at least one eligibility rule before it can be submitted",
                {"scheme_id": scheme.scheme_id},
            )
        return scheme.model_copy(
            update={"status": SchemeStatus.PENDING, "remarks": "", "updated_at": _now()}
        )

    def delete(self, scheme: Scheme, actor: Actor) -> None:
        """Validate that ``scheme`` may be deleted; only drafts can be."""
        self._require_owner(scheme, actor)
        self._guard(scheme, SchemeAction.DELETE)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def approve(self, scheme: Scheme, admin: Actor, remarks: str | None = None) -> Scheme:
        _require_admin(admin)
        self._guard(scheme, SchemeAction.APPROVE)
        return scheme.model_copy(
            update={
                "status": SchemeStatus.APPROVED,
                "active": True,
                "approved_by": admin.user_id,
                "remarks": (remarks or "").strip(),
                "updated_at": _now(),
            }
        )

    def reject(self, scheme: Scheme, admin: Actor, remarks: str | None) -> Scheme:
        _require_admin(admin)
        self._guard(scheme, SchemeAction.REJECT)
        cleaned = (remarks or "").strip()
        if not cleaned:
            raise ValidationError("Rejection remarks are required", {"field": "remarks"})
        return scheme.model_copy(
            update={
                "status": SchemeStatus.REJECTED,
                "active": False,
                "remarks": cleaned,
                "updated_at": _now(),
            }
        )

    def toggle_active(self, scheme: Scheme, admin: Actor) -> Scheme:
        _require_admin(admin)
        self._guard(scheme, SchemeAction.TOGGLE_ACTIVE)
        return scheme.model_copy(update={"active": not scheme.active, "updated_at": _now()})

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    @staticmethod
    def _guard(scheme: Scheme, action: SchemeAction) -> None:
        if scheme.status not in _ALLOWED_FROM[action]:
            raise InvalidTransitionError("scheme", str(scheme.status), str(action))

    @staticmethod
    def _require_owner(scheme: Scheme, actor: Actor) -> None:
        if actor.user_id != scheme.created_by:
            raise UnauthorizedError(
                "Not authorized to modify this scheme",
                {"scheme_id": scheme.scheme_id},
            )


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise UnauthorizedError("Admin role required", {"role": str(actor.role)})


def _now() -> datetime:
    return datetime.now(UTC)
