"""Organizer promotion requests: ``pending -> approved | rejected``.

Approval is the one transition with a side effect outside its own entity:
the requesting user's role becomes ``organizer``.  The workflow checks the
user's role again at approval time; the store repeats that check inside the
atomic approve-and-promote write.
"""

from __future__ import annotations

from datetime import UTC, datetime

from src.errors import (
    ConflictError,
    InvalidTransitionError,
    PreconditionFailedError,
    UnauthorizedError,
    ValidationError,
)
from src.models.enums import PromotionStatus, UserRole
from src.models.profile import Actor, UserAccount
from src.models.promotion import OrganizerPromotionRequest, PromotionRequestFields

DEFAULT_APPROVAL_REMARKS = "Application approved"


class OrganizerPromotionWorkflow:
    __slots__ = ()

    def submit(
        self,
        actor: Actor,
        fields: PromotionRequestFields,
        *,
        existing_pending: OrganizerPromotionRequest | None = None,
    ) -> OrganizerPromotionRequest:
        if actor.role != UserRole.USER:
            raise PreconditionFailedError(
                "Only regular users can apply to become organizers",
                {"role": str(actor.role)},
            )
        if existing_pending is not None:
            raise ConflictError(
                "You already have a pending application",
                {"request_id": existing_pending.request_id},
            )
        return OrganizerPromotionRequest(user_id=actor.user_id, **fields.model_dump())

    def approve(
        self,
        request: OrganizerPromotionRequest,
        admin: Actor,
        user: UserAccount,
        remarks: str | None = None,
    ) -> OrganizerPromotionRequest:
        """Approve ``request``; ``user`` is the requester's current account."""
        _require_admin(admin)
        _require_pending(request, "approve")
        if user.user_id != request.user_id:
            raise ValidationError(
                "User does not match the promotion request",
                {"request_id": request.request_id, "user_id": user.user_id},
            )
        if user.role != UserRole.USER:
            raise PreconditionFailedError(
                f"User is already '{user.role}' and cannot be promoted",
                {"user_id": user.user_id, "role": str(user.role)},
            )
        return _decide(
            request,
            admin,
            PromotionStatus.APPROVED,
            (remarks or "").strip() or DEFAULT_APPROVAL_REMARKS,
        )

    def reject(
        self, request: OrganizerPromotionRequest, admin: Actor, remarks: str | None
    ) -> OrganizerPromotionRequest:
        _require_admin(admin)
        _require_pending(request, "reject")
        cleaned = (remarks or "").strip()
        if not cleaned:
            raise ValidationError("Rejection remarks are required", {"field": "remarks"})
        return _decide(request, admin, PromotionStatus.REJECTED, cleaned)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise UnauthorizedError("Admin role required", {"role": str(actor.role)})


def _require_pending(request: OrganizerPromotionRequest, attempted: str) -> None:
    if request.status != PromotionStatus.PENDING:
        raise InvalidTransitionError("promotion request", str(request.status), attempted)


def _decide(
    request: OrganizerPromotionRequest,
    admin: Actor,
    status: PromotionStatus,
    remarks: str,
) -> OrganizerPromotionRequest:
    now = datetime.now(UTC)
    return request.model_copy(
        update={
            "status": status,
            "reviewed_by": admin.user_id,
            "reviewed_at": now,
            "remarks": remarks,
            "updated_at": now,
        }
    )
