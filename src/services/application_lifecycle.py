"""Citizen application lifecycle: ``pending -> approved | rejected``.

Both decided states are terminal.  Reviewers are the organizer who owns the
scheme, or any admin.  The scheme's ``active`` flag is not consulted at
review time, so applications stay reviewable after a scheme is deactivated.
"""

from __future__ import annotations

from datetime import UTC, datetime

from src.errors import ConflictError, InvalidTransitionError, UnauthorizedError, ValidationError
from src.models.application import (
    ApplicantSnapshot,
    ApplicationData,
    ApplicationDocuments,
    SchemeApplication,
)
from src.models.enums import ApplicationStatus, SchemeStatus
from src.models.profile import Actor
from src.models.scheme import Scheme


class ApplicationLifecycle:
    __slots__ = ()

    def submit(
        self,
        user_id: str,
        scheme: Scheme,
        snapshot: ApplicantSnapshot,
        application_data: ApplicationData,
        documents: ApplicationDocuments,
        *,
        existing: SchemeApplication | None = None,
    ) -> SchemeApplication:
        """Create a ``pending`` application against an approved scheme.

        ``existing`` is the caller's lookup of a prior application for the
        same user and scheme.  It gives a fast, friendly rejection; the store
        still enforces uniqueness at insert time.
        """
        if scheme.status != SchemeStatus.APPROVED:
            raise InvalidTransitionError("scheme", str(scheme.status), "apply")
        if existing is not None:
            raise ConflictError(
                "You have already applied to this scheme",
                {"scheme_id": scheme.scheme_id, "application_id": existing.application_id},
            )
        return SchemeApplication(
            user_id=user_id,
            scheme_id=scheme.scheme_id,
            applicant_snapshot=snapshot,
            application_data=application_data,
            documents=documents,
        )

    def approve(
        self, application: SchemeApplication, scheme: Scheme, reviewer: Actor
    ) -> SchemeApplication:
        self._require_reviewer(application, scheme, reviewer)
        self._require_pending(application, "approve")
        return self._decide(application, reviewer, ApplicationStatus.APPROVED, None)

    def reject(
        self,
        application: SchemeApplication,
        scheme: Scheme,
        reviewer: Actor,
        reason: str | None,
    ) -> SchemeApplication:
        self._require_reviewer(application, scheme, reviewer)
        self._require_pending(application, "reject")
        cleaned = (reason or "").strip()
        if not cleaned:
            raise ValidationError("Rejection reason is required", {"field": "rejection_reason"})
        return self._decide(application, reviewer, ApplicationStatus.REJECTED, cleaned)

    @staticmethod
    def can_review(scheme: Scheme, reviewer: Actor) -> bool:
        return reviewer.is_admin or reviewer.user_id == scheme.created_by

    def _require_reviewer(
        self, application: SchemeApplication, scheme: Scheme, reviewer: Actor
    ) -> None:
        if scheme.scheme_id != application.scheme_id:
            raise ValidationError(
                "Application does not belong to this scheme",
                {"application_id": application.application_id, "scheme_id": scheme.scheme_id},
            )
        if not self.can_review(scheme, reviewer):
            raise UnauthorizedError(
                "Not authorized to review applications for this scheme",
                {"scheme_id": scheme.scheme_id},
            )

    @staticmethod
    def _require_pending(application: SchemeApplication, attempted: str) -> None:
        if application.status != ApplicationStatus.PENDING:
            raise InvalidTransitionError("application", str(application.status), attempted)

    @staticmethod
    def _decide(
        application: SchemeApplication,
        reviewer: Actor,
        status: ApplicationStatus,
        reason: str | None,
    ) -> SchemeApplication:
        now = datetime.now(UTC)
        return application.model_copy(
            update={
                "status": status,
                "reviewed_by": reviewer.user_id,
                "reviewed_at": now,
                "rejection_reason": reason,
                "updated_at": now,
            }
        )
