"""Operations exposed to controllers, CLIs and UI layers.

:class:`SchemeWorkflow` composes the stores with the pure lifecycle state
machines and the matching service.  Each mutating operation follows the same
shape: load, let the state machine validate and produce the new version,
then persist with a compare-and-swap on the version that was loaded.  A
concurrent writer that got there first makes the write fail with
:class:`~src.errors.ConflictError` instead of silently overwriting.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from src.errors import NotFoundError, UnauthorizedError, ValidationError
from src.models.application import (
    ApplicantSnapshot,
    ApplicationData,
    ApplicationDocuments,
    SchemeApplication,
)
from src.models.enums import ApplicationStatus, PromotionStatus, SchemeStatus
from src.models.profile import Actor, profile_fingerprint
from src.models.promotion import OrganizerPromotionRequest, PromotionRequestFields
from src.models.scheme import Scheme, SchemeDetails, SchemeUpdate
from src.services.application_lifecycle import ApplicationLifecycle
from src.services.eligibility import MatchingService, SchemeMatch
from src.services.promotion import OrganizerPromotionWorkflow
from src.services.scheme_lifecycle import SchemeLifecycle
from src.services.store import (
    ApplicationStore,
    InMemoryDocumentStore,
    ProfileStore,
    PromotionStore,
    SchemeStore,
    UserStore,
)

logger = structlog.get_logger(__name__)

InputT = TypeVar("InputT", bound=BaseModel)
ItemT = TypeVar("ItemT")


class SchemeWorkflow:
    """Facade over matching, scheme, application and promotion workflows."""

    __slots__ = (
        "_application_lifecycle",
        "_applications",
        "_matcher",
        "_profiles",
        "_promotion_workflow",
        "_promotions",
        "_scheme_lifecycle",
        "_schemes",
        "_users",
    )

    def __init__(
        self,
        *,
        profiles: ProfileStore,
        users: UserStore,
        schemes: SchemeStore,
        applications: ApplicationStore,
        promotions: PromotionStore,
        matcher: MatchingService | None = None,
    ) -> None:
        self._profiles = profiles
        self._users = users
        self._schemes = schemes
        self._applications = applications
        self._promotions = promotions
        self._matcher = matcher or MatchingService()
        self._scheme_lifecycle = SchemeLifecycle()
        self._application_lifecycle = ApplicationLifecycle()
        self._promotion_workflow = OrganizerPromotionWorkflow()

    @classmethod
    def in_memory(
        cls,
        store: InMemoryDocumentStore | None = None,
        *,
        matcher: MatchingService | None = None,
    ) -> SchemeWorkflow:
        """Build a workflow whose every store is one :class:`InMemoryDocumentStore`."""
        store = store if store is not None else InMemoryDocumentStore()
        return cls(
            profiles=store,
            users=store,
            schemes=store,
            applications=store,
            promotions=store,
            matcher=matcher,
        )

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------

    async def find_matches(self, user_id: str) -> list[SchemeMatch]:
        """Rank every approved, active scheme for ``user_id``'s profile."""
        profile = await self._profiles.get_profile(user_id)
        if profile is None:
            raise NotFoundError("Profile", user_id)
        catalog = await self._schemes.list_schemes(status=SchemeStatus.APPROVED, active=True)
        match_profile = profile.to_match_profile()
        logger.debug(
            "matching.requested",
            user_id=user_id,
            profile=profile_fingerprint(match_profile),
            catalog_size=len(catalog),
        )
        return self._matcher.find_matches(match_profile, catalog)

    # ------------------------------------------------------------------
    # Schemes
    # ------------------------------------------------------------------

    async def create_scheme(
        self, actor: Actor, details: SchemeDetails | Mapping[str, Any]
    ) -> Scheme:
        scheme = self._scheme_lifecycle.create(actor, _parse(SchemeDetails, details, "Invalid scheme"))
        stored = await self._schemes.insert_scheme(scheme)
        logger.info(
            "scheme.created",
            scheme_id=stored.scheme_id,
            created_by=actor.user_id,
            rules=len(stored.rules),
        )
        return stored

    async def update_scheme(
        self, actor: Actor, scheme_id: str, changes: SchemeUpdate | Mapping[str, Any]
    ) -> Scheme:
        parsed = _parse(SchemeUpdate, changes, "Invalid scheme update")
        scheme = await self._load_scheme(scheme_id)
        stored = await self._schemes.replace_scheme(
            self._scheme_lifecycle.update(scheme, actor, parsed),
            expected_version=scheme.version,
        )
        logger.info(
            "scheme.updated",
            scheme_id=scheme_id,
            fields=sorted(parsed.model_fields_set),
        )
        return stored

    async def submit_scheme(self, actor: Actor, scheme_id: str) -> Scheme:
        scheme = await self._load_scheme(scheme_id)
        stored = await self._schemes.replace_scheme(
            self._scheme_lifecycle.submit(scheme, actor),
            expected_version=scheme.version,
        )
        logger.info("scheme.submitted", scheme_id=scheme_id, previous_status=str(scheme.status))
        return stored

    async def approve_scheme(
        self, admin: Actor, scheme_id: str, remarks: str | None = None
    ) -> Scheme:
        scheme = await self._load_scheme(scheme_id)
        stored = await self._schemes.replace_scheme(
            self._scheme_lifecycle.approve(scheme, admin, remarks),
            expected_version=scheme.version,
        )
        logger.info("scheme.approved", scheme_id=scheme_id, approved_by=admin.user_id)
        return stored

    async def reject_scheme(self, admin: Actor, scheme_id: str, remarks: str | None) -> Scheme:
        scheme = await self._load_scheme(scheme_id)
        stored = await self._schemes.replace_scheme(
            self._scheme_lifecycle.reject(scheme, admin, remarks),
            expected_version=scheme.version,
        )
        logger.info("scheme.rejected", scheme_id=scheme_id, rejected_by=admin.user_id)
        return stored

    async def toggle_scheme_active(self, admin: Actor, scheme_id: str) -> Scheme:
        scheme = await self._load_scheme(scheme_id)
        stored = await self._schemes.replace_scheme(
            self._scheme_lifecycle.toggle_active(scheme, admin),
            expected_version=scheme.version,
        )
        logger.info("scheme.active_toggled", scheme_id=scheme_id, active=stored.active)
        return stored

    async def delete_scheme(self, actor: Actor, scheme_id: str) -> None:
        scheme = await self._load_scheme(scheme_id)
        self._scheme_lifecycle.delete(scheme, actor)
        await self._schemes.delete_scheme(scheme_id, expected_version=scheme.version)
        logger.info("scheme.deleted", scheme_id=scheme_id)

    # -- Scheme queries --------------------------------------------------

    async def get_scheme(self, scheme_id: str) -> Scheme:
        return await self._load_scheme(scheme_id)

    async def list_public_schemes(self) -> list[Scheme]:
        return _newest_first(
            await self._schemes.list_schemes(status=SchemeStatus.APPROVED, active=True)
        )

    async def list_organizer_schemes(self, actor: Actor) -> list[Scheme]:
        return _newest_first(await self._schemes.list_schemes(created_by=actor.user_id))

    async def list_pending_schemes(self, admin: Actor) -> list[Scheme]:
        return await self.list_schemes(admin, status=SchemeStatus.PENDING)

    async def list_schemes(
        self, admin: Actor, status: SchemeStatus | None = None
    ) -> list[Scheme]:
        _require_admin(admin)
        return _newest_first(await self._schemes.list_schemes(status=status))

    # ------------------------------------------------------------------
    # Applications
    # ------------------------------------------------------------------

    async def submit_application(
        self,
        actor: Actor,
        scheme_id: str,
        application_data: ApplicationData | Mapping[str, Any],
        documents: ApplicationDocuments | Mapping[str, Any],
        applicant_details: Mapping[str, Any] | None = None,
    ) -> SchemeApplication:
        """Apply to a scheme.

        The applicant snapshot is taken from ``applicant_details`` when given,
        otherwise from the caller's stored profile, and is frozen at this
        point.
        """
        scheme = await self._load_scheme(scheme_id)
        if applicant_details is None:
            profile = await self._profiles.get_profile(actor.user_id)
            if profile is None:
                raise NotFoundError("Profile", actor.user_id)
            applicant_details = profile.to_snapshot_fields()
        snapshot = ApplicantSnapshot.capture(applicant_details)
        data = _parse(ApplicationData, application_data, "Invalid application data")
        docs = _parse(ApplicationDocuments, documents, "Invalid application documents")

        existing = await self._applications.find_application(actor.user_id, scheme_id)
        application = self._application_lifecycle.submit(
            actor.user_id, scheme, snapshot, data, docs, existing=existing
        )
        stored = await self._applications.insert_application(application)
        logger.info(
            "application.submitted",
            application_id=stored.application_id,
            scheme_id=scheme_id,
            user_id=actor.user_id,
        )
        return stored

    async def approve_application(self, reviewer: Actor, application_id: str) -> SchemeApplication:
        application, scheme = await self._load_application_with_scheme(application_id)
        stored = await self._applications.replace_application(
            self._application_lifecycle.approve(application, scheme, reviewer),
            expected_version=application.version,
        )
        logger.info(
            "application.approved",
            application_id=application_id,
            scheme_id=scheme.scheme_id,
            reviewed_by=reviewer.user_id,
        )
        return stored

    async def reject_application(
        self, reviewer: Actor, application_id: str, reason: str | None
    ) -> SchemeApplication:
        application, scheme = await self._load_application_with_scheme(application_id)
        stored = await self._applications.replace_application(
            self._application_lifecycle.reject(application, scheme, reviewer, reason),
            expected_version=application.version,
        )
        logger.info(
            "application.rejected",
            application_id=application_id,
            scheme_id=scheme.scheme_id,
            reviewed_by=reviewer.user_id,
        )
        return stored

    # -- Application queries ---------------------------------------------

    async def list_my_applications(self, actor: Actor) -> list[SchemeApplication]:
        return _newest_first(await self._applications.list_applications(user_id=actor.user_id))

    async def has_applied(self, actor: Actor, scheme_id: str) -> bool:
        return await self._applications.find_application(actor.user_id, scheme_id) is not None

    async def list_scheme_applications(
        self, actor: Actor, scheme_id: str
    ) -> list[SchemeApplication]:
        scheme = await self._load_scheme(scheme_id)
        if not self._application_lifecycle.can_review(scheme, actor):
            raise UnauthorizedError(
                "Not authorized to view applications for this scheme",
                {"scheme_id": scheme_id},
            )
        return _newest_first(await self._applications.list_applications(scheme_id=scheme_id))

    async def list_applications(
        self,
        admin: Actor,
        status: ApplicationStatus | None = None,
        scheme_id: str | None = None,
    ) -> list[SchemeApplication]:
        _require_admin(admin)
        return _newest_first(
            await self._applications.list_applications(status=status, scheme_id=scheme_id)
        )

    # ------------------------------------------------------------------
    # Organizer promotion
    # ------------------------------------------------------------------

    async def submit_promotion_request(
        self, actor: Actor, fields: PromotionRequestFields | Mapping[str, Any]
    ) -> OrganizerPromotionRequest:
        parsed = _parse(PromotionRequestFields, fields, "Invalid organizer application")
        # The stored role is authoritative; the caller's token may be stale.
        account = await self._users.get_user(actor.user_id)
        if account is None:
            raise NotFoundError("User", actor.user_id)
        existing = await self._promotions.find_pending_request(actor.user_id)
        request = self._promotion_workflow.submit(
            Actor(user_id=account.user_id, role=account.role),
            parsed,
            existing_pending=existing,
        )
        stored = await self._promotions.insert_request(request)
        logger.info(
            "promotion.submitted",
            request_id=stored.request_id,
            user_id=actor.user_id,
        )
        return stored

    async def approve_promotion_request(
        self, admin: Actor, request_id: str, remarks: str | None = None
    ) -> OrganizerPromotionRequest:
        request = await self._load_request(request_id)
        account = await self._users.get_user(request.user_id)
        if account is None:
            raise NotFoundError("User", request.user_id)
        approved = self._promotion_workflow.approve(request, admin, account, remarks)
        stored = await self._promotions.approve_and_promote(
            approved, expected_version=request.version
        )
        logger.info(
            "promotion.approved",
            request_id=request_id,
            user_id=request.user_id,
            reviewed_by=admin.user_id,
        )
        return stored

    async def reject_promotion_request(
        self, admin: Actor, request_id: str, remarks: str | None
    ) -> OrganizerPromotionRequest:
        request = await self._load_request(request_id)
        stored = await self._promotions.replace_request(
            self._promotion_workflow.reject(request, admin, remarks),
            expected_version=request.version,
        )
        logger.info(
            "promotion.rejected",
            request_id=request_id,
            user_id=request.user_id,
            reviewed_by=admin.user_id,
        )
        return stored

    # -- Promotion queries -----------------------------------------------

    async def list_my_promotion_requests(self, actor: Actor) -> list[OrganizerPromotionRequest]:
        return _newest_first(await self._promotions.list_requests(user_id=actor.user_id))

    async def latest_promotion_request(self, actor: Actor) -> OrganizerPromotionRequest | None:
        requests = await self.list_my_promotion_requests(actor)
        return requests[0] if requests else None

    async def list_promotion_requests(
        self, admin: Actor, status: PromotionStatus | None = None
    ) -> list[OrganizerPromotionRequest]:
        _require_admin(admin)
        return _newest_first(await self._promotions.list_requests(status=status))

    # ------------------------------------------------------------------
    # Loaders
    # ------------------------------------------------------------------

    async def _load_scheme(self, scheme_id: str) -> Scheme:
        scheme = await self._schemes.get_scheme(scheme_id)
        if scheme is None:
            raise NotFoundError("Scheme", scheme_id)
        return scheme

    async def _load_application_with_scheme(
        self, application_id: str
    ) -> tuple[SchemeApplication, Scheme]:
        application = await self._applications.get_application(application_id)
        if application is None:
            raise NotFoundError("Application", application_id)
        return application, await self._load_scheme(application.scheme_id)

    async def _load_request(self, request_id: str) -> OrganizerPromotionRequest:
        request = await self._promotions.get_request(request_id)
        if request is None:
            raise NotFoundError("Promotion request", request_id)
        return request


def _parse(model: type[InputT], data: InputT | Mapping[str, Any], message: str) -> InputT:
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError.from_pydantic(exc, message) from exc


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise UnauthorizedError("Admin role required", {"role": str(actor.role)})


def _newest_first(items: Sequence[ItemT]) -> list[ItemT]:
    # Stores list in creation order.
    return list(reversed(items))
