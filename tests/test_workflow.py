"""End-to-end tests for :class:`SchemeWorkflow` over the in-memory store.

Includes the race scenarios: two concurrent applications for the same
(user, scheme) and two concurrent approvals of the same pending scheme.
The racing stores yield to the event loop between read and write so both
callers pass their pre-checks before either one writes.
"""

from __future__ import annotations

import asyncio

import pytest

from src.errors import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
    UnauthorizedError,
    ValidationError,
)
from src.models.application import SchemeApplication
from src.models.enums import (
    ApplicationStatus,
    Category,
    PromotionStatus,
    SchemeStatus,
    UserRole,
)
from src.models.profile import Actor, CitizenProfile, UserAccount
from src.models.scheme import Scheme
from src.services.store import InMemoryDocumentStore
from src.services.workflow import SchemeWorkflow

SCHEME_DETAILS = {
    "name": "Post-Matric Scholarship for SC Students",
    "description": "Covers tuition and maintenance for SC students in higher education.",
    "benefits": "Full tuition reimbursement and up to Rs 1,200 per month.",
    "ministry": "Ministry of Social Justice and Empowerment",
}

AGE_CATEGORY_RULES = [
    {"field": "age", "operator": "<=", "value": 30, "weight": 40},
    {"field": "category", "operator": "in", "value": ["SC", "ST"], "weight": 60},
]


async def _live_scheme(
    workflow: SchemeWorkflow, organizer: Actor, admin: Actor, **overrides: object
) -> Scheme:
    scheme = await workflow.create_scheme(
        organizer, {**SCHEME_DETAILS, "rules": AGE_CATEGORY_RULES, **overrides}
    )
    await workflow.submit_scheme(organizer, scheme.scheme_id)
    return await workflow.approve_scheme(admin, scheme.scheme_id)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestFindMatches:
    async def test_ranks_only_live_schemes(
        self, workflow: SchemeWorkflow, organizer: Actor, admin: Actor, citizen: Actor
    ) -> None:
        full = await _live_scheme(workflow, organizer, admin, name="Full match")
        partial = await _live_scheme(
            workflow,
            organizer,
            admin,
            name="Partial match",
            rules=[*AGE_CATEGORY_RULES, {"field": "state", "operator": "==", "value": "Goa", "weight": 100}],
        )
        paused = await _live_scheme(workflow, organizer, admin, name="Paused")
        await workflow.toggle_scheme_active(admin, paused.scheme_id)
        await workflow.create_scheme(organizer, {**SCHEME_DETAILS, "rules": AGE_CATEGORY_RULES})

        matches = await workflow.find_matches(citizen.user_id)

        assert [m.scheme.scheme_id for m in matches] == [full.scheme_id, partial.scheme_id]
        assert [m.percentage for m in matches] == [100, 50]

    async def test_unknown_user(self, workflow: SchemeWorkflow) -> None:
        with pytest.raises(NotFoundError):
            await workflow.find_matches("nobody")

    async def test_profile_changes_change_scores(
        self,
        workflow: SchemeWorkflow,
        seeded_store: InMemoryDocumentStore,
        organizer: Actor,
        admin: Actor,
        citizen: Actor,
        complete_profile: CitizenProfile,
    ) -> None:
        await _live_scheme(workflow, organizer, admin)
        older = complete_profile.model_copy(update={"age": 35})
        await seeded_store.put_user(UserAccount(user_id=citizen.user_id, profile=older))
        (match,) = await workflow.find_matches(citizen.user_id)
        assert match.percentage == 60

        general = older.model_copy(update={"category": Category.GENERAL})
        await seeded_store.put_user(UserAccount(user_id=citizen.user_id, profile=general))
        (match,) = await workflow.find_matches(citizen.user_id)
        assert match.percentage == 0


# ---------------------------------------------------------------------------
# Scheme lifecycle
# ---------------------------------------------------------------------------


class TestSchemeWorkflow:
    async def test_review_round_trip(
        self, workflow: SchemeWorkflow, organizer: Actor, admin: Actor
    ) -> None:
        scheme = await workflow.create_scheme(organizer, SCHEME_DETAILS)
        assert scheme.status is SchemeStatus.DRAFT

        with pytest.raises(ValidationError):
            await workflow.submit_scheme(organizer, scheme.scheme_id)

        await workflow.update_scheme(
            organizer, scheme.scheme_id, {"rules": [{"field": "age", "operator": ">=", "value": 18}]}
        )
        pending = await workflow.submit_scheme(organizer, scheme.scheme_id)
        assert pending.status is SchemeStatus.PENDING

        rejected = await workflow.reject_scheme(admin, scheme.scheme_id, "incomplete")
        assert rejected.status is SchemeStatus.REJECTED
        assert rejected.remarks == "incomplete"

        edited = await workflow.update_scheme(
            organizer, scheme.scheme_id, {"description": "Now with eligibility details."}
        )
        assert edited.status is SchemeStatus.REJECTED

        resubmitted = await workflow.submit_scheme(organizer, scheme.scheme_id)
        assert resubmitted.status is SchemeStatus.PENDING
        assert resubmitted.remarks == ""

        approved = await workflow.approve_scheme(admin, scheme.scheme_id)
        assert approved.status is SchemeStatus.APPROVED
        assert approved.active is True
        assert approved.approved_by == admin.user_id

        with pytest.raises(InvalidTransitionError):
            await workflow.submit_scheme(organizer, scheme.scheme_id)

    async def test_invalid_input_is_validation_error(
        self, workflow: SchemeWorkflow, organizer: Actor
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await workflow.create_scheme(
                organizer,
                {**SCHEME_DETAILS, "rules": [{"field": "category", "operator": ">", "value": "SC"}]},
            )
        assert exc_info.value.details["errors"], "offending fields should be listed"

        with pytest.raises(ValidationError):
            await workflow.create_scheme(organizer, {**SCHEME_DETAILS, "name": ""})

    async def test_update_rejects_unknown_fields(
        self, workflow: SchemeWorkflow, organizer: Actor
    ) -> None:
        scheme = await workflow.create_scheme(organizer, SCHEME_DETAILS)
        with pytest.raises(ValidationError):
            await workflow.update_scheme(organizer, scheme.scheme_id, {"created_by": "org-2"})

    async def test_delete_draft(self, workflow: SchemeWorkflow, organizer: Actor) -> None:
        scheme = await workflow.create_scheme(organizer, SCHEME_DETAILS)
        await workflow.delete_scheme(organizer, scheme.scheme_id)
        with pytest.raises(NotFoundError):
            await workflow.get_scheme(scheme.scheme_id)

    async def test_missing_scheme(self, workflow: SchemeWorkflow, admin: Actor) -> None:
        with pytest.raises(NotFoundError):
            await workflow.approve_scheme(admin, "does-not-exist")

    async def test_queries(
        self,
        workflow: SchemeWorkflow,
        organizer: Actor,
        other_organizer: Actor,
        admin: Actor,
    ) -> None:
        older = await _live_scheme(workflow, organizer, admin, name="Older")
        newer = await _live_scheme(workflow, organizer, admin, name="Newer")
        pending = await workflow.create_scheme(other_organizer, {**SCHEME_DETAILS, "rules": AGE_CATEGORY_RULES})
        await workflow.submit_scheme(other_organizer, pending.scheme_id)

        public = await workflow.list_public_schemes()
        assert [s.scheme_id for s in public] == [newer.scheme_id, older.scheme_id]
        assert [s.scheme_id for s in await workflow.list_pending_schemes(admin)] == [pending.scheme_id]
        assert len(await workflow.list_organizer_schemes(organizer)) == 2
        assert len(await workflow.list_schemes(admin)) == 3
        with pytest.raises(UnauthorizedError):
            await workflow.list_pending_schemes(organizer)


# ---------------------------------------------------------------------------
# Applications
# ---------------------------------------------------------------------------


class TestApplicationWorkflow:
    async def test_apply_and_review(
        self,
        workflow: SchemeWorkflow,
        organizer: Actor,
        admin: Actor,
        citizen: Actor,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(workflow, organizer, admin)

        application = await workflow.submit_application(citizen, scheme.scheme_id, **application_inputs)
        assert application.status is ApplicationStatus.PENDING
        assert await workflow.has_applied(citizen, scheme.scheme_id) is True

        with pytest.raises(ConflictError):
            await workflow.submit_application(citizen, scheme.scheme_id, **application_inputs)

        with pytest.raises(ValidationError):
            await workflow.reject_application(organizer, application.application_id, "")

        rejected = await workflow.reject_application(
            organizer, application.application_id, "documents unclear"
        )
        assert rejected.status is ApplicationStatus.REJECTED
        assert rejected.rejection_reason == "documents unclear"
        assert rejected.reviewed_by == organizer.user_id

        with pytest.raises(InvalidTransitionError):
            await workflow.approve_application(organizer, application.application_id)

    async def test_snapshot_ignores_later_profile_edits(
        self,
        workflow: SchemeWorkflow,
        seeded_store: InMemoryDocumentStore,
        organizer: Actor,
        admin: Actor,
        citizen: Actor,
        complete_profile: CitizenProfile,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(workflow, organizer, admin)
        application = await workflow.submit_application(citizen, scheme.scheme_id, **application_inputs)

        edited = complete_profile.model_copy(update={"name": "Asha Kumari", "state": "Assam"})
        await seeded_store.put_user(UserAccount(user_id=citizen.user_id, profile=edited))

        (stored,) = await workflow.list_my_applications(citizen)
        assert stored.application_id == application.application_id
        assert stored.applicant_snapshot.name == "Asha Devi"
        assert stored.applicant_snapshot.state == "Bihar"

    async def test_explicit_applicant_details(
        self,
        workflow: SchemeWorkflow,
        organizer: Actor,
        admin: Actor,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(workflow, organizer, admin)
        walk_in = Actor(user_id="walk-in", role=UserRole.USER)
        application = await workflow.submit_application(
            walk_in,
            scheme.scheme_id,
            **application_inputs,
            applicant_details={
                "name": "Ravi Kumar",
                "email": "ravi@example.in",
                "phone": "9000000001",
                "age": 22,
                "gender": "Male",
                "category": "ST",
                "state": "Jharkhand",
                "education": "12th Pass",
            },
        )
        assert application.applicant_snapshot.name == "Ravi Kumar"

    async def test_incomplete_profile(
        self,
        workflow: SchemeWorkflow,
        seeded_store: InMemoryDocumentStore,
        organizer: Actor,
        admin: Actor,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(workflow, organizer, admin)
        await seeded_store.put_user(UserAccount(user_id="sparse", profile=CitizenProfile(name="Sparse", age=30)))
        with pytest.raises(ValidationError) as exc_info:
            await workflow.submit_application(
                Actor(user_id="sparse", role=UserRole.USER), scheme.scheme_id, **application_inputs
            )
        assert "Phone Number" in exc_info.value.details["missing_fields"]

    async def test_unknown_scheme_reported_before_profile_checks(
        self,
        workflow: SchemeWorkflow,
        seeded_store: InMemoryDocumentStore,
        application_inputs: dict,
    ) -> None:
        await seeded_store.put_user(UserAccount(user_id="sparse", profile=CitizenProfile(name="Sparse")))
        for user_id in ("sparse", "no-profile"):
            with pytest.raises(NotFoundError) as exc_info:
                await workflow.submit_application(
                    Actor(user_id=user_id, role=UserRole.USER), "no-such-scheme", **application_inputs
                )
            assert exc_info.value.details["entity"] == "Scheme"

    async def test_missing_purpose(
        self,
        workflow: SchemeWorkflow,
        organizer: Actor,
        admin: Actor,
        citizen: Actor,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(workflow, organizer, admin)
        with pytest.raises(ValidationError):
            await workflow.submit_application(
                citizen,
                scheme.scheme_id,
                application_data={},
                documents=application_inputs["documents"],
            )

    async def test_cannot_apply_to_unapproved_scheme(
        self,
        workflow: SchemeWorkflow,
        organizer: Actor,
        citizen: Actor,
        application_inputs: dict,
    ) -> None:
        draft = await workflow.create_scheme(organizer, {**SCHEME_DETAILS, "rules": AGE_CATEGORY_RULES})
        with pytest.raises(InvalidTransitionError):
            await workflow.submit_application(citizen, draft.scheme_id, **application_inputs)
        with pytest.raises(NotFoundError):
            await workflow.submit_application(citizen, "no-such-scheme", **application_inputs)

    async def test_review_permissions_and_queries(
        self,
        workflow: SchemeWorkflow,
        organizer: Actor,
        other_organizer: Actor,
        admin: Actor,
        citizen: Actor,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(workflow, organizer, admin)
        application = await workflow.submit_application(citizen, scheme.scheme_id, **application_inputs)

        with pytest.raises(UnauthorizedError):
            await workflow.approve_application(other_organizer, application.application_id)
        with pytest.raises(UnauthorizedError):
            await workflow.list_scheme_applications(other_organizer, scheme.scheme_id)

        assert len(await workflow.list_scheme_applications(organizer, scheme.scheme_id)) == 1
        approved = await workflow.approve_application(admin, application.application_id)
        assert approved.status is ApplicationStatus.APPROVED

        assert len(await workflow.list_applications(admin, status=ApplicationStatus.APPROVED)) == 1
        assert await workflow.list_applications(admin, status=ApplicationStatus.PENDING) == []
        with pytest.raises(UnauthorizedError):
            await workflow.list_applications(organizer)

    async def test_deactivated_scheme_applications_stay_reviewable(
        self,
        workflow: SchemeWorkflow,
        organizer: Actor,
        admin: Actor,
        citizen: Actor,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(workflow, organizer, admin)
        application = await workflow.submit_application(citizen, scheme.scheme_id, **application_inputs)
        await workflow.toggle_scheme_active(admin, scheme.scheme_id)
        approved = await workflow.approve_application(organizer, application.application_id)
        assert approved.status is ApplicationStatus.APPROVED


# ---------------------------------------------------------------------------
# Organizer promotion
# ---------------------------------------------------------------------------


class TestPromotionWorkflow:
    async def test_promotion_grants_organizer_role(
        self,
        workflow: SchemeWorkflow,
        seeded_store: InMemoryDocumentStore,
        citizen: Actor,
        admin: Actor,
        promotion_fields: dict,
    ) -> None:
        request = await workflow.submit_promotion_request(citizen, promotion_fields)
        with pytest.raises(ConflictError):
            await workflow.submit_promotion_request(citizen, promotion_fields)

        approved = await workflow.approve_promotion_request(admin, request.request_id)
        assert approved.status is PromotionStatus.APPROVED
        assert approved.remarks == "Application approved"

        account = await seeded_store.get_user(citizen.user_id)
        assert account is not None and account.role is UserRole.ORGANIZER

        promoted = Actor(user_id=citizen.user_id, role=account.role)
        scheme = await workflow.create_scheme(promoted, SCHEME_DETAILS)
        assert scheme.created_by == citizen.user_id

        with pytest.raises(PreconditionFailedError):
            await workflow.submit_promotion_request(citizen, promotion_fields)

    async def test_role_changed_before_approval(
        self,
        workflow: SchemeWorkflow,
        seeded_store: InMemoryDocumentStore,
        citizen: Actor,
        admin: Actor,
        promotion_fields: dict,
    ) -> None:
        request = await workflow.submit_promotion_request(citizen, promotion_fields)
        await seeded_store.set_user_role(citizen.user_id, UserRole.ORGANIZER, expected_role=UserRole.USER)

        with pytest.raises(PreconditionFailedError):
            await workflow.approve_promotion_request(admin, request.request_id)
        latest = await workflow.latest_promotion_request(citizen)
        assert latest is not None and latest.status is PromotionStatus.PENDING

    async def test_reject_then_resubmit(
        self,
        workflow: SchemeWorkflow,
        citizen: Actor,
        admin: Actor,
        promotion_fields: dict,
    ) -> None:
        first = await workflow.submit_promotion_request(citizen, promotion_fields)
        with pytest.raises(ValidationError):
            await workflow.reject_promotion_request(admin, first.request_id, None)
        await workflow.reject_promotion_request(admin, first.request_id, "Please attach an ID")

        second = await workflow.submit_promotion_request(citizen, promotion_fields)
        history = await workflow.list_my_promotion_requests(citizen)
        assert [r.request_id for r in history] == [second.request_id, first.request_id]
        latest = await workflow.latest_promotion_request(citizen)
        assert latest is not None and latest.request_id == second.request_id

        pending = await workflow.list_promotion_requests(admin, status=PromotionStatus.PENDING)
        assert [r.request_id for r in pending] == [second.request_id]

    async def test_short_reason(
        self, workflow: SchemeWorkflow, citizen: Actor, promotion_fields: dict
    ) -> None:
        with pytest.raises(ValidationError):
            await workflow.submit_promotion_request(citizen, {**promotion_fields, "reason": "too short"})

    async def test_unknown_request(self, workflow: SchemeWorkflow, admin: Actor) -> None:
        with pytest.raises(NotFoundError):
            await workflow.approve_promotion_request(admin, "missing")


# ---------------------------------------------------------------------------
# Races
# ---------------------------------------------------------------------------


class _RacingStore(InMemoryDocumentStore):
    """Yields after every lookup so concurrent callers interleave."""

    async def find_application(self, user_id: str, scheme_id: str) -> SchemeApplication | None:
        found = await super().find_application(user_id, scheme_id)
        await asyncio.sleep(0)
        return found

    async def get_scheme(self, scheme_id: str) -> Scheme | None:
        scheme = await super().get_scheme(scheme_id)
        await asyncio.sleep(0)
        return scheme


@pytest.fixture
async def racing_workflow(
    complete_profile: CitizenProfile, citizen: Actor, organizer: Actor, admin: Actor
) -> SchemeWorkflow:
    store = _RacingStore()
    await store.put_user(UserAccount(user_id=citizen.user_id, profile=complete_profile))
    await store.put_user(UserAccount(user_id=organizer.user_id, role=organizer.role))
    await store.put_user(UserAccount(user_id=admin.user_id, role=admin.role))
    return SchemeWorkflow.in_memory(store)


class TestRaces:
    async def test_concurrent_duplicate_applications(
        self,
        racing_workflow: SchemeWorkflow,
        organizer: Actor,
        admin: Actor,
        citizen: Actor,
        application_inputs: dict,
    ) -> None:
        scheme = await _live_scheme(racing_workflow, organizer, admin)
        results = await asyncio.gather(
            racing_workflow.submit_application(citizen, scheme.scheme_id, **application_inputs),
            racing_workflow.submit_application(citizen, scheme.scheme_id, **application_inputs),
            return_exceptions=True,
        )
        successes = [r for r in results if isinstance(r, SchemeApplication)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1, f"exactly one application should be stored, got {results!r}"
        assert len(failures) == 1 and isinstance(failures[0], ConflictError)
        assert len(await racing_workflow.list_my_applications(citizen)) == 1

    async def test_concurrent_scheme_approvals(
        self, racing_workflow: SchemeWorkflow, organizer: Actor, admin: Actor
    ) -> None:
        scheme = await racing_workflow.create_scheme(
            organizer, {**SCHEME_DETAILS, "rules": AGE_CATEGORY_RULES}
        )
        await racing_workflow.submit_scheme(organizer, scheme.scheme_id)

        results = await asyncio.gather(
            racing_workflow.approve_scheme(admin, scheme.scheme_id, "first"),
            racing_workflow.approve_scheme(admin, scheme.scheme_id, "second"),
            return_exceptions=True,
        )
        successes = [r for r in results if isinstance(r, Scheme)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], (ConflictError, InvalidTransitionError))

        stored = await racing_workflow.get_scheme(scheme.scheme_id)
        assert stored.status is SchemeStatus.APPROVED
        assert stored.remarks == successes[0].remarks
        assert stored.version == successes[0].version

    async def test_concurrent_promotion_approvals(
        self,
        racing_workflow: SchemeWorkflow,
        citizen: Actor,
        admin: Actor,
        promotion_fields: dict,
    ) -> None:
        request = await racing_workflow.submit_promotion_request(citizen, promotion_fields)
        results = await asyncio.gather(
            racing_workflow.approve_promotion_request(admin, request.request_id),
            racing_workflow.approve_promotion_request(admin, request.request_id),
            return_exceptions=True,
        )
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(failures) == 1
        assert isinstance(
            failures[0], (ConflictError, InvalidTransitionError, PreconditionFailedError)
        )
