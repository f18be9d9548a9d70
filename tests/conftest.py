"""Shared fixtures: actors, scheme factory, a complete citizen profile."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from src.models.enums import SchemeStatus, UserRole
from src.models.profile import Actor, CitizenProfile, UserAccount
from src.models.rule import Rule
from src.models.scheme import Scheme
from src.services.store import InMemoryDocumentStore
from src.services.workflow import SchemeWorkflow

ORGANIZER_ID = "org-1"
OTHER_ORGANIZER_ID = "org-2"
ADMIN_ID = "admin-1"
CITIZEN_ID = "citizen-1"


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------


@pytest.fixture
def organizer() -> Actor:
    return Actor(user_id=ORGANIZER_ID, role=UserRole.ORGANIZER)


@pytest.fixture
def other_organizer() -> Actor:
    return Actor(user_id=OTHER_ORGANIZER_ID, role=UserRole.ORGANIZER)


@pytest.fixture
def admin() -> Actor:
    return Actor(user_id=ADMIN_ID, role=UserRole.ADMIN)


@pytest.fixture
def citizen() -> Actor:
    return Actor(user_id=CITIZEN_ID, role=UserRole.USER)


# ---------------------------------------------------------------------------
# Domain data
# ---------------------------------------------------------------------------


@pytest.fixture
def age_category_rules() -> list[Rule]:
    """``age <= 30`` (weight 40) and ``category in [SC, ST]`` (weight 60)."""
    return [
        Rule(field="age", operator="<=", value=30, weight=40),
        Rule(field="category", operator="in", value=["SC", "ST"], weight=60),
    ]


@pytest.fixture
def make_scheme() -> Callable[..., Scheme]:
    """Factory for schemes in any lifecycle state."""

    def _make(
        *,
        status: SchemeStatus = SchemeStatus.DRAFT,
        rules: list[Rule] | None = None,
        created_by: str = ORGANIZER_ID,
        active: bool | None = None,
        name: str = "Post-Matric Scholarship",
    ) -> Scheme:
        return Scheme(
            name=name,
            description="Financial assistance for students after class 10.",
            benefits="Tuition fee reimbursement and monthly maintenance allowance.",
            ministry="Ministry of Social Justice and Empowerment",
            status=status,
            active=(status == SchemeStatus.APPROVED) if active is None else active,
            rules=list(rules or []),
            created_by=created_by,
        )

    return _make


@pytest.fixture
def complete_profile() -> CitizenProfile:
    """A 25-year-old SC graduate from Bihar with every snapshot field set."""
    return CitizenProfile(
        name="Asha Devi",
        email="asha.devi@example.in",
        phone="9876543210",
        age=25,
        income=120000,
        gender="Female",
        category="SC",
        state="Bihar",
        district="Patna",
        education="Graduate",
        maritalStatus="Single",
        disability="None",
        occupation="Student",
    )


@pytest.fixture
def application_inputs() -> dict:
    return {
        "application_data": {"purpose": "Fund my final year of engineering college"},
        "documents": {"marksheet": "https://files.example.in/asha/marksheet.pdf"},
    }


@pytest.fixture
def promotion_fields() -> dict:
    return {
        "organization": "Bihar State Welfare Department",
        "designation": "District Welfare Officer",
        "reason": "I coordinate scholarship outreach in Patna district and need to publish schemes.",
        "contact_number": "0612-2201234",
    }


# ---------------------------------------------------------------------------
# Wired workflow
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
async def seeded_store(
    store: InMemoryDocumentStore, complete_profile: CitizenProfile
) -> InMemoryDocumentStore:
    """Store holding one citizen, two organizers and one admin."""
    await store.put_user(UserAccount(user_id=CITIZEN_ID, profile=complete_profile))
    await store.put_user(UserAccount(user_id=ORGANIZER_ID, role=UserRole.ORGANIZER))
    await store.put_user(UserAccount(user_id=OTHER_ORGANIZER_ID, role=UserRole.ORGANIZER))
    await store.put_user(UserAccount(user_id=ADMIN_ID, role=UserRole.ADMIN))
    return store


@pytest.fixture
def workflow(seeded_store: InMemoryDocumentStore) -> SchemeWorkflow:
    return SchemeWorkflow.in_memory(seeded_store)
