"""SchemeMitra service layer -- matching, lifecycle state machines, stores."""

from __future__ import annotations

from src.services.application_lifecycle import ApplicationLifecycle
from src.services.eligibility import (
    MatchingService,
    MatchScore,
    SchemeMatch,
    evaluate_rule,
    loose_equals,
    score_scheme,
)
from src.services.promotion import OrganizerPromotionWorkflow
from src.services.scheme_lifecycle import SchemeAction, SchemeLifecycle
from src.services.store import (
    ApplicationStore,
    InMemoryDocumentStore,
    ProfileStore,
    PromotionStore,
    SchemeStore,
    UserStore,
)
from src.services.workflow import SchemeWorkflow

__all__ = [
    "ApplicationLifecycle",
    "ApplicationStore",
    "InMemoryDocumentStore",
    "MatchScore",
    "MatchingService",
    "OrganizerPromotionWorkflow",
    "ProfileStore",
    "PromotionStore",
    "SchemeAction",
    "SchemeLifecycle",
    "SchemeMatch",
    "SchemeStore",
    "SchemeWorkflow",
    "UserStore",
    "evaluate_rule",
    "loose_equals",
    "score_scheme",
]
