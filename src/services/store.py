"""Persistence seam for the workflow core.

The core never owns storage; it talks to the async protocols below.  Each
status-changing write is a compare-and-swap on the entity's ``version`` so
two concurrent reviews of the same pending entity cannot both win, and
inserts enforce the uniqueness rules (one application per user and scheme,
one pending promotion request per user) at write time rather than relying
on a read-then-write check.  ``list_*`` methods return entities in creation
order.

:class:`InMemoryDocumentStore` implements every protocol for tests and
single-process deployments.  Documents are kept as orjson bytes, so callers
always receive fresh copies and can never mutate stored state by accident.
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, TypeVar, runtime_checkable

import orjson
import structlog
from pydantic import BaseModel

from src.errors import ConflictError, NotFoundError, PreconditionFailedError
from src.models.application import SchemeApplication
from src.models.enums import (
    ApplicationStatus,
    PromotionStatus,
    SchemeStatus,
    UserRole,
)
from src.models.profile import CitizenProfile, UserAccount
from src.models.promotion import OrganizerPromotionRequest
from src.models.scheme import Scheme

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# ---------------------------------------------------------------------------
# Store protocols
# ---------------------------------------------------------------------------


@runtime_checkable
class ProfileStore(Protocol):
    async def get_profile(self, user_id: str) -> CitizenProfile | None: ...


@runtime_checkable
class UserStore(Protocol):
    async def get_user(self, user_id: str) -> UserAccount | None: ...

    async def set_user_role(
        self, user_id: str, role: UserRole, *, expected_role: UserRole
    ) -> UserAccount: ...


@runtime_checkable
class SchemeStore(Protocol):
    async def list_schemes(
        self,
        *,
        status: SchemeStatus | None = None,
        active: bool | None = None,
        created_by: str | None = None,
    ) -> list[Scheme]: ...

    async def get_scheme(self, scheme_id: str) -> Scheme | None: ...

    async def insert_scheme(self, scheme: Scheme) -> Scheme: ...

    async def replace_scheme(self, scheme: Scheme, *, expected_version: int) -> Scheme: ...

    async def delete_scheme(self, scheme_id: str, *, expected_version: int) -> None: ...


@runtime_checkable
class ApplicationStore(Protocol):
    async def get_application(self, application_id: str) -> SchemeApplication | None: ...

    async def find_application(self, user_id: str, scheme_id: str) -> SchemeApplication | None: ...

    async def list_applications(
        self,
        *,
        user_id: str | None = None,
        scheme_id: str | None = None,
        status: ApplicationStatus | None = None,
    ) -> list[SchemeApplication]: ...

    async def insert_application(self, application: SchemeApplication) -> SchemeApplication: ...

    async def replace_application(
        self, application: SchemeApplication, *, expected_version: int
    ) -> SchemeApplication: ...


@runtime_checkable
class PromotionStore(Protocol):
    async def get_request(self, request_id: str) -> OrganizerPromotionRequest | None: ...

    async def find_pending_request(self, user_id: str) -> OrganizerPromotionRequest | None: ...

    async def list_requests(
        self,
        *,
        user_id: str | None = None,
        status: PromotionStatus | None = None,
    ) -> list[OrganizerPromotionRequest]: ...

    async def insert_request(self, request: OrganizerPromotionRequest) -> OrganizerPromotionRequest: ...

    async def replace_request(
        self, request: OrganizerPromotionRequest, *, expected_version: int
    ) -> OrganizerPromotionRequest: ...

    async def approve_and_promote(
        self, request: OrganizerPromotionRequest, *, expected_version: int
    ) -> OrganizerPromotionRequest: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


def _dump(model: BaseModel) -> bytes:
    return orjson.dumps(model.model_dump(mode="json"))


class InMemoryDocumentStore:
    """Process-local document store implementing every store protocol.

    All writes happen under one :class:`asyncio.Lock`, which makes each
    check-and-write atomic for single-process async workloads.
    """

    __slots__ = (
        "_application_keys",
        "_applications",
        "_lock",
        "_pending_requests",
        "_requests",
        "_schemes",
        "_users",
    )

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._users: dict[str, bytes] = {}
        self._schemes: dict[str, bytes] = {}
        self._applications: dict[str, bytes] = {}
        self._requests: dict[str, bytes] = {}
        # (user_id, scheme_id) -> application_id
        self._application_keys: dict[tuple[str, str], str] = {}
        # user_id -> request_id of the one pending request
        self._pending_requests: dict[str, str] = {}

    # -- Users / profiles ------------------------------------------------------

    async def put_user(self, account: UserAccount) -> None:
        async with self._lock:
            self._users[account.user_id] = _dump(account)

    async def get_user(self, user_id: str) -> UserAccount | None:
        raw = self._users.get(user_id)
        return UserAccount.model_validate(orjson.loads(raw)) if raw is not None else None

    async def get_profile(self, user_id: str) -> CitizenProfile | None:
        account = await self.get_user(user_id)
        return account.profile if account is not None else None

    async def set_user_role(
        self, user_id: str, role: UserRole, *, expected_role: UserRole
    ) -> UserAccount:
        async with self._lock:
            return self._set_role_locked(user_id, role, expected_role=expected_role)

    def _set_role_locked(
        self, user_id: str, role: UserRole, *, expected_role: UserRole
    ) -> UserAccount:
        raw = self._users.get(user_id)
        if raw is None:
            raise NotFoundError("User", user_id)
        account = UserAccount.model_validate(orjson.loads(raw))
        if account.role != expected_role:
            raise PreconditionFailedError(
                f"User role is '{account.role}', expected '{expected_role}'",
                {"user_id": user_id, "role": str(account.role)},
            )
        updated = account.model_copy(update={"role": role})
        self._users[user_id] = _dump(updated)
        return updated

    # -- Schemes ---------------------------------------------------------------

    async def list_schemes(
        self,
        *,
        status: SchemeStatus | None = None,
        active: bool | None = None,
        created_by: str | None = None,
    ) -> list[Scheme]:
        """Schemes matching every given filter, oldest first."""
        schemes = [Scheme.from_document(orjson.loads(raw)) for raw in list(self._schemes.values())]
        return [
            s
            for s in schemes
            if (status is None or s.status == status)
            and (active is None or s.active is active)
            and (created_by is None or s.created_by == created_by)
        ]

    async def get_scheme(self, scheme_id: str) -> Scheme | None:
        raw = self._schemes.get(scheme_id)
        return Scheme.from_document(orjson.loads(raw)) if raw is not None else None

    async def insert_scheme(self, scheme: Scheme) -> Scheme:
        async with self._lock:
            if scheme.scheme_id in self._schemes:
                raise ConflictError("Scheme already exists", {"id": scheme.scheme_id})
            self._schemes[scheme.scheme_id] = _dump(scheme)
        return scheme

    async def replace_scheme(self, scheme: Scheme, *, expected_version: int) -> Scheme:
        async with self._lock:
            return self._swap(self._schemes, "Scheme", scheme.scheme_id, scheme, expected_version)

    async def delete_scheme(self, scheme_id: str, *, expected_version: int) -> None:
        async with self._lock:
            self._check_version(self._schemes, "Scheme", scheme_id, expected_version)
            del self._schemes[scheme_id]

    # -- Applications ----------------------------------------------------------

    async def get_application(self, application_id: str) -> SchemeApplication | None:
        raw = self._applications.get(application_id)
        return SchemeApplication.model_validate(orjson.loads(raw)) if raw is not None else None

    async def find_application(self, user_id: str, scheme_id: str) -> SchemeApplication | None:
        application_id = self._application_keys.get((user_id, scheme_id))
        if application_id is None:
            return None
        return await self.get_application(application_id)

    async def list_applications(
        self,
        *,
        user_id: str | None = None,
        scheme_id: str | None = None,
        status: ApplicationStatus | None = None,
    ) -> list[SchemeApplication]:
        applications = [
            SchemeApplication.model_validate(orjson.loads(raw))
            for raw in list(self._applications.values())
        ]
        return [
            a
            for a in applications
            if (user_id is None or a.user_id == user_id)
            and (scheme_id is None or a.scheme_id == scheme_id)
            and (status is None or a.status == status)
        ]

    async def insert_application(self, application: SchemeApplication) -> SchemeApplication:
        key = (application.user_id, application.scheme_id)
        async with self._lock:
            if key in self._application_keys:
                logger.warning(
                    "store.duplicate_application",
                    user_id=application.user_id,
                    scheme_id=application.scheme_id,
                )
                raise ConflictError(
                    "You have already applied to this scheme",
                    {"user_id": application.user_id, "scheme_id": application.scheme_id},
                )
            self._applications[application.application_id] = _dump(application)
            self._application_keys[key] = application.application_id
        return application

    async def replace_application(
        self, application: SchemeApplication, *, expected_version: int
    ) -> SchemeApplication:
        async with self._lock:
            return self._swap(
                self._applications,
                "Application",
                application.application_id,
                application,
                expected_version,
            )

    # -- Organizer promotion requests -------------------------------------------

    async def get_request(self, request_id: str) -> OrganizerPromotionRequest | None:
        raw = self._requests.get(request_id)
        return OrganizerPromotionRequest.model_validate(orjson.loads(raw)) if raw is not None else None

    async def find_pending_request(self, user_id: str) -> OrganizerPromotionRequest | None:
        request_id = self._pending_requests.get(user_id)
        if request_id is None:
            return None
        return await self.get_request(request_id)

    async def list_requests(
        self,
        *,
        user_id: str | None = None,
        status: PromotionStatus | None = None,
    ) -> list[OrganizerPromotionRequest]:
        requests = [
            OrganizerPromotionRequest.model_validate(orjson.loads(raw))
            for raw in list(self._requests.values())
        ]
        return [
            r
            for r in requests
            if (user_id is None or r.user_id == user_id)
            and (status is None or r.status == status)
        ]

    async def insert_request(self, request: OrganizerPromotionRequest) -> OrganizerPromotionRequest:
        async with self._lock:
            if request.user_id in self._pending_requests:
                raise ConflictError(
                    "You already have a pending application",
                    {"user_id": request.user_id},
                )
            self._requests[request.request_id] = _dump(request)
            if request.status == PromotionStatus.PENDING:
                self._pending_requests[request.user_id] = request.request_id
        return request

    async def replace_request(
        self, request: OrganizerPromotionRequest, *, expected_version: int
    ) -> OrganizerPromotionRequest:
        async with self._lock:
            stored = self._swap(
                self._requests, "Promotion request", request.request_id, request, expected_version
            )
            self._sync_pending_index(stored)
            return stored

    async def approve_and_promote(
        self, request: OrganizerPromotionRequest, *, expected_version: int
    ) -> OrganizerPromotionRequest:
        """Persist an approved request and promote its user in one step.

        Either both writes happen or neither does.
        """
        async with self._lock:
            self._check_version(
                self._requests, "Promotion request", request.request_id, expected_version
            )
            self._set_role_locked(request.user_id, UserRole.ORGANIZER, expected_role=UserRole.USER)
            stored = self._swap(
                self._requests, "Promotion request", request.request_id, request, expected_version
            )
            self._sync_pending_index(stored)
            return stored

    def _sync_pending_index(self, request: OrganizerPromotionRequest) -> None:
        if request.status == PromotionStatus.PENDING:
            self._pending_requests[request.user_id] = request.request_id
        elif self._pending_requests.get(request.user_id) == request.request_id:
            del self._pending_requests[request.user_id]

    # -- Compare-and-swap helpers ------------------------------------------------

    @staticmethod
    def _check_version(
        collection: dict[str, bytes], entity: str, key: str, expected_version: int
    ) -> dict[str, Any]:
        raw = collection.get(key)
        if raw is None:
            raise NotFoundError(entity, key)
        document = orjson.loads(raw)
        if document.get("version") != expected_version:
            logger.warning(
                "store.version_conflict",
                entity=entity,
                id=key,
                expected=expected_version,
                actual=document.get("version"),
            )
            raise ConflictError(
                f"{entity} was modified concurrently; reload and retry",
                {"id": key, "expected_version": expected_version},
            )
        return document

    def _swap(
        self,
        collection: dict[str, bytes],
        entity: str,
        key: str,
        model: ModelT,
        expected_version: int,
    ) -> ModelT:
        self._check_version(collection, entity, key, expected_version)
        stored = model.model_copy(update={"version": expected_version + 1})
        collection[key] = _dump(stored)
        return stored
