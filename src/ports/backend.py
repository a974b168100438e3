"""Protocols for the hosted backend services the site depends on.

The site delegates authentication, table storage, file storage and user
provisioning to a backend-as-a-service. These Protocols describe the parts of
that service the application uses, so adapters can be swapped (hosted client,
in-memory for tests) without touching the core.

Records are plain dicts keyed by an ``id`` string, as the hosted database
returns them.
"""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

Record = dict[str, Any]

# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Order:
    """One sort key for ``TableStore.select``. Rows missing the column sort last."""

    column: str
    descending: bool = False


@dataclass
class AuthUser:
    """An authenticated account.

    Attributes:
        id: Account ID assigned by the auth service.
        email: Login e-mail.
        roles: Role names assigned through ``user_roles``.
    """

    id: str
    email: str
    roles: list[str] = field(default_factory=list)


@dataclass
class Session:
    """A signed-in session.

    Attributes:
        access_token: Bearer token presented on later requests.
        user: The account the session belongs to.
        expires_at: When the token stops being accepted.
    """

    access_token: str
    user: AuthUser
    expires_at: datetime


@dataclass
class UploadResult:
    """Location of a stored object.

    Attributes:
        path: Path inside the bucket.
        public_url: URL for public buckets.
    """

    path: str
    public_url: str


@dataclass
class ProvisionRequest:
    """Account creation request from the users screen.

    Attributes:
        email: Login e-mail.
        password: Initial password.
        roles: Role names to assign; replaces any existing assignment.
        linked_record_id: Team (``equipe``) record to link to the account.
    """

    email: str
    password: str
    roles: list[str] = field(default_factory=list)
    linked_record_id: str | None = None


@dataclass
class ProvisionResult:
    """Outcome of a provisioning call."""

    user_id: str
    created: bool
    roles: list[str] = field(default_factory=list)


# =============================================================================
# Service Protocols
# =============================================================================


class SessionProvider(Protocol):
    """Authentication service."""

    async def sign_in(self, email: str, password: str) -> Session:
        """Exchange credentials for a session.

        Raises:
            BackendError: With AUTH_FAILURE for bad credentials.
        """
        ...

    async def get_user(self, access_token: str) -> AuthUser | None:
        """Resolve a bearer token to its account, or None if invalid/expired."""
        ...

    async def sign_out(self, access_token: str) -> None:
        """Revoke a session. Unknown tokens are ignored."""
        ...


class TableStore(Protocol):
    """Row storage with filtered, ordered reads and id-keyed writes."""

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | Sequence[Order] | None = None,
        descending: bool = False,
        limit: int | None = None,
        exclude: dict[str, Any] | None = None,
    ) -> list[Record]:
        """Rows of ``table`` whose columns equal every value in ``filters``.

        Rows where a column equals its value in ``exclude`` are dropped; rows
        where that column is null are kept. ``order_by`` is a column name
        (direction from ``descending``) or a list of ``Order`` keys applied
        left to right.
        """
        ...

    async def get(self, table: str, record_id: str) -> Record | None:
        """A single row by id, or None."""
        ...

    async def insert(self, table: str, values: Record) -> Record:
        """Insert a row and return it with generated fields filled in."""
        ...

    async def update(self, table: str, record_id: str, values: Record) -> Record:
        """Merge ``values`` into a row and return the updated row.

        Raises:
            BackendError: With NOT_FOUND if the row does not exist.
        """
        ...

    async def delete(self, table: str, record_id: str) -> bool:
        """Delete a row. Returns False if it did not exist."""
        ...

    async def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        """Delete every matching row and return how many were removed."""
        ...


class ObjectStore(Protocol):
    """File storage organised in buckets."""

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = True,
    ) -> UploadResult:
        """Store ``data`` at ``path``.

        Raises:
            BackendError: With CONFLICT if the path exists and upsert is False.
        """
        ...

    async def signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        """Temporary URL for a private object."""
        ...

    async def remove(self, bucket: str, paths: list[str]) -> int:
        """Delete objects; returns how many existed."""
        ...


class UserProvisioner(Protocol):
    """Server-side account management."""

    async def provision(self, request: ProvisionRequest) -> ProvisionResult:
        """Create or reuse the account, replace its roles, link the team record.

        Calling it twice with the same request leaves the same end state.

        Raises:
            BackendError: With NOT_FOUND, before anything is written, when
                ``linked_record_id`` names no team record.
        """
        ...


# =============================================================================
# Helpers
# =============================================================================


async def get_roles_for_user(store: TableStore, user_id: str) -> list[str]:
    """Role names assigned to ``user_id``, sorted.

    Role assignments pointing at missing roles are skipped.
    """
    assignments = await store.select("user_roles", filters={"user_id": user_id})
    names: list[str] = []
    for assignment in assignments:
        role = await store.get("roles", str(assignment.get("role_id")))
        if role and role.get("name"):
            names.append(str(role["name"]))
    return sorted(set(names))
