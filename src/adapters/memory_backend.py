"""In-memory implementation of the backend service protocols.

This module provides in-memory stand-ins for the hosted services:
- MemoryTableStore (TableStore)
- MemoryObjectStore (ObjectStore)
- MemorySessionProvider (SessionProvider)
- MemoryUserProvisioner (UserProvisioner)

MemoryBackend bundles all four around one table store, the way the hosted
service shares one database between auth, roles and content. Nothing is
persisted. Access tokens and signed URLs are real HS256 JWTs so token
handling is exercised end to end.
"""

import copy
import hashlib
import hmac
import os
import secrets
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any
from urllib.parse import quote
from uuid import uuid4

import jwt

from src.core.authz import Role
from src.core.errors import BackendError, ErrorCategory
from src.core.logging import get_logger
from src.ports.backend import (
    AuthUser,
    Order,
    ProvisionRequest,
    ProvisionResult,
    Record,
    Session,
    UploadResult,
    get_roles_for_user,
)

logger = get_logger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = int(os.getenv("JWT_EXPIRATION_HOURS", "24"))
PUBLIC_STORAGE_URL = os.getenv("PUBLIC_STORAGE_URL", "http://localhost:8000/storage/v1")

AUTH_USERS_TABLE = "auth_users"


def _now() -> datetime:
    return datetime.now(UTC)


def _hash_password(password: str, salt: str) -> str:
    return hashlib.sha256(f"{salt}:{password}".encode()).hexdigest()


def _matches(record: Record, filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(record.get(key) == value for key, value in filters.items())


def _hits_any(record: Record, exclude: dict[str, Any] | None) -> bool:
    if not exclude:
        return False
    return any(
        record.get(key) is not None and record.get(key) == value
        for key, value in exclude.items()
    )


def _sorted(rows: list[Record], orders: Sequence[Order]) -> list[Record]:
    # Stable sorts from the last key to the first; nulls stay last per key
    for order in reversed(orders):
        present = [r for r in rows if r.get(order.column) is not None]
        missing = [r for r in rows if r.get(order.column) is None]
        present.sort(key=lambda r: r[order.column], reverse=order.descending)
        rows = present + missing
    return rows


class MemoryTableStore:
    """Dict-of-dicts table storage.

    Rows get a generated ``id`` (uuid4 string) and ``created_at`` /
    ``updated_at`` ISO timestamps when not supplied. Returned rows are copies,
    so callers cannot mutate stored state by accident.
    """

    def __init__(self) -> None:
        self._tables: dict[str, dict[str, Record]] = {}

    def _table(self, table: str) -> dict[str, Record]:
        return self._tables.setdefault(table, {})

    async def select(
        self,
        table: str,
        filters: dict[str, Any] | None = None,
        order_by: str | Sequence[Order] | None = None,
        descending: bool = False,
        limit: int | None = None,
        exclude: dict[str, Any] | None = None,
    ) -> list[Record]:
        rows = [
            r
            for r in self._table(table).values()
            if _matches(r, filters) and not _hits_any(r, exclude)
        ]
        if isinstance(order_by, str):
            rows = _sorted(rows, [Order(order_by, descending)])
        elif order_by:
            rows = _sorted(rows, order_by)
        if limit is not None:
            rows = rows[:limit]
        return [copy.deepcopy(r) for r in rows]

    async def get(self, table: str, record_id: str) -> Record | None:
        row = self._table(table).get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def insert(self, table: str, values: Record) -> Record:
        rows = self._table(table)
        record_id = str(values.get("id") or uuid4())
        if record_id in rows:
            raise BackendError(
                f"duplicate key value: {table}.id={record_id}",
                ErrorCategory.CONFLICT,
                operation="insert",
            )
        timestamp = _now().isoformat()
        row: Record = {"created_at": timestamp, "updated_at": timestamp, **values}
        row["id"] = record_id
        rows[record_id] = copy.deepcopy(row)
        return row

    async def update(self, table: str, record_id: str, values: Record) -> Record:
        rows = self._table(table)
        if record_id not in rows:
            raise BackendError(
                f"{table} record not found: {record_id}",
                ErrorCategory.NOT_FOUND,
                operation="update",
            )
        changes = {k: v for k, v in values.items() if k != "id"}
        rows[record_id].update(copy.deepcopy(changes))
        rows[record_id]["updated_at"] = _now().isoformat()
        return copy.deepcopy(rows[record_id])

    async def delete(self, table: str, record_id: str) -> bool:
        return self._table(table).pop(record_id, None) is not None

    async def delete_where(self, table: str, filters: dict[str, Any]) -> int:
        rows = self._table(table)
        doomed = [rid for rid, row in rows.items() if _matches(row, filters)]
        for rid in doomed:
            del rows[rid]
        return len(doomed)


class MemoryObjectStore:
    """Bucketed byte storage with public and signed URLs."""

    def __init__(
        self,
        base_url: str = PUBLIC_STORAGE_URL,
        secret_key: str = JWT_SECRET_KEY,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._secret_key = secret_key
        self._objects: dict[tuple[str, str], tuple[bytes, str]] = {}

    def public_url(self, bucket: str, path: str) -> str:
        return f"{self._base_url}/object/public/{bucket}/{quote(path)}"

    def read(self, bucket: str, path: str) -> tuple[bytes, str] | None:
        """Stored bytes and content type, or None."""
        return self._objects.get((bucket, path))

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str,
        upsert: bool = True,
    ) -> UploadResult:
        clean_path = path.strip("/")
        if not clean_path:
            raise BackendError("invalid object path", ErrorCategory.INVALID_INPUT, "upload")
        key = (bucket, clean_path)
        if key in self._objects and not upsert:
            raise BackendError(
                f"object already exists: {bucket}/{clean_path}",
                ErrorCategory.CONFLICT,
                operation="upload",
            )
        self._objects[key] = (bytes(data), content_type)
        logger.debug("object_uploaded", bucket=bucket, path=clean_path, size=len(data))
        return UploadResult(path=clean_path, public_url=self.public_url(bucket, clean_path))

    async def signed_url(self, bucket: str, path: str, expires_in: int = 3600) -> str:
        clean_path = path.strip("/")
        if (bucket, clean_path) not in self._objects:
            raise BackendError(
                f"object not found: {bucket}/{clean_path}",
                ErrorCategory.NOT_FOUND,
                operation="signed_url",
            )
        token = jwt.encode(
            {
                "url": f"{bucket}/{clean_path}",
                "exp": _now() + timedelta(seconds=expires_in),
            },
            self._secret_key,
            algorithm=JWT_ALGORITHM,
        )
        return f"{self._base_url}/object/sign/{bucket}/{quote(clean_path)}?token={token}"

    async def remove(self, bucket: str, paths: list[str]) -> int:
        removed = 0
        for path in paths:
            if self._objects.pop((bucket, path.strip("/")), None) is not None:
                removed += 1
        return removed


class MemorySessionProvider:
    """Password sign-in against the ``auth_users`` table, issuing JWTs."""

    def __init__(
        self,
        store: MemoryTableStore,
        secret_key: str = JWT_SECRET_KEY,
        expiration: timedelta | None = None,
    ) -> None:
        self._store = store
        self._secret_key = secret_key
        self._expiration = expiration or timedelta(hours=JWT_EXPIRATION_HOURS)
        self._revoked: set[str] = set()

    async def create_account(self, email: str, password: str) -> Record:
        """Register a login. Raises BackendError(CONFLICT) for known e-mails."""
        normalized = email.strip().lower()
        if await self.find_account(normalized) is not None:
            raise BackendError(
                "A user with this email address has already been registered",
                ErrorCategory.CONFLICT,
                operation="create_account",
            )
        salt = secrets.token_hex(8)
        return await self._store.insert(
            AUTH_USERS_TABLE,
            {
                "email": normalized,
                "salt": salt,
                "password_hash": _hash_password(password, salt),
            },
        )

    async def find_account(self, email: str) -> Record | None:
        rows = await self._store.select(
            AUTH_USERS_TABLE, filters={"email": email.strip().lower()}, limit=1
        )
        return rows[0] if rows else None

    async def sign_in(self, email: str, password: str) -> Session:
        account = await self.find_account(email)
        if account is None or not hmac.compare_digest(
            account["password_hash"], _hash_password(password, account["salt"])
        ):
            logger.warning("sign_in_failed", email=email)
            raise BackendError(
                "Invalid login credentials",
                ErrorCategory.AUTH_FAILURE,
                operation="sign_in",
            )

        now = _now()
        expires_at = now + self._expiration
        token = jwt.encode(
            {
                "sub": account["id"],
                "email": account["email"],
                "iat": now,
                "exp": expires_at,
                "jti": secrets.token_hex(8),
            },
            self._secret_key,
            algorithm=JWT_ALGORITHM,
        )
        user = AuthUser(
            id=account["id"],
            email=account["email"],
            roles=await get_roles_for_user(self._store, account["id"]),
        )
        logger.info("sign_in_succeeded", user_id=user.id)
        return Session(access_token=token, user=user, expires_at=expires_at)

    async def get_user(self, access_token: str) -> AuthUser | None:
        if access_token in self._revoked:
            return None
        try:
            payload = jwt.decode(
                access_token, self._secret_key, algorithms=[JWT_ALGORITHM]
            )
        except jwt.ExpiredSignatureError:
            logger.debug("session_expired")
            return None
        except jwt.InvalidTokenError:
            return None

        account = await self._store.get(AUTH_USERS_TABLE, str(payload.get("sub")))
        if account is None:
            return None
        return AuthUser(
            id=account["id"],
            email=account["email"],
            roles=await get_roles_for_user(self._store, account["id"]),
        )

    async def sign_out(self, access_token: str) -> None:
        self._revoked.add(access_token)


class MemoryUserProvisioner:
    """Idempotent account creation, role assignment and team linkage."""

    def __init__(self, store: MemoryTableStore, sessions: MemorySessionProvider) -> None:
        self._store = store
        self._sessions = sessions

    async def provision(self, request: ProvisionRequest) -> ProvisionResult:
        if not request.email or not request.password:
            raise BackendError(
                "Email and password are required",
                ErrorCategory.INVALID_INPUT,
                operation="provision",
            )

        # Nothing is written when the team record to link does not exist
        if request.linked_record_id and await self._store.get(
            "equipe", request.linked_record_id
        ) is None:
            raise BackendError(
                f"equipe record not found: {request.linked_record_id}",
                ErrorCategory.NOT_FOUND,
                operation="provision",
            )

        account = await self._sessions.find_account(request.email)
        created = account is None
        if account is None:
            account = await self._sessions.create_account(request.email, request.password)
        user_id = account["id"]

        # Replace role assignments wholesale
        await self._store.delete_where("user_roles", {"user_id": user_id})
        assigned: list[str] = []
        for role_name in dict.fromkeys(request.roles):
            roles = await self._store.select("roles", filters={"name": role_name}, limit=1)
            if not roles:
                logger.warning("provision_unknown_role", role=role_name)
                continue
            await self._store.insert(
                "user_roles", {"user_id": user_id, "role_id": roles[0]["id"]}
            )
            assigned.append(role_name)

        if request.linked_record_id:
            await self._store.update(
                "equipe", request.linked_record_id, {"user_id": user_id}
            )

        logger.info(
            "user_provisioned",
            user_id=user_id,
            created=created,
            roles=assigned,
            linked_record_id=request.linked_record_id,
        )
        return ProvisionResult(user_id=user_id, created=created, roles=sorted(assigned))


class MemoryBackend:
    """All in-memory services sharing one table store.

    Example:
        async with MemoryBackend() as backend:
            await backend.provisioner.provision(
                ProvisionRequest("ana@example.org", "s3cret", ["editor"])
            )
            session = await backend.sessions.sign_in("ana@example.org", "s3cret")
    """

    def __init__(self, secret_key: str = JWT_SECRET_KEY) -> None:
        self.tables = MemoryTableStore()
        self.objects = MemoryObjectStore(secret_key=secret_key)
        self.sessions = MemorySessionProvider(self.tables, secret_key=secret_key)
        self.provisioner = MemoryUserProvisioner(self.tables, self.sessions)
        self._connected = False

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def __aenter__(self) -> "MemoryBackend":
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.close()

    async def connect(self) -> None:
        """Seed the role catalogue (no-op after the first call)."""
        if not await self.tables.select("roles", limit=1):
            for role in Role:
                await self.tables.insert("roles", {"name": role.value})
        self._connected = True

    async def close(self) -> None:
        self._connected = False
