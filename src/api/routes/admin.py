"""Back-office routes.

CRUD over the content tables, image uploads with thumbnails, signed URLs for
private files and account provisioning. Every route is gated by the roles of
the admin area it belongs to.
"""

import base64
import binascii
import re
import unicodedata
from datetime import UTC, datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Query, status

from src.api.auth import require_area, require_area_param
from src.api.dependencies import get_object_store, get_table_store, get_user_provisioner
from src.api.errors import backend_call
from src.api.schemas import (
    ErrorResponse,
    ImageUploadRequest,
    ProvisionUserRequest,
    ProvisionUserResponse,
    RecordListResponse,
    RecordWrite,
    SignedUrlResponse,
    UploadResponse,
    UserResponse,
)
from src.core.authz import AREA_ROLES, can_access
from src.core.image_utils import (
    ImageValidationError,
    create_thumbnail,
    ensure_image,
    slugify_filename,
)
from src.core.logging import get_logger
from src.ports.backend import (
    AuthUser,
    ObjectStore,
    ProvisionRequest,
    Record,
    TableStore,
    UserProvisioner,
    get_roles_for_user,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

# Admin area -> table holding its records
AREA_TABLES: dict[str, str] = {
    "materias": "materias",
    "projetos": "projetos",
    "equipe": "equipe",
    "newsletter": "newsletter_subscribers",
    "quem-somos": "quem_somos",
    "configuracoes": "site_settings",
}

# Storage bucket -> admin area allowed to write it
BUCKET_AREAS: dict[str, str] = {
    "materias": "materias",
    "projetos": "projetos",
    "equipe": "equipe",
    "quem-somos": "quem-somos",
    "site": "configuracoes",
}

# Tables whose rows carry a URL slug derived from the title
SLUGGED_TABLES = {"materias", "projetos"}

PUBLISH_STATUS = "published"
THUMBNAIL_FOLDER = "thumbs"


def slugify(text: str) -> str:
    """URL slug: lowercase ASCII words joined by single dashes."""
    folded = unicodedata.normalize("NFD", (text or "").lower())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    folded = re.sub(r"[^a-z0-9\s-]", "", folded).strip()
    folded = re.sub(r"\s+", "-", folded)
    return re.sub(r"-+", "-", folded)


def _table_for(area: str) -> str:
    table = AREA_TABLES.get(area)
    if table is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": f"Area '{area}' has no records", "code": "NOT_FOUND"},
        )
    return table


def _prepare_values(table: str, values: Record, existing: Record | None = None) -> Record:
    prepared = {k: v for k, v in values.items() if k not in ("id", "created_at")}
    if table in SLUGGED_TABLES:
        title = prepared.get("titulo") or (existing or {}).get("titulo")
        if not prepared.get("slug") and title and not (existing or {}).get("slug"):
            prepared["slug"] = slugify(str(title))
    if table == "materias" and prepared.get("status") == PUBLISH_STATUS:
        if not (existing or {}).get("published_at") and not prepared.get("published_at"):
            prepared["published_at"] = datetime.now(UTC).isoformat()
    return prepared


def _decode_image(data_b64: str) -> bytes:
    if data_b64.startswith("data:") and "," in data_b64:
        data_b64 = data_b64.split(",", 1)[1]
    try:
        return base64.b64decode(data_b64, validate=True)
    except binascii.Error as ex:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "Image data is not valid base64", "code": "INVALID_INPUT"},
        ) from ex


def _object_name(request: ImageUploadRequest) -> str:
    stem, _, ext = request.filename.rpartition(".")
    if not stem:
        stem, ext = request.filename, ""
    ext = (ext or "png").lower()
    if request.fixed_name:
        base = re.sub(r"\.[^.]+$", "", request.fixed_name)
    else:
        timestamp = int(datetime.now(UTC).timestamp() * 1000)
        base = f"{timestamp}-{slugify_filename(stem)}"
    name = f"{base}.{ext}"
    folder = request.folder.strip().strip("/")
    return f"{folder}/{name}" if folder else name


# =============================================================================
# Dashboard and accounts
# =============================================================================


@router.get("", response_model=dict[str, Any])
async def dashboard(
    user: Annotated[AuthUser, Depends(require_area(""))],
) -> dict[str, Any]:
    """Areas the signed-in user may open."""
    areas = [a for a in AREA_ROLES if can_access(f"/admin/{a}", user.roles)]
    return {
        "user": UserResponse(id=user.id, email=user.email, roles=user.roles).model_dump(),
        "areas": areas,
    }


@router.get("/usuarios", response_model=list[UserResponse])
async def list_users(
    user: Annotated[AuthUser, Depends(require_area("usuarios"))],
    store: Annotated[TableStore, Depends(get_table_store)],
) -> list[UserResponse]:
    """Every back-office account with its roles."""
    with backend_call("list_users"):
        accounts = await store.select("auth_users", order_by="email")
        return [
            UserResponse(
                id=account["id"],
                email=account["email"],
                roles=await get_roles_for_user(store, account["id"]),
            )
            for account in accounts
        ]


@router.post(
    "/usuarios",
    response_model=ProvisionUserResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        403: {"model": ErrorResponse, "description": "Superuser role required"},
    },
)
async def provision_user(
    request: ProvisionUserRequest,
    user: Annotated[AuthUser, Depends(require_area("usuarios"))],
    provisioner: Annotated[UserProvisioner, Depends(get_user_provisioner)],
) -> ProvisionUserResponse:
    """Create or update an account, replace its roles and link its team record."""
    with backend_call("provision"):
        result = await provisioner.provision(
            ProvisionRequest(
                email=request.email,
                password=request.password,
                roles=request.roles,
                linked_record_id=request.linked_record_id,
            )
        )

    logger.info("admin_user_provisioned", by=user.id, user_id=result.user_id)
    return ProvisionUserResponse(
        user_id=result.user_id, created=result.created, roles=result.roles
    )


# =============================================================================
# Storage
# =============================================================================


def _require_bucket_area(bucket: str, user: AuthUser) -> None:
    area = BUCKET_AREAS.get(bucket)
    if area is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": f"Unknown bucket: {bucket}", "code": "NOT_FOUND"},
        )
    if not can_access(f"/admin/{area}", user.roles):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "Insufficient role for this bucket", "code": "FORBIDDEN"},
        )


@router.post(
    "/uploads/{bucket}",
    response_model=UploadResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse, "description": "Not an acceptable image"}},
)
async def upload_image(
    bucket: str,
    request: ImageUploadRequest,
    user: Annotated[AuthUser, Depends(require_area(""))],
    objects: Annotated[ObjectStore, Depends(get_object_store)],
) -> UploadResponse:
    """Store an image and a square thumbnail next to it."""
    _require_bucket_area(bucket, user)
    data = _decode_image(request.image_base64)

    try:
        ensure_image(request.content_type, len(data))
        thumbnail = create_thumbnail(data)
    except ImageValidationError as ex:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": str(ex), "code": "INVALID_INPUT"},
        ) from ex

    path = _object_name(request)
    stem = path.rsplit(".", 1)[0]
    thumb_path = f"{THUMBNAIL_FOLDER}/{stem}.{thumbnail.extension}"

    with backend_call("upload"):
        stored = await objects.upload(bucket, path, data, request.content_type)
        thumb = await objects.upload(
            bucket, thumb_path, thumbnail.data, thumbnail.content_type
        )

    logger.info("image_uploaded", bucket=bucket, path=stored.path, user_id=user.id)
    return UploadResponse(
        path=stored.path,
        public_url=stored.public_url,
        thumbnail_path=thumb.path,
        thumbnail_url=thumb.public_url,
        content_type=request.content_type,
    )


@router.get("/uploads/{bucket}/signed", response_model=SignedUrlResponse)
async def signed_url(
    bucket: str,
    user: Annotated[AuthUser, Depends(require_area(""))],
    objects: Annotated[ObjectStore, Depends(get_object_store)],
    path: Annotated[str, Query(min_length=1)],
    expires_in: Annotated[int, Query(ge=60, le=7 * 24 * 3600)] = 3600,
) -> SignedUrlResponse:
    """Temporary link to a private file, such as a finance receipt."""
    _require_bucket_area(bucket, user)
    with backend_call("signed_url"):
        url = await objects.signed_url(bucket, path, expires_in=expires_in)
    return SignedUrlResponse(url=url, expires_in=expires_in)


# =============================================================================
# Records
# =============================================================================


@router.get("/{area}", response_model=RecordListResponse)
async def list_records(
    area: str,
    user: Annotated[AuthUser, Depends(require_area_param)],
    store: Annotated[TableStore, Depends(get_table_store)],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> RecordListResponse:
    """Rows of an area's table, newest first."""
    table = _table_for(area)
    filters = {"status": status_filter} if status_filter else None
    with backend_call("select"):
        records = await store.select(
            table, filters=filters, order_by="created_at", descending=True
        )
    return RecordListResponse(records=records, total=len(records))


@router.post(
    "/{area}",
    response_model=dict[str, Any],
    status_code=status.HTTP_201_CREATED,
)
async def create_record(
    area: str,
    request: RecordWrite,
    user: Annotated[AuthUser, Depends(require_area_param)],
    store: Annotated[TableStore, Depends(get_table_store)],
) -> Record:
    table = _table_for(area)
    with backend_call("insert"):
        record = await store.insert(table, _prepare_values(table, request.values))
    logger.info("admin_record_created", table=table, record_id=record["id"], user_id=user.id)
    return record


@router.get(
    "/{area}/{record_id}",
    response_model=dict[str, Any],
    responses={404: {"model": ErrorResponse, "description": "Record not found"}},
)
async def get_record(
    area: str,
    record_id: str,
    user: Annotated[AuthUser, Depends(require_area_param)],
    store: Annotated[TableStore, Depends(get_table_store)],
) -> Record:
    table = _table_for(area)
    with backend_call("get"):
        record = await store.get(table, record_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "The requested record was not found.", "code": "NOT_FOUND"},
        )
    return record


@router.patch("/{area}/{record_id}", response_model=dict[str, Any])
async def update_record(
    area: str,
    record_id: str,
    request: RecordWrite,
    user: Annotated[AuthUser, Depends(require_area_param)],
    store: Annotated[TableStore, Depends(get_table_store)],
) -> Record:
    table = _table_for(area)
    with backend_call("update"):
        existing = await store.get(table, record_id)
        record = await store.update(
            table, record_id, _prepare_values(table, request.values, existing)
        )
    logger.info("admin_record_updated", table=table, record_id=record_id, user_id=user.id)
    return record


@router.delete("/{area}/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_record(
    area: str,
    record_id: str,
    user: Annotated[AuthUser, Depends(require_area_param)],
    store: Annotated[TableStore, Depends(get_table_store)],
) -> None:
    table = _table_for(area)
    with backend_call("delete"):
        deleted = await store.delete(table, record_id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "The requested record was not found.", "code": "NOT_FOUND"},
        )
    logger.info("admin_record_deleted", table=table, record_id=record_id, user_id=user.id)
