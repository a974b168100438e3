"""Public site routes.

Detail pages for published articles, projects and team members, plus the
newsletter and contact forms. ``PUBLIC_VIEWS`` decides which rows of a
content table visitors may see and in which order; the carousel feed uses
the same rules.
"""

from dataclasses import dataclass, field
from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException, Path, status

from src.api.dependencies import get_table_store
from src.api.errors import backend_call
from src.api.schemas import (
    ContactRequest,
    ErrorResponse,
    NewsletterSubscribeRequest,
    NewsletterSubscribeResponse,
    OkResponse,
    SubscriberResponse,
    TeamMemberPageResponse,
)
from src.core.logging import get_logger
from src.ports.backend import Order, Record, TableStore

logger = get_logger(__name__)

router = APIRouter(tags=["public"])


def _pick(row: Record, columns: tuple[str, ...]) -> Record:
    return {column: row.get(column) for column in columns}


@dataclass(frozen=True)
class PublicView:
    """Rows of a content table visible on the public site.

    Attributes:
        filters: Columns that must equal the given values.
        exclude: Columns that must not equal the given values; null passes.
        order: Sort keys, most significant first.
        columns: Columns returned to visitors.
    """

    filters: dict[str, Any] = field(default_factory=dict)
    exclude: dict[str, Any] = field(default_factory=dict)
    order: tuple[Order, ...] = ()
    columns: tuple[str, ...] = ()

    def project(self, row: Record) -> Record:
        return _pick(row, self.columns)


PUBLIC_VIEWS: dict[str, PublicView] = {
    "materias": PublicView(
        filters={"status": "published"},
        order=(Order("published_at", descending=True), Order("created_at", descending=True)),
        columns=(
            "id",
            "slug",
            "titulo",
            "resumo",
            "capa_url",
            "autor_nome",
            "tags",
            "conteudo",
            "published_at",
            "created_at",
            "status",
        ),
    ),
    # Legacy projects have no publicado_transparencia value and stay public
    "projetos": PublicView(
        exclude={"publicado_transparencia": False},
        order=(
            Order("sort_order"),
            Order("published_at", descending=True),
            Order("created_at", descending=True),
        ),
        columns=(
            "id",
            "slug",
            "titulo",
            "resumo",
            "descricao",
            "capa_url",
            "sort_order",
            "published_at",
            "created_at",
        ),
    ),
}

MEMBER_COLUMNS = (
    "id",
    "nome",
    "cargo",
    "bio",
    "curriculo_md",
    "foto_url",
    "slug",
    "instagram",
    "whatsapp",
    "facebook_url",
    "linkedin_url",
    "website_url",
)
PORTFOLIO_COLUMNS = (
    "id",
    "member_id",
    "kind",
    "title",
    "description",
    "file_url",
    "thumb_url",
    "order_index",
)
POST_COLUMNS = ("id", "slug", "titulo", "capa_url", "published_at", "created_at")

SUBSCRIBERS_TABLE = "newsletter_subscribers"
CONTACT_TABLE = "contact_messages"


def _not_found(what: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={"error": f"{what} not found", "code": "NOT_FOUND"},
    )


def _bad_request(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": message, "code": "INVALID_INPUT"},
    )


async def find_public(store: TableStore, table: str, key: str) -> Record | None:
    """Visible row of ``table`` by slug, falling back to its id."""
    view = PUBLIC_VIEWS[table]
    for column in ("slug", "id"):
        rows = await store.select(
            table, filters={**view.filters, column: key}, exclude=view.exclude, limit=1
        )
        if rows:
            return view.project(rows[0])
    return None


@router.get(
    "/materias/{key}",
    response_model=dict[str, Any],
    responses={404: {"model": ErrorResponse, "description": "Not published"}},
)
async def materia_detail(
    key: Annotated[str, Path(description="Slug, or id for old links")],
    store: Annotated[TableStore, Depends(get_table_store)],
) -> Record:
    with backend_call("select"):
        materia = await find_public(store, "materias", key)
    if materia is None:
        raise _not_found("Article")
    return materia


@router.get(
    "/projetos/{key}",
    response_model=dict[str, Any],
    responses={404: {"model": ErrorResponse, "description": "Not public"}},
)
async def projeto_detail(
    key: Annotated[str, Path(description="Slug, or id for old links")],
    store: Annotated[TableStore, Depends(get_table_store)],
) -> Record:
    with backend_call("select"):
        projeto = await find_public(store, "projetos", key)
    if projeto is None:
        raise _not_found("Project")
    return projeto


@router.get(
    "/equipe/{slug}",
    response_model=TeamMemberPageResponse,
    responses={404: {"model": ErrorResponse, "description": "No public profile"}},
)
async def team_member_page(
    slug: str,
    store: Annotated[TableStore, Depends(get_table_store)],
) -> TeamMemberPageResponse:
    """Active, public team member with public portfolio and published articles."""
    with backend_call("select"):
        members = await store.select(
            "equipe", filters={"slug": slug, "ativo": True, "is_public": True}, limit=1
        )
        if not members:
            raise _not_found("Team member")
        member = members[0]

        portfolio = await store.select(
            "team_member_portfolio",
            filters={"member_id": member["id"], "is_public": True},
            order_by="order_index",
        )

        posts: list[Record] = []
        links = await store.select("team_member_posts", filters={"member_id": member["id"]})
        for link in links:
            materia = await store.get("materias", str(link.get("materia_id")))
            if materia is not None and materia.get("status") == "published":
                posts.append(_pick(materia, POST_COLUMNS))

    posts.sort(key=lambda p: p.get("published_at") or p.get("created_at") or "", reverse=True)
    return TeamMemberPageResponse(
        member=_pick(member, MEMBER_COLUMNS),
        portfolio=[_pick(item, PORTFOLIO_COLUMNS) for item in portfolio],
        posts=posts,
    )


@router.post(
    "/newsletter/subscribe",
    response_model=NewsletterSubscribeResponse,
    responses={400: {"model": ErrorResponse, "description": "Invalid e-mail"}},
)
async def newsletter_subscribe(
    request: NewsletterSubscribeRequest,
    store: Annotated[TableStore, Depends(get_table_store)],
) -> NewsletterSubscribeResponse:
    """Subscribe an e-mail, reactivating it if it is already known."""
    email = request.email.strip().lower()
    if not email or "@" not in email:
        raise _bad_request("Invalid email")
    values = {"email": email, "name": (request.name or "").strip() or None, "status": "active"}

    with backend_call("upsert"):
        existing = await store.select(SUBSCRIBERS_TABLE, filters={"email": email}, limit=1)
        if existing:
            row = await store.update(SUBSCRIBERS_TABLE, existing[0]["id"], values)
        else:
            row = await store.insert(SUBSCRIBERS_TABLE, values)

    logger.info("newsletter_subscribed", subscriber_id=row["id"], new=not existing)
    return NewsletterSubscribeResponse(
        subscriber=SubscriberResponse(
            id=row["id"], email=row["email"], name=row.get("name"), status=row["status"]
        )
    )


@router.post(
    "/contato",
    response_model=OkResponse,
    responses={400: {"model": ErrorResponse, "description": "Missing fields"}},
)
async def contact_submit(
    request: ContactRequest,
    store: Annotated[TableStore, Depends(get_table_store)],
) -> OkResponse:
    """Store a message from the contact form for the team to answer."""
    fields = {
        "name": request.name.strip(),
        "email": request.email.strip().lower(),
        "subject": request.subject.strip(),
        "message": request.message.strip(),
    }
    if not all(fields.values()) or "@" not in fields["email"]:
        raise _bad_request("Missing fields")

    with backend_call("insert"):
        row = await store.insert(CONTACT_TABLE, {**fields, "status": "new"})

    logger.info("contact_message_received", message_id=row["id"])
    return OkResponse()
