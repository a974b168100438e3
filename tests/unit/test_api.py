"""Tests for the HTTP API module."""

import asyncio
from collections.abc import Iterator
from contextlib import asynccontextmanager

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from src.adapters import MemoryBackend
from src.api.app import _cors_origins_from_env, create_app
from src.api.dependencies import AppState, get_app_state
from src.api.errors import backend_call
from src.core.carousel_logic import CarouselConfig
from src.core.errors import BackendError, ErrorCategory
from src.core.health import HealthChecker, ServiceCheck, ServiceStatus
from src.ports.backend import ProvisionRequest

PASSWORD = "s3cret-pass"

USERS: dict[str, list[str]] = {
    "alfa@example.org": ["admin_alfa"],
    "admin@example.org": ["admin"],
    "editor@example.org": ["editor"],
    "autor@example.org": ["autor"],
    "semrole@example.org": [],
}


@pytest.fixture
def seeded_backend() -> MemoryBackend:
    """In-memory backend with one account per role and one without roles."""
    backend = MemoryBackend(secret_key="api-test-secret")

    async def seed() -> None:
        await backend.connect()
        for email, roles in USERS.items():
            await backend.provisioner.provision(
                ProvisionRequest(email=email, password=PASSWORD, roles=roles)
            )

    asyncio.run(seed())
    return backend


@pytest.fixture
def client(seeded_backend: MemoryBackend) -> Iterator[TestClient]:
    """TestClient over an app whose state already holds ``seeded_backend``."""
    state = get_app_state()
    asyncio.run(state.initialize(seeded_backend, CarouselConfig(autoplay=False)))
    try:
        with TestClient(create_app()) as test_client:
            yield test_client
    finally:
        asyncio.run(state.shutdown())


def _login(client: TestClient, email: str) -> dict[str, str]:
    response = client.post("/auth/login", json={"email": email, "password": PASSWORD})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


def _seed(backend: MemoryBackend, table: str, *rows: dict) -> list[dict]:
    async def insert_all() -> list[dict]:
        return [await backend.tables.insert(table, row) for row in rows]

    return asyncio.run(insert_all())


def _app_with_checker(checker: HealthChecker):
    app = create_app()

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.health_checker = checker
        yield

    app.router.lifespan_context = test_lifespan
    return app


class TestAppState:
    """Tests for AppState class."""

    def test_initial_state(self) -> None:
        assert AppState().is_initialized is False

    @pytest.mark.parametrize(
        "attribute",
        ["backend", "tables", "objects", "sessions", "provisioner", "carousel_config"],
    )
    def test_raises_before_init(self, attribute: str) -> None:
        state = AppState()
        with pytest.raises(RuntimeError, match="App state not initialized"):
            getattr(state, attribute)

    @pytest.mark.asyncio
    async def test_initialize_and_shutdown(self, monkeypatch) -> None:
        monkeypatch.setenv("CAROUSEL_AUTOPLAY_MS", "1234")
        state = AppState()
        await state.initialize()
        assert state.is_initialized
        assert state.backend.is_connected
        assert state.carousel_config.autoplay_interval_ms == 1234

        await state.shutdown()
        assert not state.is_initialized


class TestCreateApp:
    """Tests for create_app factory."""

    def test_defaults(self) -> None:
        app = create_app()
        assert app.title == "RKC Site API"
        routes = {route.path for route in app.routes}
        assert {"/health", "/ready", "/live", "/auth/login", "/carousel/{table}"} <= routes
        assert "/admin/{area}/{record_id}" in routes
        assert {"/materias/{key}", "/equipe/{slug}", "/newsletter/subscribe", "/contato"} <= routes

    def test_custom_title_and_cors(self) -> None:
        app = create_app(title="Custom API", cors_origins=["http://localhost:3000"])
        assert app.title == "Custom API"
        assert len(app.user_middleware) > 0

    def test_cors_origins_from_env(self, monkeypatch) -> None:
        monkeypatch.setenv("CORS_ORIGINS", "https://rkc.org.br, ,https://admin.rkc.org.br")
        assert _cors_origins_from_env() == ["https://rkc.org.br", "https://admin.rkc.org.br"]
        monkeypatch.setenv("CORS_ORIGINS", "*")
        assert _cors_origins_from_env() == ["*"]

    def test_request_id_echoed(self) -> None:
        with TestClient(_app_with_checker(HealthChecker(version="test"))) as client:
            given = client.get("/live", headers={"X-Request-ID": "req-42"})
            generated = client.get("/live")
        assert given.headers["X-Request-ID"] == "req-42"
        assert len(generated.headers["X-Request-ID"]) == 32


class TestHealthRoutes:
    """Health routes with stubbed checks."""

    def test_live(self) -> None:
        with TestClient(_app_with_checker(HealthChecker(version="test"))) as client:
            response = client.get("/live")
        assert response.status_code == 200
        assert response.json() == {"alive": True}

    def test_health_with_no_checks(self) -> None:
        with TestClient(_app_with_checker(HealthChecker(version="test"))) as client:
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["checks"] == []
        assert response.json()["version"] == "test"

    def test_degraded_is_ready_but_not_healthy(self) -> None:
        async def degraded() -> ServiceCheck:
            return ServiceCheck(name="auth", status=ServiceStatus.DEGRADED)

        checker = HealthChecker(version="test")
        checker.add_check("auth", degraded)
        with TestClient(_app_with_checker(checker)) as client:
            assert client.get("/health").status_code == 503
            ready = client.get("/ready")
        assert ready.status_code == 200
        assert ready.json() == {"ready": True, "status": "degraded"}

    def test_unhealthy_is_not_ready(self) -> None:
        async def down() -> ServiceCheck:
            return ServiceCheck(name="tables", status=ServiceStatus.UNHEALTHY)

        checker = HealthChecker(version="test")
        checker.add_check("tables", down)
        with TestClient(_app_with_checker(checker)) as client:
            response = client.get("/ready")
        assert response.status_code == 503
        assert response.json()["ready"] is False

    def test_real_checks(self, client: TestClient, monkeypatch) -> None:
        monkeypatch.setenv("JWT_SECRET_KEY", "configured")
        response = client.get("/health")
        assert response.status_code == 200
        names = {check["name"] for check in response.json()["checks"]}
        assert names == {"backend", "tables", "auth"}


class TestAuthRoutes:
    def test_login_and_me(self, client: TestClient) -> None:
        response = client.post(
            "/auth/login", json={"email": "editor@example.org", "password": PASSWORD}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["user"]["roles"] == ["editor"]

        me = client.get(
            "/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"}
        )
        assert me.status_code == 200
        assert me.json()["email"] == "editor@example.org"

    def test_wrong_password(self, client: TestClient) -> None:
        response = client.post(
            "/auth/login", json={"email": "editor@example.org", "password": "nope"}
        )
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "AUTH_FAILURE"

    def test_me_requires_token(self, client: TestClient) -> None:
        response = client.get("/auth/me")
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "AUTH_REQUIRED"

    def test_invalid_token(self, client: TestClient) -> None:
        response = client.get("/auth/me", headers={"Authorization": "Bearer garbage"})
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "INVALID_TOKEN"

    def test_logout_revokes_token(self, client: TestClient) -> None:
        headers = _login(client, "autor@example.org")
        assert client.post("/auth/logout", headers=headers).status_code == 204
        assert client.get("/auth/me", headers=headers).status_code == 401


class TestAdminGating:
    def test_dashboard_lists_reachable_areas(self, client: TestClient) -> None:
        response = client.get("/admin", headers=_login(client, "autor@example.org"))
        assert response.status_code == 200
        assert response.json()["areas"] == ["materias"]

    def test_superuser_sees_every_area(self, client: TestClient) -> None:
        response = client.get("/admin", headers=_login(client, "alfa@example.org"))
        assert "usuarios" in response.json()["areas"]
        assert "configuracoes" in response.json()["areas"]

    def test_user_without_roles(self, client: TestClient) -> None:
        response = client.get("/admin", headers=_login(client, "semrole@example.org"))
        assert response.status_code == 401
        assert response.json()["detail"]["code"] == "NO_ROLES"

    def test_anonymous(self, client: TestClient) -> None:
        assert client.get("/admin/materias").status_code == 401

    def test_autor_cannot_open_projetos(self, client: TestClient) -> None:
        response = client.get("/admin/projetos", headers=_login(client, "autor@example.org"))
        assert response.status_code == 403
        assert response.json()["detail"]["required"] == ["admin", "editor"]

    def test_admin_cannot_open_usuarios(self, client: TestClient) -> None:
        response = client.get("/admin/usuarios", headers=_login(client, "admin@example.org"))
        assert response.status_code == 403

    def test_unknown_area(self, client: TestClient) -> None:
        response = client.get("/admin/nao-existe", headers=_login(client, "alfa@example.org"))
        assert response.status_code == 404

    def test_area_without_table(self, client: TestClient) -> None:
        response = client.get("/admin/financeiro", headers=_login(client, "editor@example.org"))
        assert response.status_code == 404


class TestAdminRecords:
    def test_create_publish_and_feed(self, client: TestClient) -> None:
        headers = _login(client, "autor@example.org")
        created = client.post(
            "/admin/materias",
            json={"values": {"titulo": "Horta Comunitária", "status": "published"}},
            headers=headers,
        )
        assert created.status_code == 201
        record = created.json()
        assert record["slug"] == "horta-comunitaria"
        assert record["published_at"]

        feed = client.get("/carousel/materias", params={"width": 1280})
        assert feed.status_code == 200
        body = feed.json()
        assert body["item_count"] == 1
        assert body["per_view"] == 3
        assert body["safe_length"] == 6
        assert body["start_index"] == 6
        assert len(body["track"]) == 18
        assert {slot["id"] for slot in body["track"]} == {record["id"]}
        assert body["autoplay"] is False

    def test_drafts_stay_out_of_feed(self, client: TestClient) -> None:
        headers = _login(client, "editor@example.org")
        client.post("/admin/materias", json={"values": {"titulo": "Rascunho"}}, headers=headers)
        body = client.get("/carousel/materias").json()
        assert body["item_count"] == 0
        assert body["track"] == []
        assert body["show_arrows"] is False

    def test_update_and_delete(self, client: TestClient) -> None:
        headers = _login(client, "editor@example.org")
        record = client.post(
            "/admin/projetos", json={"values": {"titulo": "Biblioteca"}}, headers=headers
        ).json()
        assert record["slug"] == "biblioteca"

        updated = client.patch(
            f"/admin/projetos/{record['id']}",
            json={"values": {"titulo": "Biblioteca Viva", "publicado_transparencia": True}},
            headers=headers,
        )
        assert updated.status_code == 200
        # The slug is kept once set
        assert updated.json()["slug"] == "biblioteca"

        feed = client.get("/carousel/projetos", params={"width": 375}).json()
        assert feed["per_view"] == 1
        assert feed["item_count"] == 1

        assert client.delete(f"/admin/projetos/{record['id']}", headers=headers).status_code == 204
        assert client.get(f"/admin/projetos/{record['id']}", headers=headers).status_code == 404

    def test_update_missing_record(self, client: TestClient) -> None:
        response = client.patch(
            "/admin/equipe/missing",
            json={"values": {"nome": "X"}},
            headers=_login(client, "admin@example.org"),
        )
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"

    def test_empty_values_rejected(self, client: TestClient) -> None:
        response = client.post(
            "/admin/equipe", json={"values": {}}, headers=_login(client, "admin@example.org")
        )
        assert response.status_code == 422


class TestCarouselFeed:
    def test_unknown_feed(self, client: TestClient) -> None:
        assert client.get("/carousel/equipe").status_code == 404

    def test_negative_width_rejected(self, client: TestClient) -> None:
        assert client.get("/carousel/materias", params={"width": -1}).status_code == 422

    def test_projects_without_transparency_flag_are_public(
        self, client: TestClient, seeded_backend: MemoryBackend
    ) -> None:
        _seed(
            seeded_backend,
            "projetos",
            {"titulo": "Oculto", "slug": "oculto", "publicado_transparencia": False},
            {"titulo": "Antigo", "slug": "antigo", "sort_order": 2},
            {"titulo": "Horta", "slug": "horta", "sort_order": 1, "publicado_transparencia": True},
        )
        body = client.get("/carousel/projetos", params={"width": 1280}).json()
        assert body["item_count"] == 2
        first, second = body["track"][body["start_index"] : body["start_index"] + 2]
        assert (first["slug"], second["slug"]) == ("horta", "antigo")
        assert "oculto" not in {slot["slug"] for slot in body["track"]}

    def test_slots_carry_slug(self, client: TestClient, seeded_backend: MemoryBackend) -> None:
        _seed(
            seeded_backend, "materias", {"titulo": "Feira", "slug": "feira", "status": "published"}
        )
        track = client.get("/carousel/materias").json()["track"]
        assert {slot["slug"] for slot in track} == {"feira"}

    def test_backend_failure_answers_bad_gateway(
        self, client: TestClient, seeded_backend: MemoryBackend, monkeypatch
    ) -> None:
        async def refuse(*args, **kwargs):
            raise ConnectionRefusedError("connection refused")

        monkeypatch.setattr(seeded_backend.tables, "select", refuse)
        response = client.get("/carousel/materias")
        assert response.status_code == 502
        assert response.json()["detail"]["code"] == "NETWORK"
        assert response.json()["detail"]["operation"] == "select"


class TestBackendCall:
    def test_wraps_unknown_errors(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            with backend_call("list_users"):
                raise Exception("duplicate key value violates unique constraint")
        assert exc_info.value.status_code == 409
        assert exc_info.value.detail["operation"] == "list_users"

    def test_http_errors_pass_through(self) -> None:
        original = HTTPException(status_code=404, detail="gone")
        with pytest.raises(HTTPException) as exc_info:
            with backend_call("get"):
                raise original
        assert exc_info.value is original

    def test_backend_error_keeps_its_category(self) -> None:
        with pytest.raises(HTTPException) as exc_info:
            with backend_call("provision"):
                raise BackendError("missing", ErrorCategory.NOT_FOUND, operation="provision")
        assert exc_info.value.status_code == 404


class TestPublicDetail:
    def test_materia_by_slug_and_by_id(
        self, client: TestClient, seeded_backend: MemoryBackend
    ) -> None:
        (row,) = _seed(
            seeded_backend,
            "materias",
            {"titulo": "Feira", "slug": "feira", "status": "published", "rascunho_interno": "x"},
        )
        by_slug = client.get("/materias/feira")
        assert by_slug.status_code == 200
        assert by_slug.json()["titulo"] == "Feira"
        assert "rascunho_interno" not in by_slug.json()
        assert client.get(f"/materias/{row['id']}").json()["slug"] == "feira"

    def test_draft_materia_not_found(
        self, client: TestClient, seeded_backend: MemoryBackend
    ) -> None:
        _seed(seeded_backend, "materias", {"titulo": "Rascunho", "slug": "rascunho"})
        response = client.get("/materias/rascunho")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "NOT_FOUND"

    def test_projeto_visibility(self, client: TestClient, seeded_backend: MemoryBackend) -> None:
        _seed(
            seeded_backend,
            "projetos",
            {"titulo": "Antigo", "slug": "antigo"},
            {"titulo": "Oculto", "slug": "oculto", "publicado_transparencia": False},
        )
        assert client.get("/projetos/antigo").status_code == 200
        assert client.get("/projetos/oculto").status_code == 404

    def test_team_member_page(self, client: TestClient, seeded_backend: MemoryBackend) -> None:
        (member, _hidden) = _seed(
            seeded_backend,
            "equipe",
            {"nome": "Ana", "slug": "ana", "ativo": True, "is_public": True, "email": "a@x.org"},
            {"nome": "Bia", "slug": "bia", "ativo": True, "is_public": False},
        )
        _seed(
            seeded_backend,
            "team_member_portfolio",
            {"member_id": member["id"], "title": "Segundo", "order_index": 2, "is_public": True},
            {"member_id": member["id"], "title": "Primeiro", "order_index": 1, "is_public": True},
            {"member_id": member["id"], "title": "Privado", "order_index": 0, "is_public": False},
        )
        old, new, draft = _seed(
            seeded_backend,
            "materias",
            {"titulo": "Velha", "status": "published", "published_at": "2024-01-01T00:00:00"},
            {"titulo": "Nova", "status": "published", "published_at": "2025-01-01T00:00:00"},
            {"titulo": "Rascunho", "status": "draft"},
        )
        _seed(
            seeded_backend,
            "team_member_posts",
            *({"member_id": member["id"], "materia_id": m["id"]} for m in (old, new, draft)),
        )

        response = client.get("/equipe/ana")
        assert response.status_code == 200
        body = response.json()
        assert body["member"]["nome"] == "Ana"
        assert "email" not in body["member"]
        assert [item["title"] for item in body["portfolio"]] == ["Primeiro", "Segundo"]
        assert [post["titulo"] for post in body["posts"]] == ["Nova", "Velha"]

        assert client.get("/equipe/bia").status_code == 404
        assert client.get("/equipe/ninguem").status_code == 404


class TestNewsletter:
    def test_subscribe_and_resubscribe(
        self, client: TestClient, seeded_backend: MemoryBackend
    ) -> None:
        first = client.post("/newsletter/subscribe", json={"email": " Ana@Example.org "})
        assert first.status_code == 200
        subscriber = first.json()["subscriber"]
        assert first.json()["ok"] is True
        assert subscriber["email"] == "ana@example.org"
        assert subscriber["status"] == "active"

        asyncio.run(
            seeded_backend.tables.update(
                "newsletter_subscribers", subscriber["id"], {"status": "unsubscribed"}
            )
        )
        again = client.post(
            "/newsletter/subscribe", json={"email": "ana@example.org", "name": "Ana"}
        ).json()["subscriber"]
        assert again["id"] == subscriber["id"]
        assert again["status"] == "active"
        assert again["name"] == "Ana"

        rows = asyncio.run(seeded_backend.tables.select("newsletter_subscribers"))
        assert len(rows) == 1

    @pytest.mark.parametrize("email", ["", "sem-arroba.org"])
    def test_invalid_email(self, client: TestClient, email: str) -> None:
        response = client.post("/newsletter/subscribe", json={"email": email})
        assert response.status_code == 400
        assert response.json()["detail"] == {"error": "Invalid email", "code": "INVALID_INPUT"}


class TestContact:
    def test_message_is_stored(self, client: TestClient, seeded_backend: MemoryBackend) -> None:
        response = client.post(
            "/contato",
            json={
                "name": "Ana",
                "email": "Ana@Example.org",
                "subject": "Voluntariado",
                "message": "Quero ajudar.",
            },
        )
        assert response.status_code == 200
        assert response.json() == {"ok": True}

        (row,) = asyncio.run(seeded_backend.tables.select("contact_messages"))
        assert row["status"] == "new"
        assert row["email"] == "ana@example.org"
        assert row["subject"] == "Voluntariado"

    def test_missing_fields(self, client: TestClient, seeded_backend: MemoryBackend) -> None:
        response = client.post(
            "/contato", json={"name": "Ana", "email": "ana@example.org", "subject": " "}
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "Missing fields"
        assert asyncio.run(seeded_backend.tables.select("contact_messages")) == []


class TestUploads:
    def test_upload_with_thumbnail(self, client: TestClient, png_base64: str) -> None:
        response = client.post(
            "/admin/uploads/materias",
            json={
                "filename": "Capa Nova.png",
                "content_type": "image/png",
                "image_base64": png_base64,
                "folder": "capas",
            },
            headers=_login(client, "autor@example.org"),
        )
        assert response.status_code == 201, response.text
        body = response.json()
        assert body["path"].startswith("capas/")
        assert body["path"].endswith("-capa-nova.png")
        assert body["thumbnail_path"].startswith("thumbs/capas/")
        assert "/object/public/materias/" in body["public_url"]

    def test_fixed_name(self, client: TestClient, png_base64: str) -> None:
        response = client.post(
            "/admin/uploads/site",
            json={
                "filename": "logo.png",
                "content_type": "image/png",
                "image_base64": png_base64,
                "fixed_name": "logo.jpg",
            },
            headers=_login(client, "alfa@example.org"),
        )
        assert response.status_code == 201
        assert response.json()["path"] == "logo.png"

    def test_bucket_needs_area_role(self, client: TestClient, png_base64: str) -> None:
        response = client.post(
            "/admin/uploads/projetos",
            json={"filename": "a.png", "content_type": "image/png", "image_base64": png_base64},
            headers=_login(client, "autor@example.org"),
        )
        assert response.status_code == 403

    def test_unknown_bucket(self, client: TestClient, png_base64: str) -> None:
        response = client.post(
            "/admin/uploads/privado",
            json={"filename": "a.png", "content_type": "image/png", "image_base64": png_base64},
            headers=_login(client, "alfa@example.org"),
        )
        assert response.status_code == 404

    def test_rejects_non_image(self, client: TestClient, png_base64: str) -> None:
        response = client.post(
            "/admin/uploads/materias",
            json={
                "filename": "a.pdf",
                "content_type": "application/pdf",
                "image_base64": png_base64,
            },
            headers=_login(client, "autor@example.org"),
        )
        assert response.status_code == 400

    def test_rejects_bad_base64(self, client: TestClient) -> None:
        response = client.post(
            "/admin/uploads/materias",
            json={"filename": "a.png", "content_type": "image/png", "image_base64": "@@@"},
            headers=_login(client, "autor@example.org"),
        )
        assert response.status_code == 400

    def test_signed_url(self, client: TestClient, png_base64: str) -> None:
        headers = _login(client, "editor@example.org")
        uploaded = client.post(
            "/admin/uploads/equipe",
            json={"filename": "ana.png", "content_type": "image/png", "image_base64": png_base64},
            headers=headers,
        ).json()

        response = client.get(
            "/admin/uploads/equipe/signed", params={"path": uploaded["path"]}, headers=headers
        )
        assert response.status_code == 200
        assert "/object/sign/equipe/" in response.json()["url"]
        assert response.json()["expires_in"] == 3600

        missing = client.get(
            "/admin/uploads/equipe/signed", params={"path": "nada.png"}, headers=headers
        )
        assert missing.status_code == 404


class TestUserProvisioning:
    def test_superuser_provisions_account(self, client: TestClient) -> None:
        headers = _login(client, "alfa@example.org")
        response = client.post(
            "/admin/usuarios",
            json={"email": "nova@example.org", "password": "123456", "roles": ["editor"]},
            headers=headers,
        )
        assert response.status_code == 200
        body = response.json()
        assert body == {
            "ok": True,
            "user_id": body["user_id"],
            "created": True,
            "roles": ["editor"],
        }

        users = client.get("/admin/usuarios", headers=headers).json()
        assert "nova@example.org" in {user["email"] for user in users}
        assert _login(client, "nova@example.org")

    def test_short_password(self, client: TestClient) -> None:
        response = client.post(
            "/admin/usuarios",
            json={"email": "nova@example.org", "password": "123", "roles": []},
            headers=_login(client, "alfa@example.org"),
        )
        assert response.status_code == 422

    def test_admin_cannot_provision(self, client: TestClient) -> None:
        response = client.post(
            "/admin/usuarios",
            json={"email": "nova@example.org", "password": "123456", "roles": ["admin"]},
            headers=_login(client, "admin@example.org"),
        )
        assert response.status_code == 403

    def test_unknown_team_record_creates_no_account(
        self, client: TestClient, seeded_backend: MemoryBackend
    ) -> None:
        response = client.post(
            "/admin/usuarios",
            json={
                "email": "nova@example.org",
                "password": "123456",
                "roles": ["editor"],
                "linked_record_id": "missing",
            },
            headers=_login(client, "alfa@example.org"),
        )
        assert response.status_code == 404
        assert response.json()["detail"]["operation"] == "provision"
        assert asyncio.run(seeded_backend.sessions.find_account("nova@example.org")) is None
