"""FastAPI dependency injection for the backend services.

This module provides FastAPI dependencies that inject the configured backend
adapters into route handlers.

Example:
    from fastapi import Depends
    from src.api.dependencies import get_table_store
    from src.ports import TableStore

    @router.get("/materias")
    async def list_materias(store: TableStore = Depends(get_table_store)):
        return await store.select("materias", order_by="created_at", descending=True)
"""

from typing import AsyncGenerator

from src.adapters import MemoryBackend
from src.core.carousel_logic import CarouselConfig
from src.core.logging import get_logger
from src.ports.backend import ObjectStore, SessionProvider, TableStore, UserProvisioner

logger = get_logger(__name__)


class AppState:
    """Application state container for shared resources.

    Holds the backend service adapters and the carousel settings shared by
    every request handler.
    """

    def __init__(self) -> None:
        self._backend: MemoryBackend | None = None
        self._carousel_config: CarouselConfig | None = None
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(
        self,
        backend: MemoryBackend | None = None,
        carousel_config: CarouselConfig | None = None,
    ) -> None:
        """Connect the backend adapters.

        Args:
            backend: Backend bundle to use; a fresh in-memory one by default.
            carousel_config: Carousel settings; read from CAROUSEL_* env vars
                by default.
        """
        if self._initialized:
            logger.warning("app_state_already_initialized")
            return

        self._backend = backend or MemoryBackend()
        await self._backend.connect()
        logger.info("backend_initialized", backend=type(self._backend).__name__)

        self._carousel_config = carousel_config or CarouselConfig.from_env()
        logger.info(
            "carousel_config_loaded",
            autoplay=self._carousel_config.autoplay,
            autoplay_interval_ms=self._carousel_config.autoplay_interval_ms,
            transition_ms=self._carousel_config.transition_ms,
        )

        self._initialized = True
        logger.info("app_state_initialized")

    async def shutdown(self) -> None:
        if self._backend is not None:
            await self._backend.close()
            logger.info("backend_closed")
        self._backend = None
        self._initialized = False
        logger.info("app_state_shutdown")

    def _require_backend(self) -> MemoryBackend:
        if self._backend is None:
            raise RuntimeError("App state not initialized")
        return self._backend

    @property
    def backend(self) -> MemoryBackend:
        return self._require_backend()

    @property
    def tables(self) -> TableStore:
        return self._require_backend().tables

    @property
    def objects(self) -> ObjectStore:
        return self._require_backend().objects

    @property
    def sessions(self) -> SessionProvider:
        return self._require_backend().sessions

    @property
    def provisioner(self) -> UserProvisioner:
        return self._require_backend().provisioner

    @property
    def carousel_config(self) -> CarouselConfig:
        if self._carousel_config is None:
            raise RuntimeError("App state not initialized")
        return self._carousel_config


# Global app state instance
_app_state = AppState()


def get_app_state() -> AppState:
    """Get the global app state instance."""
    return _app_state


async def get_table_store() -> AsyncGenerator[TableStore, None]:
    """FastAPI dependency for the table store."""
    yield _app_state.tables


async def get_object_store() -> AsyncGenerator[ObjectStore, None]:
    """FastAPI dependency for the object store."""
    yield _app_state.objects


async def get_session_provider() -> AsyncGenerator[SessionProvider, None]:
    """FastAPI dependency for the auth service."""
    yield _app_state.sessions


async def get_user_provisioner() -> AsyncGenerator[UserProvisioner, None]:
    """FastAPI dependency for the user provisioning service."""
    yield _app_state.provisioner


async def get_carousel_config() -> AsyncGenerator[CarouselConfig, None]:
    """FastAPI dependency for carousel settings."""
    yield _app_state.carousel_config
