"""Shared pytest fixtures for rkc-site tests."""

import base64
import io
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from PIL import Image

from src.adapters import MemoryBackend
from src.core.carousel_logic import CarouselConfig
from src.core.carousel_engine import Viewport

# Configure pytest-asyncio to use auto mode for async tests
pytest_plugins = ["pytest_asyncio"]

DESKTOP_WIDTH = 1280
TABLET_WIDTH = 800
MOBILE_WIDTH = 375


@pytest_asyncio.fixture
async def backend() -> AsyncGenerator[MemoryBackend, None]:
    """Provide a connected in-memory backend with the role catalogue seeded.

    Yields:
        MemoryBackend: Fresh tables, storage, auth and provisioning.
    """
    async with MemoryBackend(secret_key="test-secret") as memory_backend:
        yield memory_backend


@pytest.fixture
def desktop_viewport() -> Viewport:
    """Viewport wide enough for three slots."""
    return Viewport(width=DESKTOP_WIDTH)


@pytest.fixture
def mobile_viewport() -> Viewport:
    """Viewport narrow enough for a single slot."""
    return Viewport(width=MOBILE_WIDTH)


@pytest.fixture
def manual_config() -> CarouselConfig:
    """Carousel settings with autoplay off, for step-by-step tests."""
    return CarouselConfig(autoplay=False)


@pytest.fixture
def fast_autoplay_config() -> CarouselConfig:
    """Carousel settings with a 10ms autoplay interval."""
    return CarouselConfig(autoplay=True, autoplay_interval_ms=10)


def make_image_bytes(size: tuple[int, int] = (640, 480), fmt: str = "PNG") -> bytes:
    """Encode a solid-color test image."""
    img = Image.new("RGB", size, color=(200, 40, 40))
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    """A 640x480 PNG image."""
    return make_image_bytes()


@pytest.fixture
def png_base64(png_bytes: bytes) -> str:
    """The 640x480 PNG, base64-encoded."""
    return base64.b64encode(png_bytes).decode("ascii")
