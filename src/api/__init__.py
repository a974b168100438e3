"""HTTP API package for the site and its back-office.

This module provides a FastAPI-based HTTP API exposing the public carousel
feed, authentication and the role-gated admin operations.
"""

from src.api.app import create_app
from src.api.dependencies import (
    get_carousel_config,
    get_object_store,
    get_session_provider,
    get_table_store,
    get_user_provisioner,
)

__all__ = [
    "create_app",
    "get_carousel_config",
    "get_object_store",
    "get_session_provider",
    "get_table_store",
    "get_user_provisioner",
]
