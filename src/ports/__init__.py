"""Ports (interfaces) for the application.

Protocol definitions for the hosted backend services (auth, tables, file
storage, user provisioning) the site depends on.
"""

from src.ports.backend import (
    AuthUser,
    ObjectStore,
    Order,
    ProvisionRequest,
    ProvisionResult,
    Record,
    Session,
    SessionProvider,
    TableStore,
    UploadResult,
    UserProvisioner,
    get_roles_for_user,
)

__all__ = [
    # Data classes
    "AuthUser",
    "Order",
    "ProvisionRequest",
    "ProvisionResult",
    "Record",
    "Session",
    "UploadResult",
    # Service protocols
    "ObjectStore",
    "SessionProvider",
    "TableStore",
    "UserProvisioner",
    # Helpers
    "get_roles_for_user",
]
