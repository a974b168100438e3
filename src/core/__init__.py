"""Core business logic.

Platform-agnostic pieces of the site: the infinite carousel, admin
authorization rules, image helpers, error classification, health checks and
logging.
"""

from src.core.authz import (
    AccessDecision,
    AccessOutcome,
    Role,
    can_access,
    check_access,
    has_any_role,
    required_roles_for,
)
from src.core.carousel_engine import CarouselEngine, CarouselFrame, Slot, Viewport
from src.core.carousel_logic import (
    CarouselConfig,
    CarouselController,
    CarouselState,
    GestureTracker,
    build_loop_track,
    build_safe_items,
    per_view_for_width,
    start_index,
    teleport_target,
)
from src.core.errors import (
    BackendError,
    ErrorCategory,
    classify_error,
    user_message,
)
from src.core.health import (
    HealthChecker,
    HealthReport,
    ServiceCheck,
    ServiceStatus,
)
from src.core.image_utils import (
    ImageValidationError,
    Thumbnail,
    create_thumbnail,
    ensure_image,
    slugify_filename,
)
from src.core.logging import (
    bind_contextvars,
    clear_contextvars,
    configure_logging,
    get_logger,
    unbind_contextvars,
)

__all__ = [
    # Authorization
    "AccessDecision",
    "AccessOutcome",
    "Role",
    "can_access",
    "check_access",
    "has_any_role",
    "required_roles_for",
    # Carousel
    "CarouselConfig",
    "CarouselController",
    "CarouselEngine",
    "CarouselFrame",
    "CarouselState",
    "GestureTracker",
    "Slot",
    "Viewport",
    "build_loop_track",
    "build_safe_items",
    "per_view_for_width",
    "start_index",
    "teleport_target",
    # Error handling
    "BackendError",
    "ErrorCategory",
    "classify_error",
    "user_message",
    # Health checks
    "HealthChecker",
    "HealthReport",
    "ServiceCheck",
    "ServiceStatus",
    # Images
    "ImageValidationError",
    "Thumbnail",
    "create_thumbnail",
    "ensure_image",
    "slugify_filename",
    # Logging
    "bind_contextvars",
    "clear_contextvars",
    "configure_logging",
    "get_logger",
    "unbind_contextvars",
]
