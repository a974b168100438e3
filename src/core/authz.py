"""Role-based access rules for the admin back-office.

Every admin area lists the roles that may open it. ``admin_alfa`` is the
superuser role and passes every check. A signed-in user without any role is
treated like an anonymous one and sent back to the login screen.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

ADMIN_PREFIX = "/admin"
LOGIN_PATH = "/admin/login"


class Role(str, Enum):
    """Role names as stored in the ``roles`` table."""

    ADMIN_ALFA = "admin_alfa"
    ADMIN = "admin"
    EDITOR = "editor"
    AUTOR = "autor"


SUPERUSER_ROLE = Role.ADMIN_ALFA

CONTENT_ROLES = frozenset({Role.ADMIN, Role.EDITOR})

# Admin area (first path segment under /admin) -> roles allowed in
AREA_ROLES: dict[str, frozenset[Role]] = {
    "materias": frozenset({Role.ADMIN, Role.EDITOR, Role.AUTOR}),
    "projetos": CONTENT_ROLES,
    "equipe": CONTENT_ROLES,
    "quem-somos": CONTENT_ROLES,
    "newsletter": CONTENT_ROLES,
    "financeiro": CONTENT_ROLES,
    "usuarios": frozenset({Role.ADMIN_ALFA}),
    "configuracoes": frozenset({Role.ADMIN_ALFA}),
}


class AccessOutcome(str, Enum):
    ALLOW = "allow"
    LOGIN = "login"
    FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class AccessDecision:
    """Result of checking a path against a user's session and roles.

    Attributes:
        outcome: Whether the user gets in, must sign in, or lacks a role.
        redirect_to: Where a browser should be sent when not allowed.
        required: Roles that would have granted access.
    """

    outcome: AccessOutcome
    redirect_to: str | None = None
    required: frozenset[Role] = frozenset()

    @property
    def allowed(self) -> bool:
        return self.outcome is AccessOutcome.ALLOW


def normalize_roles(roles: Iterable[str]) -> set[Role]:
    """Known roles among ``roles``; unknown names are dropped."""
    known: set[Role] = set()
    for name in roles:
        try:
            known.add(Role(name))
        except ValueError:
            continue
    return known


def has_any_role(user_roles: Iterable[str], required: Iterable[str]) -> bool:
    roles = normalize_roles(user_roles)
    if SUPERUSER_ROLE in roles:
        return True
    return bool(roles & normalize_roles(required))


def area_for_path(path: str) -> str | None:
    """Admin area for a path, "" for the admin root, None outside /admin."""
    clean = "/" + path.strip("/")
    if clean != ADMIN_PREFIX and not clean.startswith(ADMIN_PREFIX + "/"):
        return None
    rest = clean[len(ADMIN_PREFIX) :].strip("/")
    return rest.split("/", 1)[0] if rest else ""


def required_roles_for(path: str) -> frozenset[Role] | None:
    """Roles that open ``path``.

    Returns None for public paths, an empty set for the admin root (any role
    will do) and raises KeyError for admin areas that do not exist.
    """
    area = area_for_path(path)
    if area is None:
        return None
    if area == "":
        return frozenset()
    return AREA_ROLES[area]


def can_access(path: str, roles: Iterable[str]) -> bool:
    """Whether a user holding ``roles`` may open ``path``.

    Unknown admin areas are denied to everyone but the superuser.
    """
    user_roles = normalize_roles(roles)
    area = area_for_path(path)
    if area is None:
        return True
    if area == "":
        return bool(user_roles)
    if SUPERUSER_ROLE in user_roles:
        return True
    allowed = AREA_ROLES.get(area)
    if allowed is None:
        return False
    return bool(user_roles & allowed)


def check_access(path: str, authenticated: bool, roles: Iterable[str]) -> AccessDecision:
    """Decide what happens when a user navigates to ``path``.

    Public paths are always allowed. Inside the admin area an anonymous user
    or a user without roles is sent to the login page; a user whose roles do
    not cover the area is sent to the admin home.
    """
    area = area_for_path(path)
    if area is None or area == "login":
        return AccessDecision(AccessOutcome.ALLOW)

    user_roles = normalize_roles(roles)
    if not authenticated or not user_roles:
        return AccessDecision(AccessOutcome.LOGIN, redirect_to=LOGIN_PATH)

    required = AREA_ROLES.get(area, frozenset())
    if can_access(path, user_roles):
        return AccessDecision(AccessOutcome.ALLOW, required=required)
    return AccessDecision(
        AccessOutcome.FORBIDDEN,
        redirect_to=ADMIN_PREFIX,
        required=required,
    )
