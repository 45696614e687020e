"""Permission Guard - Role checks for workflow transitions"""
from typing import Iterable, Optional, Set

from ..domain.models import TransitionRule
from ..domain.enums import Role, OVERRIDE_ROLES
from ..utils.logger import get_logger

logger = get_logger(__name__)


def parse_roles(raw_roles: Optional[Iterable[str]]) -> Set[Role]:
    """
    Convert role strings into Role members

    Unknown role names are dropped with a warning so that a stale or
    misspelled role can never grant access.
    """
    roles: Set[Role] = set()
    for raw in raw_roles or []:
        if isinstance(raw, Role):
            roles.add(raw)
            continue
        try:
            roles.add(Role(str(raw).strip().lower()))
        except ValueError:
            logger.warning(f"Ignoring unknown role: {raw!r}")
    return roles


class PermissionGuard:
    """
    Role enforcement for transition rules

    Rules:
    - An actor may use a rule if they hold any of its allowed roles
    - admin and it pass the role check of every rule
    - Guards are never bypassed; this class only answers the role question
    """

    def has_override(self, actor_roles: Iterable[Role]) -> bool:
        """Check if actor holds a universal override role"""
        return any(role in OVERRIDE_ROLES for role in actor_roles)

    def can_use_rule(self, actor_roles: Iterable[Role], rule: TransitionRule) -> bool:
        """Check if actor's roles permit the given rule"""
        roles = set(actor_roles)
        if self.has_override(roles):
            return True
        return bool(roles & rule.allowed_roles)
