"""
Permission matrix resolution.

A matrix maps role names to the actions they may perform on one component.
Model resources start from the framework defaults and may override them per
role; an override replaces the role's whole action list.
"""
from typing import Any, Dict, Iterable, List, Optional

from gatekeeper.features.permissions.errors import ConfigurationError
from gatekeeper.utils import get_logger


log = get_logger(__name__)

RoleActionMap = Dict[str, List[str]]

WILDCARD = "*"
CANONICAL_ACTIONS = ("list", "read", "create", "update", "delete")

# Generic verb granted to controllers by a wildcard
CONTROLLER_EXECUTE_ACTION = "execute"

DEFAULT_MODEL_MATRIX: RoleActionMap = {
    "admin": [WILDCARD],
    "manager": list(CANONICAL_ACTIONS),
    "user": list(CANONICAL_ACTIONS),
    "guest": [],
}

# Used for resources flagged sensitive (Roles, Permissions, ...)
SENSITIVE_MODEL_MATRIX: RoleActionMap = {
    "admin": [WILDCARD],
    "manager": [],
    "user": [],
    "guest": [],
}


def copy_matrix(matrix: RoleActionMap) -> RoleActionMap:
    return {role: list(actions) for role, actions in matrix.items()}


class PermissionMatrixResolver:
    """Pure functions over role->actions mappings."""

    def resolve(
        self,
        defaults: RoleActionMap,
        override: Optional[Dict[str, Any]],
        component: str = "",
        issues: Optional[List[ConfigurationError]] = None,
    ) -> RoleActionMap:
        """
        Merge ``override`` into ``defaults``.

        Roles present in the override get the override's list verbatim; other
        roles keep their default. A non-list override value is reported (logged
        and appended to ``issues`` when given) and that role keeps its default.
        """
        resolved = copy_matrix(defaults)
        if not override:
            return resolved

        for role, actions in override.items():
            if not isinstance(actions, (list, tuple)):
                issue = ConfigurationError(
                    f"Invalid override for role '{role}' on {component or 'component'}: "
                    f"expected a list of actions, got {actions!r}"
                )
                log.warning(str(issue))
                if issues is not None:
                    issues.append(issue)
                continue

            resolved[role] = list(actions)
            log.debug(f"Applied override for role '{role}' on {component}: {list(actions)}")

        return resolved

    def expand_wildcard(
        self,
        actions: Iterable[str],
        all_actions: Iterable[str] = CANONICAL_ACTIONS,
    ) -> List[str]:
        actions = list(actions)
        if WILDCARD in actions:
            return list(all_actions)
        return actions

    def controller_actions(self, matrix: RoleActionMap) -> List[str]:
        """
        Every action a wildcard grants on a controller: the canonical five,
        ``execute``, and any controller-specific verb named in the matrix.
        """
        expanded = list(CANONICAL_ACTIONS) + [CONTROLLER_EXECUTE_ACTION]
        for actions in matrix.values():
            if not isinstance(actions, (list, tuple)):
                continue
            for action in actions:
                if action != WILDCARD and action not in expanded:
                    expanded.append(action)
        return expanded
