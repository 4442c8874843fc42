"""
Override merge: substitute recorder overrides into an evaluation's context.
"""

from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..rules.engine import create_permission_context
from ..rules.models import AuthorizationContext, OverrideState


def effective_roles(base_roles: Sequence[str], overrides: OverrideState) -> Tuple[str, ...]:
    if overrides.override_roles is not None:
        return tuple(overrides.override_roles)
    return tuple(base_roles)


def effective_permissions(base_permissions: Sequence[str], overrides: OverrideState) -> Tuple[str, ...]:
    if overrides.override_permissions is not None:
        return tuple(overrides.override_permissions)
    return tuple(base_permissions)


def effective_flags(base_flags: Mapping[str, bool], overrides: OverrideState) -> Mapping[str, bool]:
    if overrides.override_flags is not None:
        return overrides.override_flags
    return base_flags


def effective_identity(base_identity: Any, overrides: OverrideState) -> Any:
    if overrides.override_identity is not None:
        return overrides.override_identity
    return base_identity


def merge_overrides(
    identity: Any,
    roles: Sequence[str],
    permissions: Sequence[str],
    flags: Mapping[str, bool],
    resource: Any = None,
    overrides: Optional[OverrideState] = None
) -> AuthorizationContext:
    """
    Build the context an evaluation actually runs with.

    Each field takes its override when one is set and the base value
    otherwise, independently of the other fields.
    """
    overrides = overrides or OverrideState()
    return create_permission_context(
        effective_identity(identity, overrides),
        resource,
        effective_roles(roles, overrides),
        effective_permissions(permissions, overrides),
        effective_flags(flags, overrides),
    )


def _ordered_union(*groups: Iterable[str]) -> List[str]:
    seen = {}
    for group in groups:
        for value in group:
            seen.setdefault(value, None)
    return list(seen)


def candidate_roles(base_roles: Sequence[str], overrides: OverrideState) -> List[str]:
    """Every role worth offering as a toggle: base roles plus overridden ones."""
    return _ordered_union(base_roles, effective_roles(base_roles, overrides))


def candidate_permissions(base_permissions: Sequence[str], overrides: OverrideState) -> List[str]:
    return _ordered_union(base_permissions, effective_permissions(base_permissions, overrides))
