"""
permissions-gate: client-side authorization checks for RBAC, PBAC, ABAC
and feature flags, with an observable record of every evaluation.
"""

from .app.rules.models import (
    AuthorizationContext,
    ByKey,
    ByKeySet,
    ByRule,
    Check,
    DevToolsState,
    EvaluationEvent,
    EvaluationMode,
    EvaluationOutcome,
    EvaluationRecord,
    OverrideState,
    Rule,
    RuleOutcome,
    RulesMap,
    RuleTraceEntry,
    as_check,
)
from .app.rules.engine import (
    RuleEngine,
    coerce_result,
    create_permission_context,
    evaluate_permission,
    evaluate_rule,
    resolve_rule,
)
from .app.devtools.store import EvaluationRecorder, get_default_recorder
from .app.devtools.overrides import merge_overrides
from .app.provider import PermissionsProvider, check_permission, current_provider

__all__ = [
    "AuthorizationContext",
    "ByKey",
    "ByKeySet",
    "ByRule",
    "Check",
    "DevToolsState",
    "EvaluationEvent",
    "EvaluationMode",
    "EvaluationOutcome",
    "EvaluationRecord",
    "EvaluationRecorder",
    "OverrideState",
    "PermissionsProvider",
    "Rule",
    "RuleEngine",
    "RuleOutcome",
    "RulesMap",
    "RuleTraceEntry",
    "as_check",
    "check_permission",
    "coerce_result",
    "create_permission_context",
    "current_provider",
    "evaluate_permission",
    "evaluate_rule",
    "get_default_recorder",
    "merge_overrides",
    "resolve_rule",
]
