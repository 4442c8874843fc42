"""
Rule evaluation engine for permissions-gate.
"""

import asyncio
import inspect
import numbers
import time
from collections.abc import Collection
from typing import Dict, Any, Iterable, Mapping, Optional, Sequence, Union

from gate_common.logging import get_logger
from .models import (
    AuthorizationContext, ByKey, ByKeySet, ByRule, EvaluationMode,
    EvaluationOutcome, Rule, RuleOutcome, RuleTraceEntry, RulesMap,
    INLINE_RULE_KEY, UNKNOWN_RULE_KEY, INVALID_CHECK_ERROR,
)


logger = get_logger("permissions_gate.engine")


def create_permission_context(
    identity: Any,
    resource: Any = None,
    roles: Iterable[str] = (),
    permissions: Iterable[str] = (),
    flags: Optional[Mapping[str, bool]] = None
) -> AuthorizationContext:
    """Build a fresh authorization context from primitive fields."""
    return AuthorizationContext(
        identity=identity,
        resource=resource,
        roles=tuple(roles),
        permissions=tuple(permissions),
        flags=dict(flags or {}),
    )


def coerce_result(value: Any) -> bool:
    """
    Coerce a rule's return value to a decision.

    False values are None, the empty string, NaN and anything else whose
    bool() is false, such as False, numeric zero or a NumPy false scalar.
    Containers always grant, even when empty.
    """
    if value is None:
        return False
    if isinstance(value, str):
        return value != ""
    if isinstance(value, Collection):
        return True
    if isinstance(value, numbers.Number) and value != value:
        return False
    return bool(value)


def _error_message(error: BaseException) -> str:
    return str(error) or type(error).__name__


def _is_key(value: Any) -> bool:
    return isinstance(value, str)


def resolve_rule(key: str, rules: RulesMap, context: AuthorizationContext) -> Rule:
    """
    Map a permission key to the rule that decides it.

    A named rule always wins. Without one the key is treated as a direct
    grant, matched against the context's permissions and then its roles.
    """
    rule = rules.get(key) if rules else None
    if rule is not None:
        return rule

    def direct_grant(ctx: AuthorizationContext) -> bool:
        return key in ctx.permissions or key in ctx.roles

    direct_grant.__name__ = f"direct_grant[{key}]"
    return direct_grant


async def evaluate_rule(rule: Rule, context: AuthorizationContext) -> RuleOutcome:
    """Run one rule, sync or async, timing it and capturing any failure."""
    start_time = time.perf_counter()

    try:
        value = rule(context)
        if inspect.isawaitable(value):
            value = await value

        return RuleOutcome(
            result=coerce_result(value),
            duration_ms=(time.perf_counter() - start_time) * 1000
        )

    except Exception as e:
        duration_ms = (time.perf_counter() - start_time) * 1000
        message = _error_message(e)
        logger.warning(
            "Rule raised during evaluation",
            rule=getattr(rule, "__name__", repr(rule)),
            error=message
        )
        return RuleOutcome(result=False, duration_ms=duration_ms, error=message)


async def _trace_rule(rule_key: str, rule: Rule, context: AuthorizationContext) -> RuleTraceEntry:
    outcome = await evaluate_rule(rule, context)
    return RuleTraceEntry(
        rule_key=rule_key,
        result=outcome.result,
        duration_ms=outcome.duration_ms,
        error=outcome.error
    )


def _combine(results: Sequence[bool], mode: EvaluationMode) -> bool:
    if mode == EvaluationMode.ALL:
        return all(results)
    return any(results)


def resolve_mode(mode: Union[str, EvaluationMode, None]) -> EvaluationMode:
    if isinstance(mode, EvaluationMode):
        return mode
    try:
        return EvaluationMode(mode)
    except ValueError:
        logger.warning("Unknown evaluation mode, using 'any'", mode=mode)
        return EvaluationMode.ANY


async def evaluate_permission(
    check: Any,
    context: AuthorizationContext,
    rules: Optional[RulesMap] = None,
    mode: Union[str, EvaluationMode] = EvaluationMode.ANY
) -> EvaluationOutcome:
    """
    Evaluate a check against a context. Never raises.

    ByRule and ByKey produce a single trace entry. ByKeySet starts every
    key's rule together and gathers the entries in key order; "all"
    requires every result and "any" at least one. Unrecognized checks, and
    key checks whose keys are not strings, are denied with a single
    "unknown" entry.
    """
    rules = rules or {}

    if isinstance(check, ByRule):
        entry = await _trace_rule(INLINE_RULE_KEY, check.rule, context)
        return EvaluationOutcome(allowed=entry.result, trace=(entry,))

    if isinstance(check, ByKey) and _is_key(check.key):
        rule = resolve_rule(check.key, rules, context)
        entry = await _trace_rule(check.key, rule, context)
        return EvaluationOutcome(allowed=entry.result, trace=(entry,))

    if isinstance(check, ByKeySet) and all(_is_key(key) for key in check.keys):
        entries = await asyncio.gather(*[
            _trace_rule(key, resolve_rule(key, rules, context), context)
            for key in check.keys
        ])
        allowed = _combine([entry.result for entry in entries], resolve_mode(mode))
        return EvaluationOutcome(allowed=allowed, trace=tuple(entries))

    logger.error("Invalid permission check", check_type=type(check).__name__)
    return EvaluationOutcome(
        allowed=False,
        trace=(
            RuleTraceEntry(
                rule_key=UNKNOWN_RULE_KEY,
                result=False,
                duration_ms=0,
                error=INVALID_CHECK_ERROR
            ),
        )
    )


class RuleEngine:
    """Registry of named rules with evaluation against it."""

    def __init__(self, rules: Optional[RulesMap] = None):
        self.logger = get_logger("permissions_gate.engine.registry")
        self.rules: Dict[str, Rule] = dict(rules or {})

    def register(self, key: str, rule: Rule) -> None:
        """Register a rule under a key, replacing any existing one."""
        replaced = key in self.rules
        self.rules[key] = rule
        self.logger.debug("Rule registered", key=key, replaced=replaced)

    def unregister(self, key: str) -> bool:
        """Remove a rule. Returns False if the key was not registered."""
        if key in self.rules:
            del self.rules[key]
            self.logger.debug("Rule removed", key=key)
            return True
        return False

    def merge(self, rules: RulesMap) -> None:
        """Merge a rules map in; its entries win on key collisions."""
        self.rules.update(rules)
        self.logger.debug("Rules merged", count=len(rules))

    def get_rule(self, key: str) -> Optional[Rule]:
        """Get a registered rule by key."""
        return self.rules.get(key)

    def resolve(self, key: str, context: AuthorizationContext) -> Rule:
        return resolve_rule(key, self.rules, context)

    async def evaluate(
        self,
        check: Any,
        context: AuthorizationContext,
        mode: Union[str, EvaluationMode] = EvaluationMode.ANY
    ) -> EvaluationOutcome:
        """Evaluate a check against the registered rules."""
        return await evaluate_permission(check, context, self.rules, mode)

    def get_engine_stats(self) -> Dict[str, Any]:
        """Get engine statistics."""
        return {
            "total_rules": len(self.rules),
            "rule_keys": sorted(self.rules),
            "async_rules": len([
                rule for rule in self.rules.values()
                if inspect.iscoroutinefunction(rule)
            ]),
        }

    def clear_all_rules(self):
        """Clear all rules from the engine."""
        self.rules.clear()
        self.logger.info("All rules cleared")
