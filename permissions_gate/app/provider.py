"""
Permissions provider: the evaluation surface consumed by UI glue.

A provider owns the base authorization inputs for one identity, merges
any recorder overrides into each evaluation, runs the engine and, when
dev tools are enabled, records the result.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Mapping, Optional, Sequence, Union

from gate_common.config import GateConfig, get_config
from gate_common.errors import PermissionsContextError
from gate_common.logging import get_logger, reset_context, set_evaluation_context
from gate_common.metrics import EvaluationMetrics
from .devtools.overrides import merge_overrides
from .devtools.store import EvaluationRecorder
from .rules.engine import RuleEngine, resolve_mode
from .rules.models import (
    ByKeySet, EvaluationMode, EvaluationOutcome, OverrideState, RulesMap, as_check,
)


_current_provider: ContextVar[Optional["PermissionsProvider"]] = ContextVar(
    "permissions_provider", default=None
)


class PermissionsProvider:
    """Base authorization inputs plus the evaluation entry points."""

    def __init__(
        self,
        identity: Any,
        roles: Sequence[str] = (),
        permissions: Sequence[str] = (),
        rules: Optional[RulesMap] = None,
        flags: Optional[Mapping[str, bool]] = None,
        enable_devtools: Optional[bool] = None,
        recorder: Optional[EvaluationRecorder] = None,
        config: Optional[GateConfig] = None,
        metrics: Optional[EvaluationMetrics] = None
    ):
        self.logger = get_logger("permissions_gate.provider")
        self.config = config or get_config()

        self.identity = identity
        self.roles = tuple(roles)
        self.permissions = tuple(permissions)
        self.engine = RuleEngine(rules)
        self.flags = dict(flags or {})

        self.devtools_enabled = self.config.devtools_enabled(enable_devtools)
        self.recorder = recorder if self.devtools_enabled else None

        if metrics is None and self.config.enable_metrics:
            metrics = EvaluationMetrics()
        self.metrics = metrics

    @property
    def rules(self) -> RulesMap:
        return self.engine.rules

    @property
    def overrides(self) -> OverrideState:
        if self.recorder is None:
            return OverrideState()
        return self.recorder.get_state().overrides

    async def evaluate(
        self,
        check: Any,
        resource: Any = None,
        mode: Union[str, EvaluationMode] = EvaluationMode.ANY,
        component: Optional[str] = None
    ) -> EvaluationOutcome:
        """Evaluate a check for this provider's identity. Never raises on rule failure."""
        check = as_check(check)
        mode = resolve_mode(mode)
        context = merge_overrides(
            self.identity,
            self.roles,
            self.permissions,
            self.flags,
            resource,
            self.overrides,
        )

        tokens = set_evaluation_context(component=component)
        try:
            outcome = await self.engine.evaluate(check, context, mode)

            if self.recorder is not None:
                record = self.recorder.append(
                    check,
                    outcome,
                    resource=resource,
                    mode=mode,
                    component=component
                )
                tokens += set_evaluation_context(evaluation_id=record.id)

            if self.metrics is not None:
                self.metrics.record_evaluation(outcome.allowed, mode.value, outcome.trace)

            self.logger.debug(
                "Permission evaluated",
                allowed=outcome.allowed,
                rules=[entry.rule_key for entry in outcome.trace],
                errors=len(outcome.errors)
            )
        finally:
            reset_context(tokens)

        return outcome

    async def check(
        self,
        check: Any,
        resource: Any = None,
        mode: Union[str, EvaluationMode] = EvaluationMode.ANY,
        component: Optional[str] = None
    ) -> bool:
        """Evaluate and return only the decision."""
        outcome = await self.evaluate(check, resource, mode, component)
        return outcome.allowed

    async def gate(
        self,
        allow: Any = None,
        any_of: Optional[Sequence[str]] = None,
        all_of: Optional[Sequence[str]] = None,
        resource: Any = None,
        component: Optional[str] = None
    ) -> bool:
        """
        Decide a gate declared as allow=, any_of= or all_of=.

        The first one given wins, in that order. A gate with none of them
        is denied.
        """
        if allow is not None:
            return await self.check(allow, resource, EvaluationMode.ANY, component)
        if any_of is not None:
            return await self.check(ByKeySet(tuple(any_of)), resource, EvaluationMode.ANY, component)
        if all_of is not None:
            return await self.check(ByKeySet(tuple(all_of)), resource, EvaluationMode.ALL, component)

        self.logger.warning("Gate has no permission check (allow, any_of or all_of); denying", component=component)
        return False

    @contextmanager
    def activate(self) -> Iterator["PermissionsProvider"]:
        """Make this provider current for check_permission() within the block."""
        token = _current_provider.set(self)
        try:
            yield self
        finally:
            _current_provider.reset(token)


def current_provider() -> PermissionsProvider:
    """Get the active provider; raises when none has been activated."""
    provider = _current_provider.get()
    if provider is None:
        raise PermissionsContextError(
            "check_permission must be used within an active PermissionsProvider"
        )
    return provider


async def check_permission(
    check: Any,
    resource: Any = None,
    mode: Union[str, EvaluationMode] = EvaluationMode.ANY,
    component: Optional[str] = None
) -> bool:
    """Evaluate against the active provider."""
    return await current_provider().check(check, resource, mode, component)
