"""
Unit tests for the permissions rule engine.
"""

import asyncio
import math
from decimal import Decimal
from fractions import Fraction

import pytest

from permissions_gate.app.rules.engine import (
    RuleEngine, coerce_result, create_permission_context,
    evaluate_permission, evaluate_rule, resolve_rule, resolve_mode,
)
from permissions_gate.app.rules.models import (
    ByKey, ByKeySet, ByRule, EvaluationMode, RuleTraceEntry,
    INVALID_CHECK_ERROR,
)


@pytest.fixture
def context():
    """Create a context for an editor."""
    return create_permission_context(
        identity={"id": "user-1", "name": "Ada"},
        resource={"owner_id": "user-1"},
        roles=["editor"],
        permissions=["post.read", "post.edit"],
        flags={"new_ui": True}
    )


@pytest.fixture
def rules():
    """Create sample rules."""
    return {
        "admin": lambda ctx: True,
        "edit": lambda ctx: False,
    }


class TestCreatePermissionContext:
    """Test cases for the context factory."""

    def test_fields_are_frozen(self, context):
        """Test that sequences and flags become immutable."""
        assert context.roles == ("editor",)
        assert context.permissions == ("post.read", "post.edit")
        assert context.flags == {"new_ui": True}

        with pytest.raises(TypeError):
            context.flags["new_ui"] = False

    def test_duplicates_are_kept(self):
        """Test that duplicate roles are tolerated but not removed."""
        ctx = create_permission_context("u", roles=["a", "a"])

        assert ctx.roles == ("a", "a")

    def test_source_lists_are_copied(self):
        """Test that later changes to the inputs do not leak into the context."""
        roles = ["viewer"]
        ctx = create_permission_context("u", roles=roles)
        roles.append("admin")

        assert ctx.roles == ("viewer",)


class _Falsy:
    def __bool__(self):
        return False


class TestCoerceResult:
    """Test cases for rule result coercion."""

    @pytest.mark.parametrize("value", [
        None, False, 0, 0.0, "", math.nan,
        Decimal(0), Decimal("NaN"), Fraction(0), 0j, _Falsy(),
    ])
    def test_false_values(self, value):
        """Test values that deny."""
        assert coerce_result(value) is False

    @pytest.mark.parametrize("value", [True, 1, -1, "no", [], {}, set(), Decimal("0.5"), object()])
    def test_true_values(self, value):
        """Test values that grant, including empty containers."""
        assert coerce_result(value) is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [Decimal(0), Fraction(0), 0j, _Falsy()])
    async def test_falsy_number_types_deny(self, context, value):
        """Test that zero-valued numbers from other numeric types are denied."""
        outcome = await evaluate_permission(ByRule(lambda ctx: value), context, {})

        assert outcome.allowed is False


class TestResolveRule:
    """Test cases for rule resolution."""

    def test_named_rule_wins(self, context):
        """Test that a registered rule is returned unchanged."""
        def owner(ctx):
            return True

        assert resolve_rule("post.edit", {"post.edit": owner}, context) is owner

    @pytest.mark.asyncio
    async def test_fallback_to_role(self):
        """Test role fallback when no rule is defined."""
        ctx = create_permission_context("u", roles=["admin"], permissions=[])

        admin = await evaluate_permission(ByKey("admin"), ctx, {})
        editor = await evaluate_permission(ByKey("editor"), ctx, {})

        assert admin.allowed is True
        assert editor.allowed is False

    def test_fallback_to_permission(self, context):
        """Test permission fallback when no rule is defined."""
        rule = resolve_rule("post.read", {}, context)

        assert rule(context) is True
        assert resolve_rule("post.delete", {}, context)(context) is False


class TestEvaluateRule:
    """Test cases for single rule evaluation."""

    @pytest.mark.asyncio
    async def test_sync_rule(self, context):
        """Test a synchronous rule."""
        outcome = await evaluate_rule(lambda ctx: ctx.has_role("editor"), context)

        assert outcome.result is True
        assert outcome.error is None
        assert outcome.duration_ms >= 0

    @pytest.mark.asyncio
    async def test_async_rule_duration(self, context):
        """Test that duration covers the awaited suspension."""
        async def slow(ctx):
            await asyncio.sleep(0.012)
            return True

        outcome = await evaluate_rule(slow, context)

        assert outcome.result is True
        assert outcome.duration_ms >= 10

    @pytest.mark.asyncio
    async def test_sync_raise_is_denied(self, context):
        """Test that a raising rule denies and reports the message."""
        def broken(ctx):
            raise RuntimeError("lookup failed")

        outcome = await evaluate_rule(broken, context)

        assert outcome.result is False
        assert outcome.error == "lookup failed"

    @pytest.mark.asyncio
    async def test_async_raise_is_denied(self, context):
        """Test that a failing awaitable denies."""
        async def broken(ctx):
            await asyncio.sleep(0)
            raise KeyError("owner_id")

        outcome = await evaluate_rule(broken, context)

        assert outcome.result is False
        assert outcome.error == "'owner_id'"

    @pytest.mark.asyncio
    async def test_empty_message_uses_class_name(self, context):
        """Test the error text for an exception without a message."""
        def broken(ctx):
            raise ValueError()

        outcome = await evaluate_rule(broken, context)

        assert outcome.error == "ValueError"

    @pytest.mark.asyncio
    async def test_truthy_value_coerced(self, context):
        """Test that non-bool results are coerced."""
        outcome = await evaluate_rule(lambda ctx: ctx.resource["owner_id"], context)

        assert outcome.result is True


class TestEvaluatePermission:
    """Test cases for check orchestration."""

    @pytest.mark.asyncio
    async def test_any_mode(self, context, rules):
        """Test ANY over a key set."""
        outcome = await evaluate_permission(ByKeySet(["admin", "edit"]), context, rules, "any")

        assert outcome.allowed is True
        assert [entry.rule_key for entry in outcome.trace] == ["admin", "edit"]

    @pytest.mark.asyncio
    async def test_all_mode(self, context, rules):
        """Test ALL over a key set."""
        outcome = await evaluate_permission(ByKeySet(["admin", "edit"]), context, rules, EvaluationMode.ALL)

        assert outcome.allowed is False
        assert len(outcome.trace) == 2

    @pytest.mark.asyncio
    async def test_empty_key_set(self, context, rules):
        """Test vacuous truth for ALL and no match for ANY."""
        all_outcome = await evaluate_permission(ByKeySet([]), context, rules, "all")
        any_outcome = await evaluate_permission(ByKeySet([]), context, rules, "any")

        assert all_outcome.allowed is True
        assert any_outcome.allowed is False
        assert all_outcome.trace == ()

    @pytest.mark.asyncio
    async def test_inline_rule(self, context):
        """Test an inline rule is traced as 'inline'."""
        outcome = await evaluate_permission(
            ByRule(lambda ctx: ctx.identity["id"] == ctx.resource["owner_id"]),
            context
        )

        assert outcome.allowed is True
        assert outcome.trace[0].rule_key == "inline"

    @pytest.mark.asyncio
    async def test_mode_ignored_for_single_key(self, context, rules):
        """Test that ALL does not change a single-key check."""
        outcome = await evaluate_permission(ByKey("admin"), context, rules, "all")

        assert outcome.allowed is True
        assert outcome.trace[0].rule_key == "admin"

    @pytest.mark.asyncio
    async def test_unknown_check(self, context, rules):
        """Test that an unrecognized check is denied with one diagnostic entry."""
        outcome = await evaluate_permission(42, context, rules)

        assert outcome.allowed is False
        assert outcome.trace == (
            RuleTraceEntry(rule_key="unknown", result=False, duration_ms=0, error=INVALID_CHECK_ERROR),
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("check", [ByKey(["admin"]), ByKeySet(("admin", ["editor"]))])
    async def test_non_string_keys_are_unknown(self, context, rules, check):
        """Test that unhashable keys are denied as unknown instead of raising."""
        outcome = await evaluate_permission(check, context, rules)

        assert outcome.allowed is False
        assert outcome.trace == (
            RuleTraceEntry(rule_key="unknown", result=False, duration_ms=0, error=INVALID_CHECK_ERROR),
        )

    @pytest.mark.asyncio
    async def test_raw_string_is_unknown(self, context, rules):
        """Test that untagged values are not inspected by the engine."""
        outcome = await evaluate_permission("admin", context, rules)

        assert outcome.allowed is False
        assert outcome.trace[0].rule_key == "unknown"

    @pytest.mark.asyncio
    async def test_failing_sibling_still_counted(self, context):
        """Test that one failing rule does not abort the others."""
        def broken(ctx):
            raise RuntimeError("boom")

        rules = {"broken": broken, "ok": lambda ctx: True}

        any_outcome = await evaluate_permission(ByKeySet(["broken", "ok"]), context, rules, "any")
        all_outcome = await evaluate_permission(ByKeySet(["broken", "ok"]), context, rules, "all")

        assert any_outcome.allowed is True
        assert all_outcome.allowed is False
        assert any_outcome.trace[0].error == "boom"
        assert any_outcome.trace[1].result is True
        assert len(any_outcome.errors) == 1

    @pytest.mark.asyncio
    async def test_key_set_runs_concurrently(self, context):
        """Test that all rules start before any completes, with trace in key order."""
        second_started = asyncio.Event()

        async def first(ctx):
            await second_started.wait()
            return True

        async def second(ctx):
            second_started.set()
            return False

        outcome = await asyncio.wait_for(
            evaluate_permission(ByKeySet(["first", "second"]), context, {"first": first, "second": second}),
            timeout=1.0
        )

        assert [entry.rule_key for entry in outcome.trace] == ["first", "second"]
        assert [entry.result for entry in outcome.trace] == [True, False]

    @pytest.mark.asyncio
    async def test_unknown_mode_falls_back_to_any(self, context, rules):
        """Test that an unknown mode string does not raise."""
        outcome = await evaluate_permission(ByKeySet(["admin", "edit"]), context, rules, "most")

        assert outcome.allowed is True

    def test_resolve_mode(self):
        """Test mode resolution."""
        assert resolve_mode("all") is EvaluationMode.ALL
        assert resolve_mode(EvaluationMode.ANY) is EvaluationMode.ANY
        assert resolve_mode(None) is EvaluationMode.ANY


class TestRuleEngine:
    """Test cases for the RuleEngine registry."""

    @pytest.fixture
    def rule_engine(self, rules):
        """Create RuleEngine instance."""
        return RuleEngine(rules)

    def test_register_replaces(self, rule_engine):
        """Test that the last registration wins."""
        def newer(ctx):
            return True

        rule_engine.register("edit", newer)

        assert rule_engine.get_rule("edit") is newer
        assert len(rule_engine.rules) == 2

    def test_unregister(self, rule_engine):
        """Test rule removal."""
        assert rule_engine.unregister("edit") is True
        assert rule_engine.unregister("edit") is False
        assert rule_engine.get_rule("edit") is None

    @pytest.mark.asyncio
    async def test_merge_and_evaluate(self, rule_engine, context):
        """Test that merged rules override existing keys."""
        rule_engine.merge({"edit": lambda ctx: True})

        outcome = await rule_engine.evaluate(ByKeySet(["admin", "edit"]), context, "all")

        assert outcome.allowed is True

    @pytest.mark.asyncio
    async def test_unregistered_key_falls_back(self, rule_engine, context):
        """Test that an unregistered key uses the direct grant."""
        rule_engine.clear_all_rules()

        outcome = await rule_engine.evaluate(ByKey("editor"), context)

        assert outcome.allowed is True
        assert rule_engine.resolve("editor", context)(context) is True

    def test_get_engine_stats(self, rule_engine):
        """Test engine statistics."""
        async def remote(ctx):
            return True

        rule_engine.register("remote", remote)
        stats = rule_engine.get_engine_stats()

        assert stats["total_rules"] == 3
        assert stats["rule_keys"] == ["admin", "edit", "remote"]
        assert stats["async_rules"] == 1
