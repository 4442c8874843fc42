"""
Rule data models for permissions-gate.
"""

from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple, Union
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType

from pydantic import BaseModel, Field, field_serializer
from pydantic_core import to_jsonable_python


INLINE_RULE_KEY = "inline"
UNKNOWN_RULE_KEY = "unknown"
INVALID_CHECK_ERROR = "Invalid permission check type"


class EvaluationMode(str, Enum):
    """How the results of a key set are combined."""
    ANY = "any"
    ALL = "all"


def _freeze_flags(flags: Optional[Mapping[str, bool]]) -> Mapping[str, bool]:
    return MappingProxyType(dict(flags or {}))


@dataclass(frozen=True)
class AuthorizationContext:
    """Input to every rule. Built fresh for each evaluation."""
    identity: Any
    resource: Any = None
    roles: Tuple[str, ...] = ()
    permissions: Tuple[str, ...] = ()
    flags: Mapping[str, bool] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "roles", tuple(self.roles))
        object.__setattr__(self, "permissions", tuple(self.permissions))
        object.__setattr__(self, "flags", _freeze_flags(self.flags))

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def has_permission(self, permission: str) -> bool:
        return permission in self.permissions

    def flag(self, name: str, default: bool = False) -> bool:
        return bool(self.flags.get(name, default))


Rule = Callable[[AuthorizationContext], Union[Any, Awaitable[Any]]]
RulesMap = Mapping[str, Rule]


@dataclass(frozen=True)
class ByKey:
    """Check a single named rule, or a role/permission of the same name."""
    key: str


@dataclass(frozen=True)
class ByKeySet:
    """Check several keys, combined with the evaluation mode."""
    keys: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "keys", tuple(self.keys))


@dataclass(frozen=True)
class ByRule:
    """Check an inline rule that is not registered under any key."""
    rule: Rule


Check = Union[ByKey, ByKeySet, ByRule]


def as_check(value: Any) -> Any:
    """
    Coerce a loosely-typed check into the tagged union.

    Strings become ByKey, sequences of strings ByKeySet and callables
    ByRule. Values that are already checks, and values of any other shape,
    are returned unchanged; the latter are reported as unknown checks at
    evaluation time.
    """
    if isinstance(value, (ByKey, ByKeySet, ByRule)):
        return value
    if isinstance(value, str):
        return ByKey(value)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return ByKeySet(tuple(value))
    if callable(value):
        return ByRule(value)
    return value


def check_label(check: Any) -> Union[str, Tuple[str, ...]]:
    """Recorded form of a check: the key, the keys, or "inline"."""
    if isinstance(check, ByKey):
        return check.key
    if isinstance(check, ByKeySet):
        return check.keys
    if isinstance(check, ByRule):
        return INLINE_RULE_KEY
    return UNKNOWN_RULE_KEY


@dataclass(frozen=True)
class RuleOutcome:
    """Result of executing one rule."""
    result: bool
    duration_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class RuleTraceEntry:
    """One executed rule inside an aggregate decision."""
    rule_key: str
    result: bool
    duration_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class EvaluationOutcome:
    """Aggregate decision plus the per-rule trace."""
    allowed: bool
    trace: Tuple[RuleTraceEntry, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "trace", tuple(self.trace))

    @property
    def errors(self) -> List[RuleTraceEntry]:
        return [entry for entry in self.trace if entry.error is not None]


@dataclass(frozen=True)
class EvaluationRecord:
    """A recorded evaluation. Only the recorder creates these."""
    id: str
    timestamp: datetime
    check: Union[str, Tuple[str, ...]]
    allowed: bool
    trace: Tuple[RuleTraceEntry, ...]
    resource: Any = None
    mode: Optional[EvaluationMode] = None
    component: Optional[str] = None


@dataclass(frozen=True)
class OverrideState:
    """Runtime substitutes for context fields. None means "use the base value"."""
    override_identity: Any = None
    override_roles: Optional[Tuple[str, ...]] = None
    override_permissions: Optional[Tuple[str, ...]] = None
    override_flags: Optional[Mapping[str, bool]] = None

    @property
    def is_empty(self) -> bool:
        return (
            self.override_identity is None
            and self.override_roles is None
            and self.override_permissions is None
            and self.override_flags is None
        )


@dataclass(frozen=True)
class DevToolsState:
    """Immutable snapshot of the recorder."""
    evaluations: Tuple[EvaluationRecord, ...] = ()
    is_open: bool = False
    override_identity: Any = None
    override_roles: Optional[Tuple[str, ...]] = None
    override_permissions: Optional[Tuple[str, ...]] = None
    override_flags: Optional[Mapping[str, bool]] = None

    @property
    def overrides(self) -> OverrideState:
        return OverrideState(
            override_identity=self.override_identity,
            override_roles=self.override_roles,
            override_permissions=self.override_permissions,
            override_flags=self.override_flags,
        )


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TraceEntryModel(BaseModel):
    """Serialized trace entry."""
    rule: str = Field(..., description="Rule key, 'inline' or 'unknown'")
    result: bool = Field(..., description="Outcome of the rule")
    duration_ms: float = Field(..., description="Wall-clock duration in milliseconds")
    error: Optional[str] = Field(None, description="Failure message if the rule raised")


class EvaluationEvent(BaseModel):
    """Event emitted for every recorded evaluation (observers, telemetry, export)."""
    id: str
    timestamp: datetime
    check: Union[str, List[str]]
    resource: Any = None
    allowed: bool
    trace: List[TraceEntryModel] = Field(default_factory=list)
    mode: Optional[EvaluationMode] = None
    component: Optional[str] = None

    @field_serializer("resource")
    def serialize_resource(self, resource: Any) -> Any:
        return to_jsonable_python(resource, fallback=repr)

    @classmethod
    def from_record(cls, record: EvaluationRecord) -> "EvaluationEvent":
        check = record.check if isinstance(record.check, str) else list(record.check)
        return cls(
            id=record.id,
            timestamp=record.timestamp,
            check=check,
            resource=record.resource,
            allowed=record.allowed,
            trace=[
                TraceEntryModel(
                    rule=entry.rule_key,
                    result=entry.result,
                    duration_ms=entry.duration_ms,
                    error=entry.error,
                )
                for entry in record.trace
            ],
            mode=record.mode,
            component=record.component,
        )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
