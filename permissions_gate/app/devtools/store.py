"""
Evaluation recorder for permissions-gate dev tools.
"""

import uuid
from collections import Counter
from dataclasses import replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from gate_common.config import GateConfig, get_config
from gate_common.errors import ConfigurationError
from gate_common.logging import get_logger
from ..rules.models import (
    DevToolsState, EvaluationEvent, EvaluationMode, EvaluationOutcome,
    EvaluationRecord, check_label, utc_now,
)


DEFAULT_HISTORY_CAPACITY = 100

Listener = Callable[[DevToolsState], None]


def _as_roles(values: Optional[Iterable[str]]) -> Optional[Tuple[str, ...]]:
    return None if values is None else tuple(values)


def _as_flags(flags: Optional[Mapping[str, bool]]) -> Optional[Mapping[str, bool]]:
    return None if flags is None else MappingProxyType(dict(flags))


def _toggle_member(working: List[str], key: str) -> List[str]:
    if key in working:
        working.remove(key)
    else:
        working.append(key)
    return working


def _toggled_override(working: List[str], base: Sequence[str]) -> Optional[List[str]]:
    # Nothing left, or back to the base membership: fall through to base.
    if not working or Counter(working) == Counter(base):
        return None
    return working


class EvaluationRecorder:
    """
    Observable store of recent evaluations and context overrides.

    State is held as one frozen snapshot. Every mutating call builds the
    next snapshot, swaps it in, then notifies each listener once with it,
    all without yielding to the event loop.
    """

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity <= 0:
            raise ConfigurationError(
                "History capacity must be positive",
                details={"capacity": capacity}
            )
        self.logger = get_logger("permissions_gate.devtools.recorder")
        self.capacity = capacity
        self._state = DevToolsState()
        self._listeners: Dict[int, Listener] = {}
        self._next_token = 0

    @classmethod
    def from_config(cls, config: Optional[GateConfig] = None) -> "EvaluationRecorder":
        """Create a recorder sized by history_capacity."""
        config = config or get_config()
        return cls(capacity=config.history_capacity)

    def get_state(self) -> DevToolsState:
        """Get the current snapshot."""
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        token = self._next_token
        self._next_token += 1
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _commit(self, state: DevToolsState) -> DevToolsState:
        self._state = state
        for listener in list(self._listeners.values()):
            try:
                listener(state)
            except Exception as e:
                self.logger.error(
                    "Recorder listener failed",
                    listener=getattr(listener, "__name__", repr(listener)),
                    error=str(e)
                )
        return state

    # History

    def append(
        self,
        check: Any,
        outcome: EvaluationOutcome,
        resource: Any = None,
        mode: Optional[Union[str, EvaluationMode]] = None,
        component: Optional[str] = None
    ) -> EvaluationRecord:
        """Record an evaluation as the newest entry, evicting past capacity."""
        timestamp = utc_now()
        record = EvaluationRecord(
            id=f"eval-{int(timestamp.timestamp() * 1000)}-{uuid.uuid4().hex[:12]}",
            timestamp=timestamp,
            check=check_label(check),
            allowed=outcome.allowed,
            trace=outcome.trace,
            resource=resource,
            mode=EvaluationMode(mode) if mode is not None else None,
            component=component
        )

        evaluations = ((record,) + self._state.evaluations)[:self.capacity]
        self._commit(replace(self._state, evaluations=evaluations))
        return record

    def clear(self) -> None:
        """Drop all recorded evaluations."""
        self._commit(replace(self._state, evaluations=()))
        self.logger.debug("Evaluations cleared")

    def export_evaluations(self) -> List[Dict[str, Any]]:
        """History as JSON-ready event dicts, newest first."""
        return [EvaluationEvent.from_record(record).to_dict() for record in self._state.evaluations]

    # Panel visibility

    def open(self) -> None:
        """Show the panel."""
        self.set_open(True)

    def close(self) -> None:
        """Hide the panel."""
        self.set_open(False)

    def toggle(self) -> None:
        """Flip panel visibility."""
        self.set_open(not self._state.is_open)

    def set_open(self, is_open: bool) -> None:
        """Set panel visibility."""
        self._commit(replace(self._state, is_open=is_open))

    # Overrides

    def set_override_identity(self, identity: Any) -> None:
        """Replace the identity used for evaluations; None clears it."""
        self._commit(replace(self._state, override_identity=identity))

    def set_override_roles(self, roles: Optional[Iterable[str]]) -> None:
        """Replace the effective roles; None clears the override."""
        self._commit(replace(self._state, override_roles=_as_roles(roles)))

    def set_override_permissions(self, permissions: Optional[Iterable[str]]) -> None:
        """Replace the effective permissions; None clears the override."""
        self._commit(replace(self._state, override_permissions=_as_roles(permissions)))

    def set_override_flags(self, flags: Optional[Mapping[str, bool]]) -> None:
        """Replace the effective flags; None clears the override."""
        self._commit(replace(self._state, override_flags=_as_flags(flags)))

    def toggle_role(self, role: str, base_roles: Sequence[str]) -> None:
        """
        Flip one role in the override, starting from the base roles when no
        override exists yet. An override left empty, or matching the base
        roles again, is cleared rather than stored.
        """
        current = self._state.override_roles
        working = _toggle_member(list(current if current is not None else base_roles), role)
        self.set_override_roles(_toggled_override(working, base_roles))

    def toggle_permission(self, permission: str, base_permissions: Sequence[str]) -> None:
        """Flip one permission; cleared on the same terms as toggle_role."""
        current = self._state.override_permissions
        working = _toggle_member(list(current if current is not None else base_permissions), permission)
        self.set_override_permissions(_toggled_override(working, base_permissions))

    def toggle_flag(self, flag: str, base_flags: Mapping[str, bool]) -> None:
        """Flip one flag. The flag override is kept even when it ends up empty."""
        current = self._state.override_flags
        working = dict(current if current is not None else base_flags)
        working[flag] = not working.get(flag, False)
        self.set_override_flags(working)

    def reset_overrides(self) -> None:
        """Clear every override field with a single notification."""
        self._commit(replace(
            self._state,
            override_identity=None,
            override_roles=None,
            override_permissions=None,
            override_flags=None
        ))
        self.logger.debug("Overrides reset")


_default_recorder: Optional[EvaluationRecorder] = None


def get_default_recorder() -> EvaluationRecorder:
    """Get the process-wide recorder, creating it on first use."""
    global _default_recorder
    if _default_recorder is None:
        _default_recorder = EvaluationRecorder.from_config()
    return _default_recorder
