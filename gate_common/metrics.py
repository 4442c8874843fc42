"""
Shared metrics configuration for permissions-gate.
"""

from typing import Dict, Any, Iterable, Optional

from prometheus_client import Counter, Histogram, CollectorRegistry


class EvaluationMetrics:
    """Prometheus metrics for permission evaluations."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        # A private registry keeps repeated construction (tests, several
        # providers) from colliding on the process-wide default.
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up evaluation metrics."""
        self._metrics["permission_evaluations_total"] = Counter(
            "permission_evaluations_total",
            "Total permission evaluations",
            ["allowed", "mode"],
            registry=self.registry
        )

        self._metrics["permission_rule_duration_seconds"] = Histogram(
            "permission_rule_duration_seconds",
            "Duration of individual rule executions in seconds",
            ["rule"],
            registry=self.registry
        )

        self._metrics["permission_rule_errors_total"] = Counter(
            "permission_rule_errors_total",
            "Total rules that failed during evaluation",
            ["rule"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_evaluation(self, allowed: bool, mode: Optional[str], trace: Iterable[Any]):
        """Record one aggregate decision and its per-rule trace."""
        self._metrics["permission_evaluations_total"].labels(
            allowed=str(allowed).lower(),
            mode=mode or "none"
        ).inc()

        for entry in trace:
            self._metrics["permission_rule_duration_seconds"].labels(
                rule=entry.rule_key
            ).observe(entry.duration_ms / 1000.0)

            if entry.error is not None:
                self._metrics["permission_rule_errors_total"].labels(
                    rule=entry.rule_key
                ).inc()

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read back a sample value from the registry."""
        return self.registry.get_sample_value(name, labels or {})
