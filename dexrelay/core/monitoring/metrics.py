"""Prometheus metrics helpers for the relayer."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest


class MetricsCollector:
    """Collects and exposes the relayer's Prometheus metrics."""

    def __init__(self, *, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry or CollectorRegistry()
        self.pipeline_runs_total = Counter(
            "dexrelay_pipeline_runs_total",
            "Market creation pipeline runs grouped by terminal outcome.",
            ("outcome",),
            registry=self.registry,
        )
        self.step_duration_seconds = Histogram(
            "dexrelay_step_duration_seconds",
            "Duration of individual pipeline steps.",
            ("step",),
            buckets=(0.01, 0.05, 0.1, 0.5, 1.0, 2.5, 5.0, 15.0, 30.0, 60.0, 120.0, float("inf")),
            registry=self.registry,
        )
        self.transactions_total = Counter(
            "dexrelay_transactions_total",
            "Transactions submitted by the relayer grouped by purpose.",
            ("label",),
            registry=self.registry,
        )
        self.nonce_resyncs_total = Counter(
            "dexrelay_nonce_resyncs_total",
            "Sequence number resynchronisations after a nonce conflict.",
            registry=self.registry,
        )
        self.broadcast_failures_total = Counter(
            "dexrelay_broadcast_failures_total",
            "Progress broadcasts that could not be delivered.",
            registry=self.registry,
        )

    def record_run(self, outcome: str) -> None:
        label = outcome if outcome in _ALLOWED_OUTCOMES else "__other__"
        self.pipeline_runs_total.labels(outcome=label).inc()

    def observe_step(self, step: str, duration_seconds: float) -> None:
        self.step_duration_seconds.labels(step=step).observe(duration_seconds)

    def record_transaction(self, label: str) -> None:
        self.transactions_total.labels(label=label).inc()

    def record_resync(self) -> None:
        self.nonce_resyncs_total.inc()

    def record_broadcast_failure(self) -> None:
        self.broadcast_failures_total.inc()

    def render(self) -> bytes:
        """Render metrics in Prometheus exposition format."""

        return generate_latest(self.registry)


_DEFAULT_COLLECTOR: MetricsCollector | None = None


def get_metrics_collector() -> MetricsCollector:
    """Return the global metrics collector instance."""

    global _DEFAULT_COLLECTOR
    if _DEFAULT_COLLECTOR is None:
        _DEFAULT_COLLECTOR = MetricsCollector()
    return _DEFAULT_COLLECTOR


def configure_metrics_collector(collector: MetricsCollector | None) -> None:
    """Override the global metrics collector for application wiring or tests."""

    global _DEFAULT_COLLECTOR
    _DEFAULT_COLLECTOR = collector


_ALLOWED_OUTCOMES = {"success", "partial", "failed", "cancelled", "existing"}
