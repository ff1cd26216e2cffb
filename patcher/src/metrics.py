from __future__ import annotations

from dataclasses import dataclass, field

from prometheus_client import Counter, Gauge, Histogram, Info


@dataclass(frozen=True)
class PatcherMetrics:
    """Prometheus metrics exported by the patcher on ``/metrics``.

    Per-object counters use a ``kind`` label (``secret``, ``configmap``,
    ``serviceaccount``) so operators can alert on one managed kind drifting.
    """

    cycles_total: Counter = field(
        default_factory=lambda: Counter(
            "imagepullsecret_patcher_cycles_total",
            "Total reconciliation cycles started",
        )
    )
    cycle_duration_seconds: Histogram = field(
        default_factory=lambda: Histogram(
            "imagepullsecret_patcher_cycle_duration_seconds",
            "Seconds spent sweeping all namespaces in one cycle",
            buckets=(0.1, 0.5, 1, 2, 5, 10, 30, 60, float("inf")),
        )
    )
    namespaces_skipped_total: Counter = field(
        default_factory=lambda: Counter(
            "imagepullsecret_patcher_namespaces_skipped_total",
            "Total namespaces skipped because they are excluded",
        )
    )
    namespaces_failed_total: Counter = field(
        default_factory=lambda: Counter(
            "imagepullsecret_patcher_namespaces_failed_total",
            "Total namespaces whose reconciliation failed within a cycle",
        )
    )
    actions_total: Counter = field(
        default_factory=lambda: Counter(
            "imagepullsecret_patcher_actions_total",
            "Total changes applied to managed objects",
            ["kind", "action"],
        )
    )
    errors_total: Counter = field(
        default_factory=lambda: Counter(
            "imagepullsecret_patcher_errors_total",
            "Total reconcile failures",
            ["kind"],
        )
    )
    incomplete_repairs_total: Counter = field(
        default_factory=lambda: Counter(
            "imagepullsecret_patcher_incomplete_repairs_total",
            "Total repairs whose create step failed after the delete step succeeded",
            ["kind"],
        )
    )
    last_success_timestamp_seconds: Gauge = field(
        default_factory=lambda: Gauge(
            "imagepullsecret_patcher_last_success_timestamp_seconds",
            "Unix time of the last cycle in which no namespace failed",
        )
    )
    build_info: Info = field(
        default_factory=lambda: Info(
            "imagepullsecret_patcher",
            "Build information for the patcher",
        )
    )


METRICS = PatcherMetrics()
