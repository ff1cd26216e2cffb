from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

from patcher.src.config import PatcherConfig, read_desired_credential
from patcher.src.errors import PatcherError
from patcher.src.kube import ClusterState
from patcher.src.metrics import METRICS
from patcher.src.namespaces import is_excluded
from patcher.src.reconcilers import (
    KIND_CONFIG_MAP,
    KIND_SECRET,
    KIND_SERVICE_ACCOUNT,
    ReconcileResult,
    reconcile_config_map,
    reconcile_identities,
    reconcile_secret,
)


@dataclass(frozen=True)
class CycleResult:
    """Summary of one sweep over all namespaces."""

    namespaces: int
    reconciled: int
    skipped: int
    failed: int


class PullSecretPatcher:
    """Sweeps every namespace and converges the managed objects in each.

    One cycle lists all namespaces and, for each one that is not excluded,
    reconciles the registry Secret, then the env-file ConfigMap, then the
    service accounts. A failure stops the remaining steps for that namespace
    only; the sweep carries on with the next namespace. Failing to read the
    credential or to list namespaces aborts the cycle by raising.

    Cycles run back to back with ``config.loop_duration_seconds`` between
    them, never overlapping. ``ready`` is set once the first cycle completes.
    """

    def __init__(
        self,
        cluster: ClusterState,
        config: PatcherConfig,
        logger: logging.Logger | None = None,
        credential_fn: Callable[[PatcherConfig], str] = read_desired_credential,
    ) -> None:
        self.cluster = cluster
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.credential_fn = credential_fn
        self.ready = threading.Event()
        self.cycles_completed = 0
        self.last_result: CycleResult | None = None

    def reconcile_namespace(self, namespace: str, credential: str) -> list[ReconcileResult]:
        """Run the three reconcilers for *namespace* in order.

        Raises the first :class:`PatcherError` after recording it; the
        remaining reconcilers are not run.
        """
        steps: tuple[tuple[str, Callable[[], ReconcileResult]], ...] = (
            (
                KIND_SECRET,
                lambda: reconcile_secret(self.cluster, self.config, namespace, credential),
            ),
            (
                KIND_CONFIG_MAP,
                lambda: reconcile_config_map(self.cluster, self.config, namespace),
            ),
            (
                KIND_SERVICE_ACCOUNT,
                lambda: reconcile_identities(self.cluster, self.config, namespace),
            ),
        )
        results: list[ReconcileResult] = []
        for kind, step in steps:
            try:
                results.append(step())
            except PatcherError:
                METRICS.errors_total.labels(kind=kind).inc()
                raise
        return results

    def status(self) -> str:
        """Summarise completed cycles for the readiness endpoint."""
        if self.last_result is None:
            return f"cycles={self.cycles_completed}"
        return f"cycles={self.cycles_completed} last_failed={self.last_result.failed}"

    def run_cycle(self, stop_event: threading.Event | None = None) -> CycleResult:
        METRICS.cycles_total.inc()
        started = time.monotonic()

        credential = self.credential_fn(self.config)
        namespaces = self.cluster.list_namespaces()
        self.logger.debug("Got %d namespaces", len(namespaces))

        reconciled = skipped = failed = 0
        for namespace in namespaces:
            if stop_event is not None and stop_event.is_set():
                self.logger.info("Stop requested; ending cycle early")
                break

            name = namespace.metadata.name
            if is_excluded(namespace, self.config.excluded_namespaces):
                self.logger.info("[%s] Namespace skipped", name)
                METRICS.namespaces_skipped_total.inc()
                skipped += 1
                continue

            self.logger.debug("[%s] Start processing", name)
            try:
                self.reconcile_namespace(name, credential)
            except PatcherError as exc:
                self.logger.error("%s", exc)
                METRICS.namespaces_failed_total.inc()
                failed += 1
                continue
            except Exception:
                self.logger.exception("[%s] Unexpected error while reconciling", name)
                METRICS.namespaces_failed_total.inc()
                failed += 1
                continue
            reconciled += 1

        METRICS.cycle_duration_seconds.observe(time.monotonic() - started)
        result = CycleResult(
            namespaces=len(namespaces),
            reconciled=reconciled,
            skipped=skipped,
            failed=failed,
        )
        if not failed:
            METRICS.last_success_timestamp_seconds.set_to_current_time()
        self.cycles_completed += 1
        self.last_result = result
        self.logger.info(
            "Cycle finished: %d namespaces, %d reconciled, %d skipped, %d failed",
            result.namespaces,
            result.reconciled,
            result.skipped,
            result.failed,
        )
        return result

    def run_forever(self, shutdown_event: threading.Event | None = None) -> None:
        """Run cycles until *shutdown_event* is set, or once in run-once mode."""
        stop = shutdown_event or threading.Event()
        try:
            while not stop.is_set():
                self.logger.debug("Loop started")
                self.run_cycle(stop_event=stop)
                self.ready.set()
                if self.config.run_once:
                    self.logger.info("Exiting after single loop per CONFIG_RUNONCE")
                    return
                stop.wait(timeout=self.config.loop_duration_seconds)
        finally:
            self.ready.clear()
