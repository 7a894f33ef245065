# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/deploy/orchestrator.py
from __future__ import annotations

import logging
import shutil
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from ocsgitops.argocd.registry import ApplicationHandle
from ocsgitops.config.models import DriverConfig, UnitSpec
from ocsgitops.errors import (
    ConvergenceWarning,
    DependencyMissingError,
    OrchestrationError,
    PublishConflict,
    RegistrationError,
    SyncDiverged,
    SyncTimeout,
)
from ocsgitops.kube.oc import OcError
from ocsgitops.observers.dispatcher import EventBus
from ocsgitops.observers.events import (
    ApplicationRegistered,
    ManifestsRendered,
    NamespaceVerified,
    PreflightPassed,
    RunFailed,
    RunStarted,
    RunSummary,
    StateCommitted,
    StatePublished,
    SyncAttemptFinished,
    SyncAttemptStarted,
    UnitConverged,
    new_ctx,
)
from ocsgitops.render.renderer import APPLICATIONS_DIR, ManifestRenderer
from ocsgitops.sync.driver import SyncAttempt, SyncDriver, SyncState
from ocsgitops.utils.retry import call_with_retry
from ocsgitops.verify.convergence import ConvergenceReport, ConvergenceVerifier
from .teardown import Teardown

log = logging.getLogger("ocsgitops")


@dataclass
class UnitOutcome:
    unit: str
    application: str
    state: SyncState
    attempts: int
    sync_status: str = "Unknown"
    health_status: str = "Unknown"
    diagnostics: List[str] = field(default_factory=list)

    @classmethod
    def from_attempt(cls, unit: UnitSpec, handle: ApplicationHandle, rec: SyncAttempt) -> "UnitOutcome":
        return cls(
            unit=unit.name,
            application=handle.name,
            state=rec.state,
            attempts=rec.attempt,
            sync_status=rec.sync_status,
            health_status=rec.health_status,
            diagnostics=list(rec.diagnostics),
        )


@dataclass
class RunResult:
    success: bool
    commit: Optional[str] = None
    units: List[UnitOutcome] = field(default_factory=list)
    reports: List[ConvergenceReport] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    urls: Dict[str, str] = field(default_factory=dict)


class Orchestrator:
    """
    Sequences one reconciliation run:

      credentials -> preflight -> render -> commit -> publish ->
      register -> sync (per unit) -> verify -> report

    This is the only place that decides between retry, abort and warn.
    Collaborators are injected so tests can swap git, ArgoCD and the
    cluster for fakes.
    """

    def __init__(
        self,
        config: DriverConfig,
        *,
        repository,
        registry,
        cluster,
        renderer: Optional[ManifestRenderer] = None,
        verifier: Optional[ConvergenceVerifier] = None,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
        which: Callable[[str], Optional[str]] = shutil.which,
    ):
        self.config = config
        self.repository = repository
        self.registry = registry
        self.cluster = cluster
        self.renderer = renderer or ManifestRenderer(config)
        self.verifier = verifier or ConvergenceVerifier(cluster.get_pods, config.allow_lists())
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.sleep = sleep
        self.which = which
        self.driver = SyncDriver(
            registry,
            config.sync,
            cluster=cluster,
            bus=self.bus,
            run_id=run_id,
            sleep=sleep,
        )
        self._cluster_mutated = False

    def _ctx(self) -> dict:
        return new_ctx(self.run_id)

    # ------------------------- steps -------------------------

    def preflight(self) -> None:
        """Required tools, oc session, GitOps namespace, operator CSV and running pods."""
        missing = [t for t in self.config.required_tools if self.which(t) is None]
        if missing:
            raise DependencyMissingError(
                f"Missing dependencies: {', '.join(missing)}. Please install them and try again.",
                step="preflight",
            )

        argocd = self.config.argocd
        try:
            user = self.cluster.whoami()
            if not user:
                raise DependencyMissingError(
                    "Not logged in to OpenShift. Run `oc login` first.",
                    step="preflight",
                )
            log.info("[preflight] Logged in to OpenShift as %s", user)

            if not self.cluster.namespace_exists(argocd.namespace):
                raise DependencyMissingError(
                    f"OpenShift GitOps namespace '{argocd.namespace}' not found. "
                    "Install the OpenShift GitOps operator first.",
                    step="preflight",
                )

            csvs = self.cluster.csv_names(argocd.operator_namespace)
            if not any(argocd.operator_csv in c for c in csvs):
                raise DependencyMissingError(
                    f"OpenShift GitOps operator CSV '{argocd.operator_csv}' not found in "
                    f"'{argocd.operator_namespace}'.",
                    step="preflight",
                )

            self.cluster.wait_for_pods_running(namespace=argocd.namespace, min_running=1)
        except OcError as e:
            raise DependencyMissingError(f"OpenShift GitOps is not ready: {e}", step="preflight") from e

        log.info("[preflight] OpenShift GitOps is installed and running.")
        self.bus.emit(PreflightPassed(**self._ctx(), tools=list(self.config.required_tools)))

    def commit(self, documents) -> Optional[str]:
        self.repository.ensure_initialized()
        prune_dirs = [APPLICATIONS_DIR] + [u.path for u in self.config.units]
        sha = self.repository.ensure_committed(
            documents,
            self.config.repo.commit_message,
            prune_dirs=prune_dirs,
        )
        self.bus.emit(StateCommitted(**self._ctx(), commit=sha))
        return sha

    def publish(self) -> int:
        retries = self.config.sync.publish_retries
        attempt = 0
        while True:
            attempt += 1
            try:
                self.repository.publish()
            except PublishConflict as e:
                if attempt > retries:
                    e.attempts = attempt
                    raise
                log.warning("[git] push rejected (%d/%d); rebasing onto remote", attempt, retries + 1)
                self.repository.refresh()
                continue
            self.bus.emit(StatePublished(**self._ctx(), branch=self.config.repo.branch, attempts=attempt))
            return attempt

    def register_repository(self) -> None:
        repo = self.config.repo
        self.registry.login()
        self._cluster_mutated = True
        call_with_retry(
            lambda: self.registry.upsert_repository(
                repo.url, repo.username, repo.token.get_secret_value() if repo.token else ""
            ),
            retries=self.config.sync.registration_retries,
            delay=self.config.sync.registration_delay,
            retry_on=(RegistrationError,),
            on_retry=lambda n, e: log.warning("[argocd] repository registration failed (%d): %s", n, e),
            sleep=self.sleep,
        )

    def register_unit(self, unit: UnitSpec) -> ApplicationHandle:
        policy = self.config.sync
        repo = self.config.repo

        if not unit.sync.create_namespace:
            try:
                self.cluster.ensure_namespace(unit.namespace)
            except OcError as e:
                raise OrchestrationError(str(e), unit=unit.name, step="namespace") from e

        tries = {"n": 0}

        def _upsert() -> ApplicationHandle:
            tries["n"] += 1
            return self.registry.upsert_application(
                unit.application,
                repo.url,
                unit.path,
                repo.branch,
                unit.namespace,
                unit.sync,
                unit.project,
            )

        try:
            handle = call_with_retry(
                _upsert,
                retries=policy.registration_retries,
                delay=policy.registration_delay,
                retry_on=(RegistrationError,),
                on_retry=lambda n, e: log.warning("[argocd] %s registration failed (%d): %s", unit.application, n, e),
                sleep=self.sleep,
            )
        except RegistrationError as e:
            e.unit, e.step, e.attempts = unit.name, "register", tries["n"]
            raise

        self.bus.emit(
            ApplicationRegistered(**self._ctx(), unit=unit.name, application=handle.name, attempts=tries["n"])
        )
        return handle

    def sync_unit(self, unit: UnitSpec, handle: ApplicationHandle) -> UnitOutcome:
        policy = self.config.sync
        rec: Optional[SyncAttempt] = None

        for n in range(1, policy.attempts + 1):
            self.bus.emit(SyncAttemptStarted(**self._ctx(), unit=unit.name, attempt=n))
            try:
                rec = self.driver.run(handle, unit, n)
            except RegistrationError as e:
                if n == policy.attempts:
                    e.unit, e.step, e.attempts = unit.name, "sync", n
                    raise
                log.warning("[sync] %s attempt %d failed: %s", unit.name, n, e)
                self.sleep(policy.retry_delay)
                continue

            self.bus.emit(
                SyncAttemptFinished(**self._ctx(), unit=unit.name, attempt=n, state=rec.state.value, polls=rec.polls)
            )

            if rec.state is SyncState.CONVERGED:
                self.bus.emit(UnitConverged(**self._ctx(), unit=unit.name, attempts=n))
                return UnitOutcome.from_attempt(unit, handle, rec)

            if rec.state is SyncState.DIVERGED and policy.unhealthy_policy == "fatal":
                break

            if n < policy.attempts:
                log.warning(
                    "[sync] %s %s on attempt %d/%d; retrying in %ss",
                    unit.name, rec.state.value, n, policy.attempts, policy.retry_delay,
                )
                self.sleep(policy.retry_delay)

        last = f"sync={rec.sync_status} health={rec.health_status}"
        if rec.state is SyncState.DIVERGED:
            raise SyncDiverged(
                f"{handle.name} synced but is {rec.health_status} ({last})",
                unit=unit.name,
                step="sync",
                attempts=rec.attempt,
            )
        raise SyncTimeout(
            f"{handle.name} did not converge after {rec.attempt} attempt(s) ({last})",
            unit=unit.name,
            step="sync",
            attempts=rec.attempt,
        )

    def verify(self) -> tuple[List[ConvergenceReport], List[str]]:
        try:
            reports = self.verifier.verify(self.config.verify_namespaces())
        except OcError as e:
            if self.config.verify.fatal:
                raise ConvergenceWarning(f"could not inspect pods: {e}", step="verify") from e
            log.warning("[verify] could not inspect pods: %s", e)
            return [], [f"could not inspect pods: {e}"]

        warnings: List[str] = []
        for r in reports:
            self.bus.emit(
                NamespaceVerified(
                    **self._ctx(),
                    namespace=r.namespace,
                    pod_count=r.pod_count,
                    running_count=r.running_count,
                    unexpected=r.unexpected_pods,
                )
            )
            if r.unexpected_state:
                warnings.append(f"Unexpected pods in {r.namespace}: {', '.join(r.unexpected_pods)}")

        if warnings and self.config.verify.fatal:
            raise ConvergenceWarning("; ".join(warnings), step="verify")
        return reports, warnings

    def route_urls(self) -> Dict[str, str]:
        argocd = self.config.argocd
        urls: Dict[str, str] = {}
        lookups = [("argocd", argocd.namespace, argocd.server_route)]
        lookups += [(u.name, u.namespace, None) for u in self.config.units]

        for key, ns, name in lookups:
            try:
                host = self.cluster.route_host(ns, name=name)
            except OcError as e:
                log.debug("[report] route lookup in %s failed: %s", ns, e)
                continue
            if host:
                urls[key] = f"https://{host}"
        return urls

    def _cleanup_after_failure(self) -> None:
        log.warning("[cleanup] Automatic cleanup on failure is enabled; tearing down...")
        try:
            Teardown(
                self.config,
                registry=self.registry,
                cluster=self.cluster,
                bus=self.bus,
                run_id=self.run_id,
                sleep=self.sleep,
            ).run(skip_git=True, verify=False)
        except Exception as e:  # never mask the original failure
            log.error("[cleanup] cleanup after failure failed: %s", e)

    # ------------------------- public API -------------------------

    def run(self) -> RunResult:
        self.config.require_credentials()
        self.bus.emit(RunStarted(**self._ctx(), units=[u.name for u in self.config.units]))

        result = RunResult(success=False)
        try:
            self.preflight()

            documents = self.renderer.render_all()
            self.bus.emit(ManifestsRendered(**self._ctx(), paths=[d.path for d in documents]))

            result.commit = self.commit(documents)
            self.publish()
            self.register_repository()

            for unit in self.config.units:
                handle = self.register_unit(unit)
                result.units.append(self.sync_unit(unit, handle))

            result.reports, result.warnings = self.verify()
            result.urls = self.route_urls()
        except OrchestrationError as e:
            log.error("[run] %s", e.describe())
            self.bus.emit(
                RunFailed(**self._ctx(), step=e.step or "unknown", error=e.message, unit=e.unit, attempts=e.attempts)
            )
            if self._cluster_mutated and self.config.cleanup.on_failure:
                self._cleanup_after_failure()
            raise

        result.success = True
        self.bus.emit(
            RunSummary(**self._ctx(), success=True, converged=len(result.units), warnings=len(result.warnings))
        )
        for key, url in result.urls.items():
            log.info("[report] %s: %s", key, url)
        return result
