# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/deploy/teardown.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ocsgitops.config.models import DriverConfig, UnitSpec
from ocsgitops.errors import DependencyMissingError, RegistrationError
from ocsgitops.kube.oc import OcError
from ocsgitops.observers.dispatcher import EventBus
from ocsgitops.observers.events import CleanupPerformed, NamespaceVerified, new_ctx
from ocsgitops.render.renderer import APPLICATIONS_DIR, CLUSTER_WIDE_OPERATOR_NAMESPACE
from ocsgitops.verify.convergence import ConvergenceReport, ConvergenceVerifier

log = logging.getLogger("ocsgitops")

CLEANUP_COMMIT_MESSAGE = "Cleanup before fresh deployment"


@dataclass
class TeardownResult:
    remaining_applications: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    commit: Optional[str] = None
    reports: List[ConvergenceReport] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return (
            not self.remaining_applications
            and not self.failures
            and not any(r.unexpected_state for r in self.reports)
        )


class Teardown:
    """
    Removes what a deployment created: Applications, operator resources,
    optionally namespaces, and the unit directories in the state repository.

    Every step tolerates "not found". Individual failures are recorded and
    the teardown keeps going.
    """

    def __init__(
        self,
        config: DriverConfig,
        *,
        registry,
        cluster,
        repository=None,
        verifier: Optional[ConvergenceVerifier] = None,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.registry = registry
        self.cluster = cluster
        self.repository = repository
        self.verifier = verifier or ConvergenceVerifier(cluster.get_pods, config.cleanup.allowed_pods)
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.sleep = sleep

    def _emit(self, target: str, name: str, error: Optional[str] = None) -> None:
        self.bus.emit(
            CleanupPerformed(
                **new_ctx(self.run_id),
                target=target,
                name=name,
                status="FAILED" if error else "DELETED",
                error=error,
            )
        )

    def _delete(self, result: TeardownResult, kind: str, name: Optional[str], namespace: Optional[str]) -> None:
        label = f"{kind}/{name or '*'}" + (f" -n {namespace}" if namespace else "")
        try:
            self.cluster.delete(kind, name, namespace=namespace)
        except OcError as e:
            log.error("[clean] failed to delete %s: %s", label, e)
            result.failures.append(f"{label}: {e}")
            self._emit(kind, label, str(e))
            return
        log.info("[clean] deleted %s", label)
        self._emit(kind, label)

    # ------------------------- steps -------------------------

    def _delete_application(self, result: TeardownResult, app: str) -> None:
        cleanup = self.config.cleanup
        log.info("[clean] Deleting application %s", app)
        self.registry.delete_application(app)

        for attempt in range(1, cleanup.app_delete_retries + 1):
            if not self.registry.application_exists(app):
                self._emit("application", app)
                return
            log.info("[clean] %s still exists (check %d/%d)", app, attempt, cleanup.app_delete_retries)
            if attempt < cleanup.app_delete_retries:
                self.sleep(cleanup.app_delete_delay)
                self.registry.delete_application(app)

        log.warning("[clean] Failed to delete application %s", app)
        result.remaining_applications.append(app)
        self._emit("application", app, "still present")

    def delete_applications(self, result: TeardownResult) -> None:
        for unit in self.config.units:
            app = unit.application
            try:
                self._delete_application(result, app)
            except (RegistrationError, DependencyMissingError) as e:
                log.error("[clean] failed to delete application %s: %s", app, e)
                result.remaining_applications.append(app)
                result.failures.append(f"application/{app}: {e.message}")
                self._emit("application", app, e.message)

    def delete_operator_resources(self, result: TeardownResult, unit: UnitSpec) -> None:
        cr = unit.custom_resource
        if cr is not None:
            ns = None if cr.cluster_scoped else (cr.namespace or unit.namespace)
            self._delete(result, cr.kind.lower(), cr.name, ns)

        op = unit.operator
        if op is not None:
            self._delete(result, "subscription", op.package, op.namespace)
            if op.namespace != CLUSTER_WIDE_OPERATOR_NAMESPACE:
                self._delete(result, "operatorgroup", None, op.namespace)

    def delete_namespaces(self, result: TeardownResult) -> None:
        for ns in dict.fromkeys(u.namespace for u in self.config.units):
            try:
                self.cluster.delete_namespace(ns)
            except OcError as e:
                log.error("[clean] failed to delete namespace %s: %s", ns, e)
                result.failures.append(f"namespace/{ns}: {e}")
                self._emit("namespace", ns, str(e))
                continue
            log.info("[clean] namespace %s deletion requested", ns)
            self._emit("namespace", ns)

    def remove_from_git(self) -> Optional[str]:
        paths = [u.path for u in self.config.units]
        paths += [f"{APPLICATIONS_DIR}/{u.application}.yaml" for u in self.config.units]

        self.repository.ensure_initialized()
        sha = self.repository.ensure_removed(paths, CLEANUP_COMMIT_MESSAGE)
        if sha:
            self.repository.publish()
        return sha

    def verify_clean_slate(self, result: TeardownResult) -> List[ConvergenceReport]:
        namespaces = self.config.cleanup.namespaces or [u.namespace for u in self.config.units]
        reports: List[ConvergenceReport] = []
        for ns in dict.fromkeys(namespaces):
            try:
                r = self.verifier.inspect(ns)
            except OcError as e:
                log.error("[clean] cannot inspect pods in %s: %s", ns, e)
                result.failures.append(f"verify/{ns}: {e}")
                continue
            reports.append(r)
            self.bus.emit(
                NamespaceVerified(
                    **new_ctx(self.run_id),
                    namespace=r.namespace,
                    pod_count=r.pod_count,
                    running_count=r.running_count,
                    unexpected=r.unexpected_pods,
                )
            )
        return reports

    # ------------------------- public API -------------------------

    def run(
        self,
        *,
        delete_namespaces: Optional[bool] = None,
        skip_git: bool = False,
        verify: bool = True,
    ) -> TeardownResult:
        if delete_namespaces is None:
            delete_namespaces = self.config.cleanup.delete_namespaces

        result = TeardownResult()

        log.info("[clean] Deleting ArgoCD applications...")
        self.delete_applications(result)

        log.info("[clean] Deleting operator resources...")
        for unit in self.config.units:
            self.delete_operator_resources(result, unit)

        if delete_namespaces:
            self.delete_namespaces(result)
        else:
            for ns in dict.fromkeys(u.namespace for u in self.config.units):
                self._delete(result, "pod", None, ns)

        if not skip_git and self.repository is not None:
            result.commit = self.remove_from_git()

        if verify:
            result.reports = self.verify_clean_slate(result)

        if result.clean:
            log.info("[clean] Cluster is in a clean state")
        else:
            log.warning("[clean] Cleanup incomplete; manual cleanup may be needed")
        return result
