# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/sync/driver.py
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from ocsgitops.argocd.registry import AppStatus, ApplicationHandle, ApplicationRegistry
from ocsgitops.config.models import SyncPolicy, UnitSpec
from ocsgitops.errors import RegistrationError
from ocsgitops.kube.oc import OcError
from ocsgitops.observers.dispatcher import EventBus
from ocsgitops.observers.events import SyncDiagnostics, SyncPolled, new_ctx

log = logging.getLogger("ocsgitops")

# Health values that end an attempt early under the "retry" / "fatal" policies.
# Progressing always keeps polling.
DIVERGED_HEALTH = ("Degraded", "Missing")


class SyncState(str, Enum):
    IDLE = "Idle"
    SYNCING = "Syncing"
    CONVERGED = "Converged"
    DIVERGED = "Diverged"
    TIMED_OUT = "TimedOut"


@dataclass
class SyncAttempt:
    attempt: int
    started_at: str
    outcome: str = "pending"          # pending | succeeded | failed
    state: SyncState = SyncState.IDLE
    sync_status: str = "Unknown"
    health_status: str = "Unknown"
    polls: int = 0
    diagnostics: List[str] = field(default_factory=list)

    @property
    def finished(self) -> bool:
        return self.state in (SyncState.CONVERGED, SyncState.DIVERGED, SyncState.TIMED_OUT)


class SyncDriver:
    """
    Runs one forced sync of an Application and polls it to a terminal state.

    Idle -> Syncing -> Converged | Diverged | TimedOut

    The driver never retries on its own; the orchestrator decides what a
    Diverged or TimedOut attempt means.
    """

    def __init__(
        self,
        registry: ApplicationRegistry,
        policy: SyncPolicy,
        *,
        cluster=None,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.registry = registry
        self.policy = policy
        self.cluster = cluster
        self.bus = bus or EventBus()
        self.run_id = run_id
        self.sleep = sleep

    # ------------------------- internal helpers -------------------------

    def _record(self, rec: SyncAttempt, status: AppStatus) -> None:
        rec.sync_status = status.sync_status
        rec.health_status = status.health_status

    def _diagnose(self, handle: ApplicationHandle, unit: UnitSpec, rec: SyncAttempt) -> None:
        details: List[str] = [f"sync={rec.sync_status} health={rec.health_status}"]
        try:
            details.extend(self.registry.recent_events(handle))
        except RegistrationError as e:
            details.append(f"events unavailable: {e}")
        if self.cluster is not None:
            try:
                details.append(f"pods[{unit.namespace}]: {self.cluster.pod_status_summary(unit.namespace)}")
            except OcError as e:
                details.append(f"pods unavailable: {e}")

        rec.diagnostics = details
        log.warning(
            "[sync] %s synced but %s; diagnostics:\n  %s",
            handle.name, rec.health_status, "\n  ".join(details),
        )
        self.bus.emit(SyncDiagnostics(**new_ctx(self.run_id), unit=unit.name, attempt=rec.attempt, details=details))

    def _finish(self, rec: SyncAttempt, state: SyncState) -> SyncAttempt:
        rec.state = state
        rec.outcome = "succeeded" if state is SyncState.CONVERGED else "failed"
        return rec

    # ------------------------- public API -------------------------

    def run(self, handle: ApplicationHandle, unit: UnitSpec, attempt: int = 1) -> SyncAttempt:
        rec = SyncAttempt(
            attempt=attempt,
            started_at=datetime.now(timezone.utc).isoformat(timespec="seconds"),
        )

        log.info("[sync] %s: attempt %d, forcing sync", handle.name, attempt)
        self.registry.terminate_operation(handle)
        self.registry.trigger_sync(handle, prune=True, force=True)
        rec.state = SyncState.SYNCING

        max_polls = self.policy.max_polls
        diagnosed = False

        for poll in range(1, max_polls + 1):
            status = self.registry.get_status(handle)
            rec.polls = poll
            self._record(rec, status)
            log.info(
                "[sync] %s poll %d/%d: sync=%s health=%s",
                handle.name, poll, max_polls, status.sync_status, status.health_status,
            )
            self.bus.emit(
                SyncPolled(
                    **new_ctx(self.run_id),
                    unit=unit.name,
                    attempt=attempt,
                    poll=poll,
                    sync_status=status.sync_status,
                    health_status=status.health_status,
                )
            )

            if status.converged:
                log.info("[sync] %s converged after %d poll(s)", handle.name, poll)
                return self._finish(rec, SyncState.CONVERGED)

            if status.synced_unhealthy:
                if not diagnosed:
                    self._diagnose(handle, unit, rec)
                    diagnosed = True
                if status.health_status in DIVERGED_HEALTH and self.policy.unhealthy_policy != "continue":
                    return self._finish(rec, SyncState.DIVERGED)

            if poll < max_polls:
                self.sleep(self.policy.poll_interval)

        log.warning(
            "[sync] %s did not converge within %d polls (last: sync=%s health=%s)",
            handle.name, max_polls, rec.sync_status, rec.health_status,
        )
        return self._finish(rec, SyncState.TIMED_OUT)
