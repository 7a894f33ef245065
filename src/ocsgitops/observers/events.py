# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single orchestration run

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
    }


# ---------------------------------------------------------------------
# Run lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RunStarted(BaseEvent):
    units: List[str]

@dataclass(frozen=True)
class PreflightPassed(BaseEvent):
    tools: List[str]

@dataclass(frozen=True)
class RunFailed(BaseEvent):
    step: str
    error: str
    unit: Optional[str] = None
    attempts: Optional[int] = None

@dataclass(frozen=True)
class RunSummary(BaseEvent):
    success: bool
    converged: int
    warnings: int


# ---------------------------------------------------------------------
# State repository
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ManifestsRendered(BaseEvent):
    paths: List[str]

@dataclass(frozen=True)
class StateCommitted(BaseEvent):
    commit: Optional[str]   # None when nothing changed

@dataclass(frozen=True)
class StatePublished(BaseEvent):
    branch: str
    attempts: int


# ---------------------------------------------------------------------
# Registration & sync
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ApplicationRegistered(BaseEvent):
    unit: str
    application: str
    attempts: int

@dataclass(frozen=True)
class SyncAttemptStarted(BaseEvent):
    unit: str
    attempt: int

@dataclass(frozen=True)
class SyncPolled(BaseEvent):
    unit: str
    attempt: int
    poll: int
    sync_status: str
    health_status: str

@dataclass(frozen=True)
class SyncDiagnostics(BaseEvent):
    unit: str
    attempt: int
    details: List[str]

@dataclass(frozen=True)
class SyncAttemptFinished(BaseEvent):
    unit: str
    attempt: int
    state: str       # Converged | Diverged | TimedOut
    polls: int

@dataclass(frozen=True)
class UnitConverged(BaseEvent):
    unit: str
    attempts: int


# ---------------------------------------------------------------------
# Verification & cleanup
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NamespaceVerified(BaseEvent):
    namespace: str
    pod_count: int
    running_count: int
    unexpected: List[str]

@dataclass(frozen=True)
class CleanupPerformed(BaseEvent):
    target: str      # what was removed (application, namespace, kind)
    name: str
    status: str      # "DELETED" | "FAILED"
    error: Optional[str] = None
