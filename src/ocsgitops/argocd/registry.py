# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/argocd/registry.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Protocol

from ocsgitops.config.models import SyncOptions

SYNC_STATUSES = ("Synced", "OutOfSync", "Unknown")
HEALTH_STATUSES = ("Healthy", "Degraded", "Progressing", "Missing", "Unknown")


@dataclass(frozen=True)
class ApplicationHandle:
    name: str
    namespace: str           # namespace the GitOps controller lives in
    project: str = "default"


@dataclass(frozen=True)
class OperationHandle:
    application: ApplicationHandle
    revision: str
    started_at: str = ""


@dataclass(frozen=True)
class AppStatus:
    sync_status: str = "Unknown"
    health_status: str = "Unknown"
    messages: List[str] = field(default_factory=list, compare=False)

    @classmethod
    def normalized(cls, sync_status: str | None, health_status: str | None, messages=None) -> "AppStatus":
        sync = sync_status if sync_status in SYNC_STATUSES else "Unknown"
        health = health_status if health_status in HEALTH_STATUSES else "Unknown"
        return cls(sync, health, list(messages or []))

    @property
    def converged(self) -> bool:
        return self.sync_status == "Synced" and self.health_status == "Healthy"

    @property
    def synced_unhealthy(self) -> bool:
        return self.sync_status == "Synced" and self.health_status != "Healthy"


class ApplicationRegistry(Protocol):
    """
    What the driver needs from the declarative GitOps controller.

    Create-or-update and "nothing to do" outcomes are successes; every other
    failure is raised as RegistrationError.
    """

    def login(self) -> None: ...

    def upsert_repository(self, url: str, username: str, password: str) -> None: ...

    def upsert_application(
        self,
        name: str,
        source_repo: str,
        source_path: str,
        target_revision: str,
        dest_namespace: str,
        sync_options: SyncOptions,
        project: str = "default",
    ) -> ApplicationHandle: ...

    def trigger_sync(self, handle: ApplicationHandle, prune: bool = True, force: bool = True) -> OperationHandle: ...

    def get_status(self, handle: ApplicationHandle) -> AppStatus: ...

    def terminate_operation(self, handle: ApplicationHandle) -> None: ...

    def application_exists(self, name: str) -> bool: ...

    def delete_application(self, name: str) -> None: ...

    def recent_events(self, handle: ApplicationHandle, limit: int = 10) -> List[str]: ...
