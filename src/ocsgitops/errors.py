# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/errors.py
from __future__ import annotations

from typing import Optional


class OrchestrationError(RuntimeError):
    """
    Base class for every failure the orchestrator knows how to classify.

    unit:     DesiredStateUnit the failure belongs to (None for run-level steps)
    step:     orchestration step that failed (preflight, commit, publish, ...)
    attempts: attempts spent before giving up
    """

    exit_code: int = 1
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        unit: Optional[str] = None,
        step: Optional[str] = None,
        attempts: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.unit = unit
        self.step = step
        self.attempts = attempts

    def describe(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.unit:
            parts.append(f"unit={self.unit}")
        if self.step:
            parts.append(f"step={self.step}")
        if self.attempts is not None:
            parts.append(f"attempts={self.attempts}")
        return " | ".join(parts)


class ConfigurationError(OrchestrationError):
    """Missing or invalid credential / variable. Raised before any mutation."""

    exit_code = 3


class DependencyMissingError(OrchestrationError):
    """Required CLI tool or platform component is unavailable."""

    exit_code = 4


class StateRepositoryError(OrchestrationError):
    """git working copy could not be prepared, committed or pushed."""

    exit_code = 5


class PublishConflict(StateRepositoryError):
    """Remote rejected a non-fast-forward push."""

    retryable = True


class RegistrationError(OrchestrationError):
    """ArgoCD rejected a registration, sync or status request."""

    exit_code = 6
    retryable = True


class SyncTimeout(OrchestrationError):
    """Application never reached Synced/Healthy within the poll budget."""

    exit_code = 7
    retryable = True


class SyncDiverged(OrchestrationError):
    """Application synced but settled into an unhealthy state."""

    exit_code = 8
    retryable = True


class ConvergenceWarning(OrchestrationError):
    """Unexpected non-terminal pods remain after sync."""

    exit_code = 9
