# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/verify/convergence.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Sequence

from ocsgitops.kube.oc import TERMINAL_PHASES

log = logging.getLogger("ocsgitops")


@dataclass(frozen=True)
class ConvergenceReport:
    namespace: str
    pod_count: int
    running_count: int
    unexpected_pods: List[str] = field(default_factory=list)

    @property
    def unexpected_state(self) -> bool:
        return bool(self.unexpected_pods)

    def summary(self) -> str:
        line = f"{self.namespace}: {self.running_count}/{self.pod_count} running"
        if self.unexpected_pods:
            line += f", unexpected: {', '.join(self.unexpected_pods)}"
        return line


class ConvergenceVerifier:
    """
    Read-only inspection of live pods against per-namespace allow-lists.

    *pods* is any callable returning raw pod objects for a namespace
    (normally OcRunner.get_pods). A missing namespace yields no pods.
    """

    def __init__(
        self,
        pods: Callable[[str], List[dict]],
        allow_lists: Mapping[str, Sequence[str]] | None = None,
    ):
        self.pods = pods
        self.allow_lists: Dict[str, List[str]] = {k: list(v) for k, v in (allow_lists or {}).items()}

    def _expected(self, namespace: str, pod_name: str) -> bool:
        return any(s and s in pod_name for s in self.allow_lists.get(namespace, []))

    def inspect(self, namespace: str) -> ConvergenceReport:
        pods = self.pods(namespace) or []
        running = 0
        unexpected: List[str] = []

        for p in pods:
            name = p.get("metadata", {}).get("name", "")
            phase = p.get("status", {}).get("phase", "Unknown")
            if phase == "Running":
                running += 1
            if phase in TERMINAL_PHASES:
                continue
            if not self._expected(namespace, name):
                unexpected.append(name)

        report = ConvergenceReport(namespace, len(pods), running, sorted(unexpected))
        if report.unexpected_state:
            log.warning("[verify] %s", report.summary())
        else:
            log.info("[verify] %s", report.summary())
        return report

    def verify(self, namespaces: Iterable[str]) -> List[ConvergenceReport]:
        return [self.inspect(ns) for ns in dict.fromkeys(namespaces)]
