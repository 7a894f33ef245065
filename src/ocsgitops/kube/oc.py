# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/kube/oc.py

from __future__ import annotations

import base64
import json
import logging
import subprocess
import time
from typing import Callable, List, Optional

log = logging.getLogger("ocsgitops")

TERMINAL_PHASES = ("Succeeded", "Failed")


class OcError(RuntimeError):
    pass


class OcRunner:
    """
    Local `oc` runner.

    Not-found and already-exists answers are returned as values (None, False,
    empty lists) so callers never need `|| true`.
    """

    def __init__(
        self,
        *,
        binary: str = "oc",
        timeout: int = 120,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.binary = binary
        self.timeout = timeout
        self.sleep = sleep

    def _run(self, args: List[str]) -> tuple[int, str, str]:
        """
        Run an oc command.

        Returns:
            (rc, stdout, stderr)
        """
        argv = [self.binary] + args
        log.debug("[oc] $ %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise OcError(f"`{' '.join(argv)}` timed out after {self.timeout}s") from e
        return proc.returncode, proc.stdout, proc.stderr

    def _json(self, args: List[str]) -> Optional[dict]:
        rc, out, err = self._run(args + ["-o", "json"])
        if rc != 0:
            if "NotFound" in err or "not found" in err:
                return None
            raise OcError(f"oc {' '.join(args)} failed: {err.strip() or out.strip()}")
        return json.loads(out) if out.strip() else None

    # ------------------------- session -------------------------

    def whoami(self) -> Optional[str]:
        rc, out, _ = self._run(["whoami"])
        return out.strip() if rc == 0 else None

    # ------------------------- namespaces -------------------------

    def namespace_exists(self, namespace: str) -> bool:
        rc, _, _ = self._run(["get", "namespace", namespace, "-o", "name"])
        return rc == 0

    def ensure_namespace(self, namespace: str) -> None:
        if self.namespace_exists(namespace):
            log.info("[oc] Namespace '%s' exists.", namespace)
            return
        log.info("[oc] Namespace '%s' not found; creating it...", namespace)
        rc, out, err = self._run(["create", "namespace", namespace])
        if rc != 0 and "AlreadyExists" not in err:
            raise OcError(f"oc create namespace {namespace} failed: {err.strip() or out.strip()}")

    def delete_namespace(self, namespace: str) -> None:
        rc, out, err = self._run(["delete", "namespace", namespace, "--ignore-not-found", "--wait=false"])
        if rc != 0:
            raise OcError(f"oc delete namespace {namespace} failed: {err.strip() or out.strip()}")

    # ------------------------- generic resources -------------------------

    def delete(self, kind: str, name: Optional[str] = None, *, namespace: Optional[str] = None) -> None:
        """Delete one object, or every object of *kind* when *name* is None."""
        args = ["delete", kind]
        args += [name] if name else ["--all"]
        if namespace:
            args += ["-n", namespace]
        args.append("--ignore-not-found")

        rc, out, err = self._run(args)
        if rc == 0:
            return
        # CRD not installed -> nothing of that kind can exist
        if "the server doesn't have a resource type" in err:
            log.debug("[oc] %s: resource type unknown, nothing to delete", kind)
            return
        raise OcError(f"oc {' '.join(args)} failed: {err.strip() or out.strip()}")

    def get_secret_value(self, namespace: str, name: str, key: str) -> Optional[str]:
        secret = self._json(["get", "secret", name, "-n", namespace])
        if not secret:
            return None
        encoded = (secret.get("data") or {}).get(key)
        if not encoded:
            return None
        return base64.b64decode(encoded).decode("utf-8", errors="replace")

    def route_host(self, namespace: str, *, name: Optional[str] = None) -> Optional[str]:
        routes = self._json(["get", "routes", "-n", namespace])
        items = (routes or {}).get("items") or []
        for r in items:
            if name is None or r.get("metadata", {}).get("name") == name:
                return r.get("spec", {}).get("host")
        return None

    def csv_names(self, namespace: str) -> List[str]:
        data = self._json(["get", "csv", "-n", namespace])
        return [i.get("metadata", {}).get("name", "") for i in (data or {}).get("items") or []]

    # ------------------------- pods -------------------------

    def get_pods(self, namespace: str) -> List[dict]:
        data = self._json(["get", "pods", "-n", namespace])
        return (data or {}).get("items") or []

    def count_running_pods(self, namespace: str) -> int:
        return sum(
            1
            for p in self.get_pods(namespace)
            if p.get("status", {}).get("phase") == "Running"
        )

    def wait_for_pods_running(
        self,
        *,
        namespace: str,
        min_running: int = 1,
        retries: int = 20,
        delay: float = 10,
    ) -> None:
        for attempt in range(retries):
            running = self.count_running_pods(namespace)
            if running >= min_running:
                return
            if attempt > 0 and attempt % 3 == 0:
                log.info(
                    "[oc] Still waiting for pods in '%s' (%d/%d running) - %s",
                    namespace, running, min_running, self.pod_status_summary(namespace),
                )
            if attempt < retries - 1:
                self.sleep(delay)

        raise OcError(
            f"Timed out waiting for {min_running} pods in namespace '{namespace}'. "
            f"Pod status: {self.pod_status_summary(namespace)}"
        )

    def pod_status_summary(self, namespace: str) -> str:
        """Return a brief summary of pod phases and container reasons."""
        try:
            pods = self.get_pods(namespace)
        except OcError as e:
            return f"unable to fetch pods ({e})"

        if not pods:
            return "no pods found"

        parts = []
        for p in pods:
            name = p.get("metadata", {}).get("name", "?")
            phase = p.get("status", {}).get("phase", "Unknown")
            # waiting reasons such as ImagePullBackOff or CrashLoopBackOff
            reasons = []
            for cs in p.get("status", {}).get("containerStatuses", []) or []:
                waiting = (cs.get("state") or {}).get("waiting")
                if waiting and waiting.get("reason"):
                    reasons.append(waiting["reason"])
            if reasons:
                parts.append(f"{name}: {phase} ({', '.join(reasons)})")
            else:
                parts.append(f"{name}: {phase}")
        return "; ".join(parts)
