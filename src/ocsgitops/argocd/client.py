# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/argocd/client.py
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from ocsgitops.config.models import ArgoCDSettings, SyncOptions
from ocsgitops.errors import DependencyMissingError, RegistrationError
from ocsgitops.kube.oc import OcError
from .registry import AppStatus, ApplicationHandle, OperationHandle

log = logging.getLogger("ocsgitops")

# ArgoCD answers 403 instead of 404 for applications that do not exist.
_NOT_FOUND = (403, 404)


def _error_message(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return (resp.text or "").strip()[:500]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)[:500]
    return str(body)[:500]


class ArgoCDClient:
    """
    ApplicationRegistry backed by the ArgoCD REST API.

    Server URL and admin password come from settings, or are discovered on the
    cluster (route + admin secret) through *cluster* when left unset.
    """

    def __init__(
        self,
        settings: ArgoCDSettings,
        *,
        cluster=None,
        session: Optional[requests.Session] = None,
    ):
        self.settings = settings
        self.cluster = cluster
        self.session = session or requests.Session()
        self.session.verify = not settings.insecure
        self.server: Optional[str] = settings.server
        self._authenticated = False

    # ------------------------- internal helpers -------------------------

    def _url(self, path: str) -> str:
        server = (self.server or "").rstrip("/")
        if not server.startswith(("http://", "https://")):
            server = f"https://{server}"
        return f"{server}{path}"

    def _request(
        self,
        method: str,
        path: str,
        *,
        tolerate: Iterable[int] = (),
        authenticated: bool = True,
        **kwargs,
    ) -> requests.Response:
        if authenticated and not self._authenticated:
            self.login()

        try:
            resp = self.session.request(
                method,
                self._url(path),
                timeout=self.settings.timeout_seconds,
                **kwargs,
            )
        except requests.RequestException as e:
            raise RegistrationError(f"ArgoCD {method} {path} failed: {e}", step="registry") from e

        if resp.status_code in set(tolerate):
            return resp
        if not resp.ok:
            raise RegistrationError(
                f"ArgoCD {method} {path} returned {resp.status_code}: {_error_message(resp)}",
                step="registry",
            )
        return resp

    @staticmethod
    def _app_path(name: str, suffix: str = "") -> str:
        return f"/api/v1/applications/{quote(name, safe='')}{suffix}"

    def _handle(self, name: str, project: str = "default") -> ApplicationHandle:
        return ApplicationHandle(name=name, namespace=self.settings.namespace, project=project)

    # ------------------------- session -------------------------

    def login(self) -> None:
        """
        Obtain a session token. Mirrors `argocd login --username admin --insecure`.
        """
        ns = self.settings.namespace
        server = self.server
        password = self.settings.password.get_secret_value() if self.settings.password else None

        if self.cluster is not None:
            try:
                if not server:
                    server = self.cluster.route_host(ns, name=self.settings.server_route)
                if not password:
                    password = self.cluster.get_secret_value(
                        ns, self.settings.admin_secret, self.settings.admin_secret_key
                    )
            except OcError as e:
                raise DependencyMissingError(
                    f"Unable to read ArgoCD route or admin secret in {ns}: {e}",
                    step="login",
                ) from e

        if not server or not password:
            raise DependencyMissingError(
                f"ArgoCD credentials or route not found. Check ArgoCD installation in {ns}.",
                step="login",
            )

        self.server = server
        resp = self._request(
            "POST",
            "/api/v1/session",
            authenticated=False,
            json={"username": self.settings.username, "password": password},
        )
        token = (resp.json() or {}).get("token")
        if not token:
            raise RegistrationError("ArgoCD session response carried no token", step="login")

        self.session.headers["Authorization"] = f"Bearer {token}"
        self._authenticated = True
        log.info("[argocd] Logged in to %s as %s", self.server, self.settings.username)

    # ------------------------- repositories -------------------------

    def upsert_repository(self, url: str, username: str, password: str) -> None:
        self._request(
            "POST",
            "/api/v1/repositories",
            params={"upsert": "true"},
            json={"type": "git", "repo": url, "username": username, "password": password},
        )

        resp = self._request("GET", "/api/v1/repositories")
        items = (resp.json() or {}).get("items") or []
        match = next((r for r in items if r.get("repo") == url), None)
        if match is None:
            raise RegistrationError("ArgoCD does not have access to the Git repository!", step="repository")

        state = (match.get("connectionState") or {})
        status = state.get("status")
        if status and status != "Successful":
            raise RegistrationError(
                f"ArgoCD cannot reach {url}: {status} {state.get('message', '')}".strip(),
                step="repository",
            )
        log.info("[argocd] Repository %s registered", url)

    # ------------------------- applications -------------------------

    def upsert_application(
        self,
        name: str,
        source_repo: str,
        source_path: str,
        target_revision: str,
        dest_namespace: str,
        sync_options: SyncOptions,
        project: str = "default",
    ) -> ApplicationHandle:
        body: Dict[str, Any] = {
            "metadata": {"name": name, "namespace": self.settings.namespace},
            "spec": {
                "project": project,
                "source": {
                    "repoURL": source_repo,
                    "targetRevision": target_revision,
                    "path": source_path,
                },
                "destination": {
                    "server": self.settings.destination_server,
                    "namespace": dest_namespace,
                },
                "syncPolicy": {
                    "automated": {
                        "prune": sync_options.prune,
                        "selfHeal": sync_options.self_heal,
                    },
                    "syncOptions": sync_options.flags(),
                },
            },
        }
        resp = self._request(
            "POST",
            "/api/v1/applications",
            params={"upsert": "true", "validate": "true"},
            json=body,
        )
        data = resp.json() or {}
        registered = (data.get("metadata") or {}).get("name") or name
        log.info("[argocd] Application %s upserted (path=%s, dest=%s)", registered, source_path, dest_namespace)
        return self._handle(registered, project)

    def trigger_sync(self, handle: ApplicationHandle, prune: bool = True, force: bool = True) -> OperationHandle:
        body = {
            "prune": prune,
            "strategy": {"apply": {"force": force}},
        }
        resp = self._request("POST", self._app_path(handle.name, "/sync"), json=body)
        status = (resp.json() or {}).get("status") or {}
        op = status.get("operationState") or {}
        return OperationHandle(
            application=handle,
            revision=(status.get("sync") or {}).get("revision", ""),
            started_at=op.get("startedAt", ""),
        )

    def get_status(self, handle: ApplicationHandle) -> AppStatus:
        resp = self._request("GET", self._app_path(handle.name))
        status = (resp.json() or {}).get("status") or {}

        messages: List[str] = []
        for cond in status.get("conditions") or []:
            if cond.get("message"):
                messages.append(f"{cond.get('type', 'Condition')}: {cond['message']}")
        op_msg = (status.get("operationState") or {}).get("message")
        if op_msg:
            messages.append(op_msg)

        return AppStatus.normalized(
            (status.get("sync") or {}).get("status"),
            (status.get("health") or {}).get("status"),
            messages,
        )

    def terminate_operation(self, handle: ApplicationHandle) -> None:
        resp = self._request(
            "DELETE",
            self._app_path(handle.name, "/operation"),
            tolerate=(400, 404, 409, 500),
        )
        if resp.ok or resp.status_code == 404:
            return
        message = _error_message(resp)
        if "no operation" in message.lower():
            log.debug("[argocd] %s: no operation in progress", handle.name)
            return
        raise RegistrationError(
            f"could not terminate operation on {handle.name}: {resp.status_code} {message}",
            step="terminate",
        )

    def application_exists(self, name: str) -> bool:
        resp = self._request("GET", self._app_path(name), tolerate=_NOT_FOUND)
        return resp.status_code not in _NOT_FOUND

    def delete_application(self, name: str) -> None:
        resp = self._request(
            "DELETE",
            self._app_path(name),
            params={"cascade": "true"},
            tolerate=_NOT_FOUND,
        )
        if resp.status_code in _NOT_FOUND:
            log.debug("[argocd] Application %s already absent", name)
        else:
            log.info("[argocd] Application %s deleted", name)

    def recent_events(self, handle: ApplicationHandle, limit: int = 10) -> List[str]:
        resp = self._request("GET", self._app_path(handle.name, "/events"))
        items = (resp.json() or {}).get("items") or []
        lines = [
            f"{e.get('type', 'Normal')} {e.get('reason', '')}: {e.get('message', '')}".strip()
            for e in items
        ]
        return lines[-limit:]
