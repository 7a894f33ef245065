# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/config/models.py

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from ocsgitops.errors import ConfigurationError


class SyncOptions(BaseModel):
    prune: bool = True
    self_heal: bool = True
    create_namespace: bool = True
    apply_out_of_sync_only: bool = False

    def flags(self) -> List[str]:
        """ArgoCD syncOptions entries, in a stable order."""
        out: List[str] = []
        if self.create_namespace:
            out.append("CreateNamespace=true")
        if self.apply_out_of_sync_only:
            out.append("ApplyOutOfSyncOnly=true")
        return out


class OperatorSpec(BaseModel):
    package: str                                   # OLM package name (Subscription.spec.name)
    channel: str
    source: str = "redhat-operators"               # CatalogSource name
    source_namespace: str = "openshift-marketplace"
    namespace: str = "openshift-operators"         # where the Subscription lives
    install_plan_approval: Literal["Automatic", "Manual"] = "Automatic"
    starting_csv: Optional[str] = None


class CustomResourceSpec(BaseModel):
    api_version: str
    kind: str
    name: str
    namespace: Optional[str] = None                # defaults to the unit namespace
    cluster_scoped: bool = False
    spec: Dict[str, Any] = Field(default_factory=dict)


class UnitSpec(BaseModel):
    """One DesiredStateUnit: a directory in the state repo plus its Application."""

    name: str
    path: str                                      # directory in the state repo
    namespace: str                                 # destination namespace
    app_name: Optional[str] = None
    project: str = "default"
    sync: SyncOptions = Field(default_factory=SyncOptions)
    operator: Optional[OperatorSpec] = None
    custom_resource: Optional[CustomResourceSpec] = None
    allowed_pods: List[str] = Field(default_factory=list)

    @field_validator("path")
    @classmethod
    def _relative_path(cls, v: str) -> str:
        v = v.strip().strip("/")
        if not v or v.startswith("..") or v == "argocd":
            raise ValueError(f"invalid unit path {v!r}")
        return v

    @property
    def application(self) -> str:
        return self.app_name or f"{self.name}-app"


class RepoSettings(BaseModel):
    url: str = "https://github.com/kevin-biot/deployment-ocs.git"
    branch: str = "main"
    local_dir: Path = Path("~/deployment-ocs")
    username: str = "kevin-biot"
    token: Optional[SecretStr] = None
    author_name: str = "ocsgitops"
    author_email: str = "ocsgitops@localhost"
    commit_message: str = "Update GitOps desired state"

    @field_validator("local_dir")
    @classmethod
    def _expand(cls, v: Path) -> Path:
        return Path(v).expanduser()


class ArgoCDSettings(BaseModel):
    namespace: str = "openshift-gitops"
    server: Optional[str] = None                   # discovered from the route when unset
    username: str = "admin"
    password: Optional[SecretStr] = None           # discovered from the admin secret when unset
    insecure: bool = True
    timeout_seconds: int = 30
    destination_server: str = "https://kubernetes.default.svc"
    server_route: str = "openshift-gitops-server"
    admin_secret: str = "openshift-gitops-cluster"
    admin_secret_key: str = "admin.password"
    operator_csv: str = "openshift-gitops-operator"
    operator_namespace: str = "openshift-operators"


class SyncPolicy(BaseModel):
    poll_interval: float = 15.0
    max_polls: int = Field(default=12, ge=1)
    attempts: int = Field(default=3, ge=1)
    retry_delay: float = 10.0
    unhealthy_policy: Literal["continue", "retry", "fatal"] = "continue"
    registration_retries: int = Field(default=3, ge=1)
    registration_delay: float = 5.0
    publish_retries: int = Field(default=2, ge=0)


class VerifyPolicy(BaseModel):
    namespaces: List[str] = Field(default_factory=list)
    include_unit_namespaces: bool = True
    allowed_pods: Dict[str, List[str]] = Field(default_factory=dict)
    fatal: bool = False


class CleanupPolicy(BaseModel):
    on_failure: bool = False
    delete_namespaces: bool = True
    app_delete_retries: int = Field(default=3, ge=1)
    app_delete_delay: float = 10.0
    # clean-slate verification after teardown
    namespaces: List[str] = Field(default_factory=list)
    allowed_pods: Dict[str, List[str]] = Field(default_factory=dict)


class DriverConfig(BaseModel):
    repo: RepoSettings = Field(default_factory=RepoSettings)
    argocd: ArgoCDSettings = Field(default_factory=ArgoCDSettings)
    units: List[UnitSpec] = Field(default_factory=list)
    sync: SyncPolicy = Field(default_factory=SyncPolicy)
    verify: VerifyPolicy = Field(default_factory=VerifyPolicy)
    cleanup: CleanupPolicy = Field(default_factory=CleanupPolicy)
    required_tools: List[str] = Field(default_factory=lambda: ["oc", "git"])
    log_dir: Optional[Path] = None

    @model_validator(mode="after")
    def _unique_units(self) -> "DriverConfig":
        seen: set[str] = set()
        apps: set[str] = set()
        for u in self.units:
            if u.name in seen:
                raise ValueError(f"duplicate unit name '{u.name}'")
            if u.application in apps:
                raise ValueError(f"duplicate application name '{u.application}'")
            seen.add(u.name)
            apps.add(u.application)
        return self

    # Helper methods
    def by_name(self) -> Dict[str, UnitSpec]:
        return {u.name: u for u in self.units}

    def require_credentials(self) -> None:
        """
        Fail before any cluster or git mutation when the push credential is missing.
        """
        token = self.repo.token.get_secret_value() if self.repo.token else ""
        if not token.strip():
            raise ConfigurationError(
                "GIT_TOKEN environment variable not set. Please set it before running.",
                step="configuration",
            )
        if not self.units:
            raise ConfigurationError("no desired-state units configured", step="configuration")

    def verify_namespaces(self) -> List[str]:
        """Namespaces inspected after sync, unit destinations first, de-duplicated."""
        out: List[str] = []
        if self.verify.include_unit_namespaces:
            out.extend(u.namespace for u in self.units)
        out.extend(self.verify.namespaces)
        return list(dict.fromkeys(out))

    def allow_lists(self) -> Dict[str, List[str]]:
        merged: Dict[str, List[str]] = {k: list(v) for k, v in self.verify.allowed_pods.items()}
        for u in self.units:
            bucket = merged.setdefault(u.namespace, [])
            for entry in u.allowed_pods:
                if entry not in bucket:
                    bucket.append(entry)
        return merged
