# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocsgitops/config/defaults.py
"""
Baked-in defaults for the OpenShift GitOps bootstrap.

Every value here can be replaced by a YAML config file or by the
environment variables handled in ``config.loader``.
"""

MARKETPLACE_SYSTEM_PODS = [
    "marketplace-operator",
    "certified-operators",
    "community-operators",
    "redhat-operators",
    "redhat-marketplace",
]

TEKTON_UNIT = {
    "name": "tekton",
    "path": "tekton",
    "namespace": "openshift-pipelines",
    "app_name": "tekton-app",
    "operator": {
        "package": "openshift-pipelines-operator-rh",
        "channel": "pipelines-1.18",
        "source": "redhat-operators",
        "source_namespace": "openshift-marketplace",
        "namespace": "openshift-operators",
        "install_plan_approval": "Automatic",
        "starting_csv": "openshift-pipelines-operator-rh.v1.18.0",
    },
    "custom_resource": {
        "api_version": "operator.tekton.dev/v1alpha1",
        "kind": "TektonConfig",
        "name": "config",
        "cluster_scoped": True,
        "spec": {
            "profile": "all",
            "targetNamespace": "{{ unit.namespace }}",
        },
    },
    "allowed_pods": ["tekton-", "pipelines-", "tkn-"],
}

AWX_UNIT = {
    "name": "awx",
    "path": "awx",
    "namespace": "awx",
    "app_name": "awx-app",
    "operator": {
        "package": "awx-operator",
        "channel": "alpha",
        "source": "community-operators",
        "source_namespace": "openshift-marketplace",
        "namespace": "awx",
        "install_plan_approval": "Automatic",
    },
    "custom_resource": {
        "api_version": "awx.ansible.com/v1beta1",
        "kind": "AWX",
        "name": "awx",
        "spec": {
            "service_type": "ClusterIP",
            "ingress_type": "Route",
        },
    },
    "allowed_pods": ["awx"],
}

DEFAULTS = {
    "repo": {
        "url": "https://github.com/kevin-biot/deployment-ocs.git",
        "branch": "main",
        "local_dir": "~/deployment-ocs",
        "username": "kevin-biot",
    },
    "argocd": {
        "namespace": "openshift-gitops",
    },
    "units": [TEKTON_UNIT, AWX_UNIT],
    "verify": {
        "namespaces": ["openshift-marketplace"],
        "allowed_pods": {"openshift-marketplace": MARKETPLACE_SYSTEM_PODS},
        "fatal": False,
    },
    "cleanup": {
        "on_failure": False,
        "namespaces": [
            "openshift-marketplace",
            "tekton-operator",
            "awx-operator",
            "openshift-pipelines",
            "awx",
        ],
        "allowed_pods": {"openshift-marketplace": MARKETPLACE_SYSTEM_PODS},
    },
}

# Environment variable -> config key path.
ENV_OVERRIDES = {
    "GIT_REPO": ("repo", "url"),
    "GIT_BRANCH": ("repo", "branch"),
    "GIT_USERNAME": ("repo", "username"),
    "GIT_TOKEN": ("repo", "token"),
    "LOCAL_GIT_DIR": ("repo", "local_dir"),
    "ARGO_NAMESPACE": ("argocd", "namespace"),
    "ARGOCD_SERVER": ("argocd", "server"),
    "ARGOCD_PASSWORD": ("argocd", "password"),
    "ARGOCD_INSECURE": ("argocd", "insecure"),
    "OCSGITOPS_LOG_DIR": ("log_dir",),
    "AUTO_CLEANUP_ON_FAILURE": ("cleanup", "on_failure"),
}

# Environment variable -> unit whose destination namespace it overrides.
UNIT_NAMESPACE_ENV = {
    "TEKTON_NAMESPACE": "tekton",
    "ANSIBLE_NAMESPACE": "awx",
}
