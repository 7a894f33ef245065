from pathlib import Path
import textwrap

import pytest

from ocsgitops.config.loader import load_config
from ocsgitops.errors import ConfigurationError


def test_defaults_describe_tekton_and_awx():
    cfg = load_config(env={})
    assert [u.name for u in cfg.units] == ["tekton", "awx"]
    assert cfg.by_name()["tekton"].application == "tekton-app"
    assert cfg.by_name()["awx"].namespace == "awx"
    assert cfg.argocd.namespace == "openshift-gitops"
    assert cfg.repo.token is None


def test_env_overrides_apply(tmp_path: Path):
    env = {
        "GIT_TOKEN": "s3cret",
        "GIT_REPO": "https://git.example.test/org/state.git",
        "GIT_BRANCH": "staging",
        "LOCAL_GIT_DIR": str(tmp_path / "wc"),
        "ARGO_NAMESPACE": "gitops",
        "TEKTON_NAMESPACE": "pipelines",
        "ANSIBLE_NAMESPACE": "ansible",
        "AUTO_CLEANUP_ON_FAILURE": "true",
    }
    cfg = load_config(env=env)

    assert cfg.repo.token.get_secret_value() == "s3cret"
    assert cfg.repo.url == "https://git.example.test/org/state.git"
    assert cfg.repo.branch == "staging"
    assert cfg.repo.local_dir == tmp_path / "wc"
    assert cfg.argocd.namespace == "gitops"
    assert cfg.cleanup.on_failure is True

    units = cfg.by_name()
    assert units["tekton"].namespace == "pipelines"
    # cluster-wide operator stays where it is
    assert units["tekton"].operator.namespace == "openshift-operators"
    assert units["awx"].namespace == "ansible"
    assert units["awx"].operator.namespace == "ansible"


def test_empty_env_values_are_ignored():
    cfg = load_config(env={"GIT_BRANCH": "", "ARGO_NAMESPACE": "  "})
    assert cfg.repo.branch == "main"
    assert cfg.argocd.namespace == "openshift-gitops"


def test_yaml_file_replaces_units_and_expands_vars(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("DEMO_NS", "demo-space")
    f = tmp_path / "ocsgitops.yaml"
    f.write_text(textwrap.dedent("""
        repo:
          branch: feature
        units:
          - name: demo
            path: apps/demo
            namespace: ${DEMO_NS}
            sync:
              create_namespace: false
        sync:
          max_polls: 4
    """))

    cfg = load_config(f, env={})
    assert [u.name for u in cfg.units] == ["demo"]
    assert cfg.units[0].namespace == "demo-space"
    assert cfg.units[0].sync.create_namespace is False
    assert cfg.repo.branch == "feature"
    # untouched defaults survive the merge
    assert cfg.repo.username == "kevin-biot"
    assert cfg.sync.max_polls == 4
    assert cfg.sync.poll_interval == 15


def test_config_path_from_environment(tmp_path: Path):
    f = tmp_path / "cfg.yaml"
    f.write_text("argocd:\n  namespace: other-gitops\n")
    cfg = load_config(env={"OCSGITOPS_CONFIG": str(f)})
    assert cfg.argocd.namespace == "other-gitops"


def test_missing_file_is_configuration_error(tmp_path: Path):
    with pytest.raises(ConfigurationError):
        load_config(tmp_path / "nope.yaml", env={})


def test_duplicate_unit_names_rejected(tmp_path: Path):
    f = tmp_path / "dup.yaml"
    f.write_text(textwrap.dedent("""
        units:
          - {name: a, path: a, namespace: ns1}
          - {name: a, path: b, namespace: ns2}
    """))
    with pytest.raises(ConfigurationError) as exc:
        load_config(f, env={})
    assert "duplicate unit name" in str(exc.value)


def test_unit_path_cannot_shadow_application_dir(tmp_path: Path):
    f = tmp_path / "bad.yaml"
    f.write_text("units:\n  - {name: a, path: argocd, namespace: ns}\n")
    with pytest.raises(ConfigurationError):
        load_config(f, env={})


def test_require_credentials_without_token():
    cfg = load_config(env={})
    with pytest.raises(ConfigurationError) as exc:
        cfg.require_credentials()
    assert "GIT_TOKEN" in str(exc.value)
    assert exc.value.exit_code == 3


def test_verify_namespaces_and_allow_lists():
    cfg = load_config(env={"GIT_TOKEN": "t"})
    assert cfg.verify_namespaces() == ["openshift-pipelines", "awx", "openshift-marketplace"]

    allow = cfg.allow_lists()
    assert "redhat-operators" in allow["openshift-marketplace"]
    assert allow["awx"] == ["awx"]
    assert "tekton-" in allow["openshift-pipelines"]
