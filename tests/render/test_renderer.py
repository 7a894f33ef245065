import pytest
import yaml

from ocsgitops.config.loader import load_config
from ocsgitops.config.models import DriverConfig, UnitSpec
from ocsgitops.errors import ConfigurationError
from ocsgitops.render.renderer import ManifestRenderer, dump_document


def _cfg(**env) -> DriverConfig:
    return load_config(env=env)


def test_render_all_emits_expected_paths_in_order():
    docs = ManifestRenderer(_cfg()).render_all()
    assert [d.path for d in docs] == [
        "argocd/tekton-app.yaml",
        "tekton/subscription.yaml",
        "tekton/tektonconfig.yaml",
        "argocd/awx-app.yaml",
        "awx/operatorgroup.yaml",
        "awx/subscription.yaml",
        "awx/awx.yaml",
    ]


def test_application_document_fields():
    cfg = _cfg(GIT_REPO="https://git.example.test/state.git", GIT_BRANCH="prod")
    doc = ManifestRenderer(cfg).application(cfg.by_name()["awx"]).document

    assert doc["apiVersion"] == "argoproj.io/v1alpha1"
    assert doc["kind"] == "Application"
    assert doc["metadata"] == {"name": "awx-app", "namespace": "openshift-gitops"}
    assert doc["spec"]["project"] == "default"
    assert doc["spec"]["source"] == {
        "repoURL": "https://git.example.test/state.git",
        "targetRevision": "prod",
        "path": "awx",
    }
    assert doc["spec"]["destination"] == {
        "server": "https://kubernetes.default.svc",
        "namespace": "awx",
    }
    assert doc["spec"]["syncPolicy"]["automated"] == {"prune": True, "selfHeal": True}
    assert doc["spec"]["syncPolicy"]["syncOptions"] == ["CreateNamespace=true"]


def test_application_without_sync_options():
    unit = UnitSpec(name="x", path="x", namespace="x", sync={"create_namespace": False})
    cfg = DriverConfig(units=[unit])
    doc = ManifestRenderer(cfg).application(unit).document
    assert "syncOptions" not in doc["spec"]["syncPolicy"]


def test_subscription_and_custom_resource():
    cfg = _cfg(TEKTON_NAMESPACE="pipelines")
    r = ManifestRenderer(cfg)
    tekton = cfg.by_name()["tekton"]

    sub = r.subscription(tekton).document
    assert sub["kind"] == "Subscription"
    assert sub["metadata"]["namespace"] == "openshift-operators"
    assert sub["spec"]["channel"] == "pipelines-1.18"
    assert sub["spec"]["sourceNamespace"] == "openshift-marketplace"
    assert sub["spec"]["startingCSV"] == "openshift-pipelines-operator-rh.v1.18.0"

    # cluster-wide operator namespace gets no OperatorGroup
    assert r.operator_group(tekton) is None

    cr = r.custom_resource(tekton).document
    assert cr["kind"] == "TektonConfig"
    assert "namespace" not in cr["metadata"]
    assert cr["spec"]["targetNamespace"] == "pipelines"


def test_unit_without_operator_renders_only_application():
    unit = UnitSpec(name="plain", path="plain", namespace="plain")
    docs = ManifestRenderer(DriverConfig(units=[unit])).render_unit(unit)
    assert [d.kind for d in docs] == ["Application"]


def test_rendering_is_byte_identical_across_runs():
    first = [(d.path, d.content) for d in ManifestRenderer(_cfg()).render_all()]
    second = [(d.path, d.content) for d in ManifestRenderer(_cfg()).render_all()]
    assert first == second


def test_content_is_valid_yaml_with_insertion_order():
    doc = ManifestRenderer(_cfg()).render_all()[0]
    text = doc.content
    assert text.startswith("apiVersion: argoproj.io/v1alpha1\nkind: Application\n")
    assert yaml.safe_load(text) == doc.document
    assert dump_document(doc.document) == text


def test_unknown_template_variable_is_configuration_error():
    unit = UnitSpec(
        name="broken",
        path="broken",
        namespace="broken",
        custom_resource={"api_version": "v1", "kind": "Thing", "name": "t", "spec": {"a": "{{ unit.nope }}"}},
    )
    with pytest.raises(ConfigurationError) as exc:
        ManifestRenderer(DriverConfig(units=[unit])).render_unit(unit)
    assert exc.value.exit_code == 3
    assert exc.value.step == "render"
    assert exc.value.unit == "broken"
    assert "nope" in str(exc.value)
