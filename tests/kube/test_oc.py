import base64
import json
import subprocess
import types

import pytest

from ocsgitops.kube.oc import OcError, OcRunner


def _cp(rc=0, out="", err=""):
    return types.SimpleNamespace(returncode=rc, stdout=out, stderr=err)


class SpyRun:
    def __init__(self, *answers):
        self.answers = list(answers)
        self.calls = []

    def __call__(self, argv, capture_output=False, text=False, check=False, timeout=None):
        self.calls.append(argv)
        return self.answers.pop(0) if self.answers else _cp()


def _pods(*phases):
    return json.dumps({
        "items": [
            {"metadata": {"name": f"pod-{i}"}, "status": {"phase": p}}
            for i, p in enumerate(phases)
        ]
    })


def test_get_pods_of_missing_namespace_is_empty(monkeypatch):
    spy = SpyRun(_cp(1, err='Error from server (NotFound): namespaces "x" not found'))
    monkeypatch.setattr(subprocess, "run", spy)
    assert OcRunner().get_pods("x") == []
    assert spy.calls[0] == ["oc", "get", "pods", "-n", "x", "-o", "json"]


def test_other_failures_raise(monkeypatch):
    monkeypatch.setattr(subprocess, "run", SpyRun(_cp(1, err="Unauthorized")))
    with pytest.raises(OcError):
        OcRunner().get_pods("x")


def test_whoami_reports_session_user(monkeypatch):
    spy = SpyRun(_cp(0, out="kube:admin\n"), _cp(1, err="error: You must be logged in to the server (Unauthorized)"))
    monkeypatch.setattr(subprocess, "run", spy)
    oc = OcRunner()
    assert oc.whoami() == "kube:admin"
    assert oc.whoami() is None
    assert spy.calls[0] == ["oc", "whoami"]


def test_ensure_namespace_creates_only_when_missing(monkeypatch):
    spy = SpyRun(_cp(1, err="NotFound"), _cp(0))
    monkeypatch.setattr(subprocess, "run", spy)
    OcRunner().ensure_namespace("awx")
    assert spy.calls[1] == ["oc", "create", "namespace", "awx"]

    spy = SpyRun(_cp(0, out="namespace/awx"))
    monkeypatch.setattr(subprocess, "run", spy)
    OcRunner().ensure_namespace("awx")
    assert len(spy.calls) == 1


def test_ensure_namespace_tolerates_race(monkeypatch):
    spy = SpyRun(_cp(1, err="NotFound"), _cp(1, err='namespaces "awx" AlreadyExists'))
    monkeypatch.setattr(subprocess, "run", spy)
    OcRunner().ensure_namespace("awx")


def test_delete_unknown_resource_type_is_noop(monkeypatch):
    spy = SpyRun(_cp(1, err='error: the server doesn\'t have a resource type "awx"'))
    monkeypatch.setattr(subprocess, "run", spy)
    OcRunner().delete("awx", None, namespace="awx")
    assert spy.calls[0] == ["oc", "delete", "awx", "--all", "-n", "awx", "--ignore-not-found"]


def test_secret_value_is_decoded(monkeypatch):
    secret = {"data": {"admin.password": base64.b64encode(b"hunter2").decode()}}
    monkeypatch.setattr(subprocess, "run", SpyRun(_cp(0, out=json.dumps(secret))))
    assert OcRunner().get_secret_value("openshift-gitops", "openshift-gitops-cluster", "admin.password") == "hunter2"


def test_route_host_by_name(monkeypatch):
    routes = {"items": [
        {"metadata": {"name": "other"}, "spec": {"host": "other.example"}},
        {"metadata": {"name": "openshift-gitops-server"}, "spec": {"host": "argocd.example"}},
    ]}
    monkeypatch.setattr(subprocess, "run", SpyRun(_cp(0, out=json.dumps(routes))))
    assert OcRunner().route_host("openshift-gitops", name="openshift-gitops-server") == "argocd.example"


def test_wait_for_pods_running_polls_then_succeeds(monkeypatch):
    spy = SpyRun(_cp(0, out=_pods("Pending")), _cp(0, out=_pods("Running")))
    monkeypatch.setattr(subprocess, "run", spy)
    sleeps = []
    OcRunner(sleep=sleeps.append).wait_for_pods_running(namespace="ns", retries=3, delay=4)
    assert sleeps == [4]


def test_wait_for_pods_running_times_out(monkeypatch):
    monkeypatch.setattr(subprocess, "run", lambda *a, **kw: _cp(0, out=_pods("Pending")))
    sleeps = []
    with pytest.raises(OcError) as exc:
        OcRunner(sleep=sleeps.append).wait_for_pods_running(namespace="ns", retries=2, delay=1)
    assert sleeps == [1]
    assert "pod-0: Pending" in str(exc.value)


def test_pod_status_summary_lists_waiting_reasons(monkeypatch):
    pods = {"items": [{
        "metadata": {"name": "awx-web"},
        "status": {
            "phase": "Pending",
            "containerStatuses": [{"state": {"waiting": {"reason": "ImagePullBackOff"}}}],
        },
    }]}
    monkeypatch.setattr(subprocess, "run", SpyRun(_cp(0, out=json.dumps(pods))))
    assert OcRunner().pod_status_summary("awx") == "awx-web: Pending (ImagePullBackOff)"
