import pytest
import requests

from ocsgitops.argocd.client import ArgoCDClient
from ocsgitops.argocd.registry import ApplicationHandle
from ocsgitops.config.models import ArgoCDSettings, SyncOptions
from ocsgitops.errors import DependencyMissingError, RegistrationError
from ocsgitops.kube.oc import OcError


class FakeResponse:
    def __init__(self, status=200, body=None):
        self.status_code = status
        self._body = body if body is not None else {}
        self.text = str(self._body)

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        return self._body


class FakeSession:
    """Answers by (method, path) from a routing table; records every call."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.calls = []
        self.headers = {}
        self.verify = True

    def request(self, method, url, timeout=None, **kwargs):
        path = url.split("://", 1)[1]
        path = path[path.index("/"):]
        self.calls.append((method, path, kwargs))
        answer = self.routes.get((method, path), FakeResponse(200, {}))
        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, list):
            return answer.pop(0)
        return answer


class FakeCluster:
    def __init__(self, host="argocd.apps.example.test", password="pw"):
        self.host = host
        self.password = password

    def route_host(self, namespace, *, name=None):
        return self.host

    def get_secret_value(self, namespace, name, key):
        return self.password


SESSION = ("POST", "/api/v1/session")


def _client(routes=None, cluster=None, **settings):
    routes = dict(routes or {})
    routes.setdefault(SESSION, FakeResponse(200, {"token": "jwt"}))
    session = FakeSession(routes)
    return ArgoCDClient(ArgoCDSettings(**settings), cluster=cluster or FakeCluster(), session=session), session


def test_login_discovers_route_and_password():
    client, session = _client()
    client.login()

    method, path, kwargs = session.calls[0]
    assert (method, path) == SESSION
    assert kwargs["json"] == {"username": "admin", "password": "pw"}
    assert session.headers["Authorization"] == "Bearer jwt"
    assert client.server == "argocd.apps.example.test"
    assert session.verify is False


def test_login_without_route_is_dependency_error():
    client, _ = _client(cluster=FakeCluster(host=None))
    with pytest.raises(DependencyMissingError):
        client.login()


class ForbiddenCluster(FakeCluster):
    def get_secret_value(self, namespace, name, key):
        raise OcError("Error from server (Forbidden)")


def test_login_with_unreadable_secret_is_dependency_error():
    client, session = _client(cluster=ForbiddenCluster())
    with pytest.raises(DependencyMissingError) as exc:
        client.login()
    assert exc.value.step == "login"
    assert "openshift-gitops" in str(exc.value)
    assert isinstance(exc.value.__cause__, OcError)
    assert session.calls == []


def test_requests_log_in_lazily_once():
    routes = {("GET", "/api/v1/applications/a"): FakeResponse(200, {"status": {}})}
    client, session = _client(routes)
    h = ApplicationHandle("a", "openshift-gitops")
    client.get_status(h)
    client.get_status(h)
    assert [c[1] for c in session.calls].count("/api/v1/session") == 1


def test_upsert_application_body_and_handle_equality():
    routes = {("POST", "/api/v1/applications"): FakeResponse(200, {"metadata": {"name": "awx-app"}})}
    client, session = _client(routes)

    args = ("awx-app", "https://git.example.test/s.git", "awx", "main", "awx", SyncOptions())
    h1 = client.upsert_application(*args)
    h2 = client.upsert_application(*args)
    assert h1 == h2 == ApplicationHandle("awx-app", "openshift-gitops", "default")

    _, _, kwargs = session.calls[-1]
    assert kwargs["params"] == {"upsert": "true", "validate": "true"}
    spec = kwargs["json"]["spec"]
    assert spec["source"] == {"repoURL": "https://git.example.test/s.git", "targetRevision": "main", "path": "awx"}
    assert spec["destination"]["namespace"] == "awx"
    assert spec["syncPolicy"]["automated"] == {"prune": True, "selfHeal": True}
    assert spec["syncPolicy"]["syncOptions"] == ["CreateNamespace=true"]


def test_upsert_application_rejection_is_registration_error():
    routes = {("POST", "/api/v1/applications"): FakeResponse(400, {"message": "spec invalid"})}
    client, _ = _client(routes)
    with pytest.raises(RegistrationError) as exc:
        client.upsert_application("a", "r", "p", "main", "ns", SyncOptions())
    assert "spec invalid" in str(exc.value)


def test_network_failure_is_registration_error():
    routes = {("GET", "/api/v1/applications/a"): requests.ConnectionError("refused")}
    client, _ = _client(routes)
    with pytest.raises(RegistrationError):
        client.get_status(ApplicationHandle("a", "openshift-gitops"))


def test_get_status_normalizes_unknown_values():
    body = {
        "status": {
            "sync": {"status": "Synced"},
            "health": {"status": "Suspended"},
            "conditions": [{"type": "SyncError", "message": "bad manifest"}],
        }
    }
    client, _ = _client({("GET", "/api/v1/applications/a"): FakeResponse(200, body)})
    status = client.get_status(ApplicationHandle("a", "openshift-gitops"))
    assert status.sync_status == "Synced"
    assert status.health_status == "Unknown"
    assert status.messages == ["SyncError: bad manifest"]
    assert not status.converged


def test_trigger_sync_forces_and_prunes():
    client, session = _client()
    client.trigger_sync(ApplicationHandle("a", "openshift-gitops"))
    method, path, kwargs = session.calls[-1]
    assert (method, path) == ("POST", "/api/v1/applications/a/sync")
    assert kwargs["json"] == {"prune": True, "strategy": {"apply": {"force": True}}}


def test_terminate_without_operation_is_noop():
    routes = {
        ("DELETE", "/api/v1/applications/a/operation"): FakeResponse(400, {"message": "Unable to terminate operation. No operation is in progress"})
    }
    client, _ = _client(routes)
    client.terminate_operation(ApplicationHandle("a", "openshift-gitops"))


def test_terminate_other_failure_raises():
    routes = {("DELETE", "/api/v1/applications/a/operation"): FakeResponse(500, {"message": "etcd down"})}
    client, _ = _client(routes)
    with pytest.raises(RegistrationError):
        client.terminate_operation(ApplicationHandle("a", "openshift-gitops"))


def test_delete_and_exists_treat_not_found_as_absent():
    routes = {
        ("GET", "/api/v1/applications/gone"): FakeResponse(403, {"message": "permission denied"}),
        ("DELETE", "/api/v1/applications/gone"): FakeResponse(404, {}),
    }
    client, _ = _client(routes)
    assert client.application_exists("gone") is False
    client.delete_application("gone")


def test_upsert_repository_checks_connection_state():
    url = "https://git.example.test/s.git"
    routes = {
        ("GET", "/api/v1/repositories"): FakeResponse(
            200, {"items": [{"repo": url, "connectionState": {"status": "Failed", "message": "auth"}}]}
        )
    }
    client, _ = _client(routes)
    with pytest.raises(RegistrationError):
        client.upsert_repository(url, "u", "t")


def test_upsert_repository_missing_from_list_raises():
    client, _ = _client({("GET", "/api/v1/repositories"): FakeResponse(200, {"items": []})})
    with pytest.raises(RegistrationError) as exc:
        client.upsert_repository("https://git.example.test/s.git", "u", "t")
    assert "does not have access" in str(exc.value)


def test_recent_events_keeps_the_tail():
    items = [{"type": "Normal", "reason": f"R{i}", "message": f"m{i}"} for i in range(15)]
    client, _ = _client({("GET", "/api/v1/applications/a/events"): FakeResponse(200, {"items": items})})
    lines = client.recent_events(ApplicationHandle("a", "openshift-gitops"), limit=3)
    assert lines == ["Normal R12: m12", "Normal R13: m13", "Normal R14: m14"]
