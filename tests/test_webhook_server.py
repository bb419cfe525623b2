import base64
import json

from fastapi.testclient import TestClient

from src.common.events import RecordingEventSink
from src.store.store import InMemoryPolicyStore
from src.webhook.admission import AdmissionEngine
from src.webhook.server import app, get_engine

POLICIES = """
apiVersion: platform.governance.io/v1alpha1
kind: WorkloadPolicy
metadata:
  name: defaults
  namespace: apps
spec:
  mandatoryLabels:
    team: platform
---
apiVersion: platform.governance.io/v1alpha1
kind: SecurityBaseline
metadata:
  name: restricted
  namespace: apps
spec:
  runAsNonRoot: true
"""


def _review(obj, namespace="apps", operation="CREATE"):
    return {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "request": {"uid": "req-1", "namespace": namespace, "operation": operation, "object": obj},
    }


def _pod():
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": "web", "namespace": "apps"},
        "spec": {"containers": [{"name": "app", "image": "nginx:1.25"}]},
    }


class TestWebhookServer:
    def setup_method(self) -> None:
        self.sink = RecordingEventSink()
        engine = AdmissionEngine(InMemoryPolicyStore.from_yaml(POLICIES), self.sink)
        self._original_override = app.dependency_overrides.get(get_engine)
        app.dependency_overrides[get_engine] = lambda: engine
        self.client = TestClient(app)

    def teardown_method(self) -> None:
        if self._original_override is not None:
            app.dependency_overrides[get_engine] = self._original_override
        else:
            app.dependency_overrides.pop(get_engine, None)

    def test_healthz(self) -> None:
        response = self.client.get("/healthz")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_mutate_returns_json_patch(self) -> None:
        response = self.client.post("/mutate-core-v1-pod", json=_review(_pod()))
        assert response.status_code == 200
        body = response.json()
        assert body["kind"] == "AdmissionReview"
        assert body["response"]["uid"] == "req-1"
        assert body["response"]["allowed"] is True
        assert body["response"]["patchType"] == "JSONPatch"
        patch = json.loads(base64.b64decode(body["response"]["patch"]))
        assert {"op": "add", "path": "/metadata/labels", "value": {"team": "platform"}} in patch
        assert self.sink.reasons() == ["PodMutated"]

    def test_validate_denies_root_pod(self) -> None:
        response = self.client.post("/validate-core-v1-pod", json=_review(_pod()))
        assert response.status_code == 200
        result = response.json()["response"]
        assert result["allowed"] is False
        assert result["status"]["code"] == 403
        assert "non-root" in result["status"]["message"]

    def test_validate_allows_non_root_pod(self) -> None:
        pod = _pod()
        pod["spec"]["securityContext"] = {"runAsNonRoot": True}
        response = self.client.post("/validate-core-v1-pod", json=_review(pod))
        assert response.json()["response"]["allowed"] is True

    def test_policy_validation_endpoints(self) -> None:
        profile = {
            "apiVersion": "platform.governance.io/v1alpha1",
            "kind": "TelemetryProfile",
            "metadata": {"name": "otel", "namespace": "apps"},
            "spec": {"tracingEndpoint": "not-a-url"},
        }
        response = self.client.post(
            "/validate-platform-governance-io-v1alpha1-telemetryprofile",
            json=_review(profile),
        )
        assert response.status_code == 200
        assert response.json()["response"]["allowed"] is False

        profile["spec"]["tracingEndpoint"] = "http://otel-collector:4317"
        response = self.client.post(
            "/validate-platform-governance-io-v1alpha1-telemetryprofile",
            json=_review(profile),
        )
        assert response.json()["response"]["allowed"] is True

    def test_all_policy_kinds_are_routed(self) -> None:
        for kind in ("workloadpolicy", "telemetryprofile", "securitybaseline"):
            response = self.client.post(
                f"/validate-platform-governance-io-v1alpha1-{kind}",
                json=_review(None, operation="DELETE"),
            )
            assert response.status_code == 200
            assert response.json()["response"]["allowed"] is True

    def test_missing_request_is_bad_request(self) -> None:
        response = self.client.post("/mutate-core-v1-pod", json={"apiVersion": "admission.k8s.io/v1"})
        assert response.status_code == 400
