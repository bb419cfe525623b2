import tempfile
import unittest
from pathlib import Path

from kubernetes.client.rest import ApiException
from urllib3.exceptions import ConnectTimeoutError, MaxRetryError, ReadTimeoutError

from src.policies.models import SecurityBaseline, WorkloadPolicy
from src.store.kube import KubernetesPolicyStore
from src.store.store import InMemoryPolicyStore, StoreError, collect_manifest_paths, fetch

POLICIES_YAML = """
apiVersion: platform.governance.io/v1alpha1
kind: WorkloadPolicy
metadata:
  name: apps-defaults
  namespace: apps
spec:
  priority: 1
---
apiVersion: platform.governance.io/v1alpha1
kind: WorkloadPolicy
metadata:
  name: unscoped
spec:
  priority: 2
---
apiVersion: platform.governance.io/v1alpha1
kind: SecurityBaseline
metadata:
  name: restricted
  namespace: apps
spec:
  runAsNonRoot: true
"""


class _FakeCustomObjectsApi:
    def __init__(self, result=None, error=None) -> None:
        self.result = result
        self.error = error
        self.calls = []

    def list_namespaced_custom_object(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.result


class InMemoryPolicyStoreTests(unittest.TestCase):
    def test_lists_by_namespace_and_kind(self) -> None:
        store = InMemoryPolicyStore.from_yaml(POLICIES_YAML)
        names = [obj["metadata"]["name"] for obj in store.list("apps", "WorkloadPolicy")]
        self.assertEqual(names, ["apps-defaults"])
        self.assertEqual(len(store.list("apps", "SecurityBaseline")), 1)
        self.assertEqual(store.list("other", "WorkloadPolicy"), [])

    def test_objects_without_namespace_use_default(self) -> None:
        store = InMemoryPolicyStore.from_yaml(POLICIES_YAML, default_namespace="team-a")
        names = [obj["metadata"]["name"] for obj in store.list("team-a", "WorkloadPolicy")]
        self.assertEqual(names, ["unscoped"])

    def test_fetch_decodes_models_in_retrieval_order(self) -> None:
        store = InMemoryPolicyStore.from_yaml(POLICIES_YAML, default_namespace="apps")
        policies = fetch(store, "apps", "WorkloadPolicy")
        self.assertTrue(all(isinstance(p, WorkloadPolicy) for p in policies))
        self.assertEqual([p.name for p in policies], ["apps-defaults", "unscoped"])
        baselines = fetch(store, "apps", "SecurityBaseline")
        self.assertIsInstance(baselines[0], SecurityBaseline)

    def test_list_documents_are_flattened(self) -> None:
        text = """
apiVersion: v1
kind: List
items:
  - kind: SecurityBaseline
    metadata: {name: a, namespace: ns}
  - kind: SecurityBaseline
    metadata: {name: b, namespace: ns}
"""
        store = InMemoryPolicyStore.from_yaml(text)
        self.assertEqual(len(store.list("ns", "SecurityBaseline")), 2)

    def test_non_mapping_documents_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            InMemoryPolicyStore.from_yaml("- just\n- a list\n")

    def test_loads_from_directory(self) -> None:
        with tempfile.TemporaryDirectory() as tmp_dir:
            base = Path(tmp_dir)
            (base / "policies.yaml").write_text(POLICIES_YAML, encoding="utf-8")
            (base / "empty.yml").write_text("", encoding="utf-8")
            (base / "notes.txt").write_text("ignored", encoding="utf-8")
            self.assertEqual(len(collect_manifest_paths([base, base / "policies.yaml"])), 2)
            store = InMemoryPolicyStore.from_paths([base])
            self.assertEqual(len(store.objects()), 3)

    def test_missing_path_raises(self) -> None:
        with self.assertRaises(FileNotFoundError):
            InMemoryPolicyStore.from_paths([Path("/nonexistent/policies")])


class KubernetesPolicyStoreTests(unittest.TestCase):
    def test_lists_custom_objects_with_timeout(self) -> None:
        api = _FakeCustomObjectsApi(result={"items": [{"kind": "TelemetryProfile", "metadata": {"name": "otel"}}]})
        store = KubernetesPolicyStore(api, request_timeout=2.5)
        items = store.list("apps", "TelemetryProfile")
        self.assertEqual(items[0]["metadata"]["name"], "otel")
        call = api.calls[0]
        self.assertEqual(call["group"], "platform.governance.io")
        self.assertEqual(call["version"], "v1alpha1")
        self.assertEqual(call["plural"], "telemetryprofiles")
        self.assertEqual(call["namespace"], "apps")
        self.assertEqual(call["_request_timeout"], 2.5)

    def test_api_errors_become_store_errors(self) -> None:
        store = KubernetesPolicyStore(_FakeCustomObjectsApi(error=ApiException(status=503, reason="Service Unavailable")))
        with self.assertRaises(StoreError) as ctx:
            store.list("apps", "WorkloadPolicy")
        self.assertIn("503", str(ctx.exception))
        self.assertFalse(ctx.exception.timed_out)

    def test_timeouts_are_flagged(self) -> None:
        for error in (
            ReadTimeoutError(None, "/apis", "Read timed out."),
            MaxRetryError(None, "/apis", ConnectTimeoutError()),
        ):
            with self.subTest(error=type(error).__name__):
                store = KubernetesPolicyStore(_FakeCustomObjectsApi(error=error))
                with self.assertRaises(StoreError) as ctx:
                    store.list("apps", "SecurityBaseline")
                self.assertTrue(ctx.exception.timed_out)

    def test_connection_refused_is_not_a_timeout(self) -> None:
        store = KubernetesPolicyStore(_FakeCustomObjectsApi(error=ConnectionRefusedError("refused")))
        with self.assertRaises(StoreError) as ctx:
            store.list("apps", "SecurityBaseline")
        self.assertFalse(ctx.exception.timed_out)

    def test_unknown_kind_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            KubernetesPolicyStore(_FakeCustomObjectsApi(result={})).list("apps", "Pod")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
