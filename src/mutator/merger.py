from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple, Union

from src.common.events import NORMAL, EventSink, Notification, ObjectRef, publish
from src.common.quantity import QuantityError, parse_quantity
from src.policies.models import TelemetryProfile, WorkloadPolicy

from .sequencer import sort_by_priority

OTEL_ENDPOINT_ENV = "OTEL_EXPORTER_OTLP_ENDPOINT"
OTEL_SAMPLER_ARG_ENV = "OTEL_TRACES_SAMPLER_ARG"
MUTATED_REASON = "PodMutated"


class InvalidQuantity(ValueError):
    """A WorkloadPolicy default that is not a valid resource quantity."""

    def __init__(self, source: str, field_name: str, resource: str, raw: str) -> None:
        self.source = source
        self.field_name = field_name
        self.resource = resource
        self.raw = raw
        super().__init__(
            f"WorkloadPolicy {source} has invalid {field_name} quantity for {resource}: {raw!r}"
        )


class KeyedSlot(Protocol):
    def has(self, key: str) -> bool:
        ...

    def put(self, key: str, value: str) -> None:
        ...


class MapSlot:
    """A string map nested under ``path`` inside ``root``; created on first write."""

    def __init__(self, root: Dict[str, Any], path: Tuple[str, ...]) -> None:
        self.root = root
        self.path = path

    def _lookup(self) -> Optional[Dict[str, Any]]:
        node: Any = self.root
        for part in self.path:
            if not isinstance(node, dict):
                return None
            node = node.get(part)
        return node if isinstance(node, dict) else None

    def has(self, key: str) -> bool:
        mapping = self._lookup()
        return mapping is not None and key in mapping

    def put(self, key: str, value: str) -> None:
        node = self.root
        for part in self.path:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[key] = value


class EnvSlot:
    """A container's ``env`` list viewed as a set keyed by variable name."""

    def __init__(self, container: Dict[str, Any]) -> None:
        self.container = container

    def has(self, key: str) -> bool:
        env = self.container.get("env")
        if not isinstance(env, list):
            return False
        return any(isinstance(entry, dict) and entry.get("name") == key for entry in env)

    def put(self, key: str, value: str) -> None:
        env = self.container.get("env")
        if not isinstance(env, list):
            env = []
            self.container["env"] = env
        env.append({"name": key, "value": value})


def set_if_absent(slot: KeyedSlot, key: str, value: Union[str, Callable[[], str]]) -> bool:
    """Write ``value`` under ``key`` unless the slot already holds the key.

    ``value`` may be a callable; it is only evaluated when the write happens.
    """

    if slot.has(key):
        return False
    slot.put(key, value() if callable(value) else value)
    return True


def pod_containers(pod: Dict[str, Any], container_type: str = "containers") -> List[Dict[str, Any]]:
    spec = pod.get("spec")
    if not isinstance(spec, dict):
        return []
    containers = spec.get(container_type)
    if not isinstance(containers, list):
        return []
    return [c for c in containers if isinstance(c, dict)]


def pod_identity(pod: Dict[str, Any], namespace: Optional[str] = None) -> Tuple[str, str]:
    metadata = pod.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    name = metadata.get("name") or metadata.get("generateName") or ""
    return str(name), str(namespace or metadata.get("namespace") or "")


@dataclass
class MergeResult:
    changed: bool = False
    mutated_sources: List[ObjectRef] = field(default_factory=list)
    notifications: List[Notification] = field(default_factory=list)


class DefaultingMerger:
    def __init__(self, sink: Optional[EventSink] = None) -> None:
        self.sink = sink

    def merge(
        self,
        pod: Dict[str, Any],
        policies: Iterable[WorkloadPolicy] = (),
        profiles: Iterable[TelemetryProfile] = (),
        *,
        namespace: Optional[str] = None,
    ) -> MergeResult:
        """Fill absent Pod fields from ``profiles`` then ``policies``, in place.

        Raises :class:`InvalidQuantity` before any notification is published
        when a policy default cannot be parsed.
        """

        name, ns = pod_identity(pod, namespace)
        result = MergeResult()

        for profile in sort_by_priority(profiles):
            if self.apply_telemetry(pod, profile):
                self._record(
                    result,
                    profile.ref(),
                    f"Injected telemetry config to Pod {name} in namespace {ns}",
                )

        for policy in sort_by_priority(policies):
            mutated = self.apply_labels(pod, policy)
            mutated = self.apply_resources(pod, policy) or mutated
            if mutated:
                self._record(
                    result,
                    policy.ref(),
                    f"Applied workload policy defaults to Pod {name} in namespace {ns}",
                )

        for notification in result.notifications:
            publish(self.sink, notification)
        return result

    @staticmethod
    def _record(result: MergeResult, source: ObjectRef, message: str) -> None:
        result.changed = True
        result.mutated_sources.append(source)
        result.notifications.append(Notification(source, NORMAL, MUTATED_REASON, message))

    def apply_labels(self, pod: Dict[str, Any], policy: WorkloadPolicy) -> bool:
        slot = MapSlot(pod, ("metadata", "labels"))
        mutated = False
        for key, default in policy.mandatory_labels.items():
            mutated = set_if_absent(slot, key, default) or mutated
        return mutated

    def apply_resources(self, pod: Dict[str, Any], policy: WorkloadPolicy) -> bool:
        mutated = False
        for container in pod_containers(pod):
            for field_name, path, defaults in (
                ("defaultRequests", ("resources", "requests"), policy.default_requests),
                ("defaultLimits", ("resources", "limits"), policy.default_limits),
            ):
                slot = MapSlot(container, path)
                for resource, raw in defaults.items():
                    parse = _quantity_parser(policy.name, field_name, resource, raw)
                    mutated = set_if_absent(slot, resource, parse) or mutated
        return mutated

    def apply_telemetry(self, pod: Dict[str, Any], profile: TelemetryProfile) -> bool:
        if not profile.injects:
            return False
        mutated = False
        for container in pod_containers(pod):
            slot = EnvSlot(container)
            mutated = set_if_absent(slot, OTEL_ENDPOINT_ENV, profile.tracing_endpoint) or mutated
            if profile.sampling_rate:
                mutated = set_if_absent(slot, OTEL_SAMPLER_ARG_ENV, profile.sampling_rate) or mutated
        return mutated


def _quantity_parser(source: str, field_name: str, resource: str, raw: str) -> Callable[[], str]:
    def parse() -> str:
        try:
            return str(parse_quantity(raw))
        except QuantityError as exc:
            raise InvalidQuantity(source, field_name, resource, raw) from exc

    return parse


__all__ = [
    "DefaultingMerger",
    "EnvSlot",
    "InvalidQuantity",
    "MapSlot",
    "MergeResult",
    "OTEL_ENDPOINT_ENV",
    "OTEL_SAMPLER_ARG_ENV",
    "pod_containers",
    "pod_identity",
    "set_if_absent",
]
