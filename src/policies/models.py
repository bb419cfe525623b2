from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from src.common.events import ObjectRef

GROUP = "platform.governance.io"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{VERSION}"

WORKLOAD_POLICY = "WorkloadPolicy"
TELEMETRY_PROFILE = "TelemetryProfile"
SECURITY_BASELINE = "SecurityBaseline"

PLURALS = {
    WORKLOAD_POLICY: "workloadpolicies",
    TELEMETRY_PROFILE: "telemetryprofiles",
    SECURITY_BASELINE: "securitybaselines",
}


def _metadata(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    metadata = obj.get("metadata")
    return metadata if isinstance(metadata, Mapping) else {}


def _spec(obj: Mapping[str, Any]) -> Mapping[str, Any]:
    spec = obj.get("spec")
    return spec if isinstance(spec, Mapping) else {}


def _string_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    return {str(k): "" if v is None else str(v) for k, v in value.items()}


def _priority(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError("priority must be an integer")
    if isinstance(value, int):
        return value
    # is_integer() is False for inf and nan
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(f"priority must be an integer, got {value!r}") from exc
    raise ValueError(f"priority must be an integer, got {value!r}")


@dataclass(frozen=True)
class WorkloadPolicy:
    name: str
    namespace: str = ""
    priority: int = 0
    mandatory_labels: Dict[str, str] = field(default_factory=dict)
    default_requests: Dict[str, str] = field(default_factory=dict)
    default_limits: Dict[str, str] = field(default_factory=dict)

    kind = WORKLOAD_POLICY

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "WorkloadPolicy":
        metadata = _metadata(obj)
        spec = _spec(obj)
        return cls(
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            priority=_priority(spec.get("priority")),
            mandatory_labels=_string_map(spec.get("mandatoryLabels")),
            default_requests=_string_map(spec.get("defaultRequests")),
            default_limits=_string_map(spec.get("defaultLimits")),
        )

    def ref(self) -> ObjectRef:
        return ObjectRef(kind=self.kind, name=self.name, namespace=self.namespace, api_version=API_VERSION)


@dataclass(frozen=True)
class TelemetryProfile:
    name: str
    namespace: str = ""
    priority: int = 0
    inject_env_vars: bool = False
    tracing_endpoint: str = ""
    sampling_rate: str = ""

    kind = TELEMETRY_PROFILE

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "TelemetryProfile":
        metadata = _metadata(obj)
        spec = _spec(obj)
        sampling_rate = spec.get("samplingRate")
        return cls(
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            priority=_priority(spec.get("priority")),
            inject_env_vars=spec.get("injectEnvVars") is True,
            tracing_endpoint=str(spec.get("tracingEndpoint") or ""),
            sampling_rate="" if sampling_rate is None else str(sampling_rate),
        )

    @property
    def injects(self) -> bool:
        return self.inject_env_vars and bool(self.tracing_endpoint)

    def ref(self) -> ObjectRef:
        return ObjectRef(kind=self.kind, name=self.name, namespace=self.namespace, api_version=API_VERSION)


@dataclass(frozen=True)
class SecurityBaseline:
    name: str
    namespace: str = ""
    run_as_non_root: bool = False
    read_only_root_filesystem: bool = False
    excluded_namespaces: Tuple[str, ...] = ()

    kind = SECURITY_BASELINE

    @classmethod
    def from_dict(cls, obj: Mapping[str, Any]) -> "SecurityBaseline":
        metadata = _metadata(obj)
        spec = _spec(obj)
        excluded = spec.get("excludedNamespaces")
        if not isinstance(excluded, (list, tuple)):
            excluded = []
        return cls(
            name=str(metadata.get("name") or ""),
            namespace=str(metadata.get("namespace") or ""),
            run_as_non_root=spec.get("runAsNonRoot") is True,
            read_only_root_filesystem=spec.get("readOnlyRootFilesystem") is True,
            excluded_namespaces=tuple(str(ns) for ns in excluded),
        )

    def excludes(self, namespace: Optional[str]) -> bool:
        return namespace in self.excluded_namespaces

    def ref(self) -> ObjectRef:
        return ObjectRef(kind=self.kind, name=self.name, namespace=self.namespace, api_version=API_VERSION)


MODELS = {
    WORKLOAD_POLICY: WorkloadPolicy,
    TELEMETRY_PROFILE: TelemetryProfile,
    SECURITY_BASELINE: SecurityBaseline,
}


__all__ = [
    "API_VERSION",
    "GROUP",
    "MODELS",
    "PLURALS",
    "SECURITY_BASELINE",
    "SecurityBaseline",
    "TELEMETRY_PROFILE",
    "TelemetryProfile",
    "VERSION",
    "WORKLOAD_POLICY",
    "WorkloadPolicy",
]
