"""Admission checks for the governance custom resources themselves."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping
from urllib.parse import urlsplit

from src.common.quantity import QuantityError, parse_quantity

from .models import (
    SECURITY_BASELINE,
    TELEMETRY_PROFILE,
    WORKLOAD_POLICY,
    SecurityBaseline,
    TelemetryProfile,
    WorkloadPolicy,
)


class PolicySpecError(ValueError):
    """Raised when a governance resource carries an invalid spec."""


def validate_workload_policy(policy: WorkloadPolicy) -> None:
    for field_name, defaults in (
        ("defaultRequests", policy.default_requests),
        ("defaultLimits", policy.default_limits),
    ):
        for resource_name, raw in defaults.items():
            try:
                parse_quantity(raw)
            except QuantityError as exc:
                raise PolicySpecError(
                    f"invalid {field_name} quantity for {resource_name!r}: {raw!r}"
                ) from exc

    for key, value in policy.mandatory_labels.items():
        if not key.strip():
            raise PolicySpecError("mandatoryLabels key cannot be empty")
        if not value.strip():
            raise PolicySpecError(f"mandatoryLabels value for key {key!r} cannot be empty")


def _is_request_uri(raw: str) -> bool:
    if not raw or any(ch.isspace() for ch in raw):
        return False
    if raw.startswith("/"):
        return True
    try:
        parts = urlsplit(raw)
    except ValueError:
        return False
    return bool(parts.scheme)


def validate_telemetry_profile(profile: TelemetryProfile) -> None:
    if profile.tracing_endpoint and not _is_request_uri(profile.tracing_endpoint):
        raise PolicySpecError(f"invalid tracingEndpoint: {profile.tracing_endpoint!r}")

    if profile.sampling_rate:
        try:
            rate = Decimal(profile.sampling_rate.strip())
        except InvalidOperation as exc:
            raise PolicySpecError(f"invalid samplingRate: {profile.sampling_rate!r}") from exc
        if not rate.is_finite():
            raise PolicySpecError(f"invalid samplingRate: {profile.sampling_rate!r}")
        if rate < 0 or rate > 1:
            raise PolicySpecError("samplingRate must be between 0 and 1")


def validate_security_baseline(baseline: SecurityBaseline) -> None:
    for namespace in baseline.excluded_namespaces:
        if not namespace.strip():
            raise PolicySpecError("excludedNamespaces entries cannot be empty")


_VALIDATORS: Dict[str, Callable[[Mapping[str, Any]], None]] = {
    WORKLOAD_POLICY: lambda obj: validate_workload_policy(WorkloadPolicy.from_dict(obj)),
    TELEMETRY_PROFILE: lambda obj: validate_telemetry_profile(TelemetryProfile.from_dict(obj)),
    SECURITY_BASELINE: lambda obj: validate_security_baseline(SecurityBaseline.from_dict(obj)),
}


def validate_resource(kind: str, obj: Mapping[str, Any]) -> None:
    """Validate a raw custom resource of ``kind``; raises :class:`PolicySpecError`."""

    validator = _VALIDATORS.get(kind)
    if validator is None:
        raise PolicySpecError(f"unsupported kind {kind!r}")
    try:
        validator(obj)
    except PolicySpecError:
        raise
    except ValueError as exc:
        raise PolicySpecError(str(exc)) from exc


__all__ = [
    "PolicySpecError",
    "validate_resource",
    "validate_security_baseline",
    "validate_telemetry_profile",
    "validate_workload_policy",
]
