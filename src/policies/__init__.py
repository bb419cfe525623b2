"""Governance custom resources: decoding and spec validation."""

from .models import SecurityBaseline, TelemetryProfile, WorkloadPolicy
from .validation import PolicySpecError, validate_resource

__all__ = [
    "PolicySpecError",
    "SecurityBaseline",
    "TelemetryProfile",
    "WorkloadPolicy",
    "validate_resource",
]
