from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from src.common.events import WARNING, EventSink, Notification, publish
from src.mutator.merger import pod_containers, pod_identity
from src.policies.models import SecurityBaseline

DENIED_REASON = "PodDenied"

NON_ROOT_VIOLATION = "Pod violates SecurityBaseline: must run as non-root"
READ_ONLY_ROOT_VIOLATION = "Pod violates SecurityBaseline: all containers must have read-only root filesystem"
INIT_READ_ONLY_ROOT_VIOLATION = (
    "Pod violates SecurityBaseline: all init containers must have read-only root filesystem"
)


@dataclass(frozen=True)
class BaselineDecision:
    allowed: bool
    reason: str = ""
    baseline: Optional[SecurityBaseline] = None


ALLOW = BaselineDecision(allowed=True)


def _flag_enabled(security_context: Any, flag: str) -> bool:
    return isinstance(security_context, dict) and security_context.get(flag) is True


def _all_read_only(containers: List[Dict[str, Any]]) -> bool:
    return all(
        _flag_enabled(container.get("securityContext"), "readOnlyRootFilesystem")
        for container in containers
    )


def check_baseline(pod: Dict[str, Any], baseline: SecurityBaseline) -> Optional[str]:
    """Return the first rule of ``baseline`` that ``pod`` violates, if any."""

    if baseline.run_as_non_root:
        spec = pod.get("spec") if isinstance(pod.get("spec"), dict) else {}
        if not _flag_enabled(spec.get("securityContext"), "runAsNonRoot"):
            return NON_ROOT_VIOLATION

    if baseline.read_only_root_filesystem:
        if not _all_read_only(pod_containers(pod)):
            return READ_ONLY_ROOT_VIOLATION
        if not _all_read_only(pod_containers(pod, "initContainers")):
            return INIT_READ_ONLY_ROOT_VIOLATION

    return None


class BaselineEvaluator:
    """Evaluates a Pod against SecurityBaselines in the order they were retrieved.

    Evaluation stops at the first violation: later baselines are never
    consulted, so a denial always carries the reason of the earliest
    violated baseline. Namespace exclusion is checked before any rule of the
    same baseline.
    """

    def __init__(self, sink: Optional[EventSink] = None) -> None:
        self.sink = sink

    def evaluate(
        self,
        pod: Dict[str, Any],
        baselines: Iterable[SecurityBaseline],
        namespace: Optional[str] = None,
    ) -> BaselineDecision:
        name, ns = pod_identity(pod, namespace)
        for baseline in baselines:
            if baseline.excludes(ns):
                continue
            violation = check_baseline(pod, baseline)
            if violation is None:
                continue
            publish(
                self.sink,
                Notification(
                    baseline.ref(),
                    WARNING,
                    DENIED_REASON,
                    f"Denied Pod {name} in namespace {ns}: {violation}",
                ),
            )
            return BaselineDecision(allowed=False, reason=violation, baseline=baseline)
        return ALLOW


__all__ = [
    "ALLOW",
    "BaselineDecision",
    "BaselineEvaluator",
    "INIT_READ_ONLY_ROOT_VIOLATION",
    "NON_ROOT_VIOLATION",
    "READ_ONLY_ROOT_VIOLATION",
    "check_baseline",
]
