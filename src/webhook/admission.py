from __future__ import annotations

import base64
import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import jsonpatch

from src.common.events import EventSink
from src.mutator.merger import DefaultingMerger, InvalidQuantity, pod_identity
from src.policies.models import SECURITY_BASELINE, TELEMETRY_PROFILE, WORKLOAD_POLICY
from src.policies.validation import PolicySpecError, validate_resource
from src.store.store import PolicyStore, StoreError, fetch
from src.validator.baseline import BaselineEvaluator

LOGGER = logging.getLogger(__name__)

ALLOWED = "allowed"
PATCHED = "patched"
DENIED = "denied"
ERRORED = "errored"

ADMISSION_API_VERSION = "admission.k8s.io/v1"
ADMITTED_OPERATIONS = ("CREATE", "UPDATE")


@dataclass
class AdmissionRequest:
    uid: str
    namespace: str = ""
    operation: str = "CREATE"
    object: Optional[Dict[str, Any]] = None
    name: str = ""

    @classmethod
    def from_review(cls, review: Mapping[str, Any]) -> "AdmissionRequest":
        if not isinstance(review, Mapping):
            raise ValueError("AdmissionReview must be an object")
        request = review.get("request")
        if not isinstance(request, Mapping):
            raise ValueError("AdmissionReview is missing 'request'")
        uid = request.get("uid")
        if not isinstance(uid, str) or not uid:
            raise ValueError("AdmissionReview request is missing 'uid'")
        obj = request.get("object")
        if obj is not None and not isinstance(obj, dict):
            raise ValueError("AdmissionReview request object must be a mapping")
        return cls(
            uid=uid,
            namespace=str(request.get("namespace") or ""),
            operation=str(request.get("operation") or "CREATE").upper(),
            object=obj,
            name=str(request.get("name") or ""),
        )


@dataclass
class AdmissionOutcome:
    status: str
    message: str = ""
    code: int = 200
    patch: List[Dict[str, Any]] = field(default_factory=list)
    patched_object: Optional[Dict[str, Any]] = None
    retryable: bool = False

    @property
    def allowed(self) -> bool:
        return self.status in (ALLOWED, PATCHED)

    @classmethod
    def allow(cls, message: str = "") -> "AdmissionOutcome":
        return cls(status=ALLOWED, message=message)

    @classmethod
    def deny(cls, message: str) -> "AdmissionOutcome":
        return cls(status=DENIED, message=message, code=403)

    @classmethod
    def error(cls, message: str, code: int = 500, *, retryable: bool = False) -> "AdmissionOutcome":
        return cls(status=ERRORED, message=message, code=code, retryable=retryable)

    def to_response(self, uid: str) -> Dict[str, Any]:
        response: Dict[str, Any] = {"uid": uid, "allowed": self.allowed}
        if self.status == PATCHED:
            encoded = base64.b64encode(json.dumps(self.patch).encode("utf-8")).decode("ascii")
            response["patchType"] = "JSONPatch"
            response["patch"] = encoded
        if self.status == DENIED:
            response["status"] = {"code": self.code, "reason": "Forbidden", "message": self.message}
        elif self.status == ERRORED:
            response["status"] = {"code": self.code, "message": self.message}
        elif self.message:
            response["status"] = {"code": 200, "message": self.message}
        return response

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": self.status,
            "allowed": self.allowed,
            "code": self.code,
            "message": self.message,
        }
        if self.patch:
            data["patch"] = self.patch
        if self.retryable:
            data["retryable"] = True
        return data


def to_review(outcome: AdmissionOutcome, uid: str) -> Dict[str, Any]:
    return {
        "apiVersion": ADMISSION_API_VERSION,
        "kind": "AdmissionReview",
        "response": outcome.to_response(uid),
    }


class AdmissionEngine:
    def __init__(self, store: PolicyStore, sink: Optional[EventSink] = None) -> None:
        self.store = store
        self.sink = sink
        self.merger = DefaultingMerger(sink)
        self.evaluator = BaselineEvaluator(sink)

    def _pod(self, request: AdmissionRequest) -> Optional[Dict[str, Any]]:
        if request.operation not in ADMITTED_OPERATIONS:
            return None
        if not isinstance(request.object, dict):
            raise ValueError(f"{request.operation} request carries no Pod object")
        return request.object

    def mutate(self, request: AdmissionRequest) -> AdmissionOutcome:
        try:
            pod = self._pod(request)
        except ValueError as exc:
            return AdmissionOutcome.error(str(exc), code=400)
        if pod is None:
            return AdmissionOutcome.allow()

        name, namespace = pod_identity(pod, request.namespace)
        LOGGER.info("Mutating Pod %s in namespace %s", name, namespace)
        try:
            policies = fetch(self.store, namespace, WORKLOAD_POLICY)
            profiles = fetch(self.store, namespace, TELEMETRY_PROFILE)
        except StoreError as exc:
            LOGGER.warning("policy retrieval failed for Pod %s in namespace %s: %s", name, namespace, exc)
            return AdmissionOutcome.error(str(exc), retryable=True)
        except ValueError as exc:
            return AdmissionOutcome.error(f"malformed governance resource in namespace {namespace}: {exc}")

        patched = copy.deepcopy(pod)
        try:
            result = self.merger.merge(patched, policies, profiles, namespace=namespace)
        except InvalidQuantity as exc:
            LOGGER.info("Denied Pod %s in namespace %s: %s", name, namespace, exc)
            return AdmissionOutcome.deny(str(exc))

        if not result.changed:
            return AdmissionOutcome.allow("No mutations applied")
        return AdmissionOutcome(
            status=PATCHED,
            patch=jsonpatch.make_patch(pod, patched).patch,
            patched_object=patched,
        )

    def validate(self, request: AdmissionRequest) -> AdmissionOutcome:
        try:
            pod = self._pod(request)
        except ValueError as exc:
            return AdmissionOutcome.error(str(exc), code=400)
        if pod is None:
            return AdmissionOutcome.allow()

        name, namespace = pod_identity(pod, request.namespace)
        LOGGER.info("Validating Pod %s in namespace %s", name, namespace)
        try:
            baselines = fetch(self.store, namespace, SECURITY_BASELINE)
        except StoreError as exc:
            LOGGER.warning("baseline retrieval failed for Pod %s in namespace %s: %s", name, namespace, exc)
            return AdmissionOutcome.error(str(exc), retryable=True)
        except ValueError as exc:
            return AdmissionOutcome.error(f"malformed governance resource in namespace {namespace}: {exc}")

        decision = self.evaluator.evaluate(pod, baselines, namespace)
        if not decision.allowed:
            return AdmissionOutcome.deny(decision.reason)
        return AdmissionOutcome.allow()

    def review_policy(self, kind: str, request: AdmissionRequest) -> AdmissionOutcome:
        if request.operation == "DELETE":
            return AdmissionOutcome.allow()
        if not isinstance(request.object, dict):
            return AdmissionOutcome.error(f"{request.operation} request carries no {kind} object", code=400)
        LOGGER.info("Validating %s %s upon %s", kind, request.name or _object_name(request.object), request.operation.lower())
        try:
            validate_resource(kind, request.object)
        except PolicySpecError as exc:
            return AdmissionOutcome.deny(str(exc))
        return AdmissionOutcome.allow()


def _object_name(obj: Mapping[str, Any]) -> str:
    metadata = obj.get("metadata")
    return str(metadata.get("name") or "") if isinstance(metadata, Mapping) else ""


__all__ = [
    "ALLOWED",
    "AdmissionEngine",
    "AdmissionOutcome",
    "AdmissionRequest",
    "DENIED",
    "ERRORED",
    "PATCHED",
    "to_review",
]
