from __future__ import annotations

from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from fastapi import Depends, FastAPI, HTTPException, status
from pydantic import BaseModel, Field

from src.policies.models import GROUP, SECURITY_BASELINE, TELEMETRY_PROFILE, VERSION, WORKLOAD_POLICY

from .admission import AdmissionEngine, AdmissionOutcome, AdmissionRequest, to_review
from .config import WebhookSettings, build_engine, configure_logging


class AdmissionReviewPayload(BaseModel):
    apiVersion: str = Field(default="admission.k8s.io/v1", description="AdmissionReview API version")
    kind: str = Field(default="AdmissionReview", description="Always AdmissionReview")
    request: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Admission request sent by the API server",
    )


def _policy_path(kind: str) -> str:
    return f"/validate-{GROUP.replace('.', '-')}-{VERSION}-{kind.lower()}"


def _review(
    payload: AdmissionReviewPayload,
    handler: Callable[[AdmissionRequest], AdmissionOutcome],
) -> Dict[str, Any]:
    try:
        request = AdmissionRequest.from_review(payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return to_review(handler(request), request.uid)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Pod Governance Webhook",
        description="Admission webhooks applying WorkloadPolicy, TelemetryProfile and SecurityBaseline resources to Pods.",
        version="0.1.0",
    )

    @app.get("/healthz")
    def healthz() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/mutate-core-v1-pod")
    def mutate_pod(
        payload: AdmissionReviewPayload,
        engine: AdmissionEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        return _review(payload, engine.mutate)

    @app.post("/validate-core-v1-pod")
    def validate_pod(
        payload: AdmissionReviewPayload,
        engine: AdmissionEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        return _review(payload, engine.validate)

    for kind in (WORKLOAD_POLICY, TELEMETRY_PROFILE, SECURITY_BASELINE):
        _register_policy_route(app, kind)

    return app


def _register_policy_route(app: FastAPI, kind: str) -> None:
    def validate_policy(
        payload: AdmissionReviewPayload,
        engine: AdmissionEngine = Depends(get_engine),
    ) -> Dict[str, Any]:
        return _review(payload, lambda request: engine.review_policy(kind, request))

    app.add_api_route(
        _policy_path(kind),
        validate_policy,
        methods=["POST"],
        name=f"validate_{kind.lower()}",
    )


@lru_cache()
def get_engine() -> AdmissionEngine:
    settings = WebhookSettings.from_env()
    configure_logging(settings.log_level)
    return build_engine(settings)


app = create_app()


__all__ = [
    "AdmissionReviewPayload",
    "app",
    "create_app",
    "get_engine",
]
