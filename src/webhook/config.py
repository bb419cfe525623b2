from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from src.common.events import EventSink, KubernetesEventSink, LoggingEventSink
from src.store.store import InMemoryPolicyStore, PolicyStore

from .admission import AdmissionEngine

_STORES = {"kubernetes", "file"}
_SINKS = {"kubernetes", "log", "none"}
_KUBECONFIG_MODES = {"auto", "incluster", "kubeconfig"}


@dataclass
class WebhookSettings:
    store: str = "kubernetes"
    policy_dir: Optional[Path] = None
    kubeconfig_mode: str = "auto"
    request_timeout: float = 10.0
    event_sink: str = "kubernetes"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.store not in _STORES:
            raise ValueError(f"WEBHOOK_STORE must be one of {sorted(_STORES)}, got {self.store!r}")
        if self.event_sink not in _SINKS:
            raise ValueError(f"WEBHOOK_EVENT_SINK must be one of {sorted(_SINKS)}, got {self.event_sink!r}")
        if self.kubeconfig_mode not in _KUBECONFIG_MODES:
            raise ValueError(
                f"WEBHOOK_KUBECONFIG_MODE must be one of {sorted(_KUBECONFIG_MODES)}, got {self.kubeconfig_mode!r}"
            )
        if self.store == "file" and self.policy_dir is None:
            raise ValueError("WEBHOOK_POLICY_DIR is required when WEBHOOK_STORE=file")
        if self.request_timeout <= 0:
            raise ValueError("WEBHOOK_REQUEST_TIMEOUT must be positive")

    @classmethod
    def from_env(cls) -> "WebhookSettings":
        policy_dir = os.getenv("WEBHOOK_POLICY_DIR")
        try:
            timeout = float(os.getenv("WEBHOOK_REQUEST_TIMEOUT", "10"))
        except ValueError as exc:
            raise ValueError("WEBHOOK_REQUEST_TIMEOUT must be a number") from exc
        return cls(
            store=os.getenv("WEBHOOK_STORE", "kubernetes").lower(),
            policy_dir=Path(policy_dir) if policy_dir else None,
            kubeconfig_mode=os.getenv("WEBHOOK_KUBECONFIG_MODE", "auto").lower(),
            request_timeout=timeout,
            event_sink=os.getenv("WEBHOOK_EVENT_SINK", "kubernetes").lower(),
            log_level=os.getenv("WEBHOOK_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format="%(levelname)s: %(message)s")


def build_store(settings: WebhookSettings) -> PolicyStore:
    if settings.store == "file":
        if settings.policy_dir is None:
            raise ValueError("WEBHOOK_POLICY_DIR is required when WEBHOOK_STORE=file")
        return InMemoryPolicyStore.from_paths([settings.policy_dir])

    from src.store.kube import KubernetesPolicyStore, load_kube_config

    load_kube_config(settings.kubeconfig_mode)
    return KubernetesPolicyStore(request_timeout=settings.request_timeout)


def build_sink(settings: WebhookSettings) -> Optional[EventSink]:
    if settings.event_sink == "none":
        return None
    if settings.event_sink == "log":
        return LoggingEventSink()

    from kubernetes import client

    from src.store.kube import load_kube_config

    if settings.store != "kubernetes":
        load_kube_config(settings.kubeconfig_mode)
    return KubernetesEventSink(client.CoreV1Api(), request_timeout=settings.request_timeout)


def build_engine(settings: WebhookSettings) -> AdmissionEngine:
    store = build_store(settings)
    return AdmissionEngine(store, build_sink(settings))


__all__ = ["WebhookSettings", "build_engine", "build_sink", "build_store", "configure_logging"]
