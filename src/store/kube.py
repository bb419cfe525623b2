from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError as TransportError
from urllib3.exceptions import TimeoutError as TransportTimeout

from src.policies.models import GROUP, PLURALS, VERSION

from .store import StoreError

LOGGER = logging.getLogger(__name__)


def load_kube_config(mode: str = "auto") -> None:
    if mode == "incluster":
        config.load_incluster_config()
        return
    if mode == "kubeconfig":
        config.load_kube_config()
        return
    try:
        config.load_incluster_config()
        LOGGER.info("using in-cluster config")
    except config.ConfigException:
        config.load_kube_config()
        LOGGER.info("using kubeconfig (local)")


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, TransportTimeout):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, TransportTimeout)


class KubernetesPolicyStore:
    """Lists governance custom resources from the Kubernetes API."""

    def __init__(self, api: Optional[Any] = None, *, request_timeout: float = 10.0) -> None:
        self.api = api or client.CustomObjectsApi()
        self.request_timeout = request_timeout

    def list(self, namespace: str, kind: str) -> List[Dict[str, Any]]:
        plural = PLURALS.get(kind)
        if plural is None:
            raise ValueError(f"unsupported kind {kind!r}")
        try:
            res = self.api.list_namespaced_custom_object(
                group=GROUP,
                version=VERSION,
                namespace=namespace,
                plural=plural,
                _request_timeout=self.request_timeout,
            )
        except ApiException as exc:
            raise StoreError(f"listing {plural} in {namespace} failed: {exc.status} {exc.reason}") from exc
        except (TransportError, OSError) as exc:
            raise StoreError(
                f"listing {plural} in {namespace} failed: {exc}",
                timed_out=_is_timeout(exc),
            ) from exc
        items = res.get("items", []) if isinstance(res, dict) else []
        return [item for item in items if isinstance(item, dict)]


__all__ = ["KubernetesPolicyStore", "load_kube_config"]
