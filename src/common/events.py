"""Notification sinks for admission decisions.

Sinks are fire-and-forget: :func:`publish` never lets a sink failure reach
the caller, so an unavailable event backend cannot change an admission
decision. Sinks that talk to a remote backend do so off the calling thread,
so a slow backend cannot delay one either.
"""

from __future__ import annotations

import datetime
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Dict, List, Optional, Protocol

LOGGER = logging.getLogger(__name__)

NORMAL = "Normal"
WARNING = "Warning"


@dataclass(frozen=True)
class ObjectRef:
    kind: str
    name: str
    namespace: str = ""
    api_version: str = ""

    def describe(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


@dataclass(frozen=True)
class Notification:
    subject: ObjectRef
    type: str
    reason: str
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject.describe(),
            "type": self.type,
            "reason": self.reason,
            "message": self.message,
        }


class EventSink(Protocol):
    def emit(self, notification: Notification) -> None:
        ...


@dataclass
class RecordingEventSink:
    notifications: List[Notification] = field(default_factory=list)

    def emit(self, notification: Notification) -> None:
        self.notifications.append(notification)

    def reasons(self) -> List[str]:
        return [n.reason for n in self.notifications]


class LoggingEventSink:
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or LOGGER

    def emit(self, notification: Notification) -> None:
        level = logging.WARNING if notification.type == WARNING else logging.INFO
        self.logger.log(
            level,
            "%s %s on %s: %s",
            notification.type,
            notification.reason,
            notification.subject.describe(),
            notification.message,
        )


class KubernetesEventSink:
    """Records notifications as core/v1 Events through the Kubernetes API.

    Events are created on a background executor, so :meth:`emit` returns
    before the API server answers. Each call is bounded by
    ``request_timeout``; failures are logged, never raised.
    """

    def __init__(
        self,
        core_api: Any,
        component: str = "pod-governance-webhook",
        *,
        request_timeout: float = 5.0,
        max_workers: int = 2,
    ) -> None:
        self.core_api = core_api
        self.component = component
        self.request_timeout = request_timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="event-sink")

    def emit(self, notification: Notification) -> None:
        namespace = notification.subject.namespace or "default"
        future = self._executor.submit(self._create, namespace, self._event(notification))
        future.add_done_callback(partial(_log_failure, notification))

    def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def _create(self, namespace: str, body: Any) -> None:
        self.core_api.create_namespaced_event(namespace, body, _request_timeout=self.request_timeout)

    def _event(self, notification: Notification) -> Any:
        from kubernetes import client

        subject = notification.subject
        now = datetime.datetime.now(datetime.timezone.utc)
        return client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{subject.name}."),
            involved_object=client.V1ObjectReference(
                api_version=subject.api_version or None,
                kind=subject.kind,
                name=subject.name,
                namespace=subject.namespace or None,
            ),
            type=notification.type,
            reason=notification.reason,
            message=notification.message,
            source=client.V1EventSource(component=self.component),
            first_timestamp=now,
            last_timestamp=now,
            count=1,
        )


def _warn(notification: Notification, exc: BaseException) -> None:
    LOGGER.warning("failed to publish %s event for %s: %s", notification.reason, notification.subject.describe(), exc)


def _log_failure(notification: Notification, future: Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        _warn(notification, exc)


def publish(sink: Optional[EventSink], notification: Notification) -> None:
    if sink is None:
        return
    try:
        sink.emit(notification)
    except Exception as exc:
        _warn(notification, exc)


__all__ = [
    "EventSink",
    "KubernetesEventSink",
    "LoggingEventSink",
    "NORMAL",
    "Notification",
    "ObjectRef",
    "RecordingEventSink",
    "WARNING",
    "publish",
]
