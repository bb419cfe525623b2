from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Protocol, Sequence

import yaml

from src.policies.models import MODELS


class StoreError(RuntimeError):
    """Infrastructure failure while listing objects; callers may retry."""

    def __init__(self, message: str, *, timed_out: bool = False) -> None:
        super().__init__(message)
        self.timed_out = timed_out


class PolicyStore(Protocol):
    def list(self, namespace: str, kind: str) -> List[Dict[str, Any]]:
        ...


class InMemoryPolicyStore:
    """Holds governance resources in memory; objects without a namespace land in ``default_namespace``."""

    def __init__(self, objects: Iterable[Dict[str, Any]] = (), *, default_namespace: str = "default") -> None:
        self.default_namespace = default_namespace
        self._objects: List[Dict[str, Any]] = []
        for obj in objects:
            self.add(obj)

    def add(self, obj: Dict[str, Any]) -> None:
        if not isinstance(obj, dict):
            raise ValueError("store objects must be mappings")
        self._objects.append(obj)

    def _namespace_of(self, obj: Dict[str, Any]) -> str:
        metadata = obj.get("metadata")
        namespace = metadata.get("namespace") if isinstance(metadata, dict) else None
        return namespace or self.default_namespace

    def list(self, namespace: str, kind: str) -> List[Dict[str, Any]]:
        return [
            obj
            for obj in self._objects
            if obj.get("kind") == kind and self._namespace_of(obj) == namespace
        ]

    def objects(self) -> List[Dict[str, Any]]:
        return list(self._objects)

    @classmethod
    def from_yaml(cls, text: str, *, default_namespace: str = "default") -> "InMemoryPolicyStore":
        return cls(_load_documents(text), default_namespace=default_namespace)

    @classmethod
    def from_paths(cls, paths: Sequence[Path], *, default_namespace: str = "default") -> "InMemoryPolicyStore":
        store = cls(default_namespace=default_namespace)
        for path in collect_manifest_paths(paths):
            for obj in _load_documents(path.read_text(encoding="utf-8")):
                store.add(obj)
        return store


def _load_documents(text: str) -> List[Dict[str, Any]]:
    documents: List[Dict[str, Any]] = []
    for document in yaml.safe_load_all(text):
        if document is None:
            continue
        if not isinstance(document, dict):
            raise ValueError("manifest documents must be mappings")
        if document.get("kind") == "List" and isinstance(document.get("items"), list):
            documents.extend(item for item in document["items"] if isinstance(item, dict))
        else:
            documents.append(document)
    return documents


def collect_manifest_paths(paths: Iterable[Path]) -> List[Path]:
    files: List[Path] = []
    seen = set()
    for path in paths:
        resolved = Path(path).expanduser().resolve()
        if resolved.is_dir():
            candidates = sorted(list(resolved.glob("*.yaml")) + list(resolved.glob("*.yml")))
        elif resolved.exists():
            candidates = [resolved]
        else:
            raise FileNotFoundError(f"Manifest path not found: {resolved}")
        for candidate in candidates:
            if candidate in seen:
                continue
            seen.add(candidate)
            files.append(candidate)
    return files


def fetch(store: PolicyStore, namespace: str, kind: str) -> List[Any]:
    """List ``kind`` in ``namespace`` and decode each object into its model."""

    model = MODELS[kind]
    return [model.from_dict(obj) for obj in store.list(namespace, kind)]


__all__ = [
    "InMemoryPolicyStore",
    "PolicyStore",
    "StoreError",
    "collect_manifest_paths",
    "fetch",
]
