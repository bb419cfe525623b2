from __future__ import annotations

import json
import uuid
from pathlib import Path
from typing import Any, Dict, List, Tuple

import typer
import yaml

from src.common.events import RecordingEventSink
from src.policies.models import MODELS
from src.policies.validation import PolicySpecError, validate_resource
from src.store.store import InMemoryPolicyStore

from .admission import AdmissionEngine, AdmissionOutcome, AdmissionRequest
from .config import configure_logging

app = typer.Typer(help="Evaluate Pods against governance policies without a cluster.")


def _load_pod(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise typer.BadParameter(f"Pod manifest not found: {path}")
    documents = [doc for doc in yaml.safe_load_all(path.read_text(encoding="utf-8")) if doc is not None]
    if not documents or not isinstance(documents[0], dict):
        raise typer.BadParameter(f"{path} does not contain a Pod manifest")
    return documents[0]


def _engine(policies: List[Path], namespace: str, verbose: bool) -> Tuple[AdmissionEngine, RecordingEventSink]:
    try:
        store = InMemoryPolicyStore.from_paths(policies, default_namespace=namespace)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise typer.BadParameter(f"Unable to load policies: {exc}") from exc
    if verbose:
        configure_logging("INFO")
    sink = RecordingEventSink()
    return AdmissionEngine(store, sink), sink


def _report(outcome: AdmissionOutcome, sink: RecordingEventSink, show_object: bool = False) -> None:
    report = outcome.to_dict()
    report["events"] = [n.to_dict() for n in sink.notifications]
    if show_object and outcome.patched_object is not None:
        report["object"] = outcome.patched_object
    typer.echo(json.dumps(report, indent=2))


def _request(pod: Dict[str, Any], namespace: str, operation: str) -> AdmissionRequest:
    return AdmissionRequest(uid=str(uuid.uuid4()), namespace=namespace, operation=operation.upper(), object=pod)


@app.command()
def mutate(
    pod: Path = typer.Option(..., "--pod", "-p", help="Path to the Pod manifest."),
    policies: List[Path] = typer.Option(
        ...,
        "--policies",
        "-P",
        help="Policy manifest file(s) or directories holding WorkloadPolicy/TelemetryProfile resources.",
    ),
    namespace: str = typer.Option("default", "--namespace", "-n", help="Namespace of the admission request."),
    operation: str = typer.Option("CREATE", "--operation", help="Admission operation (CREATE or UPDATE)."),
    show_object: bool = typer.Option(False, "--show-object", help="Include the mutated Pod in the output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine activity to stderr."),
) -> None:
    engine, sink = _engine(policies, namespace, verbose)
    outcome = engine.mutate(_request(_load_pod(pod), namespace, operation))
    _report(outcome, sink, show_object=show_object)
    if not outcome.allowed:
        raise typer.Exit(code=1)


@app.command()
def validate(
    pod: Path = typer.Option(..., "--pod", "-p", help="Path to the Pod manifest."),
    policies: List[Path] = typer.Option(
        ...,
        "--policies",
        "-P",
        help="Policy manifest file(s) or directories holding SecurityBaseline resources.",
    ),
    namespace: str = typer.Option("default", "--namespace", "-n", help="Namespace of the admission request."),
    operation: str = typer.Option("CREATE", "--operation", help="Admission operation (CREATE or UPDATE)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine activity to stderr."),
) -> None:
    engine, sink = _engine(policies, namespace, verbose)
    outcome = engine.validate(_request(_load_pod(pod), namespace, operation))
    _report(outcome, sink)
    if not outcome.allowed:
        raise typer.Exit(code=1)


@app.command("check-policies")
def check_policies(
    policies: List[Path] = typer.Option(
        ...,
        "--policies",
        "-P",
        help="Policy manifest file(s) or directories to check.",
    ),
) -> None:
    try:
        store = InMemoryPolicyStore.from_paths(policies)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        raise typer.BadParameter(f"Unable to load policies: {exc}") from exc

    failures = 0
    checked = 0
    for obj in store.objects():
        kind = obj.get("kind")
        if kind not in MODELS:
            continue
        checked += 1
        name = (obj.get("metadata") or {}).get("name", "<unnamed>")
        try:
            validate_resource(kind, obj)
        except PolicySpecError as exc:
            failures += 1
            typer.echo(f"{kind}/{name}: {exc}", err=True)

    typer.echo(f"Checked {checked} governance resource(s); {failures} invalid.")
    if failures:
        raise typer.Exit(code=1)


if __name__ == "__main__":  # pragma: no cover
    app()
