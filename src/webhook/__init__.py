"""Admission webhook engine and its HTTP/CLI front ends."""

from .admission import AdmissionEngine, AdmissionOutcome, AdmissionRequest, to_review

__all__ = ["AdmissionEngine", "AdmissionOutcome", "AdmissionRequest", "to_review"]
