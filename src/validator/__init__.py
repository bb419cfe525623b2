"""SecurityBaseline evaluation for Pods."""

from .baseline import BaselineDecision, BaselineEvaluator, check_baseline

__all__ = ["BaselineDecision", "BaselineEvaluator", "check_baseline"]
