"""Priority-ordered, non-destructive defaulting of Pod fields."""

from .merger import DefaultingMerger, InvalidQuantity, MergeResult
from .sequencer import sort_by_priority

__all__ = [
    "DefaultingMerger",
    "InvalidQuantity",
    "MergeResult",
    "sort_by_priority",
]
