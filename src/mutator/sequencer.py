from __future__ import annotations

from typing import Iterable, List, Protocol, TypeVar


class Prioritised(Protocol):
    priority: int


SourceT = TypeVar("SourceT", bound=Prioritised)


def sort_by_priority(sources: Iterable[SourceT]) -> List[SourceT]:
    """Order sources by priority, highest first.

    ``sorted`` is stable with ``reverse=True`` too, so sources sharing a
    priority keep their retrieval order.
    """

    return sorted(sources, key=lambda source: source.priority, reverse=True)


__all__ = ["Prioritised", "sort_by_priority"]
