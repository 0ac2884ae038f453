"""Pending query registry.

Brief:
  Maps outstanding query handles to the caller callbacks waiting on them.
  An entry lives from the moment the engine accepts a query until either its
  completion is delivered or the query is canceled.

  Handles pair the engine's own handle with the resolver context generation
  that issued it. Engines number their queries from scratch, so a handle from
  a purged generation never matches a query on the live one.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Hashable, Iterator, List, Optional

Callback = Callable[..., object]


@dataclass(frozen=True, order=True)
class QueryHandle:
    """Caller-facing handle for one accepted async query."""

    generation: int
    engine_handle: Hashable


class PendingQueries:
    """Registry of in-flight queries keyed by QueryHandle.

    Inputs:
      - None

    Outputs:
      - Mapping-like container; pop() of an absent handle returns None.
    """

    def __init__(self) -> None:
        self._waiting: Dict[Hashable, Callback] = {}

    def add(self, handle: Hashable, callback: Callback) -> None:
        """Brief: Register a callback for a freshly accepted handle.

        Raises:
          - ValueError: When the handle is already registered.
        """

        if handle in self._waiting:
            raise ValueError("query handle %r is already pending" % (handle,))
        self._waiting[handle] = callback

    def pop(self, handle: Hashable) -> Optional[Callback]:
        """Brief: Remove a handle, returning its callback (None when absent)."""

        return self._waiting.pop(handle, None)

    def handles(self) -> List[Hashable]:
        """Brief: Snapshot of the currently pending handles."""

        return list(self._waiting)

    def __contains__(self, handle: object) -> bool:
        return handle in self._waiting

    def __iter__(self) -> Iterator[Hashable]:
        return iter(self.handles())

    def __len__(self) -> int:
        return len(self._waiting)
