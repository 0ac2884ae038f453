"""Error types and sentinel values shared across netadns.

Brief:
  Callback-style APIs report failures as plain error strings (mirroring what
  the resolver engine hands back); future-style APIs raise the exception
  classes below instead.
"""

from __future__ import annotations

from typing import Optional

# Error value delivered to a callback whose query was canceled.
CANCELED = "canceled"


class NetadnsError(Exception):
    """Base class for all netadns exceptions."""


class UnknownCodeError(NetadnsError, LookupError):
    """
    Brief: A symbolic record type or class token has no numeric mapping.

    Inputs:
    - message: description naming the table and the rejected token

    Outputs:
    - Exception instance
    """


class ResolverError(NetadnsError):
    """
    Brief: A query failed with no answer produced.

    Inputs:
    - error: the error value reported by the resolver (usually a string)

    Outputs:
    - Exception instance exposing the raw value as ``.error``
    """

    def __init__(self, error: Optional[object]) -> None:
        super().__init__(str(error))
        self.error = error


class QueryCanceledError(ResolverError):
    """Raised through the future interface when a query is canceled."""

    def __init__(self, error: Optional[object] = CANCELED) -> None:
        super().__init__(error)
