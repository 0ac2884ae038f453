"""netadns package"""

from .adns import (
    AsyncResolver,
    ResolverContext,
    ResolverWrapper,
    cancel,
    get_resolver,
    lookup,
    lookup_sync,
    purge,
    resolver_wrapper,
    set_resolver,
)
from .answer import NormalizedAnswer, RawAnswer, Record, prep_answer
from .errors import (
    CANCELED,
    NetadnsError,
    QueryCanceledError,
    ResolverError,
    UnknownCodeError,
)
from .registry import QueryHandle

__all__ = [
    "AsyncResolver",
    "CANCELED",
    "NetadnsError",
    "NormalizedAnswer",
    "QueryCanceledError",
    "QueryHandle",
    "RawAnswer",
    "Record",
    "ResolverContext",
    "ResolverError",
    "ResolverWrapper",
    "UnknownCodeError",
    "cancel",
    "get_resolver",
    "lookup",
    "lookup_sync",
    "prep_answer",
    "purge",
    "resolver_wrapper",
    "set_resolver",
]
