"""Asynchronous DNS lookups multiplexed onto one resolver engine context.

Brief:
  AsyncResolver owns the live resolver context (an engine instance plus its
  event-loop fd registration) and the registry of pending queries. It offers
  callback-style lookups, blocking lookups, cancellation, and purge, which
  cancels everything pending and rebuilds the context from the latest
  configuration (dropping any engine-side cache state).

  Every query accepted by the engine ends in exactly one callback
  invocation: an answer, an error, or the CANCELED sentinel. The handle is
  removed from the registry before the callback runs, and exceptions raised
  by callbacks are logged and contained.

Inputs:
  - Query names with optional type/class mnemonics (default A / IN).

Outputs:
  - NormalizedAnswer values (see netadns.answer) or error values.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Tuple

from . import eventloop
from .answer import NormalizedAnswer, RawAnswer, prep_answer
from .config.config_parser import add_defaults
from .engine import DnspythonEngine, ResolverEngine
from .errors import CANCELED, QueryCanceledError, ResolverError, UnknownCodeError
from .registry import PendingQueries, QueryHandle
from .tables import class_code, type_code

logger = logging.getLogger("netadns.adns")

Callback = Callable[[Optional[NormalizedAnswer], Optional[Any]], Any]
EngineFactory = Callable[[Dict[str, Any]], ResolverEngine]
WatchFd = Callable[[Any, Callable[[], Any]], Any]

PURGE_IN_PROGRESS = "resolver purge in progress"


@dataclass
class ResolverContext:
    """One generation of the resolver: engine plus its event-loop watcher.

    Inputs:
      - engine: ResolverEngine instance.
      - watcher: Registration returned by the fd watcher (has close()).
      - generation: Monotonic generation number, starting at 1.

    Outputs:
      - Context closed as a unit by close(): watcher first, then engine.
    """

    engine: ResolverEngine
    watcher: Any
    generation: int

    def close(self) -> None:
        logger.debug("Closing resolver context generation %d", self.generation)
        try:
            self.watcher.close()
        finally:
            self.engine.close()


def _prepare_tokens(
    qtype: Optional[str], qclass: Optional[str]
) -> Tuple[str, str, int, int]:
    """Brief: Upper-case type/class tokens (defaults A/IN) and map to codes.

    Raises:
      - UnknownCodeError: When either token has no numeric mapping.
    """

    qtype = str(qtype).upper() if qtype else "A"
    qclass = str(qclass).upper() if qclass else "IN"
    return qtype, qclass, type_code(qtype), class_code(qclass)


class AsyncResolver:
    """Front-end multiplexing concurrent lookups onto one resolver context.

    Inputs (constructor):
      - config: Engine options; merged over the engine factory's `defaults`.
      - engine_factory: Callable building an engine from the merged options
        (default DnspythonEngine).
      - watch_fd: Callable(engine, callback) registering the engine's fd for
        read readiness and returning an object with close() (default
        netadns.eventloop.watch_fd on `loop`).
      - loop: asyncio loop for the default watcher; the running loop when
        omitted.
      - clock: Monotonic clock used for query timing.

    Outputs:
      - Resolver instance; one resolver context is live from construction.
    """

    def __init__(
        self,
        config: Optional[Mapping[str, Any]] = None,
        *,
        engine_factory: Optional[EngineFactory] = None,
        watch_fd: Optional[WatchFd] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine_factory: EngineFactory = engine_factory or DnspythonEngine
        self._defaults: Dict[str, Any] = dict(
            getattr(self._engine_factory, "defaults", None) or {}
        )
        self._config = add_defaults(config, self._defaults)
        self._watch_fd: WatchFd = watch_fd or functools.partial(
            eventloop.watch_fd, loop=loop
        )
        self._clock = clock
        self._waiting = PendingQueries()
        self._generation = 0
        self._purging = False
        self._context = self._connect()

    @property
    def config(self) -> Dict[str, Any]:
        return dict(self._config)

    @property
    def context(self) -> ResolverContext:
        return self._context

    @property
    def generation(self) -> int:
        return self._context.generation

    def pending(self) -> List[Hashable]:
        """Brief: Handles of queries submitted and not yet completed or canceled."""

        return self._waiting.handles()

    def _connect(self) -> ResolverContext:
        return self._attach(self._engine_factory(dict(self._config)))

    def _attach(self, engine: ResolverEngine) -> ResolverContext:
        logger.debug("Setting up event handling for %r", engine)

        def process() -> None:
            logger.debug("Processing queries for %r", engine)
            engine.process()

        try:
            watcher = self._watch_fd(engine, process)
        except Exception:
            engine.close()
            raise
        self._generation += 1
        return ResolverContext(engine, watcher, self._generation)

    @staticmethod
    def _invoke(callback: Callback, answer: Optional[NormalizedAnswer], err: Any) -> None:
        try:
            callback(answer, err)
        except Exception:
            logger.exception("Error in callback")

    def lookup(
        self,
        callback: Callback,
        qname: str,
        qtype: Optional[str] = None,
        qclass: Optional[str] = None,
    ) -> Tuple[Optional[Hashable], Optional[Any]]:
        """Brief: Submit an asynchronous query.

        Inputs:
          - callback: Called once as callback(answer, None) on success or
            callback(None, error) on failure/cancellation.
          - qname: Name to resolve.
          - qtype: Record type mnemonic, case-insensitive (default 'A').
          - qclass: Record class mnemonic, case-insensitive (default 'IN').

        Outputs:
          - (handle, None) when the query was accepted, or (None, error)
            when it was rejected; a rejected query never calls back.
        """

        try:
            qtype, qclass, ntype, nclass = _prepare_tokens(qtype, qclass)
        except UnknownCodeError as exc:
            logger.warning("Resolver error: %s", exc)
            return None, str(exc)
        if self._purging:
            logger.warning("Resolver error: %s", PURGE_IN_PROGRESS)
            return None, PURGE_IN_PROGRESS

        context = self._context
        started = self._clock()
        handle: Optional[QueryHandle] = None

        def callback_wrapper(raw: Optional[RawAnswer], err: Optional[Any]) -> None:
            finished = self._clock()
            # A stale generation or a missing entry means the caller already
            # got its terminal event (cancel or purge).
            if (
                context is not self._context
                or handle is None
                or self._waiting.pop(handle) is None
            ):
                logger.debug(
                    "Dropping late result for %s %s %s (query %r no longer pending)",
                    qname,
                    qclass,
                    qtype,
                    handle,
                )
                return
            try:
                answer = prep_answer(raw)
            except Exception as exc:
                logger.exception("Failed to normalize answer for %s %s %s", qname, qclass, qtype)
                answer, err = None, "answer normalization failed: %s" % exc
            if answer is not None:
                logger.debug(
                    "Results for %s %s %s: %s (%s, %f sec)",
                    qname,
                    qclass,
                    qtype,
                    ("%d items" % len(answer)) if answer.rcode == 0 else answer.status,
                    answer.security,
                    finished - started,
                )
                self._invoke(callback, answer, None)
            else:
                if err is None:
                    err = "no answer"
                logger.error("Results for %s %s %s: %s", qname, qclass, qtype, err)
                self._invoke(callback, None, err)

        logger.debug("Resolve %s %s %s", qname, qclass, qtype)
        engine_handle, err = context.engine.resolve_async(
            callback_wrapper, qname, ntype, nclass
        )
        if engine_handle is None:
            logger.warning("Resolver error: %s", err)
            return None, err
        handle = QueryHandle(context.generation, engine_handle)
        self._waiting.add(handle, callback)
        return handle, None

    def lookup_sync(
        self, qname: str, qtype: Optional[str] = None, qclass: Optional[str] = None
    ) -> Tuple[Optional[NormalizedAnswer], Optional[Any]]:
        """Brief: Blocking query against the live context.

        Outputs:
          - (NormalizedAnswer, None) on success, (None, error) on failure.

        Notes:
          - Blocks the calling thread (and with it the event loop) until the
            engine returns.
        """

        try:
            qtype, qclass, ntype, nclass = _prepare_tokens(qtype, qclass)
        except UnknownCodeError as exc:
            logger.warning("Resolver error: %s", exc)
            return None, str(exc)
        raw, err = self._context.engine.resolve(qname, ntype, nclass)
        if raw is None:
            return None, err
        return prep_answer(raw), None

    def cancel(self, handle: Hashable) -> bool:
        """Brief: Cancel a pending query, notifying its caller with CANCELED.

        Inputs:
          - handle: Handle returned by lookup().

        Outputs:
          - True, always; unknown, finished or purged handles are a no-op.
        """

        callback = self._waiting.pop(handle)
        if (
            isinstance(handle, QueryHandle)
            and handle.generation == self._context.generation
        ):
            try:
                self._context.engine.cancel(handle.engine_handle)
            except Exception as exc:
                logger.debug("Engine cancel of query %r failed: %s", handle, exc)
        if callback is not None:
            logger.debug("Canceled query %r", handle)
            self._invoke(callback, None, CANCELED)
        return True

    def _cancel_all(self) -> int:
        handles = self._waiting.handles()
        for handle in handles:
            self.cancel(handle)
        return len(handles)

    def purge(self) -> bool:
        """Brief: Cancel all pending queries and rebuild the resolver context.

        Outputs:
          - True. Every pending caller has been notified with CANCELED and the
            registry is empty when this returns; later lookups go to a fresh
            engine built from the current configuration.

        Notes:
          - Lookups issued from callbacks while the purge runs are rejected.
          - When no engine can be built from the current configuration the
            live context is kept and the failure is logged.
        """

        self._purging = True
        try:
            canceled = self._cancel_all()
            try:
                engine = self._engine_factory(dict(self._config))
            except Exception:
                logger.exception(
                    "Failed to build resolver engine; keeping context generation %d",
                    self._context.generation,
                )
                return True
            self._context.close()
            try:
                self._context = self._attach(engine)
            except Exception:
                logger.exception("Failed to register resolver engine with the event loop")
                return True
        finally:
            self._purging = False
        logger.debug(
            "Purged %d pending queries; now on resolver context generation %d",
            canceled,
            self._context.generation,
        )
        return True

    def reload_config(self, config: Optional[Mapping[str, Any]]) -> None:
        """Brief: Replace the configuration used for the next context.

        Notes:
          - Does not purge; call purge() to apply it to a fresh context.
        """

        self._config = add_defaults(config, self._defaults)
        logger.debug("Resolver configuration reloaded; applies on next purge")

    def close(self) -> None:
        """Brief: Cancel pending queries and close the live context."""

        self._cancel_all()
        self._context.close()

    def lookup_promise(
        self,
        qname: str,
        qtype: Optional[str] = None,
        qclass: Optional[str] = None,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> "asyncio.Future[NormalizedAnswer]":
        """Brief: Future-returning form of lookup().

        Inputs:
          - qname, qtype, qclass: As for lookup().
          - loop: Loop owning the future (default: running loop).

        Outputs:
          - asyncio.Future resolving to the NormalizedAnswer, or failing with
            ResolverError (QueryCanceledError after cancellation). Cancelling
            the future cancels the underlying query.
        """

        if loop is None:
            loop = asyncio.get_running_loop()
        future: "asyncio.Future[NormalizedAnswer]" = loop.create_future()

        def callback(answer: Optional[NormalizedAnswer], err: Optional[Any]) -> None:
            if future.done():
                return
            if err is not None:
                exc = QueryCanceledError(err) if err == CANCELED else ResolverError(err)
                future.set_exception(exc)
            else:
                future.set_result(answer)

        handle, err = self.lookup(callback, qname, qtype, qclass)
        if handle is None:
            future.set_exception(ResolverError(err))
            return future

        def on_done(f: "asyncio.Future[NormalizedAnswer]") -> None:
            if f.cancelled():
                self.cancel(handle)

        future.add_done_callback(on_done)
        return future

    async def resolve(
        self, qname: str, qtype: Optional[str] = None, qclass: Optional[str] = None
    ) -> NormalizedAnswer:
        """Brief: Await the answer for a query; raises ResolverError on failure."""

        return await self.lookup_promise(qname, qtype, qclass)


# --- Process-wide default resolver ---

_default_resolver: Optional[AsyncResolver] = None


def get_resolver() -> AsyncResolver:
    """Brief: Return the process-wide resolver, creating it on first use.

    Notes:
      - The default resolver binds to the running asyncio loop, so the first
        call must happen from within that loop.
    """

    global _default_resolver
    if _default_resolver is None:
        _default_resolver = AsyncResolver()
    return _default_resolver


def set_resolver(resolver: Optional[AsyncResolver]) -> Optional[AsyncResolver]:
    """Brief: Install (or clear, with None) the process-wide resolver; returns the previous one."""

    global _default_resolver
    previous, _default_resolver = _default_resolver, resolver
    return previous


def lookup(callback: Callback, qname: str, qtype: Optional[str] = None, qclass: Optional[str] = None):
    return get_resolver().lookup(callback, qname, qtype, qclass)


def lookup_sync(qname: str, qtype: Optional[str] = None, qclass: Optional[str] = None):
    return get_resolver().lookup_sync(qname, qtype, qclass)


def cancel(handle: Hashable) -> bool:
    return get_resolver().cancel(handle)


def purge() -> bool:
    return get_resolver().purge()


class ResolverWrapper:
    """Resolver-object view of the process-wide resolver.

    For callers that expect an object with lookup()/lookup_promise() methods
    rather than module functions. Calls always go to the resolver installed
    at call time.
    """

    def lookup(self, callback: Callback, qname: str, qtype: Optional[str] = None, qclass: Optional[str] = None):
        return get_resolver().lookup(callback, qname, qtype, qclass)

    def lookup_promise(self, qname: str, qtype: Optional[str] = None, qclass: Optional[str] = None):
        return get_resolver().lookup_promise(qname, qtype, qclass)


_wrapper = ResolverWrapper()


def resolver_wrapper() -> ResolverWrapper:
    return _wrapper
