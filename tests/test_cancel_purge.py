"""
Brief: Tests for AsyncResolver.cancel, purge, reload_config and close.

Inputs:
  - None

Outputs:
  - None
"""

import logging

from netadns.adns import PURGE_IN_PROGRESS
from netadns.errors import CANCELED


def _collector():
    calls = []

    def callback(answer, err):
        calls.append((answer, err))

    return calls, callback


def test_cancel_before_response_notifies_caller(fake_stack, a_answer):
    """
    Brief: Cancel a query before the engine responds.

    Inputs:
      - lookup then cancel(handle)

    Outputs:
      - None: Asserts (None, 'canceled'), registry cleared, engine asked to cancel
    """
    resolver = fake_stack.resolver()
    calls, callback = _collector()
    handle, _ = resolver.lookup(callback, "example.com")

    assert resolver.cancel(handle) is True

    assert calls == [(None, CANCELED)]
    assert CANCELED == "canceled"
    assert handle not in resolver.pending()
    assert fake_stack.engine.canceled == [handle.engine_handle]


def test_cancel_is_idempotent(fake_stack):
    resolver = fake_stack.resolver()
    calls, callback = _collector()
    handle, _ = resolver.lookup(callback, "example.com")

    assert resolver.cancel(handle) is True
    assert resolver.cancel(handle) is True
    assert resolver.cancel(12345) is True

    assert calls == [(None, CANCELED)]
    # Engine-level cancel is attempted for live handles only.
    assert fake_stack.engine.canceled == [handle.engine_handle] * 2


def test_late_completion_after_cancel_is_dropped(fake_stack, a_answer, caplog):
    """
    Brief: A completion delivered after cancellation does not call back again.

    Inputs:
      - engine that still delivers a completion for a canceled handle

    Outputs:
      - None: Asserts a single terminal event
    """
    caplog.set_level(logging.DEBUG, logger="netadns.adns")
    resolver = fake_stack.resolver()
    calls, callback = _collector()
    handle, _ = resolver.lookup(callback, "example.com")
    wrapper = fake_stack.engine.pending[handle.engine_handle][0]

    resolver.cancel(handle)
    wrapper(a_answer(), None)

    assert calls == [(None, CANCELED)]
    assert any("Dropping late result" in r.getMessage() for r in caplog.records)


def test_cancel_contains_callback_fault(fake_stack, caplog):
    caplog.set_level(logging.ERROR, logger="netadns.adns")
    resolver = fake_stack.resolver()

    def bad(answer, err):
        raise ValueError("nope")

    handle, _ = resolver.lookup(bad, "example.com")
    assert resolver.cancel(handle) is True
    assert resolver.pending() == []
    assert any("Error in callback" in r.getMessage() for r in caplog.records)


def test_cancel_tolerates_engine_failure(fake_stack):
    resolver = fake_stack.resolver()
    calls, callback = _collector()
    handle, _ = resolver.lookup(callback, "example.com")

    def broken_cancel(h):
        raise RuntimeError("engine gone")

    fake_stack.engine.cancel = broken_cancel

    assert resolver.cancel(handle) is True
    assert calls == [(None, CANCELED)]


def test_purge_with_three_pending_queries(fake_stack, a_answer):
    """
    Brief: Purge cancels every pending query and swaps in a new context.

    Inputs:
      - three pending queries, then purge, then a new lookup

    Outputs:
      - None: Asserts cancellation delivered before return, old context
        closed, new query tracked on the new generation
    """
    resolver = fake_stack.resolver()
    calls, callback = _collector()
    for name in ("a.test", "b.test", "c.test"):
        resolver.lookup(callback, name)
    old_engine, old_watcher = fake_stack.engine, fake_stack.watcher
    assert resolver.generation == 1

    assert resolver.purge() is True

    assert calls == [(None, CANCELED)] * 3
    assert resolver.pending() == []
    assert old_watcher.closed and old_engine.closed
    assert len(fake_stack.engines) == 2
    assert resolver.generation == 2
    assert resolver.context.engine is fake_stack.engine

    handle, err = resolver.lookup(callback, "d.test")
    assert err is None
    assert resolver.pending() == [handle]
    assert fake_stack.engine.submitted == [("d.test", 1, 1)]
    assert old_engine.submitted == [("a.test", 1, 1), ("b.test", 1, 1), ("c.test", 1, 1)]

    fake_stack.engine.finish(handle, a_answer(qname="d.test"))
    fake_stack.watcher.fire()
    assert calls[-1][0].qname == "d.test"


def test_stale_generation_completion_is_ignored(fake_stack, a_answer):
    """
    Brief: Completions from a purged context never touch the new registry.

    Inputs:
      - engine handle numbers that collide across generations

    Outputs:
      - None: Asserts the new query's entry survives an old-generation completion
    """
    resolver = fake_stack.resolver()
    old_calls, old_cb = _collector()
    new_calls, new_cb = _collector()

    old_handle, _ = resolver.lookup(old_cb, "old.test")
    old_wrapper = fake_stack.engines[0].pending[old_handle.engine_handle][0]
    resolver.purge()
    new_handle, _ = resolver.lookup(new_cb, "new.test")
    assert new_handle.engine_handle == old_handle.engine_handle
    assert new_handle != old_handle
    assert (old_handle.generation, new_handle.generation) == (1, 2)

    old_wrapper(a_answer(qname="old.test"), None)

    assert old_calls == [(None, CANCELED)]
    assert new_calls == []
    assert resolver.pending() == [new_handle]


def test_handle_from_purged_generation_cannot_cancel_new_query(fake_stack):
    """
    Brief: cancel() with a pre-purge handle leaves the live generation alone.

    Inputs:
      - lookup, purge, lookup, then cancel of the first handle

    Outputs:
      - None: Asserts the new caller is not notified and the engine is not asked
    """
    resolver = fake_stack.resolver()
    old_calls, old_cb = _collector()
    new_calls, new_cb = _collector()

    old_handle, _ = resolver.lookup(old_cb, "old.test")
    resolver.purge()
    new_handle, _ = resolver.lookup(new_cb, "new.test")

    assert resolver.cancel(old_handle) is True

    assert old_calls == [(None, CANCELED)]
    assert new_calls == []
    assert resolver.pending() == [new_handle]
    assert fake_stack.engine.canceled == []
    assert new_handle.engine_handle in fake_stack.engine.pending


def test_purge_keeps_live_context_when_engine_build_fails(fake_stack, a_answer, caplog):
    """
    Brief: A reload that cannot build an engine leaves the resolver usable.

    Inputs:
      - pending query, engine factory failing on the next build

    Outputs:
      - None: Asserts purge returns True, old context stays live, and the
        next good purge moves to a new generation
    """
    caplog.set_level(logging.ERROR, logger="netadns.adns")
    resolver = fake_stack.resolver()
    calls, callback = _collector()
    resolver.lookup(callback, "a.test")
    first_engine, first_watcher = fake_stack.engine, fake_stack.watcher

    resolver.reload_config({"forward": ["127.0.0.1@dns"]})
    fake_stack.factory.error = ValueError("invalid nameserver port in '127.0.0.1@dns'")

    assert resolver.purge() is True

    assert calls == [(None, CANCELED)]
    assert resolver.generation == 1
    assert resolver.context.engine is first_engine
    assert not first_engine.closed and not first_watcher.closed
    assert any("Failed to build resolver engine" in r.getMessage() for r in caplog.records)

    handle, err = resolver.lookup(callback, "b.test")
    assert err is None
    first_engine.finish(handle, a_answer(qname="b.test"))
    first_watcher.fire()
    assert calls[-1][0].qname == "b.test"

    fake_stack.factory.error = None
    assert resolver.purge() is True
    assert resolver.generation == 2
    assert first_engine.closed


def test_lookup_from_callback_during_purge_is_rejected(fake_stack):
    resolver = fake_stack.resolver()
    retries = []

    def callback(answer, err):
        retries.append(resolver.lookup(lambda a, e: None, "retry.test"))

    resolver.lookup(callback, "example.com")
    resolver.purge()

    assert retries == [(None, PURGE_IN_PROGRESS)]
    assert resolver.pending() == []


def test_purge_with_nothing_pending_rebuilds_context(fake_stack):
    resolver = fake_stack.resolver()
    assert resolver.purge() is True
    assert resolver.purge() is True
    assert resolver.generation == 3
    assert [e.closed for e in fake_stack.engines] == [True, True, False]


def test_reload_config_applies_on_next_purge_only(fake_stack):
    """
    Brief: reload_config updates the snapshot without rebuilding the context.

    Inputs:
      - initial config, reload with new options, purge

    Outputs:
      - None: Asserts engine configs before/after purge
    """
    resolver = fake_stack.resolver({"forward": ["192.0.2.53"]})
    first = fake_stack.engine
    assert first.config["forward"] == ["192.0.2.53"]
    assert first.config["threads"] == 1

    resolver.reload_config({"forward": ["198.51.100.53"], "threads": 8})
    assert len(fake_stack.engines) == 1
    assert resolver.config["forward"] == ["198.51.100.53"]

    resolver.purge()
    assert fake_stack.engine.config == {
        "forward": ["198.51.100.53"],
        "threads": 8,
        "timeout_ms": 500,
    }


def test_close_cancels_and_closes_without_rebuild(fake_stack):
    resolver = fake_stack.resolver()
    calls, callback = _collector()
    resolver.lookup(callback, "example.com")

    resolver.close()

    assert calls == [(None, CANCELED)]
    assert fake_stack.engine.closed and fake_stack.watcher.closed
    assert len(fake_stack.engines) == 1
