"""
Brief: Global pytest configuration: per-test 10s timeout and fake resolver stack.

Inputs:
  - None

Outputs:
  - fake_stack fixture building AsyncResolver instances over FakeEngine
"""

import os
import signal
import sys
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

# Ensure 'src' is on sys.path so 'netadns' package is importable in tests
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
SRC_DIR = os.path.join(ROOT, "src")
if SRC_DIR not in sys.path:
    sys.path.insert(0, SRC_DIR)

from netadns.adns import AsyncResolver  # noqa: E402
from netadns.answer import RawAnswer  # noqa: E402


def _alarm_handler(signum, frame):
    """
    Brief: Signal handler that raises TimeoutError when alarm triggers.

    Inputs:
      - signum: signal number (int)
      - frame: current frame (ignored)

    Outputs:
      - None: Raises TimeoutError to fail the test
    """
    raise TimeoutError("Test exceeded 10 seconds")


if hasattr(signal, "SIGALRM"):
    signal.signal(signal.SIGALRM, _alarm_handler)


@pytest.fixture(autouse=True)
def enforce_test_timeout():
    """
    Brief: Enforce a hard 10-second timeout for each test.

    Inputs:
      - None

    Outputs:
      - None: Cancels alarm after test
    """
    if hasattr(signal, "SIGALRM"):
        signal.alarm(10)
        try:
            yield
        finally:
            signal.alarm(0)
    else:
        yield


class FakeEngine:
    """Brief: Scriptable ResolverEngine double.

    Inputs:
      - config: Merged options the front-end built the engine from.

    Outputs:
      - Engine whose completions are queued by tests with finish() and
        delivered from process(), like a real engine.
    """

    def __init__(self, config: Dict[str, Any]) -> None:
        self.config = config
        self.pending: Dict[int, Tuple[Callable, str, int, int]] = {}
        self.queued: List[Tuple[int, Optional[RawAnswer], Optional[str]]] = []
        self.canceled: List[int] = []
        self.submitted: List[Tuple[str, int, int]] = []
        self.sync_calls: List[Tuple[str, int, int]] = []
        self.sync_result: Tuple[Optional[RawAnswer], Optional[str]] = (None, "no sync result")
        self.reject: Optional[str] = None
        self.closed = False
        self._next = 0

    def fileno(self) -> int:
        return 1000 + id(self) % 1000

    def resolve_async(self, callback, qname, rrtype, rrclass):
        if self.reject is not None:
            return None, self.reject
        self._next += 1
        self.pending[self._next] = (callback, qname, rrtype, rrclass)
        self.submitted.append((qname, rrtype, rrclass))
        return self._next, None

    def resolve(self, qname, rrtype, rrclass):
        self.sync_calls.append((qname, rrtype, rrclass))
        return self.sync_result

    def cancel(self, handle):
        self.canceled.append(handle)
        self.pending.pop(handle, None)

    def finish(self, handle, raw=None, err=None) -> None:
        """Brief: Queue a completion; accepts engine or resolver handles."""
        self.queued.append((getattr(handle, "engine_handle", handle), raw, err))

    def process(self) -> int:
        queued, self.queued = self.queued, []
        delivered = 0
        for handle, raw, err in queued:
            entry = self.pending.pop(handle, None)
            if entry is None:
                continue
            entry[0](raw, err)
            delivered += 1
        return delivered

    def close(self) -> None:
        self.closed = True


class FakeWatcher:
    """Brief: Stand-in for an event-loop fd registration."""

    def __init__(self, engine: FakeEngine, callback: Callable[[], Any]) -> None:
        self.engine = engine
        self.callback = callback
        self.closed = False

    def fire(self) -> None:
        """Brief: Simulate the loop seeing the engine fd as readable."""
        assert not self.closed, "watcher fired after close"
        self.callback()

    def close(self) -> None:
        self.closed = True


class FakeEngineFactory:
    defaults = {"threads": 1, "forward": None, "timeout_ms": 500}

    def __init__(self, stack: "FakeStack") -> None:
        self._stack = stack
        self.error: Optional[Exception] = None

    def __call__(self, config: Dict[str, Any]) -> FakeEngine:
        if self.error is not None:
            raise self.error
        engine = FakeEngine(config)
        self._stack.engines.append(engine)
        return engine


class FakeStack:
    """Brief: Builds AsyncResolver instances wired to fakes and records them."""

    def __init__(self) -> None:
        self.engines: List[FakeEngine] = []
        self.watchers: List[FakeWatcher] = []
        self.factory = FakeEngineFactory(self)
        self.now = 100.0

    def watch_fd(self, engine: FakeEngine, callback: Callable[[], Any]) -> FakeWatcher:
        watcher = FakeWatcher(engine, callback)
        self.watchers.append(watcher)
        return watcher

    def clock(self) -> float:
        return self.now

    def resolver(self, config: Optional[Dict[str, Any]] = None) -> AsyncResolver:
        return AsyncResolver(
            config,
            engine_factory=self.factory,
            watch_fd=self.watch_fd,
            clock=self.clock,
        )

    @property
    def engine(self) -> FakeEngine:
        return self.engines[-1]

    @property
    def watcher(self) -> FakeWatcher:
        return self.watchers[-1]


@pytest.fixture
def fake_stack() -> FakeStack:
    """
    Brief: Provide a FakeStack for building resolvers over fake engines.

    Inputs:
      - None

    Outputs:
      - FakeStack instance
    """
    return FakeStack()


@pytest.fixture
def a_answer() -> Callable[..., RawAnswer]:
    """
    Brief: Factory for RawAnswer values carrying IPv4 address payloads.

    Inputs:
      - None

    Outputs:
      - Callable(qname='example.com', addrs=(...), **overrides) -> RawAnswer
    """

    def make(qname: str = "example.com", addrs=("93.184.216.34",), **overrides) -> RawAnswer:
        data = tuple(bytes(int(octet) for octet in a.split(".")) for a in addrs)
        fields = dict(
            qname=qname,
            qtype=1,
            qclass=1,
            rcode=0,
            data=data,
            havedata=bool(data),
        )
        fields.update(overrides)
        return RawAnswer(**fields)

    return make
