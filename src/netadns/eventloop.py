"""asyncio binding for resolver engine file descriptors.

Brief:
  watch_fd() registers an object's fileno() for read readiness on an asyncio
  event loop and calls back whenever it becomes readable. The returned
  FdWatcher deregisters on close().
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger("netadns.eventloop")


class FdWatcher:
    """Read-readiness registration of one file descriptor on an asyncio loop.

    Inputs (constructor):
      - loop: asyncio event loop to register with.
      - fd: File descriptor to watch.
      - callback: Zero-argument callable run on each readiness notification.

    Outputs:
      - Active registration; close() removes it (idempotent).
    """

    def __init__(
        self, loop: asyncio.AbstractEventLoop, fd: int, callback: Callable[[], Any]
    ) -> None:
        self.loop = loop
        self.fd = fd
        self._callback = callback
        self._closed = False
        loop.add_reader(fd, self._on_readable)

    @property
    def closed(self) -> bool:
        return self._closed

    def _on_readable(self) -> None:
        try:
            self._callback()
        except Exception:
            # Keep the loop alive; the registration stays in place.
            logger.exception("Error processing readable fd %d", self.fd)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.loop.remove_reader(self.fd)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "active"
        return "<FdWatcher fd=%d %s>" % (self.fd, state)


def watch_fd(
    fileobj: Any,
    callback: Callable[[], Any],
    *,
    loop: Optional[asyncio.AbstractEventLoop] = None,
) -> FdWatcher:
    """Brief: Watch fileobj for readability and invoke callback when ready.

    Inputs:
      - fileobj: Object with fileno() (or a bare integer descriptor).
      - callback: Zero-argument callable.
      - loop: Event loop; defaults to the running loop.

    Outputs:
      - FdWatcher: Registration handle.

    Raises:
      - RuntimeError: When no loop is given and none is running.
    """

    fd = fileobj if isinstance(fileobj, int) else fileobj.fileno()
    if loop is None:
        loop = asyncio.get_running_loop()
    return FdWatcher(loop, fd, callback)
