"""Resolver engine interface and the default dnspython-backed engine.

Brief:
  The front-end (netadns.adns) treats the resolver engine as an opaque
  capability: submit an async query, submit a blocking query, cancel by
  handle, and drive pending I/O from the event loop via process(). Any
  object satisfying ResolverEngine can be plugged in through
  AsyncResolver(engine_factory=...).

  DnspythonEngine is the engine used by default. It runs exchanges against
  the configured (or system) nameservers on a small thread pool and hands
  finished results back through a socketpair so that completions are only
  ever delivered from process(), on the event loop thread.

Inputs:
  - Engine configuration mappings (see DnspythonEngine.defaults).

Outputs:
  - RawAnswer values delivered to completion callbacks.
"""

from __future__ import annotations

import logging
import socket
import threading
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
)

import dns.edns
import dns.exception
import dns.flags
import dns.inet
import dns.message
import dns.name
import dns.query
import dns.rcode
import dns.rdatatype
import dns.resolver

from .answer import RawAnswer

logger = logging.getLogger("netadns.engine")

Completion = Callable[[Optional[RawAnswer], Optional[str]], None]

# RFC 8914 Extended DNS Error info-codes that report a DNSSEC validation
# failure. A validating upstream answers SERVFAIL carrying one of these.
_DNSSEC_EDE_CODES: Dict[int, str] = {
    1: "unsupported DNSKEY algorithm",
    2: "unsupported DS digest type",
    5: "DNSSEC indeterminate",
    6: "DNSSEC bogus",
    7: "signature expired",
    8: "signature not yet valid",
    9: "DNSKEY missing",
    10: "RRSIGs missing",
    11: "no zone key bit set",
    12: "NSEC missing",
}

_MAX_CNAME_CHAIN = 16


class ResolverEngine(Protocol):
    """Capability set the front-end requires from a resolver engine.

    Contract:
      - resolve_async() never invokes the completion synchronously; results
        are delivered from process() only.
      - A canceled handle never has its completion invoked.
      - cancel() on an unknown or finished handle is a no-op.
    """

    def fileno(self) -> int: ...

    def resolve_async(
        self, callback: Completion, qname: str, rrtype: int, rrclass: int
    ) -> Tuple[Optional[int], Optional[str]]: ...

    def resolve(
        self, qname: str, rrtype: int, rrclass: int
    ) -> Tuple[Optional[RawAnswer], Optional[str]]: ...

    def cancel(self, handle: int) -> None: ...

    def process(self) -> int: ...

    def close(self) -> None: ...


def parse_nameserver(address: str, default_port: int = 53) -> Tuple[str, int]:
    """Brief: Split an 'address' or 'address@port' nameserver string.

    Inputs:
      - address: Nameserver address, optionally suffixed with '@port'.
      - default_port: Port used when none is given.

    Outputs:
      - (host, port) tuple.

    Raises:
      - ValueError: When the host is not an IP address or the port is not an
        integer in 1..65535.

    Example:
      >>> parse_nameserver('9.9.9.9@5353')
      ('9.9.9.9', 5353)
    """

    text = str(address).strip()
    host, sep, port_text = text.rpartition("@")
    if not sep:
        host, port_text = text, str(default_port)
    if not dns.inet.is_address(host.split("%", 1)[0]):
        raise ValueError("invalid nameserver address in %r" % address)
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError("invalid nameserver port in %r" % address) from None
    if not 0 < port <= 0xFFFF:
        raise ValueError("invalid nameserver port in %r" % address)
    return host, port


def _bogus_reason(response: dns.message.Message) -> Optional[str]:
    """Brief: Derive a DNSSEC failure reason from EDE options, if any."""

    for opt in getattr(response, "options", None) or ():
        if int(getattr(opt, "otype", 0)) != int(dns.edns.OptionType.EDE):
            continue
        code = int(getattr(opt, "code", -1))
        if code not in _DNSSEC_EDE_CODES:
            continue
        text = getattr(opt, "text", None)
        return str(text) if text else _DNSSEC_EDE_CODES[code]
    return None


def response_to_raw(
    response: dns.message.Message, qname: str, rrtype: int, rrclass: int
) -> RawAnswer:
    """Brief: Convert a dnspython response message into a RawAnswer.

    Inputs:
      - response: Parsed DNS response.
      - qname: Query name as submitted by the caller.
      - rrtype: Numeric record type queried.
      - rrclass: Numeric record class queried.

    Outputs:
      - RawAnswer: rdata payloads of the final RRset after following any
        CNAME chain in the answer section, with security flags taken from
        the AD bit (secure) and DNSSEC-related EDE options (bogus).
    """

    owner = dns.name.from_text(qname)
    canon = owner
    data: List[bytes] = []
    ttl: Optional[int] = None
    for _ in range(_MAX_CNAME_CHAIN):
        rrset = response.get_rrset(response.answer, canon, rrclass, rrtype)
        if rrset is not None:
            data = [rd.to_wire() for rd in rrset]
            ttl = int(rrset.ttl)
            break
        if rrtype == dns.rdatatype.CNAME:
            break
        cname = response.get_rrset(
            response.answer, canon, rrclass, dns.rdatatype.CNAME
        )
        if cname is None or len(cname) == 0:
            break
        canon = cname[0].target

    rcode = int(response.rcode())
    bogus = _bogus_reason(response)
    return RawAnswer(
        qname=qname,
        qtype=int(rrtype),
        qclass=int(rrclass),
        rcode=rcode,
        data=tuple(data),
        secure=bool(response.flags & dns.flags.AD) and bogus is None,
        bogus=bogus,
        canonname=canon.to_text() if canon != owner else None,
        nxdomain=rcode == dns.rcode.NXDOMAIN,
        havedata=bool(data),
        ttl=ttl,
    )


class DnspythonEngine:
    """Stub resolver engine built on dnspython with a worker thread pool.

    Inputs (constructor):
      - config: Mapping of engine options; missing keys take the values in
        DnspythonEngine.defaults:
          * resolvconf: resolv.conf path (None uses the system configuration)
          * forward: list of 'address[@port]' nameservers, overrides resolvconf
          * timeout_ms: per-nameserver exchange timeout
          * dnssec: request DNSSEC records (DO) and authenticated data (AD)
          * edns_payload: advertised EDNS(0) UDP payload size
          * threads: worker thread count

    Outputs:
      - ResolverEngine implementation whose fileno() becomes readable when
        completions are waiting for process().
    """

    defaults: Dict[str, Any] = {
        "resolvconf": None,
        "forward": None,
        "timeout_ms": 2000,
        "dnssec": True,
        "edns_payload": 1232,
        "threads": 4,
    }

    def __init__(self, config: Optional[Mapping[str, Any]] = None) -> None:
        cfg = dict(self.defaults)
        for key, value in (config or {}).items():
            if value is not None:
                cfg[key] = value
        self._cfg = cfg
        self._timeout = max(1, int(cfg["timeout_ms"])) / 1000.0
        self._dnssec = bool(cfg["dnssec"])
        self._payload = int(cfg["edns_payload"])
        self._nameservers = self._load_nameservers(cfg)

        self._executor = ThreadPoolExecutor(
            max_workers=max(1, int(cfg["threads"])),
            thread_name_prefix="netadns-engine",
        )
        self._rsock, self._wsock = socket.socketpair()
        self._rsock.setblocking(False)
        self._lock = threading.Lock()
        self._done: Deque[Tuple[int, Optional[RawAnswer], Optional[str]]] = deque()
        # Only touched from the thread that calls resolve_async/process/cancel.
        self._pending: Dict[int, Tuple[Completion, Future]] = {}
        self._next_handle = 0
        self._closed = False

    def __repr__(self) -> str:
        return "<DnspythonEngine nameservers=%s pending=%d>" % (
            ",".join("%s@%d" % ns for ns in self._nameservers),
            len(self._pending),
        )

    @property
    def nameservers(self) -> List[Tuple[str, int]]:
        return list(self._nameservers)

    @staticmethod
    def _load_nameservers(cfg: Mapping[str, Any]) -> List[Tuple[str, int]]:
        forward = cfg.get("forward")
        if forward:
            if isinstance(forward, str):
                forward = [forward]
            return [parse_nameserver(ns) for ns in forward]

        resolvconf = cfg.get("resolvconf")
        try:
            if resolvconf:
                stub = dns.resolver.Resolver(filename=str(resolvconf))
            else:
                stub = dns.resolver.Resolver()
        except dns.resolver.NoResolverConfiguration as exc:
            logger.warning("No usable resolver configuration: %s", exc)
            return []
        return [parse_nameserver(str(ns), stub.port) for ns in stub.nameservers]

    def fileno(self) -> int:
        return self._rsock.fileno()

    def _make_query(self, qname: str, rrtype: int, rrclass: int) -> dns.message.Message:
        query = dns.message.make_query(
            qname,
            rrtype,
            rrclass,
            use_edns=0,
            want_dnssec=self._dnssec,
            payload=self._payload,
        )
        if self._dnssec:
            query.flags |= dns.flags.AD
        return query

    def _exchange(
        self, query: dns.message.Message, qname: str, rrtype: int, rrclass: int
    ) -> Tuple[Optional[RawAnswer], Optional[str]]:
        """Brief: Try each nameserver in order until one answers.

        Outputs:
          - (RawAnswer, None) on the first response, else (None, last error).
        """

        if not self._nameservers:
            return None, "no nameservers configured"
        error = "no response"
        for host, port in self._nameservers:
            try:
                response, _ = dns.query.udp_with_fallback(
                    query, host, timeout=self._timeout, port=port
                )
            except (dns.exception.DNSException, OSError) as exc:
                error = "%s@%d: %s" % (host, port, str(exc) or exc.__class__.__name__)
                logger.debug("Exchange with %s@%d failed: %s", host, port, exc)
                continue
            return response_to_raw(response, qname, rrtype, rrclass), None
        return None, error

    def _safe_exchange(
        self, query: dns.message.Message, qname: str, rrtype: int, rrclass: int
    ) -> Tuple[Optional[RawAnswer], Optional[str]]:
        try:
            return self._exchange(query, qname, rrtype, rrclass)
        except Exception as exc:
            logger.exception("Query for %s failed unexpectedly", qname)
            return None, "%s: %s" % (exc.__class__.__name__, exc)

    def _run(self, handle: int, query: dns.message.Message, qname: str, rrtype: int, rrclass: int) -> None:
        result = self._safe_exchange(query, qname, rrtype, rrclass)
        with self._lock:
            if self._closed:
                return
            self._done.append((handle, result[0], result[1]))
        try:
            self._wsock.send(b"\0")
        except OSError:
            # Socket closed by close() racing this worker.
            pass

    def resolve_async(
        self, callback: Completion, qname: str, rrtype: int, rrclass: int
    ) -> Tuple[Optional[int], Optional[str]]:
        """Brief: Start a query on the worker pool.

        Outputs:
          - (handle, None) when accepted, (None, error) when rejected (closed
            engine or malformed query name).
        """

        if self._closed:
            return None, "resolver context closed"
        try:
            query = self._make_query(qname, rrtype, rrclass)
        except dns.exception.DNSException as exc:
            return None, "%s: %s" % (exc.__class__.__name__, exc)

        self._next_handle += 1
        handle = self._next_handle
        future = self._executor.submit(self._run, handle, query, qname, rrtype, rrclass)
        self._pending[handle] = (callback, future)
        return handle, None

    def resolve(
        self, qname: str, rrtype: int, rrclass: int
    ) -> Tuple[Optional[RawAnswer], Optional[str]]:
        """Brief: Blocking query on the calling thread."""

        if self._closed:
            return None, "resolver context closed"
        try:
            query = self._make_query(qname, rrtype, rrclass)
        except dns.exception.DNSException as exc:
            return None, "%s: %s" % (exc.__class__.__name__, exc)
        return self._safe_exchange(query, qname, rrtype, rrclass)

    def cancel(self, handle: int) -> None:
        entry = self._pending.pop(handle, None)
        if entry is not None:
            entry[1].cancel()

    def process(self) -> int:
        """Brief: Deliver queued completions; returns the number delivered."""

        try:
            while self._rsock.recv(4096):
                pass
        except (BlockingIOError, InterruptedError):
            pass
        with self._lock:
            done = list(self._done)
            self._done.clear()
        delivered = 0
        for handle, raw, err in done:
            entry = self._pending.pop(handle, None)
            if entry is None:
                continue
            entry[0](raw, err)
            delivered += 1
        return delivered

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._done.clear()
        self._pending.clear()
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._rsock.close()
        self._wsock.close()
