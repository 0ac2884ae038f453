"""Answer normalization: raw resolver results to printable answers.

Brief:
  prep_answer() turns the engine's RawAnswer (numeric codes, raw rdata
  payloads, DNSSEC flags) into a NormalizedAnswer carrying symbolic
  status/class/type names and typed Record wrappers. Answers flagged bogus
  by DNSSEC validation keep their metadata but lose every record.

Inputs:
  - RawAnswer instances produced by a ResolverEngine.

Outputs:
  - NormalizedAnswer instances handed to query callers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Sequence, Tuple, overload

from dnslib.dns import DNSError, RD

from .tables import class_name, get_parser, parse_opaque, rcode_name, type_name

logger = logging.getLogger("netadns.answer")


@dataclass(frozen=True)
class RawAnswer:
    """Result record produced by the resolver engine.

    Inputs:
      - qname: Query name as submitted.
      - qtype: Numeric record type.
      - qclass: Numeric record class.
      - rcode: Numeric DNS response code.
      - data: Raw rdata payloads (uncompressed wire form) in engine order.
      - secure: True when DNSSEC validation succeeded for the answer.
      - bogus: Validation failure reason when the answer is bogus, else None.
      - canonname: Canonical name after following CNAMEs, when known.
      - nxdomain: True when the name does not exist.
      - havedata: True when the answer carries at least one record.
      - ttl: TTL of the answer RRset in seconds, when known.

    Outputs:
      - Immutable input to prep_answer().
    """

    qname: str
    qtype: int
    qclass: int
    rcode: int
    data: Tuple[bytes, ...] = ()
    secure: bool = False
    bogus: Optional[str] = None
    canonname: Optional[str] = None
    nxdomain: bool = False
    havedata: bool = False
    ttl: Optional[int] = None


class Record:
    """One parsed resource record belonging to a NormalizedAnswer.

    The parsed rdata is exposed under the lower-cased record type name
    (``record.a``, ``record.mx``) and as ``record.rdata``. Attributes not
    defined on the record resolve against the owning answer, so
    ``record.qname`` and ``record.status`` work as expected.
    """

    __slots__ = ("_answer", "_field", "_rdata")

    def __init__(self, answer: "NormalizedAnswer", field: str, rdata: RD) -> None:
        self._answer = answer
        self._field = field
        self._rdata = rdata

    @property
    def rdata(self) -> RD:
        return self._rdata

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        if name == self._field:
            return self._rdata
        return getattr(self._answer, name)

    def __str__(self) -> str:
        return str(self._rdata)

    def __repr__(self) -> str:
        return "<Record %s %s>" % (self._answer.type_name, self._rdata)


class NormalizedAnswer(Sequence[Record]):
    """Self-describing answer for one completed query.

    Inputs (constructor):
      - raw: RawAnswer the answer was derived from.

    Outputs:
      - Immutable sequence of Record values with symbolic metadata. str()
        renders a header line plus one tab-separated line per record; the
        rendering is computed on first use and cached.
    """

    def __init__(self, raw: RawAnswer) -> None:
        self.raw = raw
        self.qname = raw.qname
        self.qtype = raw.qtype
        self.qclass = raw.qclass
        self.rcode = raw.rcode
        self.secure = raw.secure
        self.bogus = raw.bogus
        self.canonname = raw.canonname
        self.nxdomain = raw.nxdomain
        self.havedata = raw.havedata
        self.ttl = raw.ttl
        self.status = rcode_name(raw.rcode)
        self.class_name = class_name(raw.qclass)
        self.type_name = type_name(raw.qtype)
        self._records: Tuple[Record, ...] = ()
        self._string: Optional[str] = None

    @overload
    def __getitem__(self, index: int) -> Record: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[Record]: ...

    def __getitem__(self, index):
        return self._records[index]

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    @property
    def records(self) -> Tuple[Record, ...]:
        return self._records

    @property
    def security(self) -> str:
        """Brief: 'Secure', the bogus reason, or 'Insecure' for unsigned data."""

        if self.secure:
            return "Secure"
        if self.bogus is not None:
            return self.bogus or "Bogus"
        return "Insecure"

    def __str__(self) -> str:
        if self._string is not None:
            return self._string
        header = "Status: %s" % self.status
        if self.secure:
            header += ", Secure"
        elif self.bogus is not None:
            header += ", Bogus: %s" % self.bogus
        lines = [header]
        for record in self._records:
            lines.append(
                "%s\t%s\t%s\t%s"
                % (self.qname, self.class_name, self.type_name, record)
            )
        self._string = "\n".join(lines)
        return self._string

    def __repr__(self) -> str:
        return "<NormalizedAnswer %s %s %s %s, %d records>" % (
            self.qname,
            self.class_name,
            self.type_name,
            self.status,
            len(self._records),
        )


def prep_answer(raw: Optional[RawAnswer]) -> Optional[NormalizedAnswer]:
    """Brief: Normalize a RawAnswer, discarding records of bogus answers.

    Inputs:
      - raw: RawAnswer from the engine, or None when the query failed.

    Outputs:
      - NormalizedAnswer, or None when raw is None.
    """

    if raw is None:
        return None

    answer = NormalizedAnswer(raw)
    if raw.bogus is not None:
        # Discard bogus data.
        return answer

    field = answer.type_name.lower()
    parser = get_parser(answer.type_name)
    records: List[Record] = []
    for payload in raw.data:
        try:
            rdata = parser(payload)
        except DNSError as exc:
            logger.warning(
                "Unparseable %s record for %s (%d bytes): %s",
                answer.type_name,
                raw.qname,
                len(payload),
                exc,
            )
            rdata = parse_opaque(payload)
        records.append(Record(answer, field, rdata))
    answer._records = tuple(records)
    return answer
