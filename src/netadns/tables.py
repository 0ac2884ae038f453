"""Symbolic DNS code tables and per-type record parsers.

Brief:
  Thin layer over dnslib's QTYPE/CLASS/RCODE bimaps and RDMAP parser map.
  Numeric-to-symbolic lookups are total: codes missing from dnslib's tables
  render in the RFC 3597 generic form (TYPE65534, CLASS42, RCODE23) instead
  of raising. Symbolic-to-numeric lookups raise UnknownCodeError for tokens
  that are neither a known mnemonic nor a generic form.

Inputs:
  - Integer codes or string mnemonics.

Outputs:
  - Mnemonic strings, integer codes and parser callables.
"""

from __future__ import annotations

import re
from typing import Callable, Dict

from dnslib.dns import CLASS, QTYPE, RCODE, RD, RDMAP
from dnslib.label import DNSBuffer

from .errors import UnknownCodeError

Parser = Callable[[bytes], RD]

_GENERIC_TYPE = re.compile(r"TYPE(\d{1,5})")
_GENERIC_CLASS = re.compile(r"CLASS(\d{1,5})")

# dnslib keys its reverse maps by the mnemonic exactly as spelled in the
# forward map ("Hesiod", "None"); index them upper-cased for lookups.
_TYPE_CODES: Dict[str, int] = {str(k).upper(): v for k, v in QTYPE.reverse.items()}
_CLASS_CODES: Dict[str, int] = {str(k).upper(): v for k, v in CLASS.reverse.items()}


def type_name(code: int) -> str:
    """Brief: Return the mnemonic for a numeric record type (A, MX, TYPE65534)."""

    name = QTYPE.forward.get(int(code))
    return str(name) if name is not None else "TYPE%d" % int(code)


def class_name(code: int) -> str:
    """Brief: Return the mnemonic for a numeric record class (IN, CH, CLASS42)."""

    name = CLASS.forward.get(int(code))
    return str(name) if name is not None else "CLASS%d" % int(code)


def rcode_name(code: int) -> str:
    """Brief: Return the mnemonic for a response code (NOERROR, NXDOMAIN, ...)."""

    name = RCODE.forward.get(int(code))
    return str(name) if name is not None else "RCODE%d" % int(code)


def _lookup_code(
    table: Dict[str, int], generic: "re.Pattern[str]", label: str, token: str
) -> int:
    key = str(token).strip().upper()
    if key in table:
        return table[key]
    m = generic.fullmatch(key)
    if m and int(m.group(1)) <= 0xFFFF:
        return int(m.group(1))
    raise UnknownCodeError("unknown %s: %r" % (label, token))


def type_code(name: str) -> int:
    """Brief: Map a record type mnemonic to its numeric code.

    Inputs:
      - name: Case-insensitive mnemonic ('a', 'AAAA') or generic 'TYPE<n>'.

    Outputs:
      - int: Numeric record type.

    Raises:
      - UnknownCodeError: When the token is not recognized.
    """

    return _lookup_code(_TYPE_CODES, _GENERIC_TYPE, "record type", name)


def class_code(name: str) -> int:
    """Brief: Map a record class mnemonic ('IN', 'ch', 'CLASS3') to its code.

    Raises:
      - UnknownCodeError: When the token is not recognized.
    """

    return _lookup_code(_CLASS_CODES, _GENERIC_CLASS, "record class", name)


def get_parser(qtype: str) -> Parser:
    """Brief: Return a parser turning raw rdata bytes into a dnslib RD value.

    Inputs:
      - qtype: Record type mnemonic as produced by type_name().

    Outputs:
      - Callable[[bytes], RD]: Parser for that type. Types without a dedicated
        dnslib class use the generic RD parser, which keeps the payload opaque
        and renders it in RFC 3597 '\\# <len> <hex>' form.

    Notes:
      - Payloads must be uncompressed rdata as carried in a resolver result;
        embedded names are decoded relative to the payload itself.
    """

    rd_class = RDMAP.get(str(qtype).upper(), RD)

    def parse(raw: bytes) -> RD:
        return rd_class.parse(DNSBuffer(bytes(raw)), len(raw))

    return parse


def parse_opaque(raw: bytes) -> RD:
    """Brief: Parse rdata with the generic RD parser (never type-specific)."""

    return RD.parse(DNSBuffer(bytes(raw)), len(raw))
