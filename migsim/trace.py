"""Trace records, simulator configuration and trace-line parsing."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

PAGE_SIZE = 4096
FRAME_SIZE = 4096
TRACE_SAMPLE = 10000
MAX_NR_TIERS = 4
NR_REQ_TYPE = 6

_U64_MAX = (1 << 64) - 1
_HEX_DIGITS = "0123456789abcdefABCDEF"
_C_SPACE = " \t\n\v\f\r"


class TraceType(enum.IntEnum):
    """Kind of a trace record; TOTAL indexes the overall counters."""

    TOTAL = 0
    LOAD = 1
    STORE = 2
    ALLOC = 3
    FREE = 4
    OTHERS = 5


@dataclass
class TraceRequest:
    """One memory access: page number, access kind and the tier it hit."""

    addr: int
    type: TraceType
    tier: int = -1


def _per_tier() -> list[int]:
    return [0] * MAX_NR_TIERS


@dataclass
class SimConfig:
    """Settings of one simulation run."""

    trace_file: str = ""
    sampled_file: str = ""
    sched_file: str = ""

    nr_org_pages: int = 0
    nr_org_traces: int = 0
    trace_sampling_ratio: int = 0
    nr_sampled_pages: int = 0
    nr_sampled_traces: int = 0

    nr_tiers: int = 0
    tier_cap_scale: int = 0
    tier_cap_ratio: list[int] = field(default_factory=_per_tier)
    total_cap: int = 0
    tier_cap: list[int] = field(default_factory=_per_tier)

    tier_lat_loads: list[int] = field(default_factory=_per_tier)
    tier_lat_stores: list[int] = field(default_factory=_per_tier)
    tier_lat_4kb_reads: list[int] = field(default_factory=_per_tier)
    tier_lat_4kb_writes: list[int] = field(default_factory=_per_tier)

    mig_period: int = 0
    mig_traffic: int = 0
    mig_overhead: int = 0

    do_an: int = 0
    do_at: int = 0
    do_mtm: int = 0
    do_migopt: int = 0
    do_analysis: int = 0


def _per_type() -> list[int]:
    return [0] * NR_REQ_TYPE


@dataclass
class SimStats:
    """Counts of original and sampled trace records, indexed by TraceType."""

    org_traces: list[int] = field(default_factory=_per_type)
    sampled_traces: list[int] = field(default_factory=_per_type)


def parse_trace_type(line: str) -> TraceType:
    """Classify a trace line by its first character."""
    first = line[:1]
    if first == "R":
        return TraceType.LOAD
    if first == "W":
        return TraceType.STORE
    return TraceType.OTHERS


def _parse_hex_u64(text: str) -> int:
    """Parse an unsigned hexadecimal prefix the way the C library does."""
    text = text.lstrip(_C_SPACE)
    negative = False
    if text[:1] in ("+", "-"):
        negative = text[0] == "-"
        text = text[1:]
    if text[:2] in ("0x", "0X") and text[2:3] and text[2] in _HEX_DIGITS:
        text = text[2:]

    digits = []
    for ch in text:
        if ch not in _HEX_DIGITS:
            break
        digits.append(ch)
    if not digits:
        return 0

    value = int("".join(digits), 16)
    if value > _U64_MAX:
        return _U64_MAX
    return (-value) & _U64_MAX if negative else value


def parse_trace_addr(line: str) -> int:
    """Return the byte address written in hex after the two-character prefix."""
    if len(line) < 2:
        raise ValueError(f"trace line too short: {line!r}")
    return _parse_hex_u64(line[2:])


def parse_trace_line(line: str) -> TraceRequest:
    """Turn a trace line into a request for the page it touches."""
    addr = parse_trace_addr(line) // PAGE_SIZE
    return TraceRequest(addr=addr, type=parse_trace_type(line), tier=-1)