import pytest

from migsim.trace import (
    MAX_NR_TIERS,
    NR_REQ_TYPE,
    PAGE_SIZE,
    SimConfig,
    SimStats,
    TraceRequest,
    TraceType,
    parse_trace_addr,
    parse_trace_line,
    parse_trace_type,
)


@pytest.mark.parametrize(
    "line, expected",
    [
        ("R 0x1000", TraceType.LOAD),
        ("W 0x1000", TraceType.STORE),
        ("X 0x1000", TraceType.OTHERS),
        ("r 0x1000", TraceType.OTHERS),
        ("", TraceType.OTHERS),
    ],
)
def test_parse_trace_type(line, expected):
    assert parse_trace_type(line) == expected


@pytest.mark.parametrize(
    "line, value",
    [
        ("R 0x1000", 1),
        ("W 0x1000", 2),
        ("X 0x1000", NR_REQ_TYPE - 1),
    ],
)
def test_parsed_type_values_follow_enum_order(line, value):
    assert parse_trace_type(line).value == value


def test_parse_addr_with_prefix():
    assert parse_trace_addr("R 0x2000") == 0x2000


def test_parse_addr_without_prefix():
    assert parse_trace_addr("W 1f") == 0x1F


def test_parse_addr_skips_leading_space():
    assert parse_trace_addr("R   0xabc") == 0xABC


def test_parse_addr_stops_at_non_hex():
    assert parse_trace_addr("R 0x12zz") == 0x12


def test_parse_addr_without_digits_is_zero():
    assert parse_trace_addr("R zz") == 0


def test_parse_addr_prefix_without_digits_reads_zero():
    assert parse_trace_addr("R 0xg") == 0


def test_parse_addr_saturates_on_overflow():
    assert parse_trace_addr("R " + "f" * 20) == 2**64 - 1


def test_parse_addr_negative_wraps():
    assert parse_trace_addr("R -1") == 2**64 - 1


@pytest.mark.parametrize("line", ["", "R"])
def test_parse_addr_too_short(line):
    with pytest.raises(ValueError):
        parse_trace_addr(line)


def test_parse_line_gives_page_number():
    req = parse_trace_line("W 0x5000")
    assert req == TraceRequest(addr=5, type=TraceType.STORE, tier=-1)


def test_parse_line_same_page_for_offsets_within_page():
    base = parse_trace_line("R 0x3000")
    inner = parse_trace_line(f"R {hex(0x3000 + PAGE_SIZE - 1)}")
    assert base.addr == inner.addr
    assert parse_trace_line(f"R {hex(0x3000 + PAGE_SIZE)}").addr == base.addr + 1


def test_parse_line_other_kind_keeps_address():
    req = parse_trace_line("A 0x4000")
    assert req.type is TraceType.OTHERS
    assert req.addr == parse_trace_line("R 0x4000").addr


def test_sim_config_tier_lists_are_independent():
    first = SimConfig()
    second = SimConfig()
    first.tier_cap[0] = 7
    assert second.tier_cap == [0] * MAX_NR_TIERS
    assert len(first.tier_lat_4kb_writes) == MAX_NR_TIERS


def test_sim_stats_counts_by_type():
    stats = SimStats()
    stats.sampled_traces[TraceType.LOAD] += 1
    stats.sampled_traces[TraceType.TOTAL] += 1
    assert stats.sampled_traces[TraceType.LOAD] == stats.sampled_traces[TraceType.TOTAL]
    assert len(stats.org_traces) == NR_REQ_TYPE
    assert sum(stats.org_traces) == 0