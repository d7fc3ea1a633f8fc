"""Command line: sample a trace and replay it through the placement policies."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable

from .autonuma import AutoNuma
from .autotiering import AutoTiering
from .base import CapacityError, PerfResult, TierSimulator
from .config import ConfigError, compute_tier_caps, format_config, load_config
from .mtm import Mtm
from .trace import TRACE_SAMPLE, SimConfig, SimStats, TraceRequest, TraceType, parse_trace_line

DEFAULT_CONFIG = "sim_cfg/default.cfg"
_PROGRESS_EVERY = 100000
_ACCESS_TYPES = (TraceType.LOAD, TraceType.STORE)


def sample_hit(addr: int, ratio: int) -> bool:
    """Whether page ``addr`` falls in a sample of ``ratio`` per ten thousand."""
    if ratio == TRACE_SAMPLE:
        return True
    return addr % TRACE_SAMPLE < ratio


def _lines(handle) -> Iterable[str]:
    for line in handle:
        yield line[:-1] if line.endswith("\n") else line


def read_original_trace(config: SimConfig, stats: SimStats) -> list[TraceRequest]:
    """Sample the original trace, writing the sampled lines to the sampled file."""
    org_pages: set[int] = set()
    sampled_pages: set[int] = set()
    traces: list[TraceRequest] = []

    with open(config.trace_file, encoding="utf-8", newline="\n") as source, open(
        config.sampled_file, "w", encoding="utf-8", newline="\n"
    ) as sampled:
        for count, line in enumerate(_lines(source), start=1):
            if count % _PROGRESS_EVERY == 0:
                print(f"\r{count} processed...", end="", file=sys.stderr)
            request = parse_trace_line(line)
            if request.type not in _ACCESS_TYPES:
                continue
            if not sample_hit(request.addr, config.trace_sampling_ratio):
                org_pages.add(request.addr)
                stats.org_traces[request.type] += 1
                stats.org_traces[TraceType.TOTAL] += 1
            else:
                sampled_pages.add(request.addr)
                stats.sampled_traces[request.type] += 1
                stats.sampled_traces[TraceType.TOTAL] += 1
                traces.append(request)
                sampled.write(line + "\n")

    config.nr_org_pages = len(org_pages)
    config.nr_org_traces = stats.sampled_traces[TraceType.TOTAL]
    config.nr_sampled_pages = len(sampled_pages)
    config.nr_sampled_traces = stats.sampled_traces[TraceType.TOTAL]
    return traces


def read_sampled_trace(config: SimConfig, stats: SimStats) -> list[TraceRequest]:
    """Load a previously written sampled trace."""
    sampled_pages: set[int] = set()
    traces: list[TraceRequest] = []
    with open(config.sampled_file, encoding="utf-8", newline="\n") as source:
        for line in _lines(source):
            request = parse_trace_line(line)
            if request.type not in _ACCESS_TYPES:
                continue
            sampled_pages.add(request.addr)
            stats.sampled_traces[request.type] += 1
            stats.sampled_traces[TraceType.TOTAL] += 1
            traces.append(request)

    config.nr_sampled_pages = len(sampled_pages)
    config.nr_sampled_traces = stats.sampled_traces[TraceType.TOTAL]
    return traces


def _sampled_file_ready(config: SimConfig) -> bool:
    path = Path(config.sampled_file)
    return path.is_file() and path.stat().st_size > 0


def read_trace(config: SimConfig, stats: SimStats) -> list[TraceRequest]:
    """Read the sampled trace, producing it from the original one if needed."""
    if _sampled_file_ready(config):
        print("Sampled trace file already exists. No need to read the trace file again.")
        return read_sampled_trace(config, stats)
    print(f"Reading original trace file: {config.trace_file}")
    return read_original_trace(config, stats)


def run_simulation(
    traces: Iterable[TraceRequest], config: SimConfig
) -> dict[str, list[PerfResult]]:
    """Replay the traces through every enabled policy; results keyed by policy tag."""
    enabled = [
        cls
        for flag, cls in ((config.do_an, AutoNuma), (config.do_at, AutoTiering), (config.do_mtm, Mtm))
        if flag > 0
    ]
    simulators: list[TierSimulator] = [cls(config) for cls in enabled]
    if not simulators:
        return {}

    for trace in traces:
        if trace.type in _ACCESS_TYPES:
            for simulator in simulators:
                simulator.add_trace(trace)

    Path(config.sched_file).parent.mkdir(parents=True, exist_ok=True)
    return {simulator.tag: simulator.simulate() for simulator in simulators}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="migsim", description="Simulate page placement over memory tiers."
    )
    parser.add_argument(
        "config", nargs="?", default=DEFAULT_CONFIG, help="simulator configuration file"
    )
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
        stats = SimStats()
        traces = read_trace(config, stats)
        compute_tier_caps(config)
        print(format_config(config))
        run_simulation(traces, config)
    except (ConfigError, CapacityError, OSError, ValueError, RuntimeError) as exc:
        print(f"migsim: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())