"""Shared machinery for trace-driven tiered-memory placement simulators."""

from __future__ import annotations

import dataclasses
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Sequence

from .trace import MAX_NR_TIERS, SimConfig, TraceRequest, TraceType

NR_REV_DEMO = 5
DEFAULT_MIG_TRAFFIC = 1000
ALLOC_ORDERS: tuple[tuple[int, ...], ...] = (
    (0, 2, 1, 3),
    (1, 0, 2, 3),
    (2, 0, 1, 3),
    (0, 1, 2, 3),
)


class CapacityError(RuntimeError):
    """A tier cannot hold the pages the simulation puts in it."""


@dataclass(frozen=True)
class PerfResult:
    """Accumulated access, migration and allocation latency."""

    lat_acc: int
    lat_mig: int
    lat_alc: int


def _per_tier(values: Iterable[int], count: int) -> list[int]:
    """First ``count`` values, padded with zeros to one slot per tier."""
    head = list(values)[:count]
    return head + [0] * (MAX_NR_TIERS - len(head))


def build_schedule(traces: Sequence[TraceRequest], period: int) -> list[dict[int, int]]:
    """Page-to-tier placement per period; each period starts from the previous one."""
    if period <= 0:
        raise ValueError("period must be positive")
    schedule: list[dict[int, int]] = []
    for i, trace in enumerate(traces):
        index = i // period
        if index == len(schedule):
            schedule.append(dict(schedule[-1]) if schedule else {})
        schedule[index][trace.addr] = trace.tier
    return schedule


class TierSimulator(ABC):
    """Replays a page trace over capacity-limited tiers and counts the cost."""

    label = "SIM"
    tag = "sim"

    def __init__(self, config: SimConfig) -> None:
        if not 0 <= config.nr_tiers <= MAX_NR_TIERS:
            raise ValueError(f"number of tiers must be within 0..{MAX_NR_TIERS}")
        if config.mig_period <= 0:
            raise ValueError("migration period must be positive")
        count = config.nr_tiers
        self.nr_tiers = count
        self.mig_period = config.mig_period
        self.mig_traffic = (
            DEFAULT_MIG_TRAFFIC if config.mig_traffic == -1 else config.mig_traffic
        )
        self.mode = self._select_mode(config)
        self.sched_file = config.sched_file

        self.lat_loads = _per_tier(config.tier_lat_loads, count)
        self.lat_stores = _per_tier(config.tier_lat_stores, count)
        self.lat_4kb_reads = _per_tier(config.tier_lat_4kb_reads, count)
        self.lat_4kb_writes = _per_tier(config.tier_lat_4kb_writes, count)
        self.tier_cap = _per_tier(config.tier_cap, count)

        self.traces: list[TraceRequest] = []
        self.pages: dict[int, Any] = {}
        self.alloc_order: list[int] = [0] * count
        self.perf = PerfResult(0, 0, 0)
        self._zero_counters()

    # Hooks supplied by each policy.

    @abstractmethod
    def _select_mode(self, config: SimConfig) -> int:
        """Mode number this policy takes from the configuration."""

    @abstractmethod
    def _make_page(self, addr: int, tier: int) -> Any:
        """New page record placed in ``tier``."""

    @abstractmethod
    def _touch(self, page: Any, is_new: bool) -> None:
        """Update the policy's metadata after an access to ``page``."""

    @abstractmethod
    def migrate(self) -> None:
        """Run one migration round."""

    def _clear_structures(self) -> None:
        """Drop policy-specific metadata between runs."""

    def _after_request(self, index: int) -> None:
        if index != 0 and index % self.mig_period == 0:
            self.migrate()

    # Shared bookkeeping.

    def _zero_counters(self) -> None:
        self.tier_size = [0] * MAX_NR_TIERS
        self.nr_alloc = [0] * MAX_NR_TIERS
        self.nr_loads = [0] * MAX_NR_TIERS
        self.nr_stores = [0] * MAX_NR_TIERS
        self.nr_accesses = [0] * MAX_NR_TIERS
        self.nr_mig = [[0] * MAX_NR_TIERS for _ in range(MAX_NR_TIERS)]

    def _reserve(self, tier: int, rate: int = NR_REV_DEMO) -> int:
        """Pages kept free in ``tier``: ``rate`` percent of its capacity, rounded up."""
        return -(-self.tier_cap[tier] * rate // 100)

    def _free_pages(self) -> list[int]:
        free = [cap - size for cap, size in zip(self.tier_cap, self.tier_size)]
        for tier, value in enumerate(free):
            if value < 0:
                raise CapacityError(f"tier {tier} holds more pages than it can")
        return free

    def _move(self, page: Any, dst: int) -> None:
        src = page.tier
        page.tier = dst
        self.nr_mig[src][dst] += 1
        self.tier_size[src] -= 1
        self.tier_size[dst] += 1

    def _allocate_tier(self) -> int:
        tier = None
        for tier in self.alloc_order:
            if self.tier_size[tier] < self.tier_cap[tier]:
                return tier
        raise CapacityError(f"cannot alloc in {tier}")

    def _lookup(self, addr: int) -> tuple[Any, bool]:
        page = self.pages.get(addr)
        if page is not None:
            return page, False
        tier = self._allocate_tier()
        page = self._make_page(addr, tier)
        self.tier_size[tier] += 1
        self.nr_alloc[tier] += 1
        self.pages[addr] = page
        return page, True

    def _process(self, trace: TraceRequest) -> None:
        page, is_new = self._lookup(trace.addr)
        self._touch(page, is_new)
        if trace.type == TraceType.LOAD:
            self.nr_loads[page.tier] += 1
        else:
            self.nr_stores[page.tier] += 1
        self.nr_accesses[page.tier] += 1
        trace.tier = page.tier

    # Public interface.

    def add_trace(self, trace: TraceRequest) -> None:
        """Queue a copy of ``trace`` for the simulation."""
        self.traces.append(dataclasses.replace(trace))

    def run(self, alloc_order: Sequence[int]) -> PerfResult:
        """Replay every queued trace allocating pages in ``alloc_order``."""
        order = list(alloc_order)
        if len(order) < self.nr_tiers:
            raise ValueError("allocation order is shorter than the number of tiers")
        if any(not 0 <= tier < MAX_NR_TIERS for tier in order):
            raise ValueError("allocation order names an unknown tier")
        self.alloc_order = order[: self.nr_tiers]
        for index, trace in enumerate(self.traces):
            self._process(trace)
            self._after_request(index)
        self.perf = self.compute_perf()
        return self.perf

    def reset(self) -> None:
        """Forget all pages and counters, keeping the queued traces."""
        self._zero_counters()
        self.pages.clear()
        self._clear_structures()

    def compute_perf(self) -> PerfResult:
        tiers = range(self.nr_tiers)
        lat_acc = sum(
            self.nr_loads[i] * self.lat_loads[i] + self.nr_stores[i] * self.lat_stores[i]
            for i in tiers
        )
        lat_alc = sum(self.nr_alloc[i] * self.lat_4kb_writes[i] for i in tiers)
        lat_mig = sum(
            self.nr_mig[i][j] * (self.lat_4kb_reads[i] + self.lat_4kb_writes[j])
            for i in tiers
            for j in tiers
        )
        return PerfResult(lat_acc, lat_mig, lat_alc)

    def report(self) -> str:
        """Human-readable statistics of the last run."""
        tiers = range(self.nr_tiers)

        def row(values: Iterable[int]) -> str:
            return "".join(f"{value} " for value in values)

        lines = [
            "==========================",
            f"Printing {self.label} stats",
            f"mode: {int(self.mode)}",
            "alloc order: " + row(self.alloc_order),
            "lat_acc lat_mig lat_alc",
            f"{self.perf.lat_acc} {self.perf.lat_mig} {self.perf.lat_alc}",
            "alloc stat",
            row(self.nr_alloc[i] for i in tiers),
            "access stat",
            row(self.nr_accesses[i] for i in tiers),
            "mig traffic",
        ]
        lines.extend(row(self.nr_mig[i][j] for j in tiers) for i in tiers)
        return "\n".join(lines)

    def schedule_path(self) -> str:
        order = "".join(str(tier) for tier in self.alloc_order[: self.nr_tiers])
        return f"{self.sched_file}.{self.tag}_mode{int(self.mode)}.aorder{order}.sched"

    def write_schedule(self) -> str:
        """Write the per-period placement of the last run; return the file's path."""
        path = self.schedule_path()
        schedule = build_schedule(self.traces, self.mig_period)
        with Path(path).open("w", encoding="ascii") as out:
            for index, placement in enumerate(schedule):
                start = index * self.mig_period
                for addr in sorted(placement):
                    out.write(f"A {start} {addr} {placement[addr]} 0\n")
        return path

    def simulate(self) -> list[PerfResult]:
        """Run every standard allocation order, reporting and writing each schedule."""
        results = []
        for order in ALLOC_ORDERS:
            results.append(self.run(order))
            print(self.report())
            self.write_schedule()
            self.reset()
        return results