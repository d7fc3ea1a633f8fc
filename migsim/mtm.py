"""Frequency-histogram placement: the hottest pages fill the fastest tiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

from .base import CapacityError, TierSimulator
from .trace import MAX_NR_TIERS, SimConfig

DEMOTION_PATH: tuple[tuple[int, int], ...] = ((0, 1), (1, 2), (2, 3))
COOLING_PERCENT = 50


@dataclass(eq=False)
class _MtmPage:
    addr: int
    tier: int
    freq: int = 0
    target: int = -1


class Mtm(TierSimulator):
    """Ranks pages by access count and moves each to the tier its rank earns.

    Every second migration period the counts are halved.
    """

    label = "MTM"
    tag = "mtm"

    def __init__(self, config: SimConfig) -> None:
        super().__init__(config)
        self.hist: dict[int, dict[int, _MtmPage]] = {}

    def _select_mode(self, config: SimConfig) -> int:
        # The mode is taken from the AutoTiering setting, as the schedule names expect.
        return config.do_at

    def _make_page(self, addr: int, tier: int) -> _MtmPage:
        return _MtmPage(addr, tier)

    def _touch(self, page: _MtmPage, is_new: bool) -> None:
        old_bin = self.hist.get(page.freq)
        if old_bin is not None:
            old_bin.pop(page.addr, None)
            if not old_bin:
                del self.hist[page.freq]
        page.freq += 1
        self.hist.setdefault(page.freq, {}).setdefault(page.addr, page)

    def _clear_structures(self) -> None:
        self.hist.clear()

    def _after_request(self, index: int) -> None:
        super()._after_request(index)
        if index != 0 and index % (self.mig_period * 2) == 0:
            self.cool()

    def _hottest_first(self) -> Iterator[_MtmPage]:
        """Pages by descending count, ascending address within a count."""
        for freq in sorted(self.hist, reverse=True):
            bucket = self.hist[freq]
            for addr in sorted(bucket):
                yield bucket[addr]

    def cool(self) -> None:
        """Halve every page's access count."""
        cooled: dict[int, dict[int, _MtmPage]] = {}
        for page in list(self._hottest_first()):
            freq = page.freq * COOLING_PERCENT // 100
            page.freq = freq
            cooled.setdefault(freq, {}).setdefault(page.addr, page)
        self.hist = cooled

    def _promotion_candidates(self) -> list[_MtmPage]:
        """Pages that sit below the tier their rank entitles them to."""
        target = 0
        scanned = 0
        chosen: list[_MtmPage] = []
        for page in self._hottest_first():
            if scanned >= self.tier_cap[target]:
                target += 1
                if target >= self.nr_tiers:
                    raise CapacityError("more pages ranked than the tiers can hold")
                scanned = 0
            if page.tier > target:
                page.target = target
                chosen.append(page)
            scanned += 1
        return chosen

    def _promote(self, pages: list[_MtmPage]) -> int:
        moved = 0
        for page in pages:
            if moved >= self.mig_traffic:
                break
            src, dst = page.tier, page.target
            if src == dst:
                raise RuntimeError(f"page {page.addr} is already in tier {dst}")
            if src == -1 or dst == -1:
                raise RuntimeError(f"page {page.addr} has no source or target tier")
            self._move(page, dst)
            page.target = -1
            moved += 1
        return moved

    def _demotion_candidates(self) -> list[list[_MtmPage]]:
        """Per tier, its pages with the coldest last."""
        stacks: list[list[_MtmPage]] = [[] for _ in range(MAX_NR_TIERS)]
        for page in self._hottest_first():
            stacks[page.tier].append(page)
        return stacks

    def _demote(self, stacks: list[list[_MtmPage]]) -> None:
        margin = self._reserve(0)
        for src, dst in DEMOTION_PATH:
            if dst >= self.nr_tiers:
                continue
            stack = stacks[src]
            while self.tier_size[src] > self.tier_cap[src] - margin and stack:
                if dst == 3 and self.tier_cap[3] <= self.tier_size[3]:
                    raise CapacityError("tier 3 is full")
                self._move(stack.pop(), dst)
        for tier in range(self.nr_tiers):
            if self.tier_size[tier] > self.tier_cap[tier]:
                raise CapacityError(f"tier {tier} holds more pages than it can")

    def migrate(self) -> None:
        if self._promote(self._promotion_candidates()) == 0:
            return
        self._demote(self._demotion_candidates())