"""AutoNUMA-style promotion of recently used pages into the top tier."""

from __future__ import annotations

import enum
from collections import OrderedDict
from dataclasses import dataclass

from .base import NR_REV_DEMO, CapacityError, TierSimulator
from .trace import MAX_NR_TIERS, SimConfig


class AnMode(enum.IntEnum):
    """Migration behaviour of the AutoNUMA simulator."""

    BALANCE = 1
    TIER = 2
    NO_MIG = 3


_DEMOTION_TARGET = {0: 2, 1: 3}


@dataclass(eq=False)
class _AnPage:
    addr: int
    tier: int
    freq: int = 0


def _mru_first(lru: "OrderedDict[int, _AnPage]"):
    return reversed(lru.values())


class AutoNuma(TierSimulator):
    """Promotes recently used pages to tier 0 and demotes its least recent ones.

    LRU dictionaries keep the most recently used page at their end.
    """

    label = "AN"
    tag = "an"

    def __init__(self, config: SimConfig) -> None:
        super().__init__(config)
        self.lru: OrderedDict[int, _AnPage] = OrderedDict()
        self.tier_lru: list[OrderedDict[int, _AnPage]] = [
            OrderedDict() for _ in range(MAX_NR_TIERS)
        ]

    def _select_mode(self, config: SimConfig) -> int:
        return config.do_an

    def _make_page(self, addr: int, tier: int) -> _AnPage:
        return _AnPage(addr, tier)

    def _touch(self, page: _AnPage, is_new: bool) -> None:
        page.freq += 1
        for lru in (self.lru, self.tier_lru[page.tier]):
            lru[page.addr] = page
            lru.move_to_end(page.addr)

    def _clear_structures(self) -> None:
        self.lru.clear()
        for lru in self.tier_lru:
            lru.clear()

    def _promote(self, pages: list[_AnPage]) -> int:
        for page in pages:
            del self.tier_lru[page.tier][page.addr]
            self._move(page, 0)
            self.tier_lru[0][page.addr] = page
        return len(pages)

    def _demote(self, pages: list[_AnPage]) -> int:
        for page in pages:
            src = page.tier
            if src not in _DEMOTION_TARGET:
                raise RuntimeError(f"cannot demote a page from tier {src}")
            dst = _DEMOTION_TARGET[src]
            del self.tier_lru[src][page.addr]
            self._move(page, dst)
            self.tier_lru[dst][page.addr] = page
            self.tier_lru[dst].move_to_end(page.addr, last=False)
            if self.tier_size[src] < 0 or self.tier_size[dst] > self.tier_cap[dst]:
                raise CapacityError(f"demotion overfills tier {dst}")
        return len(pages)

    def _scan_for_promo(self, free: list[int]) -> list[_AnPage]:
        """Recent pages outside tier 0, bounded by traffic and the tier-0 reserve."""
        chosen: list[_AnPage] = []
        reserve = self._reserve(0)
        for page in _mru_first(self.lru):
            if len(chosen) == self.mig_traffic or -free[0] >= reserve:
                break
            if page.tier == 0:
                continue
            chosen.append(page)
            free[0] -= 1
            free[page.tier] += 1
            if len(chosen) >= self.tier_cap[0]:
                break
        chosen.reverse()
        return chosen

    def _trim_promo_for_demo(self, promo: list[_AnPage], free: list[int]) -> int:
        """Cancel promotions until tier 2 can take the pages tier 0 must shed."""
        should_demo = -free[0]
        if should_demo <= 0:
            return 0
        index = 0
        while should_demo > free[2] and index < len(promo):
            page = promo[index]
            if page.tier != 2:
                del promo[index]
                should_demo -= 1
                free[0] += 1
                free[page.tier] -= 1
            else:
                index += 1
        if should_demo > free[2]:
            raise CapacityError("Tier-2 full!")
        return should_demo

    def _scan_for_demo(self, count: int) -> list[_AnPage]:
        if not count:
            return []
        chosen: list[_AnPage] = []
        for page in self.tier_lru[0].values():
            chosen.append(page)
            count -= 1
            if count == 0:
                break
        chosen.reverse()
        return chosen

    def _refill(self, promo: list[_AnPage], demo: list[_AnPage]) -> None:
        """Top up promotions with tier-2 pages and demotions to match."""
        if len(promo) == self.mig_traffic:
            return
        promo_begin = promo[0] if promo else None
        demo_begin = demo[0] if demo else None
        cap0 = self.tier_cap[0]
        limit = cap0 + self._reserve(0)

        selecting = False
        for page in _mru_first(self.lru):
            if (
                len(promo) >= self.mig_traffic
                or len(promo) >= cap0
                or len(promo) + self.tier_size[0] >= limit
            ):
                break
            if selecting and page.tier == 2:
                promo.insert(0, page)
            if page is promo_begin:
                selecting = True

        nr_demo = self.tier_size[0] + len(promo) - cap0
        if nr_demo <= 0:
            return
        if nr_demo < len(demo):
            raise RuntimeError("more demotions planned than needed")

        selecting = False
        for page in self.tier_lru[0].values():
            if len(demo) == nr_demo:
                break
            if selecting:
                demo.insert(0, page)
            if page is demo_begin:
                selecting = True

    def _scan_for_reserve(self, rate: int, free: list[int]) -> list[_AnPage]:
        """Least recent pages of tiers 0 and 1 to demote so they keep free room."""
        want = []
        for tier in (0, 1):
            need = self._reserve(tier, rate)
            want.append(need - free[tier] if free[tier] < need else 0)

        chosen: list[_AnPage] = []
        for src, dst in _DEMOTION_TARGET.items():
            for page in self.tier_lru[src].values():
                if free[dst] <= 0:
                    break
                chosen.append(page)
                free[dst] -= 1
                want[src] -= 1
                if want[src] == 0:
                    break
        chosen.reverse()
        return chosen

    def migrate(self) -> None:
        free = self._free_pages()
        if self.mode == AnMode.NO_MIG:
            return
        if self.mode == AnMode.BALANCE and free[0] <= 0:
            return

        promo = self._scan_for_promo(free)
        if not promo:
            return
        nr_demo = self._trim_promo_for_demo(promo, free)
        demo = self._scan_for_demo(nr_demo)
        self._refill(promo, demo)
        if self._promote(promo) == 0:
            return
        self._demote(demo)

        free = self._free_pages()
        self._demote(self._scan_for_reserve(NR_REV_DEMO, free))