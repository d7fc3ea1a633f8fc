"""AutoTiering-style promotion with demotion spilling over to the lowest tiers."""

from __future__ import annotations

from .autonuma import AutoNuma
from .base import NR_REV_DEMO, CapacityError
from .trace import SimConfig

_RESERVE_TARGET = {0: 2, 1: 3}


class AutoTiering(AutoNuma):
    """Promotes recently used pages to tier 0.

    Pages pushed out of tier 0 go to tier 2, or to tier 3 once tier 2 is full.
    Unlike AutoNUMA it always migrates, whatever its mode.
    """

    label = "AT"
    tag = "at"

    def _select_mode(self, config: SimConfig) -> int:
        return config.do_at

    def _demote(self, pages: list, reserve: bool = False) -> int:
        for page in pages:
            src = page.tier
            if reserve:
                if src not in _RESERVE_TARGET:
                    raise RuntimeError(f"cannot demote a page from tier {src}")
                dst = _RESERVE_TARGET[src]
            else:
                if src != 0:
                    raise RuntimeError(f"demotion candidate is in tier {src}, not tier 0")
                dst = 2 if self.tier_size[2] < self.tier_cap[2] else 3
            del self.tier_lru[src][page.addr]
            self._move(page, dst)
            self.tier_lru[dst][page.addr] = page
            self.tier_lru[dst].move_to_end(page.addr, last=False)
            if self.tier_size[src] < 0 or self.tier_size[dst] > self.tier_cap[dst]:
                raise CapacityError(f"demotion overfills tier {dst}")
        return len(pages)

    def _trim_promo_for_demo(self, promo: list, free: list[int]) -> int:
        """Cancel tier-1 promotions until tiers 2 and 3 can take what tier 0 sheds."""
        should_demo = -free[0]
        if should_demo <= 0:
            return 0
        index = 0
        while should_demo > free[2] + free[3] and index < len(promo):
            page = promo[index]
            if page.tier == 1:
                del promo[index]
                should_demo -= 1
                free[0] += 1
                free[page.tier] -= 1
            else:
                index += 1
        if should_demo > free[2] + free[3]:
            raise CapacityError("Tier-2,3 full!")
        return should_demo

    def _refill(self, promo: list, demo: list) -> None:
        """Top up promotions with tier-2 and tier-3 pages and demotions to match."""
        if len(promo) == self.mig_traffic:
            return
        promo_begin = promo[0] if promo else None
        demo_begin = demo[0] if demo else None
        cap0 = self.tier_cap[0]
        limit = cap0 + self._reserve(0)

        selecting = False
        for page in reversed(self.lru.values()):
            if (
                len(promo) >= self.mig_traffic
                or len(promo) >= cap0
                or len(promo) + self.tier_size[0] >= limit
            ):
                break
            if selecting and page.tier in (2, 3):
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

    def migrate(self) -> None:
        free = self._free_pages()
        promo = self._scan_for_promo(free)
        if not promo:
            return
        nr_demo = self._trim_promo_for_demo(promo, free)
        demo = self._scan_for_demo(nr_demo)
        self._free_pages()
        self._refill(promo, demo)
        if self._promote(promo) == 0:
            return
        self._demote(demo)

        free = self._free_pages()
        self._demote(self._scan_for_reserve(NR_REV_DEMO, free), reserve=True)
        self._free_pages()