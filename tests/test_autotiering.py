from pathlib import Path

import pytest

from migsim.autotiering import AutoTiering
from migsim.base import CapacityError
from migsim.trace import SimConfig, TraceRequest, TraceType


def make_config(caps, period, traffic=-1, mode=1, sched="sched"):
    return SimConfig(
        nr_tiers=4,
        tier_cap=list(caps),
        tier_lat_loads=[1, 1, 1, 1],
        tier_lat_stores=[1, 1, 1, 1],
        tier_lat_4kb_reads=[1, 1, 1, 1],
        tier_lat_4kb_writes=[1, 1, 1, 1],
        mig_period=period,
        mig_traffic=traffic,
        do_at=mode,
        sched_file=sched,
    )


def make_sim(caps, period, addrs, **kwargs):
    sim = AutoTiering(make_config(caps, period, **kwargs))
    for addr in addrs:
        sim.add_trace(TraceRequest(addr, TraceType.LOAD))
    return sim


def test_promotes_recent_pages_and_keeps_reserve():
    sim = make_sim([4, 4, 8, 8], 3, [1, 2, 3, 4], traffic=10)
    sim.run((2, 0, 1, 3))
    assert sim.nr_alloc[2] == 4
    assert sim.nr_mig[2][0] == 4
    # The least recent page in tier 0 is demoted to keep room free.
    assert sim.pages[1].tier == 2
    assert all(sim.pages[a].tier == 0 for a in (2, 3, 4))


def test_overflow_demotes_lru_page_into_tier_two():
    sim = make_sim([4, 4, 8, 8], 6, [1, 2, 3, 4, 5, 6, 7], traffic=10)
    sim.run((0, 1, 2, 3))
    assert sim.pages[7].tier == 0
    assert sim.pages[1].tier == 2
    assert sim.nr_mig[1][0] == 1
    assert sum(sim.tier_size) == 7


def test_overflow_spills_into_tier_three_when_tier_two_full():
    sim = make_sim([4, 4, 1, 8], 6, [1, 2, 3, 4, 5, 6, 7], traffic=10)
    sim.run((2, 0, 1, 3))
    assert sim.pages[7].tier == 0
    assert sim.pages[1].tier == 2
    assert sim.pages[2].tier == 3
    assert sim.nr_mig[0][3] >= 1


def test_tier_one_promotion_cancelled_when_lower_tiers_full():
    sim = make_sim([2, 2, 1, 1], 6, [1, 2, 3, 4, 5, 6, 3], traffic=10)
    sim.run((0, 1, 2, 3))
    assert sim.pages[3].tier == 1
    assert sum(sum(row) for row in sim.nr_mig) == 0


def test_sizes_never_exceed_capacity_and_track_pages():
    addrs = [i % 9 for i in range(60)]
    sim = make_sim([3, 3, 4, 4], 5, addrs)
    sim.run((0, 1, 2, 3))
    assert all(size <= cap for size, cap in zip(sim.tier_size, sim.tier_cap))
    assert sum(sim.tier_size) == len(set(addrs))
    for tier in range(4):
        assert sim.tier_size[tier] == len(sim.tier_lru[tier])
    assert sum(sim.nr_accesses) == len(addrs)


def test_migration_latency_matches_counted_migrations():
    sim = make_sim([4, 4, 8, 8], 3, [1, 2, 3, 4], traffic=10)
    perf = sim.run((2, 0, 1, 3))
    total = sum(sum(row) for row in sim.nr_mig)
    assert perf.lat_mig == 2 * total
    assert perf.lat_acc == 4
    assert perf.lat_alc == 4


def test_allocation_beyond_capacity_raises():
    sim = make_sim([1, 1, 1, 1], 100, [1, 2, 3, 4, 5])
    with pytest.raises(CapacityError):
        sim.run((0, 1, 2, 3))


def test_reset_clears_structures():
    sim = make_sim([4, 4, 8, 8], 3, [1, 2, 3, 4])
    sim.run((0, 1, 2, 3))
    sim.reset()
    assert sim.pages == {}
    assert len(sim.lru) == 0
    assert all(len(lru) == 0 for lru in sim.tier_lru)
    assert sim.tier_size == [0, 0, 0, 0]


def test_schedule_path_and_report():
    sim = make_sim([4, 4, 8, 8], 3, [1, 2], sched="out")
    sim.run((0, 1, 2, 3))
    assert sim.schedule_path() == "out.at_mode1.aorder0123.sched"
    assert "Printing AT stats" in sim.report()


def test_simulate_writes_every_order(tmp_path, capsys):
    base = str(tmp_path / "res")
    sim = make_sim([8, 8, 8, 8], 4, [i % 6 for i in range(20)], sched=base)
    results = sim.simulate()
    capsys.readouterr()
    assert len(results) == 4
    written = sorted(p.name for p in Path(tmp_path).iterdir())
    assert "res.at_mode1.aorder0123.sched" in written
    assert len(written) == 4