import random
from pathlib import Path

import pytest

from migsim.base import CapacityError
from migsim.mtm import Mtm
from migsim.trace import SimConfig, TraceRequest, TraceType


def make_config(tmp_path, caps, period=1000, traffic=-1, do_at=0, do_mtm=1):
    return SimConfig(
        nr_tiers=len(caps),
        tier_cap=list(caps),
        tier_lat_loads=[10, 20, 30, 40],
        tier_lat_stores=[11, 21, 31, 41],
        tier_lat_4kb_reads=[100, 200, 300, 400],
        tier_lat_4kb_writes=[101, 201, 301, 401],
        mig_period=period,
        mig_traffic=traffic,
        do_at=do_at,
        do_mtm=do_mtm,
        sched_file=str(tmp_path / "out"),
    )


def feed(sim, addrs):
    for addr in addrs:
        sim.add_trace(TraceRequest(addr, TraceType.LOAD))


def check_consistent(sim):
    for tier in range(sim.nr_tiers):
        assert sim.tier_size[tier] <= sim.tier_cap[tier]
    assert sum(sim.tier_size) == len(sim.pages)
    for page in sim.pages.values():
        assert sim.tier_size[page.tier] > 0


def test_allocation_follows_order(tmp_path):
    sim = Mtm(make_config(tmp_path, [2, 2, 2, 2]))
    feed(sim, [1, 2, 3, 4, 5])
    sim.run((0, 1, 2, 3))
    assert [sim.pages[a].tier for a in (1, 2, 3, 4, 5)] == [0, 0, 1, 1, 2]
    assert [t.tier for t in sim.traces] == [0, 0, 1, 1, 2]
    assert sim.nr_alloc[:4] == [2, 2, 1, 0]


def test_allocation_beyond_capacity_raises(tmp_path):
    sim = Mtm(make_config(tmp_path, [1, 1, 1, 1]))
    feed(sim, [1, 2, 3, 4, 5])
    with pytest.raises(CapacityError):
        sim.run((0, 1, 2, 3))


def test_histogram_tracks_access_counts(tmp_path):
    sim = Mtm(make_config(tmp_path, [4, 4, 4, 4]))
    feed(sim, [7, 7, 7, 8, 7, 7])
    sim.run((0, 1, 2, 3))
    assert sim.pages[7].freq == 5
    assert sim.pages[8].freq == 1
    for freq, bucket in sim.hist.items():
        for addr, page in bucket.items():
            assert page.freq == freq
            assert page.addr == addr


def test_cool_halves_counts(tmp_path):
    sim = Mtm(make_config(tmp_path, [4, 4, 4, 4]))
    feed(sim, [7, 7, 7, 8, 7, 7])
    sim.run((0, 1, 2, 3))
    before = {addr: page.freq for addr, page in sim.pages.items()}
    sim.cool()
    for addr, page in sim.pages.items():
        assert page.freq <= before[addr]
        assert 2 * page.freq <= before[addr] <= 2 * page.freq + 1
    assert {addr for bucket in sim.hist.values() for addr in bucket} == set(sim.pages)
    for freq, bucket in sim.hist.items():
        assert all(page.freq == freq for page in bucket.values())


def test_migrate_promotes_hot_page(tmp_path):
    sim = Mtm(make_config(tmp_path, [2, 4, 4, 4]))
    feed(sim, [1, 2, 3, 3, 3, 3, 3])
    sim.run((0, 1, 2, 3))
    assert sim.pages[3].tier == 1
    sim.migrate()
    assert sim.pages[3].tier == 0
    assert sim.pages[3].target == -1
    assert sim.nr_mig[1][0] == 1
    assert sim.tier_size[0] <= sim.tier_cap[0] - sim._reserve(0)
    moved_down = sum(sim.nr_mig[0][j] for j in range(1, 4))
    assert moved_down == 3 - sim.tier_size[0]
    check_consistent(sim)


def test_migration_traffic_limit(tmp_path):
    sim = Mtm(make_config(tmp_path, [4, 4, 4, 4], traffic=1))
    feed(sim, [1, 2])
    sim.run((1, 2, 3, 0))
    assert sim.pages[1].tier == 1 and sim.pages[2].tier == 1
    sim.migrate()
    promoted = sum(sim.nr_mig[i][0] for i in range(4))
    assert promoted == sim.mig_traffic
    assert sim.tier_size[0] == sim.mig_traffic
    check_consistent(sim)


def test_migrate_without_candidates_changes_nothing(tmp_path):
    sim = Mtm(make_config(tmp_path, [4, 4, 4, 4]))
    feed(sim, [1, 2, 1])
    sim.run((0, 1, 2, 3))
    sim.migrate()
    assert all(sum(row) == 0 for row in sim.nr_mig)
    assert sim.pages[1].tier == sim.pages[2].tier == 0


def test_periodic_run_keeps_invariants(tmp_path):
    rng = random.Random(1)
    sim = Mtm(make_config(tmp_path, [10, 10, 10, 10], period=20, traffic=5))
    feed(sim, [rng.randrange(20) for _ in range(500)])
    perf = sim.run((0, 1, 2, 3))
    check_consistent(sim)
    assert all(0 <= t.tier < 4 for t in sim.traces)
    assert sum(sim.nr_accesses) == len(sim.traces)
    assert perf == sim.compute_perf()
    for freq, bucket in sim.hist.items():
        assert all(page.freq == freq for page in bucket.values())


def test_reset_clears_state(tmp_path):
    sim = Mtm(make_config(tmp_path, [4, 4, 4, 4], period=2))
    feed(sim, [1, 2, 3, 1, 2, 1])
    sim.run((2, 0, 1, 3))
    sim.reset()
    assert sim.hist == {}
    assert sim.pages == {}
    assert sum(sim.tier_size) == 0
    assert len(sim.traces) == 6


def test_schedule_path_uses_autotiering_mode(tmp_path):
    sim = Mtm(make_config(tmp_path, [4, 4, 4, 4], do_at=2, do_mtm=1))
    feed(sim, [1])
    sim.run((0, 1, 2, 3))
    assert sim.schedule_path() == str(tmp_path / "out") + ".mtm_mode2.aorder0123.sched"


def test_simulate_writes_all_orders(tmp_path, capsys):
    sim = Mtm(make_config(tmp_path, [4, 4, 4, 4], period=3, traffic=2))
    feed(sim, [1, 2, 3, 1, 1, 4, 5, 1, 6, 2])
    results = sim.simulate()
    out = capsys.readouterr().out
    assert len(results) == 4
    assert out.count("Printing MTM stats") == 4
    files = sorted(Path(tmp_path).glob("out.mtm_mode0.aorder*.sched"))
    assert len(files) == 4
    for path in files:
        lines = path.read_text().splitlines()
        assert lines
        assert all(line.startswith("A ") and line.endswith(" 0") for line in lines)