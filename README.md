# migsim

migsim replays a memory access trace against a machine that has up to four
memory tiers. It measures how well several page placement and migration
policies do on that trace:

- **AutoNUMA** (`migsim.autonuma.AutoNuma`). It promotes recently used pages
  into tier 0 and demotes the least recently used ones from tier 0 to tier 2
  and from tier 1 to tier 3. Its mode comes from `do_an`: 1 balanced (it
  migrates only while tier 0 has free room), 2 tiered, 3 no migration.
- **AutoTiering** (`migsim.autotiering.AutoTiering`). It promotes in the
  same way. Pages pushed out of tier 0 go to tier 2, or to tier 3 once tier 2
  is full. It migrates whatever its mode.
- **MTM** (`migsim.mtm.Mtm`). It ranks pages by access count, so the hottest
  pages fill the fastest tiers. The counts are halved every second migration
  period. Its mode number, used only in schedule file names, is taken from
  `do_at`.

Each enabled policy runs once for each of four allocation orders: `0 2 1 3`,
`1 0 2 3`, `2 0 1 3` and `0 1 2 3`. For every run it prints the access,
migration and allocation latency totals, the allocation and access counts for
each tier, and the tier-to-tier migration matrix. It also writes a schedule
file that gives the placement of each page in each migration period.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Usage

```
migsim path/to/sim.cfg
```

With no argument, `sim_cfg/default.cfg` is read. The program prints the
configuration and then each policy's statistics. If the configuration or the
trace cannot be read, or a tier runs out of room, it prints the error and
exits with status 1.

The configuration file uses libconfig syntax, for example:

```
trace_file = "traces/app.trace";
trace_sampling_ratio = 10000;   # pages kept per 10000; 10000 keeps every page
nr_tiers = 4;
tier_cap_scale = 10;            # total capacity = sampled pages * (100 + scale) / 100
tier_cap_ratio = [1, 1, 2, 4];
tier_lat_loads = [80, 130, 160, 250];
tier_lat_stores = [80, 130, 160, 250];
tier_lat_4KB_reads = [1000, 1500, 2000, 3000];
tier_lat_4KB_writes = [1000, 1500, 2000, 3000];
mig_period = 100000;
mig_traffic = -1;               # -1 = 1000 pages per period
mig_overhead = 10000;
do_an = 1;
do_at = 1;
do_mtm = 1;
```

Every per-tier list must have exactly `nr_tiers` entries. Each tier's capacity
is the total capacity shared out by `tier_cap_ratio`. A tier whose share comes
to zero is an error.

The 4KB read and write latencies are multiplied by `mig_overhead / 10000`
(whole part only), using the overhead known when the lists are read. The lists
are read before `mig_overhead` itself, so that value is still 0 at that point.
As a result the 4KB latencies, and with them the migration and allocation
latency totals, come out as zero.

### Trace format

Each trace line starts with `R` (load) or `W` (store), then one separator
character, then a hexadecimal byte address. The page number is the address
divided by 4096. Lines of any other kind are ignored.

### Sampling and output files

A page is kept when its page number modulo 10000 is below
`trace_sampling_ratio`. The sampled lines are cached beside the input trace,
with its extension replaced: `traces/app.trace` gives
`traces/app.ratio10000.sampled`. If that file exists and is not empty, it is
read instead of the original trace.

Schedules are written under `./result/`, which is created if needed. Their
names are built from the trace name, the policy, its mode and the allocation
order, e.g. `result/app.ratio10000.an_mode1.aorder0213.sched`. Each line reads
`A <period start> <page> <tier> 0`. A `sched_file` setting in the
configuration is overridden by this name.

## Library use

- `migsim.trace`: `parse_trace_line`, `parse_trace_type`, `parse_trace_addr`,
  `TraceRequest`, `TraceType`, `SimConfig`, `SimStats`
- `migsim.config`: `parse_libconfig`, `load_config`, `compute_tier_caps`,
  `format_config`, `ConfigError`
- `migsim.base`: `TierSimulator` (with `add_trace`, `run`, `reset`,
  `compute_perf`, `report`, `schedule_path`, `write_schedule`, `simulate`),
  `PerfResult`, `CapacityError`, `build_schedule`
- `migsim.cli`: `sample_hit`, `read_trace`, `read_original_trace`,
  `read_sampled_trace`, `run_simulation`, `main`
- `migsim.flow.FlowNetwork`: a standalone successive-shortest-path min-cost
  max-flow solver (`add_node`, `add_arc`, `describe_node`,
  `min_cost_max_flow`)

## What it does not do

The `do_migopt` and `do_analysis` settings are read and printed, but no policy
runs for them. The package does not compute an optimal migration schedule,
and it does not analyse schedules. `FlowNetwork` is not used by the command.