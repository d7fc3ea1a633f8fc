"""Flow network with a successive-shortest-path min-cost max-flow solver."""

from __future__ import annotations

import enum
import heapq
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger(__name__)

INT_MAX = 2**31 - 1
NUM_META_L = 9


class NodeType(enum.IntEnum):
    """Role of a node in the schedule graph."""

    NOP = -1
    META = 0
    DEMO = 1
    DEMO_BAR = 2
    PROMO = 3
    PROMO_BAR = 4
    ALLOC = 5
    END = 6
    AGGR = 7
    AGGR_BAR = 8
    REG = NUM_META_L


_NODE_NAMES = {
    NodeType.META: "META",
    NodeType.DEMO: "DEMO",
    NodeType.PROMO: "PROMO",
    NodeType.ALLOC: "ALLOC",
    NodeType.END: "END",
    NodeType.AGGR: "AGGR",
    NodeType.AGGR_BAR: "AGGR_BAR",
    NodeType.REG: "REG",
    NodeType.PROMO_BAR: "PROMO_BAR",
    NodeType.DEMO_BAR: "DEMO_BAR",
}


@dataclass(eq=False)
class Arc:
    """A directed arc; its residual reverse direction is implied."""

    start: int
    end: int
    capacity: int
    cost: int
    flow: int = 0
    lat_load: int = 0
    lat_store: int = 0
    type: int = 0
    cur_level: int = 0
    next_level: int = 0
    index: int = -1

    def dest(self, origin: int) -> int:
        """Node reached when traversing the arc from ``origin``."""
        return self.end if origin == self.start else self.start

    def add_flow(self, origin: int, amount: int) -> None:
        """Push ``amount`` of flow leaving ``origin``."""
        if origin == self.start:
            self.flow += amount
        else:
            self.flow -= amount

    def capacity_from(self, origin: int) -> int:
        """Residual capacity when leaving ``origin``."""
        if origin == self.start:
            return self.capacity - self.flow
        return self.flow

    def cost_from(self, origin: int) -> int:
        """Cost per unit of flow when leaving ``origin``."""
        return self.cost if origin == self.start else -self.cost


@dataclass(eq=False)
class FlowNode:
    """A graph node and the arcs touching it."""

    index: int
    layer: int
    addr: int
    type: int
    node_type: int
    arcs: list[Arc] = field(default_factory=list)


class FlowNetwork:
    """Graph of nodes and arcs solved by successive shortest paths."""

    def __init__(self) -> None:
        self.nodes: list[FlowNode] = []
        self.arcs: list[Arc] = []

    def add_node(self, layer, addr, type, node_type) -> int:
        index = len(self.nodes)
        self.nodes.append(FlowNode(index, layer, addr, type, node_type))
        return index

    def _check_node(self, index: int) -> None:
        if not 0 <= index < len(self.nodes):
            raise IndexError(f"no node {index}")

    def add_arc(
        self, start, end, capacity, cost, flow, lat_load, lat_store, type, cur_level, next_level
    ) -> int:
        self._check_node(start)
        self._check_node(end)
        arc = Arc(
            start, end, capacity, cost, flow, lat_load, lat_store, type,
            cur_level, next_level, index=len(self.arcs),
        )
        self.arcs.append(arc)
        self.nodes[start].arcs.append(arc)
        self.nodes[end].arcs.append(arc)
        return arc.index

    def describe_node(self, index: int) -> str:
        """One-line summary of a node."""
        self._check_node(index)
        node = self.nodes[index]
        try:
            name = _NODE_NAMES.get(NodeType(node.node_type), "")
        except ValueError:
            name = ""
        return (
            f"Node[{index}]: layer: {node.layer}, addr: {node.addr}, "
            f"type: {int(node.type)}, node_type: {name}, {len(node.arcs)} edges"
        )

    def _initial_potentials(self, source: int) -> list[int]:
        potentials = [INT_MAX] * len(self.nodes)
        front = deque([(0, source)])
        while front:
            potential, cur = front.popleft()
            if potential >= potentials[cur]:
                continue
            potentials[cur] = potential
            for arc in self.nodes[cur].arcs:
                if arc.capacity_from(cur) > 0:
                    front.append((potential + arc.cost_from(cur), arc.dest(cur)))
        return potentials

    def min_cost_max_flow(self, source: int, sink: int) -> tuple[int, int]:
        """Saturate flow from source to sink; return (total cost, total flow).

        A negative-cost cycle reachable from the source makes this loop forever.
        """
        self._check_node(source)
        self._check_node(sink)
        logger.info("potential start time: %s", datetime.now().ctime())
        potentials = self._initial_potentials(source)
        logger.info("potential end time: %s", datetime.now().ctime())

        result = 0
        total_flow = 0
        size = len(self.nodes)

        while True:
            explored = [False] * size
            cost_to_node: list[int | None] = [None] * size
            arc_used: list[Arc | None] = [None] * size

            # Ties resolve towards higher node indices, then later arcs.
            frontier: list[tuple[int, int, int, Arc | None]] = [(0, -source, 1, None)]
            while frontier:
                path_cost, neg_cur, _, used = heapq.heappop(frontier)
                cur = -neg_cur
                if explored[cur]:
                    continue
                explored[cur] = True
                arc_used[cur] = used
                cost_to_node[cur] = path_cost
                for arc in self.nodes[cur].arcs:
                    if arc.capacity_from(cur) <= 0:
                        continue
                    nxt = arc.dest(cur)
                    reduced = arc.cost_from(cur) - potentials[nxt] + potentials[cur]
                    heapq.heappush(frontier, (path_cost + reduced, -nxt, -arc.index, arc))

            if arc_used[sink] is None:
                logger.info("min-cost flow end time: %s", datetime.now().ctime())
                return result, total_flow

            path: list[Arc] = []
            pushed = INT_MAX
            cur = sink
            while cur != source:
                arc = arc_used[cur]
                cur = arc.dest(cur)
                pushed = min(pushed, arc.capacity_from(cur))
                path.append(arc)

            for arc in reversed(path):
                arc.add_flow(cur, pushed)
                result += arc.cost_from(cur) * pushed
                cur = arc.dest(cur)
            total_flow += pushed

            for i, cost in enumerate(cost_to_node):
                if cost is not None:
                    potentials[i] += cost