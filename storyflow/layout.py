"""Swimlane layout for BPMN emission.

Three stages, all pure functions of the graph:

* ``assign_lanes``   -- actor token per state, lanes in first-appearance order
* ``assign_columns`` -- BFS depth from start (first visit wins on cycles)
* ``compute_layout`` -- ranks within (lane, column) and pixel bounds

Column 0 is reserved for the synthetic BPMN start event; state columns
are their BFS depth + 1.
"""

from __future__ import annotations

import logging
import re
from collections import deque
from dataclasses import dataclass, field
from typing import Optional

from .config import LayoutConfig
from .errors import LayoutError
from .ir import CHOICE, SEND, STOP, TASK, USER_TASK, Graph, State, Task, UserTask, outgoing
from .text import humanize, slugify, xml_id

logger = logging.getLogger(__name__)

START_NODE = '__start__'
START = 'start'

KNOWN_ACTORS = frozenset({
    'manager', 'employee', 'user', 'customer', 'admin', 'supervisor', 'owner',
    'agent', 'lead', 'reviewer', 'approver', 'applicant', 'finance', 'hr',
})
_LEADING_ARTICLE = re.compile(r'^(?:the|a|an)\s+', re.I)


@dataclass(frozen=True)
class Bounds:
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def center_x(self) -> int:
        return self.x + self.width // 2

    @property
    def center_y(self) -> int:
        return self.y + self.height // 2


@dataclass
class Lane:
    id: str
    name: str
    index: int
    state_ids: list[str] = field(default_factory=list)


@dataclass
class NodeLayout:
    node_id: str
    kind: str
    lane: str
    column: int
    rank: int
    bounds: Bounds


@dataclass
class Layout:
    lanes: list[Lane]
    nodes: dict[str, NodeLayout]
    lane_bounds: dict[str, Bounds]
    lane_rows: dict[str, int]
    pool: Bounds


# ============================================================
# LANES
# ============================================================

def actor_token(state: State, known: frozenset[str], default: str) -> str:
    """Actor/role that performs ``state``; ``default`` when none is detectable."""
    if isinstance(state, UserTask):
        return state.assignee.strip('{}') or default
    if isinstance(state, Task):
        action = _LEADING_ARTICLE.sub('', state.action.strip())
        first = action.split(' ', 1)[0].strip('{}:,').lower()
        if first in known:
            return first
    return default


def _unique_lane_id(name: str, lanes: list[Lane]) -> str:
    """Lane_<slug>, suffixed _2, _3 ... when distinct names share a slug."""
    base = f'Lane_{xml_id(slugify(name) or "default")}'
    taken = {lane.id for lane in lanes}
    candidate = base
    n = 2
    while candidate in taken:
        candidate = f'{base}_{n}'
        n += 1
    return candidate


def assign_lanes(graph: Graph, default: str = 'System') -> tuple[list[Lane], dict[str, str]]:
    """Group states into lanes by actor. Returns (lanes, state id -> lane id)."""
    known = KNOWN_ACTORS | {s.assignee.strip('{}').lower() for s in graph.user_tasks() if s.assignee}
    lanes: list[Lane] = []
    by_key: dict[str, Lane] = {}
    assignment: dict[str, str] = {}

    for state in graph:
        token = actor_token(state, known, default)
        name = token if token == default else humanize(token)
        key = name.lower()
        lane = by_key.get(key)
        if lane is None:
            lane = Lane(id=_unique_lane_id(name, lanes), name=name, index=len(lanes))
            by_key[key] = lane
            lanes.append(lane)
        lane.state_ids.append(state.id)
        assignment[state.id] = lane.id

    return lanes, assignment


# ============================================================
# COLUMNS
# ============================================================

def assign_columns(graph: Graph) -> dict[str, int]:
    """BFS depth of each state from start.

    A state keeps the depth of its first visit, so back edges never push
    it further right. Unreachable states share the column after the
    deepest reachable one.
    """
    depth: dict[str, int] = {}
    if graph.start in graph.states:
        depth[graph.start] = 0
        queue = deque([graph.start])
        while queue:
            current = queue.popleft()
            for target in outgoing(graph.states[current]):
                if target in graph.states and target not in depth:
                    depth[target] = depth[current] + 1
                    queue.append(target)

    overflow = max(depth.values(), default=-1) + 1
    for state in graph:
        depth.setdefault(state.id, overflow)
    return depth


# ============================================================
# BOUNDS
# ============================================================

def _shape_size(kind: str, config: LayoutConfig) -> tuple[int, int]:
    if kind in (USER_TASK, TASK, SEND):
        return config.task_width, config.task_height
    if kind == CHOICE:
        return config.gateway_size, config.gateway_size
    if kind in (STOP, START):
        return config.event_size, config.event_size
    raise LayoutError(f"No shape for kind '{kind}'")


def compute_layout(graph: Graph, config: Optional[LayoutConfig] = None,
                   default_lane: str = 'System') -> Layout:
    """Place every state (plus the start event) into lane bands and columns."""
    config = config or LayoutConfig()
    lanes, assignment = assign_lanes(graph, default_lane)
    depths = assign_columns(graph)
    lane_ids = {lane.id for lane in lanes}

    # (node id, kind, lane id, column) in placement order
    placements: list[tuple[str, str, str, int]] = []
    start_lane = assignment.get(graph.start)
    if start_lane is None:
        raise LayoutError(f"Start state '{graph.start}' has no lane", element_id=graph.start)
    placements.append((START_NODE, START, start_lane, 0))
    for state in graph:
        lane_id = assignment.get(state.id)
        if lane_id not in lane_ids:
            raise LayoutError(f"State '{state.id}' is assigned to unknown lane {lane_id!r}",
                              element_id=state.id)
        placements.append((state.id, state.kind, lane_id, depths[state.id] + 1))

    ranks: dict[str, int] = {}
    occupancy: dict[tuple[str, int], int] = {}
    for node_id, _, lane_id, column in placements:
        slot = (lane_id, column)
        ranks[node_id] = occupancy.get(slot, 0)
        occupancy[slot] = ranks[node_id] + 1

    lane_rows = {lane.id: 1 for lane in lanes}
    for (lane_id, _), count in occupancy.items():
        lane_rows[lane_id] = max(lane_rows[lane_id], count)

    columns = max(column for *_, column in placements) + 1
    lane_x = config.pool_x + config.lane_header_width
    lane_width = columns * config.column_width
    lane_bounds: dict[str, Bounds] = {}
    y = config.pool_y
    for lane in lanes:
        height = lane_rows[lane.id] * config.row_height + 2 * config.lane_padding
        lane_bounds[lane.id] = Bounds(lane_x, y, lane_width, height)
        y += height
    pool = Bounds(config.pool_x, config.pool_y, config.lane_header_width + lane_width, y - config.pool_y)

    nodes: dict[str, NodeLayout] = {}
    for node_id, kind, lane_id, column in placements:
        width, height = _shape_size(kind, config)
        band = lane_bounds[lane_id]
        x = band.x + column * config.column_width + (config.column_width - width) // 2
        top = band.y + config.lane_padding + ranks[node_id] * config.row_height
        nodes[node_id] = NodeLayout(
            node_id=node_id,
            kind=kind,
            lane=lane_id,
            column=column,
            rank=ranks[node_id],
            bounds=Bounds(x, top + (config.row_height - height) // 2, width, height),
        )

    logger.debug("Layout for %r: %d lanes, %d columns", graph.name, len(lanes), columns)
    return Layout(lanes=lanes, nodes=nodes, lane_bounds=lane_bounds, lane_rows=lane_rows, pool=pool)


def waypoints(source: NodeLayout, target: NodeLayout) -> list[tuple[int, int]]:
    """Orthogonal edge route between two placed nodes."""
    s, t = source.bounds, target.bounds
    if source.column == target.column:
        if t.y >= s.y:
            return [(s.center_x, s.bottom), (t.center_x, t.y)]
        return [(s.center_x, s.y), (t.center_x, t.bottom)]
    start = (s.right, s.center_y)
    end = (t.x, t.center_y)
    if start[1] == end[1]:
        return [start, end]
    mid_x = (start[0] + end[0]) // 2
    return [start, (mid_x, start[1]), (mid_x, end[1]), end]
