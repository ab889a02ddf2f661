"""State graph intermediate representation.

States live in an arena keyed by id; every edge is stored as a target id.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Optional, Union

from .errors import GraphError
from .forms import Form

logger = logging.getLogger(__name__)

USER_TASK = 'userTask'
TASK = 'task'
CHOICE = 'choice'
SEND = 'send'
STOP = 'stop'

STATE_KINDS = (USER_TASK, TASK, CHOICE, SEND, STOP)


@dataclass
class UserTask:
    id: str
    prompt: str
    assignee: str = ''
    form: Optional[Form] = None
    next: Optional[str] = None
    kind: str = field(default=USER_TASK, init=False)


@dataclass
class Task:
    id: str
    action: str
    next: Optional[str] = None
    kind: str = field(default=TASK, init=False)


@dataclass
class ChoiceBranch:
    condition: str
    next: str


@dataclass
class Choice:
    id: str
    branches: list[ChoiceBranch] = field(default_factory=list)
    otherwise: Optional[str] = None
    kind: str = field(default=CHOICE, init=False)


@dataclass
class Send:
    id: str
    channel: str
    to: str
    message: str
    next: Optional[str] = None
    kind: str = field(default=SEND, init=False)


@dataclass
class Stop:
    id: str
    reason: str = ''
    kind: str = field(default=STOP, init=False)


State = Union[UserTask, Task, Choice, Send, Stop]


def outgoing(state: State) -> list[str]:
    """Target ids of a state's edges, in emission order."""
    if isinstance(state, Choice):
        targets = [b.next for b in state.branches]
        if state.otherwise:
            targets.append(state.otherwise)
        return targets
    if isinstance(state, Stop):
        return []
    return [state.next] if state.next else []


@dataclass
class Graph:
    """Validated state graph. ``states`` preserves construction order."""

    name: str
    start: str = ''
    states: dict[str, State] = field(default_factory=dict)
    warnings: list[str] = field(default_factory=list, compare=False, repr=False)

    def add(self, state: State) -> State:
        if state.id in self.states:
            raise GraphError(f"Duplicate state id '{state.id}'", state_id=state.id)
        self.states[state.id] = state
        if not self.start:
            self.start = state.id
        return state

    def get(self, state_id: str) -> State:
        try:
            return self.states[state_id]
        except KeyError:
            raise GraphError(f"Unknown state '{state_id}'", ref=state_id) from None

    def __iter__(self):
        return iter(self.states.values())

    def __len__(self) -> int:
        return len(self.states)

    def user_tasks(self) -> list[UserTask]:
        return [s for s in self if isinstance(s, UserTask)]

    def edges(self) -> list[tuple[str, str]]:
        return [(s.id, target) for s in self for target in outgoing(s)]

    def reachable(self, origin: Optional[str] = None) -> list[str]:
        """Ids reachable from ``origin`` (default: start) in BFS order."""
        origin = origin or self.start
        if origin not in self.states:
            return []
        order = [origin]
        seen = {origin}
        queue = deque([origin])
        while queue:
            for target in outgoing(self.states[queue.popleft()]):
                if target in self.states and target not in seen:
                    seen.add(target)
                    order.append(target)
                    queue.append(target)
        return order

    def validate(self) -> list[str]:
        """Check structural invariants.

        Raises GraphError for a missing start, dangling references or
        no reachable stop. Returns non-fatal warnings.
        """
        if not self.states:
            raise GraphError(f"Flow '{self.name}' has no states")
        if self.start not in self.states:
            raise GraphError(f"Start state '{self.start}' does not exist", ref=self.start)

        for state in self:
            if state.kind not in STATE_KINDS:
                raise GraphError(f"State '{state.id}' has unknown kind '{state.kind}'",
                                 state_id=state.id)
            if isinstance(state, Choice) and not state.branches and not state.otherwise:
                raise GraphError(f"Choice '{state.id}' has no branches", state_id=state.id)
            for target in outgoing(state):
                if target not in self.states:
                    raise GraphError(
                        f"State '{state.id}' references missing state '{target}'",
                        state_id=state.id, ref=target,
                    )

        reachable = self.reachable()
        if not any(isinstance(self.states[sid], Stop) for sid in reachable):
            raise GraphError(
                f"No stop state is reachable from start '{self.start}'", state_id=self.start,
            )

        warnings = []
        reachable_set = set(reachable)
        for state in self:
            if state.id not in reachable_set:
                warnings.append(f"State '{state.id}' is unreachable from start")

        # Reverse reachability from every stop state.
        incoming: dict[str, list[str]] = {sid: [] for sid in self.states}
        for source, target in self.edges():
            incoming[target].append(source)
        can_stop = {s.id for s in self if isinstance(s, Stop)}
        queue = deque(can_stop)
        while queue:
            for source in incoming[queue.popleft()]:
                if source not in can_stop:
                    can_stop.add(source)
                    queue.append(source)
        for state in self:
            if state.id not in can_stop:
                warnings.append(f"State '{state.id}' has no path to a stop state")

        for message in warnings:
            logger.warning("%s: %s", self.name, message)
        self.warnings = warnings
        return warnings
