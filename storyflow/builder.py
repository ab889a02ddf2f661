"""IR builder: statement list -> validated state graph."""

from __future__ import annotations

import logging
from typing import Optional

from . import parser
from .errors import GraphError
from .ir import Choice, ChoiceBranch, Graph, Send, State, Stop, Task, UserTask
from .parser import Statement
from .text import slugify

logger = logging.getLogger(__name__)

IMPLICIT_END_ID = 'end'
IMPLICIT_END_REASON = 'End'


def _ask(state_id: str, stmt: Statement) -> State:
    return UserTask(id=state_id, prompt=stmt.body, assignee=stmt.subject)


def _do(state_id: str, stmt: Statement) -> State:
    return Task(id=state_id, action=stmt.body)


def _conditional(state_id: str, stmt: Statement) -> State:
    return Choice(id=state_id)


def _send(state_id: str, stmt: Statement) -> State:
    return Send(id=state_id, channel=stmt.channel, to=stmt.recipient, message=stmt.body)


def _stop(state_id: str, stmt: Statement) -> State:
    return Stop(id=state_id, reason=stmt.body)


# statement kind -> (id label, state factory)
_FACTORIES = {
    parser.ASK: (lambda s: f'ask {s.body}', _ask),
    parser.DO: (lambda s: f'do {s.body}', _do),
    parser.CONDITIONAL: (lambda s: f'if {s.branches[0].condition}' if s.branches else 'if', _conditional),
    parser.SEND: (lambda s: f'send {s.body} to {s.recipient}', _send),
    parser.STOP: (lambda s: f'stop {s.body}', _stop),
}


class GraphBuilder:
    """Two passes: declare states in construction order, then link edges."""

    def __init__(self, name: str):
        self.graph = Graph(name=name)
        self._states: dict[int, State] = {}
        self._end_id: Optional[str] = None

    def _unique_id(self, label: str, kind: str) -> str:
        base = slugify(label) or f'{kind}_{len(self.graph) + 1}'
        candidate = base
        n = 2
        while candidate in self.graph.states:
            candidate = f'{base}_{n}'
            n += 1
        return candidate

    def _declare(self, block: list[Statement]) -> None:
        for stmt in block:
            if stmt.kind not in _FACTORIES:
                raise GraphError(f"Unexpected {stmt.kind} statement at line {stmt.line}")
            label, factory = _FACTORIES[stmt.kind]
            state = factory(self._unique_id(label(stmt), stmt.kind), stmt)
            self.graph.add(state)
            self._states[id(stmt)] = state
            if stmt.kind == parser.CONDITIONAL:
                for branch in stmt.branches:
                    self._declare(branch.body)
                if stmt.otherwise:
                    self._declare(stmt.otherwise)

    def _implicit_end(self) -> str:
        if self._end_id is None:
            self._end_id = self._unique_id(IMPLICIT_END_ID, parser.STOP)
            self.graph.add(Stop(id=self._end_id, reason=IMPLICIT_END_REASON))
            logger.debug("Flow %r falls through; added implicit stop %r",
                         self.graph.name, self._end_id)
        return self._end_id

    def _first(self, block: Optional[list[Statement]], follow: Optional[str]) -> str:
        if block:
            return self._states[id(block[0])].id
        return follow if follow is not None else self._implicit_end()

    def _link(self, block: list[Statement], after: Optional[str]) -> None:
        for i, stmt in enumerate(block):
            follow = self._states[id(block[i + 1])].id if i + 1 < len(block) else after
            state = self._states[id(stmt)]

            if isinstance(state, Choice):
                for branch in stmt.branches:
                    state.branches.append(
                        ChoiceBranch(condition=branch.condition,
                                     next=self._first(branch.body, follow)))
                    self._link(branch.body, follow)
                state.otherwise = self._first(stmt.otherwise, follow)
                if stmt.otherwise:
                    self._link(stmt.otherwise, follow)
            elif not isinstance(state, Stop):
                state.next = follow if follow is not None else self._implicit_end()

    def build(self, body: list[Statement]) -> Graph:
        self._declare(body)
        self._link(body, None)
        if not self.graph.states:
            self._implicit_end()
        self.graph.validate()
        logger.info("Built graph %r: %d states, start=%s",
                    self.graph.name, len(self.graph), self.graph.start)
        return self.graph


def build(statements: list[Statement]) -> Graph:
    """Build and validate the state graph for a parsed StoryFlow document.

    Raises GraphError on duplicate ids, dangling references or when no
    stop state is reachable from start.
    """
    if not statements or statements[0].kind != parser.FLOW_HEADER:
        raise GraphError('Statement list must begin with a flow header')
    header = statements[0]
    return GraphBuilder(header.body).build(statements[1:])
