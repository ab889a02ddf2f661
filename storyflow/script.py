"""SimpleScript: canonical serialized form of a state graph.

``serialize`` and ``deserialize`` are inverses: for any graph produced by
the builder, ``dumps(deserialize(serialize(g))) == dumps(g)``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Union

from .errors import GraphError
from .forms import Form
from .ir import (
    CHOICE, SEND, STOP, TASK, USER_TASK,
    Choice, ChoiceBranch, Graph, Send, State, Stop, Task, UserTask,
)

logger = logging.getLogger(__name__)


def _state_to_dict(state: State) -> dict[str, Any]:
    data: dict[str, Any] = {'id': state.id, 'kind': state.kind}
    if isinstance(state, UserTask):
        data['prompt'] = state.prompt
        if state.assignee:
            data['assignee'] = state.assignee
        if state.form is not None:
            data['form'] = state.form.to_dict()
    elif isinstance(state, Task):
        data['action'] = state.action
    elif isinstance(state, Choice):
        data['branches'] = [{'condition': b.condition, 'next': b.next} for b in state.branches]
        if state.otherwise:
            data['otherwise'] = state.otherwise
    elif isinstance(state, Send):
        data['channel'] = state.channel
        data['to'] = state.to
        data['message'] = state.message
    elif isinstance(state, Stop):
        data['reason'] = state.reason

    next_id = getattr(state, 'next', None)
    if next_id:
        data['next'] = next_id
    return data


def serialize(graph: Graph) -> dict[str, Any]:
    """Render ``graph`` as a plain structure in construction order."""
    return {
        'flow': graph.name,
        'start': graph.start,
        'states': [_state_to_dict(s) for s in graph],
    }


def dumps(graph: Graph) -> str:
    return json.dumps(serialize(graph), indent=2, ensure_ascii=False) + '\n'


def _require(data: dict[str, Any], key: str, state_id: str = '') -> Any:
    if key not in data:
        where = f"state '{state_id}'" if state_id else 'document'
        raise GraphError(f"SimpleScript {where} is missing '{key}'", state_id=state_id)
    return data[key]


def _state_from_dict(data: dict[str, Any]) -> State:
    if not isinstance(data, dict):
        raise GraphError(f'SimpleScript state must be an object, got {type(data).__name__}')
    state_id = str(_require(data, 'id'))
    kind = _require(data, 'kind', state_id)

    if kind == USER_TASK:
        form = data.get('form')
        try:
            parsed_form = Form.from_dict(form) if form is not None else None
        except (KeyError, TypeError) as exc:
            raise GraphError(f"State '{state_id}' has a malformed form: {exc}",
                             state_id=state_id) from exc
        return UserTask(id=state_id, prompt=_require(data, 'prompt', state_id),
                        assignee=data.get('assignee', ''), form=parsed_form,
                        next=data.get('next'))
    if kind == TASK:
        return Task(id=state_id, action=_require(data, 'action', state_id), next=data.get('next'))
    if kind == CHOICE:
        branches = []
        for entry in data.get('branches', []):
            branches.append(ChoiceBranch(condition=_require(entry, 'condition', state_id),
                                         next=_require(entry, 'next', state_id)))
        return Choice(id=state_id, branches=branches, otherwise=data.get('otherwise'))
    if kind == SEND:
        return Send(id=state_id, channel=data.get('channel', 'message'),
                    to=_require(data, 'to', state_id), message=_require(data, 'message', state_id),
                    next=data.get('next'))
    if kind == STOP:
        if data.get('next'):
            raise GraphError(f"Stop state '{state_id}' cannot have a next state",
                             state_id=state_id, ref=data['next'])
        return Stop(id=state_id, reason=data.get('reason', ''))
    raise GraphError(f"State '{state_id}' has unknown kind '{kind}'", state_id=state_id)


def deserialize(document: Union[str, dict[str, Any]]) -> Graph:
    """Rebuild and validate a graph from SimpleScript (dict or JSON text)."""
    if isinstance(document, str):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as exc:
            raise GraphError(f'Invalid SimpleScript JSON: {exc}') from exc
    if not isinstance(document, dict):
        raise GraphError('SimpleScript document must be an object')

    states = _require(document, 'states')
    if not isinstance(states, list):
        raise GraphError("SimpleScript 'states' must be a list")

    graph = Graph(name=str(_require(document, 'flow')))
    for entry in states:
        graph.add(_state_from_dict(entry))
    graph.start = str(_require(document, 'start'))
    graph.validate()
    logger.debug("Deserialized flow %r with %d states", graph.name, len(graph))
    return graph
