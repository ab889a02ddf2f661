"""BPMN 2.0 XML emission (Camunda 8 flavoured) from a state graph.

Output is byte-for-byte deterministic for a given graph and config:
elements follow construction order, flows are numbered in emission
order, and every coordinate is an integer.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional

from .config import AppConfig
from .errors import LayoutError
from .ir import CHOICE, SEND, STOP, TASK, USER_TASK, Choice, Graph, Send, State, Stop, Task, UserTask
from .layout import START_NODE, Layout, compute_layout, waypoints
from .text import slugify, xml_id

logger = logging.getLogger(__name__)

EXPORTER = 'storyflow'
EXPORTER_VERSION = '1.0'
START_EVENT_ID = 'StartEvent_1'

# state kind -> (BPMN tag, element id prefix)
_SHAPES = {
    USER_TASK: ('bpmn:userTask', 'UT'),
    TASK: ('bpmn:serviceTask', 'ST'),
    CHOICE: ('bpmn:exclusiveGateway', 'GW'),
    SEND: ('bpmn:sendTask', 'SND'),
    STOP: ('bpmn:endEvent', 'End'),
}

_PLACEHOLDER = re.compile(r'\{\s*([A-Za-z_][\w.-]*)\s*\}')

_DEFINITIONS = (
    '<bpmn:definitions xmlns:bpmn="http://www.omg.org/spec/BPMN/20100524/MODEL" '
    'xmlns:bpmndi="http://www.omg.org/spec/BPMN/20100524/DI" '
    'xmlns:dc="http://www.omg.org/spec/DD/20100524/DC" '
    'xmlns:di="http://www.omg.org/spec/DD/20100524/DI" '
    'xmlns:zeebe="http://camunda.org/schema/zeebe/1.0" '
    'xmlns:modeler="http://camunda.org/schema/modeler/1.0" '
    'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
    'id="Definitions_{slug}" targetNamespace="http://bpmn.io/schema/bpmn" '
    f'exporter="{EXPORTER}" exporterVersion="{EXPORTER_VERSION}" '
    'modeler:executionPlatform="Camunda Cloud" '
    'modeler:executionPlatformVersion="8.8.0">'
)


@dataclass
class SequenceFlow:
    id: str
    source: str
    target: str
    name: str = ''
    condition: str = ''
    is_default: bool = False


def _xml_escape(text: str) -> str:
    """Escape special XML characters."""
    return (text
            .replace('&', '&amp;')
            .replace('<', '&lt;')
            .replace('>', '&gt;')
            .replace('"', '&quot;')
            .replace("'", '&apos;'))


def feel_condition(condition: str) -> str:
    """Translate StoryFlow condition text to a FEEL expression."""
    return '= ' + _PLACEHOLDER.sub(r'\1', condition).strip()


def assignee_expression(assignee: str) -> str:
    """A placeholder subject such as ``{manager}`` becomes the FEEL expression ``=manager``."""
    match = _PLACEHOLDER.fullmatch(assignee)
    return f'={match.group(1)}' if match else assignee


def element_ids(graph: Graph) -> dict[str, str]:
    """Map state ids to BPMN element ids; LayoutError on a collision."""
    ids: dict[str, str] = {}
    seen = {START_EVENT_ID}
    for state in graph:
        _, prefix = _SHAPES[state.kind]
        bid = f'{prefix}_{xml_id(state.id)}'
        if bid in seen:
            raise LayoutError(f"Duplicate BPMN element id '{bid}'", element_id=bid)
        seen.add(bid)
        ids[state.id] = bid
    return ids


def _collect_flows(graph: Graph, bpmn_ids: dict[str, str]) -> list[SequenceFlow]:
    flows: list[SequenceFlow] = []

    def add(source: str, target: str, **kwargs) -> None:
        if target not in bpmn_ids:
            raise LayoutError(f"Edge from '{source}' targets unplaced state '{target}'",
                              element_id=target)
        flows.append(SequenceFlow(id=f'Flow_{len(flows) + 1}', source=source,
                                  target=bpmn_ids[target], **kwargs))

    add(START_EVENT_ID, graph.start)
    for state in graph:
        source = bpmn_ids[state.id]
        if isinstance(state, Choice):
            for branch in state.branches:
                add(source, branch.next, name=branch.condition,
                    condition=feel_condition(branch.condition))
            if state.otherwise:
                add(source, state.otherwise, name='Otherwise', is_default=True)
        elif not isinstance(state, Stop) and state.next:
            add(source, state.next)
    return flows


def _element_name(state: State) -> str:
    if isinstance(state, UserTask):
        return state.prompt
    if isinstance(state, Task):
        return state.action
    if isinstance(state, Choice):
        return f'{state.branches[0].condition}?' if state.branches else ''
    if isinstance(state, Send):
        return f'Send {state.message}'
    return state.reason or 'End'


def emit(graph: Graph, config: Optional[AppConfig] = None) -> str:
    """Generate complete BPMN XML (process, lanes, flows, diagram) for ``graph``."""
    config = config or AppConfig()
    layout = compute_layout(graph, config.layout, config.default_lane)
    bpmn_ids = element_ids(graph)
    flows = _collect_flows(graph, bpmn_ids)

    incoming: dict[str, list[str]] = {}
    outgoing: dict[str, list[str]] = {}
    for flow in flows:
        outgoing.setdefault(flow.source, []).append(flow.id)
        incoming.setdefault(flow.target, []).append(flow.id)

    slug = xml_id(slugify(graph.name) or 'flow')
    process_id = f'Process_{slug}'
    name = _xml_escape(graph.name)

    lines: list[str] = []

    def L(indent, text):
        lines.append('  ' * indent + text)

    L(0, '<?xml version="1.0" encoding="UTF-8"?>')
    L(0, _DEFINITIONS.replace('{slug}', slug))

    L(1, '<bpmn:collaboration id="Collaboration_1">')
    L(2, f'<bpmn:participant id="Participant_1" name="{name}" processRef="{process_id}" />')
    L(1, '</bpmn:collaboration>')

    executable = 'true' if config.executable else 'false'
    L(1, f'<bpmn:process id="{process_id}" name="{name}" isExecutable="{executable}">')
    L(2, '<bpmn:extensionElements>')
    L(3, f'<zeebe:versionTag value="{EXPORTER_VERSION}" />')
    for task in graph.user_tasks():
        if task.form is not None:
            payload = json.dumps(task.form.to_dict(), ensure_ascii=False, separators=(',', ':'))
            L(3, f'<zeebe:userTaskForm id="{xml_id(task.form.id)}">{_xml_escape(payload)}</zeebe:userTaskForm>')
    L(2, '</bpmn:extensionElements>')

    _emit_lanes(L, layout, bpmn_ids)

    L(2, f'<bpmn:startEvent id="{START_EVENT_ID}" name="Start">')
    for fid in outgoing.get(START_EVENT_ID, []):
        L(3, f'<bpmn:outgoing>{fid}</bpmn:outgoing>')
    L(2, '</bpmn:startEvent>')

    default_flows = {f.source: f.id for f in flows if f.is_default}
    for state in graph:
        bid = bpmn_ids[state.id]
        tag, _ = _SHAPES[state.kind]
        attrs = f'id="{bid}"'
        label = _element_name(state)
        if label:
            attrs += f' name="{_xml_escape(label)}"'
        if bid in default_flows:
            attrs += f' default="{default_flows[bid]}"'
        L(2, f'<{tag} {attrs}>')
        _emit_body(L, state)
        for fid in incoming.get(bid, []):
            L(3, f'<bpmn:incoming>{fid}</bpmn:incoming>')
        for fid in outgoing.get(bid, []):
            L(3, f'<bpmn:outgoing>{fid}</bpmn:outgoing>')
        if isinstance(state, Stop):
            L(3, '<bpmn:terminateEventDefinition />')
        L(2, f'</{tag}>')

    for flow in flows:
        attrs = f'id="{flow.id}" sourceRef="{flow.source}" targetRef="{flow.target}"'
        if flow.name:
            attrs += f' name="{_xml_escape(flow.name)}"'
        if flow.condition:
            L(2, f'<bpmn:sequenceFlow {attrs}>')
            L(3, '<bpmn:conditionExpression xsi:type="bpmn:tFormalExpression">'
                 f'{_xml_escape(flow.condition)}</bpmn:conditionExpression>')
            L(2, '</bpmn:sequenceFlow>')
        else:
            L(2, f'<bpmn:sequenceFlow {attrs} />')

    L(1, '</bpmn:process>')

    _emit_diagram(L, layout, bpmn_ids, flows)

    L(0, '</bpmn:definitions>')

    logger.info("Emitted BPMN for %r: %d lanes, %d nodes, %d flows",
                graph.name, len(layout.lanes), len(graph) + 1, len(flows))
    return '\n'.join(lines) + '\n'


def _emit_body(L, state: State) -> None:
    """Kind-specific documentation and Zeebe extension elements."""
    if isinstance(state, Send):
        L(3, f'<bpmn:documentation>{_xml_escape(f"To {state.to}: {state.message}")}</bpmn:documentation>')
        L(3, '<bpmn:extensionElements>')
        L(4, f'<zeebe:taskDefinition type="send-{slugify(state.channel) or "message"}" />')
        L(3, '</bpmn:extensionElements>')
    elif isinstance(state, Task):
        L(3, '<bpmn:extensionElements>')
        L(4, f'<zeebe:taskDefinition type="{_xml_escape(state.id)}" />')
        L(3, '</bpmn:extensionElements>')
    elif isinstance(state, UserTask) and (state.form is not None or state.assignee):
        L(3, '<bpmn:extensionElements>')
        if state.assignee:
            L(4, f'<zeebe:assignmentDefinition assignee="{_xml_escape(assignee_expression(state.assignee))}" />')
        if state.form is not None:
            L(4, f'<zeebe:formDefinition formKey="camunda-forms:bpmn:{xml_id(state.form.id)}" />')
        L(3, '</bpmn:extensionElements>')


def _emit_lanes(L, layout: Layout, bpmn_ids: dict[str, str]) -> None:
    L(2, '<bpmn:laneSet id="LaneSet_1">')
    start_lane = layout.nodes[START_NODE].lane
    for lane in layout.lanes:
        L(3, f'<bpmn:lane id="{lane.id}" name="{_xml_escape(lane.name)}">')
        if lane.id == start_lane:
            L(4, f'<bpmn:flowNodeRef>{START_EVENT_ID}</bpmn:flowNodeRef>')
        for state_id in lane.state_ids:
            L(4, f'<bpmn:flowNodeRef>{bpmn_ids[state_id]}</bpmn:flowNodeRef>')
        L(3, '</bpmn:lane>')
    L(2, '</bpmn:laneSet>')


def _emit_diagram(L, layout: Layout, bpmn_ids: dict[str, str], flows: list[SequenceFlow]) -> None:
    """BPMNDiagram section mirroring the computed layout."""
    placed = {START_EVENT_ID: layout.nodes[START_NODE]}
    for state_id, bid in bpmn_ids.items():
        placed[bid] = layout.nodes[state_id]

    def bounds(b):
        L(4, f'<dc:Bounds x="{b.x}" y="{b.y}" width="{b.width}" height="{b.height}" />')

    L(1, '<bpmndi:BPMNDiagram id="BPMNDiagram_1">')
    L(2, '<bpmndi:BPMNPlane id="BPMNPlane_1" bpmnElement="Collaboration_1">')

    L(3, '<bpmndi:BPMNShape id="Participant_1_di" bpmnElement="Participant_1" isHorizontal="true">')
    bounds(layout.pool)
    L(3, '</bpmndi:BPMNShape>')

    for lane in layout.lanes:
        L(3, f'<bpmndi:BPMNShape id="{lane.id}_di" bpmnElement="{lane.id}" isHorizontal="true">')
        bounds(layout.lane_bounds[lane.id])
        L(3, '</bpmndi:BPMNShape>')

    for bid, node in placed.items():
        marker = ' isMarkerVisible="true"' if node.kind == CHOICE else ''
        L(3, f'<bpmndi:BPMNShape id="{bid}_di" bpmnElement="{bid}"{marker}>')
        bounds(node.bounds)
        L(3, '</bpmndi:BPMNShape>')

    for flow in flows:
        L(3, f'<bpmndi:BPMNEdge id="{flow.id}_di" bpmnElement="{flow.id}">')
        for x, y in waypoints(placed[flow.source], placed[flow.target]):
            L(4, f'<di:waypoint x="{x}" y="{y}" />')
        L(3, '</bpmndi:BPMNEdge>')

    L(2, '</bpmndi:BPMNPlane>')
    L(1, '</bpmndi:BPMNDiagram>')
