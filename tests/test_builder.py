"""Tests for storyflow.builder — ids, fall-through linking, choices and implicit stop."""

from __future__ import annotations

import pytest

from storyflow.builder import build
from storyflow.errors import GraphError
from storyflow.ir import CHOICE, SEND, STOP, TASK, USER_TASK, Choice, Stop
from storyflow.parser import parse


def _build(text: str):
    return build(parse(text))


def test_single_ask_then_stop() -> None:
    graph = _build("Flow: X\nAsk user for {email}\nStop")
    assert graph.name == "X"
    assert [s.kind for s in graph] == [USER_TASK, STOP]
    task = graph.get(graph.start)
    assert task.prompt == "user for {email}"
    assert task.assignee == "user"
    assert task.next == "stop"


def test_expense_story_structure(expense_story: str) -> None:
    graph = _build(expense_story)
    assert list(graph.states) == [
        "ask_employee_for_amount_and_receipt_date",
        "if_amount_1000",
        "ask_manager_for_approved_yes_no",
        "do_auto_approve_the_expense",
        "send_confirmation_to_employee",
        "stop",
    ]
    assert graph.start == "ask_employee_for_amount_and_receipt_date"

    choice = graph.get("if_amount_1000")
    assert choice.kind == CHOICE
    assert len(choice.branches) == 1
    assert choice.branches[0].condition == "{amount} > 1000"
    assert choice.branches[0].next == "ask_manager_for_approved_yes_no"
    assert choice.otherwise == "do_auto_approve_the_expense"

    # both branch tails fall through to the statement after the block
    assert graph.get("ask_manager_for_approved_yes_no").next == "send_confirmation_to_employee"
    assert graph.get("do_auto_approve_the_expense").next == "send_confirmation_to_employee"

    send = graph.get("send_confirmation_to_employee")
    assert send.kind == SEND
    assert (send.channel, send.to, send.message) == ("email", "{employee}", "confirmation")
    assert send.next == "stop"
    assert graph.warnings == []


def test_otherwise_defaults_to_post_block_state() -> None:
    graph = _build("Flow: X\nIf {a} > 1\n  Do: big\nDo: after\nStop")
    choice = graph.get("if_a_1")
    assert choice.otherwise == "do_after"
    assert graph.get("do_big").next == "do_after"


def test_otherwise_if_branches(triage_story: str) -> None:
    graph = _build(triage_story)
    choice = graph.get("if_severity_high")
    assert [b.next for b in choice.branches] == ["do_escalate_ticket", "do_queue_ticket"]
    assert choice.otherwise == "do_archive_ticket"
    for task_id in ("do_escalate_ticket", "do_queue_ticket", "do_archive_ticket"):
        assert graph.get(task_id).next == "stop_triaged"


def test_nested_branch_tail_links_past_outer_block() -> None:
    text = (
        "Flow: Nested\n"
        "If {a} > 1\n"
        "  If {b} > 2\n"
        "    Do: both\n"
        "Do: after\n"
        "Stop\n"
    )
    graph = _build(text)
    inner = graph.get("if_b_2")
    assert inner.otherwise == "do_after"
    assert graph.get("do_both").next == "do_after"
    assert graph.get("if_a_1").otherwise == "do_after"


def test_implicit_end_added_once() -> None:
    graph = _build("Flow: X\nIf {a} > 1\n  Do: big\nOtherwise\n  Do: small")
    end = graph.get("end")
    assert isinstance(end, Stop)
    assert end.reason == "End"
    assert graph.get("do_big").next == "end"
    assert graph.get("do_small").next == "end"
    assert sum(1 for s in graph if s.kind == STOP) == 1


def test_header_only_flow_gets_end_state() -> None:
    graph = _build("Flow: Empty")
    assert list(graph.states) == ["end"]
    assert graph.start == "end"


def test_duplicate_labels_get_suffixes() -> None:
    graph = _build("Flow: X\nDo: notify\nDo: notify\nDo: notify\nStop\nStop")
    assert list(graph.states) == ["do_notify", "do_notify_2", "do_notify_3", "stop", "stop_2"]
    assert graph.warnings == ["State 'stop_2' is unreachable from start"]


def test_placeholder_subject_is_assignee() -> None:
    graph = _build("Flow: X\nAsk {manager} for {amount}\nStop")
    task = graph.get(graph.start)
    assert task.id == "ask_manager_for_amount"
    assert task.kind == USER_TASK
    assert task.assignee == "{manager}"


def test_stop_inside_branch_ends_that_path() -> None:
    graph = _build("Flow: X\nIf {ok} == false\n  Stop: rejected\nDo: continue\nStop")
    choice = graph.get("if_ok_false")
    assert choice.branches[0].next == "stop_rejected"
    assert choice.otherwise == "do_continue"
    assert graph.get("stop_rejected").reason == "rejected"


def test_do_becomes_task() -> None:
    graph = _build("Flow: X\nDo: archive records")
    assert graph.get(graph.start).kind == TASK
    assert graph.get(graph.start).action == "archive records"


def test_build_requires_header() -> None:
    with pytest.raises(GraphError):
        build([])
    statements = parse("Flow: X\nStop")
    with pytest.raises(GraphError, match="flow header"):
        build(statements[1:])


def test_every_reference_resolves(expense_story: str, triage_story: str) -> None:
    for story in (expense_story, triage_story):
        graph = _build(story)
        for source, target in graph.edges():
            assert target in graph.states, f"{source} -> {target}"
        assert all(not isinstance(s, Choice) or s.otherwise for s in graph)
