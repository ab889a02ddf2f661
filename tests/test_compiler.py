"""End-to-end tests for storyflow.compiler — text in, artifacts out."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from storyflow import bpmn, forms
from storyflow.compiler import compile_script, compile_story, forms_schema
from storyflow.errors import FlowSyntaxError, GraphError
from storyflow.ir import CHOICE, STOP, USER_TASK


def test_ask_then_stop() -> None:
    result = compile_story("Flow: X\nAsk user for {email}\nStop")
    graph = result.graph
    assert len(graph) == 2
    assert [s.kind for s in graph] == [USER_TASK, STOP]

    task = graph.get(graph.start)
    assert len(task.form.fields) == 1
    field = task.form.fields[0]
    assert field.name == "email"
    assert field.type == forms.EMAIL
    assert field.rules[0].type == "required"


def test_choice_with_otherwise(expense_story: str) -> None:
    graph = compile_story(expense_story).graph
    choices = [s for s in graph if s.kind == CHOICE]
    assert len(choices) == 1
    choice = choices[0]
    assert [b.condition for b in choice.branches] == ["{amount} > 1000"]
    # the otherwise path rejoins at the state after the block
    assert graph.get(choice.otherwise).next == "send_confirmation_to_employee"


def test_choice_otherwise_is_post_block_state() -> None:
    graph = compile_story("Flow: X\nIf {amount} > 1000\n  Do: review\nStop").graph
    choice = graph.get("if_amount_1000")
    assert choice.branches[0].condition == "{amount} > 1000"
    assert choice.otherwise == "stop"


def test_missing_flow_header() -> None:
    with pytest.raises(FlowSyntaxError) as exc_info:
        compile_story("Ask user for {email}\nStop")
    assert exc_info.value.line == 1


def test_corrupted_script_names_missing_id(expense_story: str) -> None:
    document = compile_story(expense_story).script()
    document["states"][0]["next"] = "no_such_state"
    with pytest.raises(GraphError, match="no_such_state") as exc_info:
        compile_script(document)
    assert exc_info.value.ref == "no_such_state"


def test_result_dict(expense_story: str) -> None:
    result = compile_story(expense_story)
    data = result.to_dict()
    assert set(data) == {"name", "start", "script", "forms", "bpmn", "warnings"}
    assert data["name"] == "Expense approval"
    assert data["bpmn"].startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert data["warnings"] == []
    assert data["script"] == result.script()


def test_forms_schema(expense_story: str) -> None:
    graph = compile_story(expense_story).graph
    schema = forms_schema(graph)
    assert list(schema) == ["ask_employee_for_amount_and_receipt_date", "ask_manager_for_approved_yes_no"]
    assert schema["ask_manager_for_approved_yes_no"]["fields"][0]["type"] == "boolean"


def test_warnings_surface() -> None:
    result = compile_story("Flow: X\nStop\nDo: never")
    assert "State 'do_never' is unreachable from start" in result.warnings
    assert result.graph.get("do_never").next == "end"


def test_script_round_trip_through_compiler(triage_story: str) -> None:
    first = compile_story(triage_story)
    second = compile_script(first.script_json())
    assert second.script_json() == first.script_json()
    assert second.bpmn() == first.bpmn()


def test_placeholder_subject_compiles_to_dynamic_assignee() -> None:
    result = compile_story("Flow: X\nAsk {manager} for {amount}\nStop")
    task = result.graph.get("ask_manager_for_amount")
    assert [f.name for f in task.form.fields] == ["amount"]
    assert task.form.fields[0].type == forms.NUMBER
    assert 'assignee="=manager"' in result.bpmn()
    assert '<bpmn:lane id="Lane_manager" name="Manager">' in result.bpmn()


def test_bpmn_is_emitted_once_per_result(expense_story: str) -> None:
    result = compile_story(expense_story)
    with patch("storyflow.bpmn.emit", wraps=bpmn.emit) as emit:
        first = result.bpmn()
        assert result.to_dict()["bpmn"] == first
    assert emit.call_count == 1
