"""Tests for storyflow.parser — tokenizer, statement shapes, nesting and syntax errors."""

from __future__ import annotations

import pytest

from storyflow import parser
from storyflow.errors import FlowSyntaxError
from storyflow.parser import extract_variables, infer_channel, parse, tokenize


# ── Tokenizer ────────────────────────────────────────────

def test_tokenize_skips_blank_and_comment_lines() -> None:
    lines = tokenize("Flow: X\n\n# note\n// another\n  Do: work\n")
    assert [(l.number, l.indent, l.text) for l in lines] == [
        (1, 0, "Flow: X"),
        (5, 2, "Do: work"),
    ]


def test_tokenize_expands_tabs() -> None:
    lines = tokenize("If {a} > 1\n\tStop")
    assert lines[1].indent == 4


def test_extract_variables_ordered_and_unique() -> None:
    assert extract_variables("{email}, { name } and {email}") == ["email", "name"]


@pytest.mark.parametrize("message, channel", [
    ("email receipt", "email"),
    ("an SMS reminder", "sms"),
    ("Slack ping", "slack"),
    ("a summary", "message"),
])
def test_infer_channel(message: str, channel: str) -> None:
    assert infer_channel(message) == channel


# ── Statements ───────────────────────────────────────────

def test_parse_expense_story(expense_story: str) -> None:
    statements = parse(expense_story)
    kinds = [s.kind for s in statements]
    assert kinds == [parser.FLOW_HEADER, parser.ASK, parser.CONDITIONAL, parser.SEND, parser.STOP]

    header, ask, cond, send, stop = statements
    assert header.body == "Expense approval"
    assert ask.subject == "employee"
    assert ask.body == "employee for {amount} and {receipt_date}"
    assert ask.variables == ["amount", "receipt_date"]
    assert ask.line == 3

    assert [b.condition for b in cond.branches] == ["{amount} > 1000"]
    assert cond.variables == ["amount"]
    assert [s.kind for s in cond.branches[0].body] == [parser.ASK]
    assert [s.kind for s in cond.otherwise] == [parser.DO]
    assert cond.otherwise[0].body == "auto-approve the expense"

    assert send.body == "confirmation"
    assert send.recipient == "{employee}"
    assert send.channel == "email"
    assert send.variables == ["employee"]
    assert stop.body == ""


def test_otherwise_if_extends_branches(triage_story: str) -> None:
    cond = parse(triage_story)[2]
    assert [b.condition for b in cond.branches] == ['{severity} == "high"', '{severity} == "medium"']
    assert cond.otherwise[0].body == "archive ticket"


def test_conditional_without_otherwise() -> None:
    cond = parse("Flow: X\nIf {a} > 1:\n  Do: big\nStop")[1]
    assert cond.branches[0].condition == "{a} > 1"
    assert cond.otherwise is None


def test_nested_conditionals() -> None:
    text = (
        "Flow: Nested\n"
        "If {a} > 1\n"
        "  If {b} > 2\n"
        "    Do: both\n"
        "  Otherwise\n"
        "    Do: only a\n"
        "Stop\n"
    )
    outer = parse(text)[1]
    inner = outer.branches[0].body[0]
    assert inner.kind == parser.CONDITIONAL
    assert inner.branches[0].body[0].body == "both"
    assert inner.otherwise[0].body == "only a"
    assert outer.otherwise is None


def test_do_without_colon() -> None:
    assert parse("Flow: X\nDo notify finance")[1].body == "notify finance"


def test_send_inferred_channel() -> None:
    send = parse("Flow: X\nSend email reminder to pay to {customer}")[1]
    assert send.body == "email reminder to pay"
    assert send.recipient == "{customer}"
    assert send.channel == "email"


def test_send_last_to_introduces_recipient() -> None:
    send = parse("Flow: X\nSend reminder to manager to sign via email")[1]
    assert send.body == "reminder to manager"
    assert send.recipient == "sign"
    assert send.channel == "email"


def test_ask_with_placeholder_subject() -> None:
    ask = parse("Flow: X\nAsk {manager} for {amount}")[1]
    assert ask.kind == parser.ASK
    assert ask.subject == "{manager}"
    assert ask.body == "{manager} for {amount}"
    assert ask.variables == ["manager", "amount"]


@pytest.mark.parametrize("line, reason", [
    ("Stop", ""),
    ("Stop: rejected", "rejected"),
    ("stop request cancelled", "request cancelled"),
])
def test_stop_reason(line: str, reason: str) -> None:
    assert parse(f"Flow: X\n{line}")[1].body == reason


# ── Syntax errors ────────────────────────────────────────

def test_missing_header_reports_line_1() -> None:
    with pytest.raises(FlowSyntaxError) as exc_info:
        parse("Ask user for {email}\nStop")
    assert exc_info.value.line == 1
    assert exc_info.value.text == "Ask user for {email}"
    assert "line 1" in str(exc_info.value)


def test_empty_document() -> None:
    with pytest.raises(FlowSyntaxError) as exc_info:
        parse("\n# nothing\n")
    assert exc_info.value.line == 1


def test_empty_flow_name() -> None:
    with pytest.raises(FlowSyntaxError, match="flow name is required"):
        parse("Flow:\nStop")


def test_duplicate_header() -> None:
    with pytest.raises(FlowSyntaxError, match="duplicate flow header") as exc_info:
        parse("Flow: A\nFlow: B")
    assert exc_info.value.line == 2


def test_unrecognized_statement() -> None:
    with pytest.raises(FlowSyntaxError, match="unrecognized statement") as exc_info:
        parse("Flow: A\nDance wildly")
    assert exc_info.value.line == 2
    assert exc_info.value.text == "Dance wildly"


def test_otherwise_without_if() -> None:
    with pytest.raises(FlowSyntaxError, match="without matching 'If'") as exc_info:
        parse("Flow: A\nDo: work\nOtherwise\n  Stop")
    assert exc_info.value.line == 3


def test_if_requires_indented_block() -> None:
    with pytest.raises(FlowSyntaxError, match="expected an indented block") as exc_info:
        parse("Flow: A\nIf {a} > 1\nStop")
    assert exc_info.value.line == 2


def test_unexpected_indentation() -> None:
    with pytest.raises(FlowSyntaxError, match="unexpected indentation"):
        parse("Flow: A\n  Do: work")


def test_malformed_placeholder() -> None:
    with pytest.raises(FlowSyntaxError, match="malformed variable placeholder"):
        parse("Flow: A\nAsk user for {email\nStop")
