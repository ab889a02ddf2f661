"""Shared fixtures for StoryFlow compiler tests."""

from __future__ import annotations

import pytest

from storyflow.config import AppConfig, LayoutConfig, ServerConfig
from storyflow.ir import Choice, ChoiceBranch, Graph, Stop, Task, UserTask


EXPENSE_STORY = """\
Flow: Expense approval
# submitted from the portal
Ask employee for {amount} and {receipt_date}
If {amount} > 1000
  Ask manager for {approved} (yes/no)
Otherwise
  Do: auto-approve the expense
Send confirmation to {employee} via email
Stop
"""

TRIAGE_STORY = """\
Flow: Ticket triage
Ask user for {ticket}
If {severity} == "high"
  Do: escalate ticket
Otherwise if {severity} == "medium"
  Do: queue ticket
Otherwise
  Do: archive ticket
Stop: triaged
"""


@pytest.fixture
def expense_story() -> str:
    return EXPENSE_STORY


@pytest.fixture
def triage_story() -> str:
    return TRIAGE_STORY


@pytest.fixture
def app_config() -> AppConfig:
    return AppConfig(
        layout=LayoutConfig(),
        server=ServerConfig(host="127.0.0.1", port=9010, max_body_bytes=64 * 1024),
        default_lane="System",
        executable=True,
        log_level="DEBUG",
    )


@pytest.fixture
def loop_graph() -> Graph:
    """Hand-built graph with a back edge and an orphan state."""
    graph = Graph(name="Retry loop")
    graph.add(UserTask(id="collect", prompt="user for {code}", assignee="user", next="check"))
    graph.add(Choice(
        id="check",
        branches=[ChoiceBranch(condition="{code} == ''", next="collect")],
        otherwise="done",
    ))
    graph.add(Stop(id="done", reason="Finished"))
    graph.add(Task(id="orphan", action="clean up", next="done"))
    return graph
