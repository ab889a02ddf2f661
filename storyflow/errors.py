"""Error taxonomy for the StoryFlow compiler.

All fatal compiler errors derive from :class:`StoryFlowError` so callers
(CLI, HTTP service) can translate them uniformly.
"""

from __future__ import annotations

from typing import Any


class StoryFlowError(Exception):
    """Base class for fatal compilation errors."""

    kind = 'error'

    def to_dict(self) -> dict[str, Any]:
        return {'kind': self.kind, 'error': str(self)}


class FlowSyntaxError(StoryFlowError):
    """Malformed or unrecognized StoryFlow statement.

    Named to avoid shadowing the builtin ``SyntaxError``.
    """

    kind = 'syntax'

    def __init__(self, message: str, line: int, text: str = '') -> None:
        super().__init__(f'line {line}: {message}' + (f': {text!r}' if text else ''))
        self.message = message
        self.line = line
        self.text = text

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(line=self.line, text=self.text)
        return data


class GraphError(StoryFlowError):
    """Invalid state graph: dangling reference, duplicate id, no reachable stop."""

    kind = 'graph'

    def __init__(self, message: str, state_id: str = '', ref: str = '') -> None:
        super().__init__(message)
        self.state_id = state_id
        self.ref = ref

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(state_id=self.state_id, ref=self.ref)
        return data


class LayoutError(StoryFlowError):
    """Internal consistency failure while laying out or emitting BPMN."""

    kind = 'layout'

    def __init__(self, message: str, element_id: str = '') -> None:
        super().__init__(message)
        self.element_id = element_id

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data['element_id'] = self.element_id
        return data
