"""Compilation pipeline: StoryFlow text -> graph -> output artifacts.

Form generation always runs before either serializer, so SimpleScript
and BPMN output carry the same form schemas.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from . import bpmn, script
from .builder import build
from .config import AppConfig
from .forms import attach_forms
from .ir import Graph
from .parser import parse

logger = logging.getLogger(__name__)


def forms_schema(graph: Graph) -> dict[str, dict[str, Any]]:
    """State id -> form schema for every userTask that has a form."""
    return {task.id: task.form.to_dict() for task in graph.user_tasks() if task.form is not None}


@dataclass
class CompileResult:
    graph: Graph
    config: AppConfig = field(default_factory=AppConfig, repr=False)
    _bpmn: Optional[str] = field(default=None, init=False, repr=False, compare=False)

    @property
    def warnings(self) -> list[str]:
        return list(self.graph.warnings)

    def script(self) -> dict[str, Any]:
        return script.serialize(self.graph)

    def script_json(self) -> str:
        return script.dumps(self.graph)

    def forms(self) -> dict[str, dict[str, Any]]:
        return forms_schema(self.graph)

    def bpmn(self) -> str:
        """Emit BPMN once; later calls reuse the document."""
        if self._bpmn is None:
            self._bpmn = bpmn.emit(self.graph, self.config)
        return self._bpmn

    def to_dict(self) -> dict[str, Any]:
        return {
            'name': self.graph.name,
            'start': self.graph.start,
            'script': self.script(),
            'forms': self.forms(),
            'bpmn': self.bpmn(),
            'warnings': self.warnings,
        }


def compile_story(text: str, config: Optional[AppConfig] = None) -> CompileResult:
    """Parse, build and attach forms.

    Raises FlowSyntaxError or GraphError; nothing is returned on failure.
    """
    graph = build(parse(text))
    attach_forms(graph)
    logger.debug("Compiled flow %r with %d forms", graph.name, len(forms_schema(graph)))
    return CompileResult(graph=graph, config=config or AppConfig())


def compile_script(document, config: Optional[AppConfig] = None) -> CompileResult:
    """Load a SimpleScript document (dict or JSON text) through the inverse builder."""
    return CompileResult(graph=script.deserialize(document), config=config or AppConfig())
