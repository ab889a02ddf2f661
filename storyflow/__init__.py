"""StoryFlow compiler: StoryFlow text -> state graph -> SimpleScript, forms, BPMN."""

from __future__ import annotations

__version__ = '1.0.0'

from .builder import build
from .bpmn import emit
from .compiler import CompileResult, compile_script, compile_story, forms_schema
from .config import AppConfig, LayoutConfig, ServerConfig
from .errors import FlowSyntaxError, GraphError, LayoutError, StoryFlowError
from .forms import attach_forms, generate_form
from .ir import Graph
from .layout import compute_layout
from .parser import parse
from .script import deserialize, dumps, serialize

__all__ = [
    'AppConfig', 'CompileResult', 'FlowSyntaxError', 'Graph', 'GraphError', 'LayoutConfig',
    'LayoutError', 'ServerConfig', 'StoryFlowError', 'attach_forms', 'build', 'compile_script',
    'compile_story', 'compute_layout', 'deserialize', 'dumps', 'emit', 'forms_schema',
    'generate_form', 'parse', 'serialize',
]
