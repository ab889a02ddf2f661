"""Result bundle exchanged with the narrative (LLM / heuristic) generator.

The compiler only consumes the ``story`` text of a bundle; the other
fields are validated and passed through for downstream diagnostics.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .compiler import CompileResult, compile_story
from .config import AppConfig
from .errors import StoryFlowError
from .ir import Choice, Graph, Send, Task, UserTask
from .parser import extract_variables

logger = logging.getLogger(__name__)

ORIGINS = ('llm', 'heuristic')
VARIABLE_ORIGINS = ('input', 'condition', 'output', 'system')


class BundleError(StoryFlowError):
    """Malformed narrative result bundle."""

    kind = 'bundle'


@dataclass
class VariableInsight:
    name: str
    description: str = ''
    origins: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {'name': self.name, 'origins': list(self.origins)}
        if self.description:
            data['description'] = self.description
        return data


@dataclass
class NarrativeInsights:
    actors: list[str] = field(default_factory=list)
    intents: list[str] = field(default_factory=list)
    variables: list[VariableInsight] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            'actors': list(self.actors),
            'intents': list(self.intents),
            'variables': [v.to_dict() for v in self.variables],
        }

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> NarrativeInsights:
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise BundleError("'insights' must be an object")
        variables = []
        for entry in data.get('variables') or []:
            if isinstance(entry, str):
                variables.append(VariableInsight(name=entry))
                continue
            if not isinstance(entry, dict) or 'name' not in entry:
                raise BundleError("Each insight variable needs a 'name'")
            origins = [o for o in entry.get('origins') or [] if o in VARIABLE_ORIGINS]
            variables.append(VariableInsight(name=str(entry['name']),
                                             description=entry.get('description') or '',
                                             origins=origins))
        return cls(
            actors=[str(a) for a in data.get('actors') or []],
            intents=[str(i) for i in data.get('intents') or []],
            variables=variables,
        )


@dataclass
class StoryResult:
    """What the narrative generator hands over: StoryFlow text plus metadata."""

    story: str
    origin: str = 'heuristic'
    insights: NarrativeInsights = field(default_factory=NarrativeInsights)
    confidence: Optional[float] = None
    warnings: list[str] = field(default_factory=list)
    provider: str = ''

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoryResult:
        if not isinstance(data, dict):
            raise BundleError('Narrative result must be an object')
        story = data.get('story')
        if not isinstance(story, str) or not story.strip():
            raise BundleError("Narrative result has no 'story' text")
        origin = data.get('origin', 'heuristic')
        if origin not in ORIGINS:
            raise BundleError(f"Unknown narrative origin {origin!r}; expected one of {ORIGINS}")
        confidence = data.get('confidence')
        if confidence is not None:
            try:
                confidence = float(confidence)
            except (TypeError, ValueError):
                raise BundleError(f'Confidence must be a number, got {confidence!r}') from None
            if not 0.0 <= confidence <= 1.0:
                raise BundleError(f'Confidence must be within 0..1, got {confidence}')
        return cls(
            story=story,
            origin=origin,
            insights=NarrativeInsights.from_dict(data.get('insights')),
            confidence=confidence,
            warnings=[str(w) for w in data.get('warnings') or []],
            provider=str(data.get('provider') or ''),
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'story': self.story,
            'origin': self.origin,
            'insights': self.insights.to_dict(),
            'warnings': list(self.warnings),
        }
        if self.confidence is not None:
            data['confidence'] = self.confidence
        if self.provider:
            data['provider'] = self.provider
        return data


def compile_bundle(bundle, config: Optional[AppConfig] = None) -> CompileResult:
    """Compile the story carried by a narrative result (dict or StoryResult)."""
    if not isinstance(bundle, StoryResult):
        bundle = StoryResult.from_dict(bundle)
    logger.debug("Compiling %s story from provider %r", bundle.origin, bundle.provider or '-')
    return compile_story(bundle.story, config)


def insights_from_graph(graph: Graph) -> NarrativeInsights:
    """Derive actors, intents and variables from a compiled graph."""
    actors: list[str] = []
    intents: list[str] = []
    variables: dict[str, VariableInsight] = {}

    def note(names: list[str], origin: str) -> None:
        for name in names:
            insight = variables.setdefault(name, VariableInsight(name=name))
            if origin not in insight.origins:
                insight.origins.append(origin)

    for state in graph:
        if isinstance(state, UserTask):
            actor = state.assignee.strip('{}')
            if actor and actor not in actors:
                actors.append(actor)
            assigned = extract_variables(state.assignee)
            note([v for v in extract_variables(state.prompt) if v not in assigned], 'input')
        elif isinstance(state, Task):
            intents.append(state.action)
            note(extract_variables(state.action), 'system')
        elif isinstance(state, Choice):
            for branch in state.branches:
                note(extract_variables(branch.condition), 'condition')
        elif isinstance(state, Send):
            note(extract_variables(f'{state.message} {state.to}'), 'output')

    return NarrativeInsights(actors=actors, intents=intents, variables=list(variables.values()))
