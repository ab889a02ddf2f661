"""Form inference for userTask states.

Each ``{variable}`` referenced by an ask prompt becomes one form field.
The field type is inferred from the variable name and the words around
the placeholder, in a fixed order:

1. variable name: email, then date/time, then number keywords
2. an enumeration next to the placeholder, e.g. ``(yes/no)`` or
   ``(low/medium/high)``: boolean for yes/no-like pairs, else choice
3. the surrounding words, using the same keyword order as step 1
4. boolean-looking names (``is_active``, ``consent``)
5. categorical names with well-known options (``priority``, ``status``)
6. text

Inference never fails; anything inconclusive becomes a required text field.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Optional

from .parser import extract_variables
from .text import humanize, words

logger = logging.getLogger(__name__)

TEXT = 'text'
EMAIL = 'email'
NUMBER = 'number'
DATE = 'date'
BOOLEAN = 'boolean'
CHOICE = 'choice'

FIELD_TYPES = (TEXT, EMAIL, NUMBER, DATE, BOOLEAN, CHOICE)

EMAIL_PATTERN = r'^[^@\s]+@[^@\s]+\.[^@\s]+$'
DATE_PATTERN = r'^\d{4}-\d{2}-\d{2}([T ]\d{2}:\d{2}(:\d{2})?)?$'

_NAME_HINTS = (
    (EMAIL, {'email', 'mail'}),
    (DATE, {'date', 'time', 'datetime', 'timestamp', 'birthday', 'dob',
            'deadline', 'expiry', 'expiration'}),
    (NUMBER, {'amount', 'quantity', 'count', 'qty', 'number', 'num', 'no', 'nr',
              'amt', 'total', 'price', 'cost', 'age', 'salary', 'budget', 'days',
              'hours', 'percent', 'pct', 'score'}),
)
# Compound tokens such as ``workemail`` or ``totalamount``.
_NAME_SUFFIXES = {EMAIL: ('email',), DATE: ('timestamp',), NUMBER: ('amount', 'qty', 'price')}

_CONTEXT_HINTS = (
    (EMAIL, re.compile(r'\be-?mail\b', re.I)),
    (DATE, re.compile(r'\b(date|time|timestamp|when|deadline|birthday)\b', re.I)),
    (NUMBER, re.compile(r'\b(amount|quantity|how many|how much|count|total|price|cost)\b', re.I)),
)

# only a parenthesized set counts, e.g. (yes/no) or (low/medium/high)
_ENUMERATION = re.compile(r'\(\s*([A-Za-z][\w-]*(?:\s*/\s*[A-Za-z][\w-]*)+)\s*\)')
_BOOLEAN_SETS = (
    frozenset({'yes', 'no'}),
    frozenset({'true', 'false'}),
    frozenset({'y', 'n'}),
    frozenset({'on', 'off'}),
)
_BOOLEAN_PREFIXES = {'is', 'has', 'can', 'should'}
_BOOLEAN_WORDS = {'agree', 'agreed', 'consent', 'accept', 'accepted', 'confirmed', 'approved'}

_KNOWN_OPTIONS = {
    'status': ('pending', 'approved', 'rejected'),
    'priority': ('low', 'medium', 'high', 'critical'),
    'level': ('low', 'medium', 'high'),
    'department': ('engineering', 'sales', 'marketing', 'hr', 'finance'),
    'category': ('general', 'billing', 'technical', 'other'),
    'type': ('standard', 'urgent', 'other'),
}
_LONG_TEXT = {'description', 'notes', 'comments', 'details', 'reason',
              'justification', 'feedback', 'message'}

_OPTIONAL = re.compile(
    r'\boptional(?:ly)?\b|\bif (?:available|any|applicable|known)\b|\bnot required\b', re.I,
)
_SEGMENT_SPLIT = re.compile(r'[,;]|\band\b|\bor\b', re.I)
_TITLE_STOPWORDS = {'for', 'and', 'or', 'to', 'the', 'a', 'an', 'their', 'his', 'her',
                    'optionally', 'optional', 'if', 'available', 'provide'}


# ============================================================
# SCHEMA
# ============================================================

@dataclass
class Rule:
    """Validation rule: required, pattern, range, minLength or maxLength."""

    type: str
    message: str = ''
    pattern: Optional[str] = None
    min: Optional[int] = None
    max: Optional[int] = None
    value: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {'type': self.type}
        for key in ('pattern', 'min', 'max', 'value'):
            if getattr(self, key) is not None:
                data[key] = getattr(self, key)
        if self.message:
            data['message'] = self.message
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Rule:
        return cls(
            type=data['type'],
            message=data.get('message', ''),
            pattern=data.get('pattern'),
            min=data.get('min'),
            max=data.get('max'),
            value=data.get('value'),
        )


@dataclass
class Option:
    value: str
    label: str


@dataclass
class Field:
    name: str
    label: str
    type: str
    rules: list[Rule] = field(default_factory=list)
    options: list[Option] = field(default_factory=list)

    @property
    def required(self) -> bool:
        return any(r.type == 'required' for r in self.rules)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            'name': self.name,
            'label': self.label,
            'type': self.type,
            'validation': {'rules': [r.to_dict() for r in self.rules]},
        }
        if self.options:
            data['options'] = [{'value': o.value, 'label': o.label} for o in self.options]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Field:
        return cls(
            name=data['name'],
            label=data['label'],
            type=data['type'],
            rules=[Rule.from_dict(r) for r in data.get('validation', {}).get('rules', [])],
            options=[Option(o['value'], o['label']) for o in data.get('options', [])],
        )


@dataclass
class Form:
    id: str
    title: str
    fields: list[Field] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'fields': [f.to_dict() for f in self.fields],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Form:
        return cls(
            id=data['id'],
            title=data['title'],
            fields=[Field.from_dict(f) for f in data.get('fields', [])],
        )


# ============================================================
# INFERENCE
# ============================================================

def _name_matches(tokens: list[str], ftype: str, keywords: set[str]) -> bool:
    suffixes = _NAME_SUFFIXES.get(ftype, ())
    return any(t in keywords or t.endswith(suffixes) for t in tokens)


def _options(values: list[str]) -> list[Option]:
    return [Option(v.lower(), humanize(v)) for v in values]


def infer_type(name: str, context: str = '') -> tuple[str, list[Option]]:
    """Return the inferred field type and, for choice fields, its options."""
    tokens = [t.lower() for t in words(name)]

    for ftype, keywords in _NAME_HINTS:
        if _name_matches(tokens, ftype, keywords):
            return ftype, []

    enum = _ENUMERATION.search(context)
    if enum:
        values = [v.strip() for v in enum.group(1).split('/')]
        if frozenset(v.lower() for v in values) in _BOOLEAN_SETS:
            return BOOLEAN, []
        return CHOICE, _options(values)

    for ftype, pattern in _CONTEXT_HINTS:
        if pattern.search(context):
            return ftype, []

    if (len(tokens) > 1 and tokens[0] in _BOOLEAN_PREFIXES) or _BOOLEAN_WORDS & set(tokens):
        return BOOLEAN, []

    for token in tokens:
        if token in _KNOWN_OPTIONS:
            return CHOICE, _options(list(_KNOWN_OPTIONS[token]))

    logger.debug("No type hint for variable %r; defaulting to text", name)
    return TEXT, []


def _rules(name: str, label: str, ftype: str, optional: bool) -> list[Rule]:
    tokens = {t.lower() for t in words(name)}
    rules = [] if optional else [Rule('required', message=f'{label} is required')]

    if ftype == EMAIL:
        rules.append(Rule('pattern', pattern=EMAIL_PATTERN, message='Must be a valid email address'))
    elif ftype == NUMBER:
        if 'age' in tokens:
            rules.append(Rule('range', min=0, max=120, message='Must be a valid age'))
        else:
            rules.append(Rule('range', min=0, message='Must be a positive number'))
    elif ftype == DATE:
        rules.append(Rule('pattern', pattern=DATE_PATTERN, message='Use an ISO 8601 date (YYYY-MM-DD)'))
    elif ftype == TEXT:
        rules.append(Rule('maxLength', value=5000 if tokens & _LONG_TEXT else 255))
    return rules


def _segments(prompt: str) -> dict[str, str]:
    """Map each variable to the clause of the prompt that mentions it."""
    found: dict[str, str] = {}
    for segment in _SEGMENT_SPLIT.split(prompt):
        for name in extract_variables(segment):
            found.setdefault(name, segment)
    return found


def infer_field(name: str, segment: str = '') -> Field:
    """Build one form field from a variable name and its prompt clause."""
    context = re.sub(r'\{[^}]*\}', ' ', segment)
    ftype, options = infer_type(name, context)
    label = humanize(name) or name
    optional = bool(_OPTIONAL.search(context))
    return Field(
        name=name,
        label=label,
        type=ftype,
        rules=_rules(name, label, ftype, optional),
        options=options,
    )


def form_title(prompt: str) -> str:
    stripped = re.sub(r'\{[^}]*\}|\([^)]*\)|[^\w\s-]', ' ', prompt)
    kept = [w for w in stripped.split() if w.lower() not in _TITLE_STOPWORDS]
    return ' '.join(w[0].upper() + w[1:] for w in kept) or 'User Input'


def generate_form(state_id: str, prompt: str, exclude: tuple[str, ...] = ()) -> Optional[Form]:
    """Infer a form from an ask prompt; None when it references no variables.

    Names in ``exclude`` (the assignee placeholder) never become fields.
    """
    variables = [v for v in extract_variables(prompt) if v not in exclude]
    if not variables:
        return None
    segments = _segments(prompt)
    return Form(
        id=f'form_{state_id}',
        title=form_title(prompt),
        fields=[infer_field(name, segments.get(name, '')) for name in variables],
    )


def attach_forms(graph):
    """Attach a generated form to every userTask of ``graph`` in place."""
    attached = 0
    for task in graph.user_tasks():
        task.form = generate_form(task.id, task.prompt, tuple(extract_variables(task.assignee)))
        if task.form is not None:
            attached += 1
    logger.debug("Attached %d forms to flow %r", attached, graph.name)
    return graph
