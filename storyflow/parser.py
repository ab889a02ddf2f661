"""StoryFlow lexer and parser.

Turns StoryFlow text into an ordered list of :class:`Statement` objects.
The grammar is line based; nesting of conditional branches is expressed
with indentation::

    Flow: Expense approval
    Ask employee for {amount} and {receipt_date}
    If {amount} > 1000
      Ask manager for {approved} (yes/no)
    Otherwise
      Do: auto-approve the expense
    Send confirmation to {employee} via email
    Stop
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from .errors import FlowSyntaxError

logger = logging.getLogger(__name__)

FLOW_HEADER = 'flowHeader'
ASK = 'ask'
DO = 'do'
CONDITIONAL = 'conditional'
SEND = 'send'
STOP = 'stop'

_PLACEHOLDER = re.compile(r'\{\s*([A-Za-z_][\w.-]*)\s*\}')
_COMMENT_PREFIXES = ('#', '//')
_TAB_SIZE = 4

# Grammar table: first matching pattern decides the statement shape.
_PATTERNS = (
    ('flow', re.compile(r'^flow\s*:\s*(?P<name>.*)$', re.I)),
    ('ask', re.compile(r'^ask\s+(?P<subject>\{[^{}\s]+\}|[^\s{}]+)\s+(?P<rest>\S.*)$', re.I)),
    ('do', re.compile(r'^do(?:\s*:\s*|\s+)(?P<action>\S.*)$', re.I)),
    # greedy message: the last ' to ' introduces the recipient
    ('send', re.compile(
        r'^send\s+(?P<message>.+)\s+to\s+(?P<recipient>.+?)(?:\s+via\s+(?P<channel>\S.*))?$', re.I)),
    ('stop', re.compile(r'^stop\b\s*:?\s*(?P<reason>.*)$', re.I)),
    ('if', re.compile(r'^if\s+(?P<condition>.+?)\s*:?$', re.I)),
    ('otherwise', re.compile(r'^(?:otherwise|else)(?:\s+if\s+(?P<condition>.+?))?\s*:?$', re.I)),
)

_CHANNEL_HINTS = ('email', 'sms', 'slack', 'notification')


# ============================================================
# TOKENIZER
# ============================================================

class Line:
    __slots__ = ('number', 'indent', 'text')

    def __init__(self, number: int, indent: int, text: str):
        self.number = number
        self.indent = indent
        self.text = text

    def __repr__(self):
        return f'Line({self.number}, {self.indent}, {self.text!r})'


def tokenize(text: str) -> list[Line]:
    """Split StoryFlow text into significant lines, dropping blanks and comments."""
    lines = []
    for number, raw in enumerate(text.splitlines(), start=1):
        expanded = raw.expandtabs(_TAB_SIZE)
        stripped = expanded.strip()
        if not stripped or stripped.startswith(_COMMENT_PREFIXES):
            continue
        indent = len(expanded) - len(expanded.lstrip(' '))
        lines.append(Line(number, indent, stripped))
    return lines


def extract_variables(text: str) -> list[str]:
    """Return ``{name}`` placeholders in order of first appearance."""
    seen: list[str] = []
    for name in _PLACEHOLDER.findall(text):
        if name not in seen:
            seen.append(name)
    return seen


def infer_channel(message: str) -> str:
    lower = message.lower()
    for hint in _CHANNEL_HINTS:
        if hint in lower:
            return hint
    return 'message'


# ============================================================
# STATEMENTS
# ============================================================

@dataclass
class Branch:
    condition: str
    body: list[Statement]
    line: int


@dataclass
class Statement:
    """One parsed StoryFlow statement.

    ``body`` holds the kind-specific free text: flow name, ask prompt,
    do action, send message or stop reason.
    """

    kind: str
    line: int
    text: str
    variables: list[str] = field(default_factory=list)
    subject: str = ''
    body: str = ''
    recipient: str = ''
    channel: str = ''
    branches: list[Branch] = field(default_factory=list)
    otherwise: list[Statement] | None = None


def _match(line: Line) -> tuple[str, re.Match] | None:
    for name, pattern in _PATTERNS:
        m = pattern.match(line.text)
        if m:
            return name, m
    return None


def _variables(line: Line, *parts: str) -> list[str]:
    for part in parts:
        leftover = _PLACEHOLDER.sub('', part)
        if '{' in leftover or '}' in leftover:
            raise FlowSyntaxError('malformed variable placeholder', line.number, line.text)
    return extract_variables(' '.join(parts))


# ============================================================
# PARSER
# ============================================================

class Parser:
    """Single-pass parser over tokenized lines."""

    def __init__(self, lines: list[Line]):
        self.lines = lines
        self.pos = 0

    def peek(self) -> Line | None:
        if self.pos < len(self.lines):
            return self.lines[self.pos]
        return None

    def consume(self) -> Line:
        line = self.lines[self.pos]
        self.pos += 1
        return line

    def parse(self) -> list[Statement]:
        first = self.peek()
        if first is None:
            raise FlowSyntaxError("missing 'Flow: <name>' header", 1)
        matched = _match(first)
        if matched is None or matched[0] != 'flow':
            raise FlowSyntaxError(
                "expected 'Flow: <name>' as the first statement", first.number, first.text,
            )
        self.consume()
        header = self._parse_header(first, matched[1])

        statements = [header] + self._parse_block(first.indent)
        leftover = self.peek()
        if leftover is not None:
            self._reject(leftover)
        logger.debug("Parsed flow %r: %d top-level statements", header.body, len(statements))
        return statements

    def _parse_header(self, line: Line, m: re.Match) -> Statement:
        name = m.group('name').strip()
        if not name:
            raise FlowSyntaxError('flow name is required', line.number, line.text)
        return Statement(kind=FLOW_HEADER, line=line.number, text=line.text,
                         variables=_variables(line, name), body=name)

    def _reject(self, line: Line) -> None:
        matched = _match(line)
        if matched and matched[0] == 'otherwise':
            raise FlowSyntaxError("'Otherwise' without matching 'If'", line.number, line.text)
        raise FlowSyntaxError('unexpected indentation', line.number, line.text)

    def _parse_block(self, indent: int) -> list[Statement]:
        statements = []
        while True:
            line = self.peek()
            if line is None or line.indent < indent:
                break
            if line.indent > indent:
                self._reject(line)
            matched = _match(line)
            if matched is None:
                raise FlowSyntaxError('unrecognized statement', line.number, line.text)
            name, m = matched
            if name == 'otherwise':
                break  # closes the enclosing conditional
            self.consume()
            if name == 'if':
                statements.append(self._parse_conditional(line, m))
            else:
                statements.append(self._parse_simple(line, name, m))
        return statements

    def _parse_body(self, header: Line) -> list[Statement]:
        line = self.peek()
        if line is None or line.indent <= header.indent:
            raise FlowSyntaxError('expected an indented block', header.number, header.text)
        return self._parse_block(line.indent)

    def _parse_conditional(self, line: Line, m: re.Match) -> Statement:
        condition = m.group('condition').strip()
        branches = [Branch(condition, self._parse_body(line), line.number)]
        otherwise = None

        while True:
            nxt = self.peek()
            if nxt is None or nxt.indent != line.indent:
                break
            matched = _match(nxt)
            if matched is None or matched[0] != 'otherwise':
                break
            self.consume()
            extra = matched[1].group('condition')
            if extra:
                branches.append(Branch(extra.strip(), self._parse_body(nxt), nxt.number))
                continue
            otherwise = self._parse_body(nxt)
            break

        return Statement(
            kind=CONDITIONAL,
            line=line.number,
            text=line.text,
            variables=_variables(line, *(b.condition for b in branches)),
            branches=branches,
            otherwise=otherwise,
        )

    def _parse_simple(self, line: Line, name: str, m: re.Match) -> Statement:
        if name == 'flow':
            raise FlowSyntaxError('duplicate flow header', line.number, line.text)

        if name == 'ask':
            subject = m.group('subject')
            prompt = f"{subject} {m.group('rest').strip()}"
            return Statement(kind=ASK, line=line.number, text=line.text,
                             variables=_variables(line, prompt), subject=subject, body=prompt)

        if name == 'do':
            action = m.group('action').strip()
            return Statement(kind=DO, line=line.number, text=line.text,
                             variables=_variables(line, action), body=action)

        if name == 'send':
            message = m.group('message').strip()
            recipient = m.group('recipient').strip()
            channel = (m.group('channel') or '').strip() or infer_channel(message)
            return Statement(kind=SEND, line=line.number, text=line.text,
                             variables=_variables(line, message, recipient),
                             body=message, recipient=recipient, channel=channel)

        # stop
        reason = m.group('reason').strip()
        return Statement(kind=STOP, line=line.number, text=line.text,
                         variables=_variables(line, reason), body=reason)


def parse(text: str) -> list[Statement]:
    """Parse StoryFlow text; the first statement is always the flow header."""
    return Parser(tokenize(text)).parse()
