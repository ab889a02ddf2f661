"""Identifier and label helpers shared by the compiler stages."""

from __future__ import annotations

import re

_CAMEL_BOUNDARY = re.compile(r'(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])')
_WORD_SEPARATORS = re.compile(r'[\s_.\-]+')


def words(name: str) -> list[str]:
    """Split snake_case, kebab-case and camelCase names into words."""
    spaced = _CAMEL_BOUNDARY.sub(' ', name)
    return [w for w in _WORD_SEPARATORS.split(spaced) if w]


def humanize(name: str) -> str:
    """Convert a variable name to a label: ``first_name`` -> ``First Name``."""
    return ' '.join(w[0].upper() + w[1:].lower() for w in words(name))


def slugify(text: str, limit: int = 40) -> str:
    """Convert free text to an ASCII identifier slug."""
    result = []
    for c in text.lower():
        if c.isascii() and c.isalnum():
            result.append(c)
        else:
            result.append('_')
    slug = '_'.join(filter(None, ''.join(result).split('_')))
    return slug[:limit].rstrip('_')


def xml_id(value: str) -> str:
    """Sanitize a value for use inside an XML id attribute."""
    cleaned = re.sub(r'[^A-Za-z0-9_]+', '_', value).strip('_')
    return cleaned or 'x'
