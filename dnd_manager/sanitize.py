"""Input sanitization for form fields.

Everything users type is stored as plain text: HTML tags are stripped on the
way in, and Jinja escapes on the way out. Markdown in notes is rendered later
by the 'md' template filter.
"""

import re

import bleach

MAX_LENGTHS = {
    'name': 100,
    'description': 2000,
    'notes': 10000,
    'backstory': 10000,
    'location': 200,
    'race': 50,
    'class': 50,
    'level': 20,
    'role': 100,
    'search': 200,
    'password': 100,
    'mention_query': 100,
}

# Script-ish fragments that survive tag stripping when written as plain text
_DANGEROUS_RE = re.compile(
    r'<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>'
    r'|javascript:'
    r'|vbscript:'
    r'|\bon[a-z]+\s*=',
    re.IGNORECASE,
)

# bleach escapes a bare '&' as '&amp;'; undo that unless it really starts an entity
_AMP_ENTITY_RE = re.compile(r'&amp;(?![a-zA-Z0-9#]+;)')


def sanitize_text(value):
    """Strip HTML tags and script handlers from value. Non-strings become ''."""
    if not isinstance(value, str):
        return ''
    cleaned = _DANGEROUS_RE.sub('', value)
    cleaned = bleach.clean(cleaned, tags=[], attributes={}, strip=True)
    cleaned = _AMP_ENTITY_RE.sub('&', cleaned)
    return cleaned


def sanitize_nullable_text(value):
    """Sanitize and trim; returns None for missing or blank values."""
    if not isinstance(value, str):
        return None
    cleaned = sanitize_text(value).strip()
    return cleaned or None


def sanitize_with_length_limit(value, max_length):
    return sanitize_text(value)[:max_length]


def sanitize_field(kind, value):
    """Sanitize value and cap it at the length for kind (see MAX_LENGTHS)."""
    return sanitize_with_length_limit(value, MAX_LENGTHS[kind])


def sanitize_search_query(value):
    return sanitize_field('search', value).strip()


def sanitize_mention_query(value):
    return sanitize_field('mention_query', value).strip()
