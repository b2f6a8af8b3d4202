"""@mention support for notes and backstories.

Typing "@Mira Stormborn" in a session's notes links to that character's page.
Names may contain spaces, so there is no delimiter after the name: at each '@'
we try every known target, longest name first, and accept the first one that
matches case-insensitively and is followed by whitespace, punctuation, or the
end of the text.

Public functions:
  build_mention_targets(...)    : merge entity lists into one autocomplete index
  tokenize_mentions(text, ...)  : split text into plain-text and mention tokens
  collect_mention_targets(...)  : the distinct targets a text mentions
  render_mentions(text, ...)    : escaped HTML with mentions turned into links
"""

import re
from collections import namedtuple

from flask import url_for
from markupsafe import Markup, escape

MentionTarget = namedtuple('MentionTarget', ['id', 'name', 'href', 'kind'])
MentionToken = namedtuple('MentionToken', ['type', 'value', 'target'])

MENTION_KINDS = ('character', 'session', 'organization', 'campaign', 'location')

# What may directly follow a mentioned name
MENTION_END_RE = re.compile(r'[\s.,!?;:\'")\]]')

# Maps kind → (name attribute, detail endpoint, id param)
KIND_ROUTES = {
    'character':    ('name', 'characters.character_detail', 'character_id'),
    'session':      ('name', 'sessions.session_detail', 'session_id'),
    'organization': ('name', 'organizations.organization_detail', 'organization_id'),
    'campaign':     ('name', 'campaigns.campaign_detail', 'campaign_id'),
    'location':     ('name', 'locations.location_detail', 'location_id'),
}


def is_mention_end(char):
    """True if char can end a mention. An empty string is the end of the text."""
    return not char or bool(MENTION_END_RE.match(char))


def target_for(kind, entity):
    name_field, endpoint, id_param = KIND_ROUTES[kind]
    return MentionTarget(
        id=entity.id,
        name=getattr(entity, name_field) or '',
        href=url_for(endpoint, **{id_param: entity.id}),
        kind=kind,
    )


def build_mention_targets(characters=(), sessions=(), organizations=(),
                          campaigns=(), locations=()):
    """Merge entity lists into one list of MentionTargets.

    Blank names are skipped and each (kind, id) appears once, in the order
    first seen. Needs an app/request context for url_for.
    """
    groups = [
        ('character', characters),
        ('session', sessions),
        ('organization', organizations),
        ('campaign', campaigns),
        ('location', locations),
    ]
    seen = set()
    targets = []
    for kind, entities in groups:
        for entity in entities:
            key = (kind, entity.id)
            if key in seen:
                continue
            target = target_for(kind, entity)
            if not target.name.strip():
                continue
            seen.add(key)
            targets.append(target)
    return targets


def _match_at(text, start, ordered_targets):
    """Return the target whose name starts at text[start], or None."""
    for target in ordered_targets:
        length = len(target.name)
        candidate = text[start:start + length]
        if len(candidate) != length:
            continue
        if candidate.lower() != target.name.lower():
            continue
        if not is_mention_end(text[start + length:start + length + 1]):
            continue
        return target
    return None


def tokenize_mentions(text, targets):
    """Split text into MentionTokens of type 'text' or 'mention'.

    Consecutive plain text is merged into one token. An '@' that doesn't
    start a known name stays as plain text.
    """
    if not text:
        return []
    if not targets:
        return [MentionToken('text', text, None)]

    # Longest name first; ties keep the caller's order (sorted() is stable)
    ordered = sorted((t for t in targets if t.name), key=lambda t: -len(t.name))

    tokens = []
    buffer = []
    cursor = 0

    def flush():
        joined = ''.join(buffer)
        if joined:
            tokens.append(MentionToken('text', joined, None))
        buffer.clear()

    while cursor < len(text):
        at = text.find('@', cursor)
        if at == -1:
            buffer.append(text[cursor:])
            break
        buffer.append(text[cursor:at])

        target = _match_at(text, at + 1, ordered)
        if target is None:
            buffer.append('@')
            cursor = at + 1
            continue

        flush()
        end = at + 1 + len(target.name)
        tokens.append(MentionToken('mention', text[at:end], target))
        cursor = end

    flush()
    return tokens


def collect_mention_targets(text, targets, kind=None):
    """Return the distinct targets mentioned in text, in order of first mention."""
    seen = set()
    found = []
    for token in tokenize_mentions(text, targets):
        if token.type != 'mention':
            continue
        if kind and token.target.kind != kind:
            continue
        key = (token.target.kind, token.target.id)
        if key in seen:
            continue
        seen.add(key)
        found.append(token.target)
    return found


def render_mentions(text, targets):
    """Render text as escaped HTML, with each mention linked to its page."""
    if not text:
        return Markup('')
    parts = []
    for token in tokenize_mentions(text, targets or []):
        if token.type == 'mention':
            parts.append(Markup('<a href="{}" class="mention mention-{}">@{}</a>').format(
                token.target.href, token.target.kind, token.target.name))
        else:
            parts.append(escape(token.value))
    return Markup('').join(parts)
