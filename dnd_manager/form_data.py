"""Small helpers for reading values out of request.form / request.files."""

import re
from datetime import date, datetime

_ISO_DATE_RE = re.compile(r'^\d{4}-\d{2}-\d{2}$')


def get_string(form, key):
    value = form.get(key)
    if not isinstance(value, str):
        return ''
    return value.strip()


def get_string_or_none(form, key):
    return get_string(form, key) or None


def get_file(files, key):
    """Return the uploaded FileStorage for key, or None if nothing was chosen."""
    upload = files.get(key)
    if upload is None or not upload.filename:
        return None
    return upload


def get_id_list(form, key):
    """Return the distinct integer ids submitted under key, in order.

    Blank and non-numeric entries are ignored.
    """
    ids = []
    for raw in form.getlist(key):
        raw = (raw or '').strip()
        if not raw.isdigit():
            continue
        value = int(raw)
        if value not in ids:
            ids.append(value)
    return ids


def get_date_value(form, key):
    """Parse a YYYY-MM-DD (or full ISO timestamp) field into a date.

    Returns None for blank input. Raises ValueError for text that isn't a date.
    """
    raw = get_string(form, key)
    if not raw:
        return None
    if _ISO_DATE_RE.match(raw):
        return date.fromisoformat(raw)
    return datetime.fromisoformat(raw).date()


def get_checkbox(form, key):
    return form.get(key) in ('on', 'true', '1')


def to_title_case(value):
    """Capitalise each word: 'mira  o'neil-vance' → "Mira O'Neil-Vance".

    Runs of whitespace collapse to a single space. Hyphens and apostrophes
    start a new capitalised segment.
    """
    words = (value or '').split()
    return ' '.join(_title_word(word) for word in words)


def _title_word(word):
    segments = re.split(r"([-'])", word)
    return ''.join(
        seg if seg in ('-', "'") or not seg else seg[0].upper() + seg[1:].lower()
        for seg in segments
    )
