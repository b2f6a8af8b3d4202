"""Advisory duplicate-name check, run before inserts and updates.

Usage:
    assert_unique_value(Organization, 'name', name,
                        exclude_id=org.id,
                        error_message='Organization name already exists.')
    db.session.add(...)
    db.session.commit()

This is a two-step protocol: look first, write second. Nothing is locked in
between, so two requests racing each other can both pass the check and both
write the same name. The check exists to give the person filling in the form
a friendly message early. If a name truly must never repeat, put a unique
index on the column as well; this helper is not a substitute for one.

Matching rules:
  - The candidate is trimmed. An empty candidate never collides.
  - The database is asked for up to 5 rows whose trimmed column matches the whole
    candidate case-insensitively (ILIKE with no wildcards around it).
    '%' and '_' typed by the user are escaped, so they only match themselves.
  - Each returned row is then compared exactly, ignoring case and accents,
    after trimming the stored value. Only that comparison decides.
"""

import unicodedata

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from dnd_manager import db

DUPLICATE_ERROR_DEFAULT = 'A record with the same value already exists.'
CANDIDATE_LIMIT = 5
LIKE_ESCAPE = '\\'


class DuplicateError(Exception):
    """Raised when a case-insensitive match for the value already exists."""
    pass


class RemoteQueryError(Exception):
    """Raised when the duplicate lookup itself fails."""
    pass


def escape_like(value):
    """Escape LIKE metacharacters so the value matches only itself."""
    return (value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
                 .replace('%', LIKE_ESCAPE + '%')
                 .replace('_', LIKE_ESCAPE + '_'))


def _base_form(value):
    """Fold case and drop accents: 'Élan' and 'elan' compare equal."""
    decomposed = unicodedata.normalize('NFKD', value.casefold())
    return ''.join(ch for ch in decomposed if not unicodedata.combining(ch))


def same_value(a, b):
    return _base_form(a.strip()) == _base_form(b.strip())


def find_candidates(model, column, value, exclude_id=None):
    """Return up to CANDIDATE_LIMIT (id, stored_value) rows matching value.

    Raises RemoteQueryError if the query fails.
    """
    col = getattr(model, column)
    query = (db.session.query(model.id, col)
             .filter(func.trim(col).ilike(escape_like(value), escape=LIKE_ESCAPE)))
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    try:
        return query.limit(CANDIDATE_LIMIT).all()
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.error(
            f'Duplicate lookup on {model.__tablename__}.{column} failed: {e}')
        raise RemoteQueryError(str(e)) from e


def check_unique(model, column, value, exclude_id=None):
    """Return True if a row other than exclude_id already holds value.

    Whitespace-only values return False without querying the database.
    """
    normalized = (value or '').strip()
    if not normalized:
        return False

    for _row_id, stored in find_candidates(model, column, normalized, exclude_id):
        if isinstance(stored, str) and same_value(stored, normalized):
            return True
    return False


def assert_unique_value(model, column, value, exclude_id=None, error_message=None):
    """Raise DuplicateError if value is already taken; otherwise do nothing."""
    if check_unique(model, column, value, exclude_id=exclude_id):
        raise DuplicateError(error_message or DUPLICATE_ERROR_DEFAULT)
