"""Shared-password check for the login form.

There is one password for the whole table, set in APP_PASSWORD. People type it
on phones, paste it from chat apps, and leave caps lock on, so a submitted
password is accepted if ANY of these normalizations makes it equal to the
stored one, tried in order:

  1. normalized          : trim, and collapse runs of whitespace to one space
  2. whitespace_stripped : remove every whitespace character
  3. case_insensitive    : trim and lowercase

This is deliberately forgiving and is NOT a hardened credential scheme: no
hashing, no per-user secrets. Each comparison goes through
hmac.compare_digest, but the strategies themselves still run one after the
other, so total time can vary with the input. Brute force is limited by the
rate limit on /login, not by this module.
"""

import hmac
import re

_WHITESPACE_RUN = re.compile(r'\s+')


def normalize_whitespace(value):
    return _WHITESPACE_RUN.sub(' ', value).strip()


def strip_whitespace(value):
    return _WHITESPACE_RUN.sub('', value)


def fold_case(value):
    return value.lower().strip()


# Order matters: the first strategy that matches wins.
# Add, remove or reorder entries here; nothing else needs to change.
PASSWORD_STRATEGIES = [
    ('normalized', normalize_whitespace),
    ('whitespace_stripped', strip_whitespace),
    ('case_insensitive', fold_case),
]


def _equal(a, b):
    # surrogatepass: argv bytes that aren't UTF-8 arrive as lone surrogates
    return hmac.compare_digest(a.encode('utf-8', 'surrogatepass'),
                               b.encode('utf-8', 'surrogatepass'))


def matching_strategy(submitted, stored, strategies=None):
    """Return the name of the first strategy that accepts submitted, or None."""
    if not submitted or not stored:
        return None
    if not isinstance(submitted, str) or not isinstance(stored, str):
        return None
    # A blank password must never match a blank secret
    if not submitted.strip() or not stored.strip():
        return None
    for name, normalize in (strategies or PASSWORD_STRATEGIES):
        if _equal(normalize(submitted), normalize(stored)):
            return name
    return None


def verify_password(submitted, stored):
    """True if submitted loosely matches stored. Never raises."""
    return matching_strategy(submitted, stored) is not None
