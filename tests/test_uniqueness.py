import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Query

from dnd_manager import db
from dnd_manager import uniqueness
from dnd_manager.models import Organization, Character
from dnd_manager.uniqueness import (assert_unique_value, check_unique, escape_like, same_value,
                                    DuplicateError, RemoteQueryError, DUPLICATE_ERROR_DEFAULT)


def add_org(name):
    org = Organization(name=name)
    db.session.add(org)
    db.session.commit()
    return org


@pytest.fixture
def no_queries(monkeypatch):
    def fail(*args, **kwargs):
        raise AssertionError('lookup should not run')
    monkeypatch.setattr(uniqueness, 'find_candidates', fail)


@pytest.mark.parametrize('value', ['', '   ', '\t\n', None])
def test_blank_values_never_collide_and_skip_the_query(app, no_queries, value):
    assert check_unique(Organization, 'name', value) is False


def test_no_rows_means_no_duplicate(app):
    assert check_unique(Organization, 'name', 'Harpers') is False


def test_case_insensitive_match(app):
    add_org('alice')
    assert check_unique(Organization, 'name', 'Alice') is True
    assert check_unique(Organization, 'name', '  ALICE  ') is True


def test_stored_value_with_padding_still_matches(app):
    add_org('  Alice  ')
    assert check_unique(Organization, 'name', 'Alice') is True


def test_partial_names_are_not_duplicates(app):
    add_org('Alice')
    assert check_unique(Organization, 'name', 'Ali') is False
    assert check_unique(Organization, 'name', 'Alice Cooper') is False


def test_exclude_id_skips_the_record_being_edited(app):
    org = add_org('Foo')
    assert check_unique(Organization, 'name', 'Foo', exclude_id=org.id) is False
    other = add_org('foo')
    assert check_unique(Organization, 'name', 'Foo', exclude_id=org.id) is True
    assert check_unique(Organization, 'name', 'Foo', exclude_id=other.id) is True


@pytest.mark.parametrize('candidate', ['%', '_____', 'A_pha', 'Al%', '%pha'])
def test_like_wildcards_match_only_themselves(app, candidate):
    add_org('Alpha')
    assert check_unique(Organization, 'name', candidate) is False


def test_literal_wildcards_still_detected(app):
    add_org('100% Pure_Guild')
    assert check_unique(Organization, 'name', '100% pure_guild') is True


def test_backslash_in_value(app):
    add_org('Back\\slash')
    assert check_unique(Organization, 'name', 'back\\slash') is True
    assert check_unique(Organization, 'name', 'backslash') is False


def test_final_comparison_decides(app, monkeypatch):
    monkeypatch.setattr(uniqueness, 'find_candidates',
                        lambda *a, **k: [(1, 'Alicia'), (2, None)])
    assert check_unique(Organization, 'name', 'Alice') is False


def test_works_on_other_tables(app):
    db.session.add(Character(name='Mira Stormborn'))
    db.session.commit()
    assert check_unique(Character, 'name', 'mira stormborn') is True
    assert check_unique(Organization, 'name', 'mira stormborn') is False


def test_assert_unique_value_raises_with_message(app):
    add_org('Zhentarim')
    with pytest.raises(DuplicateError, match='Pick another'):
        assert_unique_value(Organization, 'name', 'zhentarim', error_message='Pick another')
    with pytest.raises(DuplicateError) as excinfo:
        assert_unique_value(Organization, 'name', 'ZHENTARIM')
    assert str(excinfo.value) == DUPLICATE_ERROR_DEFAULT


def test_assert_unique_value_passes_silently(app):
    assert assert_unique_value(Organization, 'name', 'Emerald Enclave') is None


def test_lookup_failure_raises_remote_query_error(app, monkeypatch):
    def boom(self):
        raise OperationalError('SELECT', {}, Exception('database is locked'))
    monkeypatch.setattr(Query, 'all', boom)
    with pytest.raises(RemoteQueryError, match='database is locked'):
        check_unique(Organization, 'name', 'Harpers')


def test_escape_like():
    assert escape_like('50%_off\\') == '50\\%\\_off\\\\'
    assert escape_like('plain') == 'plain'


@pytest.mark.parametrize('a, b', [
    ('Élan', 'elan'),
    ('  Straße ', 'STRASSE'),
    ('Café', 'cafe'),
])
def test_same_value_ignores_case_and_accents(a, b):
    assert same_value(a, b)


def test_same_value_is_not_substring():
    assert not same_value('Alice', 'Alicia')
