import pytest

from dnd_manager.passwords import (PASSWORD_STRATEGIES, matching_strategy, verify_password,
                                   normalize_whitespace, strip_whitespace, fold_case)


@pytest.mark.parametrize('submitted', ['secret', ' secret ', 'SECRET', 'sec ret'])
def test_accepts_loose_matches(submitted):
    assert verify_password(submitted, 'secret') is True


@pytest.mark.parametrize('submitted', ['', 'other', 'secre', 'secrets'])
def test_rejects_other_values(submitted):
    assert verify_password(submitted, 'secret') is False


@pytest.mark.parametrize('submitted, stored', [
    (None, 'secret'),
    ('secret', None),
    ('secret', ''),
    ('   ', '   '),
    ('', ''),
    (123, 'secret'),
])
def test_missing_or_blank_inputs_never_match(submitted, stored):
    assert verify_password(submitted, stored) is False


def test_strategy_order():
    assert [name for name, _fn in PASSWORD_STRATEGIES] == [
        'normalized', 'whitespace_stripped', 'case_insensitive']


def test_reports_first_matching_strategy():
    assert matching_strategy('secret', 'secret') == 'normalized'
    assert matching_strategy('  two   words ', 'two words') == 'normalized'
    assert matching_strategy('sec ret', 'secret') == 'whitespace_stripped'
    assert matching_strategy('SECRET', 'secret') == 'case_insensitive'
    assert matching_strategy('nope', 'secret') is None


def test_strategies_do_not_combine():
    # Needs both whitespace stripping and case folding at once
    assert verify_password('SEC RET', 'secret') is False


def test_custom_strategy_list():
    only_exact = [('exact', lambda v: v)]
    assert matching_strategy('secret', 'secret', strategies=only_exact) == 'exact'
    assert matching_strategy(' secret', 'secret', strategies=only_exact) is None


def test_normalizers():
    assert normalize_whitespace('  a \t b\n c ') == 'a b c'
    assert strip_whitespace(' a \t b\n c ') == 'abc'
    assert fold_case('  MiXeD ') == 'mixed'


def test_non_ascii_passwords():
    assert verify_password('Drachen Höhle', 'drachen höhle') is True
    assert verify_password('Drachen Hohle', 'drachen höhle') is False


def test_lone_surrogates_do_not_raise():
    assert verify_password('\ud800secret', 'secret') is False
    assert verify_password('secret', '\udcffsecret') is False
    assert verify_password('\ud800secret', '\ud800secret') is True
    assert matching_strategy('\udcff', 'secret') is None
