from dnd_manager.sanitize import (MAX_LENGTHS, sanitize_text, sanitize_nullable_text,
                                  sanitize_field, sanitize_search_query, sanitize_mention_query)


def test_strips_tags_but_keeps_text():
    assert sanitize_text('<b>Bold</b> move') == 'Bold move'


def test_removes_script_blocks_entirely():
    assert sanitize_text('hi<script>alert(1)</script>there') == 'hithere'


def test_removes_script_urls_and_handlers():
    assert 'javascript:' not in sanitize_text('javascript:alert(1)')
    assert 'onclick' not in sanitize_text('x onclick="steal()"')


def test_keeps_plain_ampersands():
    assert sanitize_text('Salt & Pepper') == 'Salt & Pepper'


def test_angle_brackets_stay_escaped():
    assert sanitize_text('5 < 6') == '5 &lt; 6'
    assert '<script' not in sanitize_text('<<script>script>alert(1)<</script>/script>')


def test_non_strings_become_empty():
    assert sanitize_text(None) == ''
    assert sanitize_text(42) == ''


def test_nullable_text():
    assert sanitize_nullable_text(None) is None
    assert sanitize_nullable_text('   ') is None
    assert sanitize_nullable_text('<i></i>') is None
    assert sanitize_nullable_text('  The Gilded Rose  ') == 'The Gilded Rose'


def test_field_lengths_are_capped():
    assert len(sanitize_field('race', 'x' * 500)) == MAX_LENGTHS['race']
    assert len(sanitize_field('notes', 'y' * 20000)) == MAX_LENGTHS['notes']


def test_search_queries_are_trimmed_and_capped():
    assert sanitize_search_query('  goblin  ') == 'goblin'
    assert len(sanitize_search_query('g' * 1000)) == MAX_LENGTHS['search']
    assert sanitize_mention_query(' Mira ') == 'Mira'
