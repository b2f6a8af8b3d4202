import io
import os
from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dnd_manager import db
from dnd_manager.models import (GameSession, Campaign, Character, Organization,
                                OrganizationCharacter)
from dnd_manager.routes.sessions import organizations_from_characters


def make(model, **fields):
    obj = model(**fields)
    db.session.add(obj)
    db.session.commit()
    return obj


def test_create_session(auth_client):
    campaign = make(Campaign, name='Rime')
    resp = auth_client.post('/sessions/new', data={
        'name': 'session one', 'session_date': '2026-03-14', 'campaign_id': str(campaign.id),
        'notes': 'Goblins <script>alert(1)</script> everywhere',
    })
    assert resp.status_code == 302
    sess = GameSession.query.one()
    assert sess.name == 'Session One'
    assert sess.session_date == date(2026, 3, 14)
    assert sess.campaign_id == campaign.id
    assert 'script' not in sess.notes


def test_invalid_date(auth_client):
    resp = auth_client.post('/sessions/new', data={'name': 'One', 'session_date': 'soon'})
    assert resp.status_code == 400
    assert b'Invalid date format. Use YYYY-MM-DD.' in resp.data
    assert GameSession.query.count() == 0


def test_unknown_campaign_is_dropped(auth_client):
    auth_client.post('/sessions/new', data={'name': 'One', 'campaign_id': '999'})
    assert GameSession.query.one().campaign_id is None


def test_duplicate_session_name(auth_client):
    make(GameSession, name='Session One')
    resp = auth_client.post('/sessions/new', data={'name': 'SESSION ONE'})
    assert resp.status_code == 400


def test_notes_mentions_add_characters(auth_client):
    mira = make(Character, name='Mira Stormborn')
    bram = make(Character, name='Bram')
    auth_client.post('/sessions/new', data={
        'name': 'One', 'notes': 'Met @Mira Stormborn at the inn.', 'character_ids': [str(bram.id)],
    })
    sess = GameSession.query.one()
    assert sorted(c.id for c in sess.characters) == sorted([mira.id, bram.id])


def test_organizations_follow_characters_when_not_picked(auth_client):
    org = make(Organization, name='Harpers')
    mira = make(Character, name='Mira')
    db.session.add(OrganizationCharacter(organization_id=org.id, character_id=mira.id))
    db.session.commit()

    auth_client.post('/sessions/new', data={'name': 'One', 'character_ids': [str(mira.id)]})
    sess = GameSession.query.one()
    assert [o.name for o in sess.organizations] == ['Harpers']
    assert organizations_from_characters(sess) == [org.id]


def test_picked_organizations_win(auth_client):
    harpers = make(Organization, name='Harpers')
    make(Organization, name='Zhentarim')
    mira = make(Character, name='Mira')
    db.session.add(OrganizationCharacter(organization_id=harpers.id, character_id=mira.id))
    db.session.commit()

    auth_client.post('/sessions/new', data={
        'name': 'One', 'character_ids': [str(mira.id)], 'organization_field_present': '1',
    })
    assert GameSession.query.one().organizations == []


def test_detail_splits_players_and_npcs(auth_client):
    mira = make(Character, name='Mira', player_type='player')
    goblin = make(Character, name='Goblin Boss')
    sess = make(GameSession, name='One', notes='@Mira fought the @Goblin Boss.')
    sess.characters = [mira, goblin]
    db.session.commit()
    body = auth_client.get(f'/sessions/{sess.id}').get_data(as_text=True)
    assert body.index('Players') < body.index('>Mira<') < body.index('NPCs') < body.index('>Goblin Boss<')
    assert 'class="mention mention-character">@Goblin Boss</a>' in body


def test_edit_session_keeps_own_name(auth_client):
    sess = make(GameSession, name='One')
    resp = auth_client.post(f'/sessions/{sess.id}/edit', data={'name': 'one', 'notes': 'x'})
    assert resp.status_code == 302
    db.session.refresh(sess)
    assert sess.notes == 'x'


def test_list_is_newest_first(auth_client):
    make(GameSession, name='Old', session_date=date(2025, 1, 1))
    make(GameSession, name='New', session_date=date(2026, 1, 1))
    body = auth_client.get('/sessions/').get_data(as_text=True)
    assert body.index('>New<') < body.index('>Old<')


def test_inline_create_session(auth_client):
    campaign = make(Campaign, name='Rime')
    resp = auth_client.post('/sessions/inline', json={'name': 'bonus round',
                                                      'campaign_id': campaign.id})
    assert resp.status_code == 201
    assert resp.get_json()['name'] == 'Bonus Round'
    assert GameSession.query.one().campaign_id == campaign.id
    assert auth_client.post('/sessions/inline', json={'name': 'Bonus Round'}).status_code == 409


def test_inline_campaign_id_must_be_a_known_id(auth_client):
    campaign = make(Campaign, name='Rime')
    resp = auth_client.post('/sessions/inline', json={'name': 'Night One',
                                                      'campaign_id': {'x': 1}})
    assert resp.status_code == 201
    assert GameSession.query.filter_by(name='Night One').one().campaign_id is None

    for i, raw in enumerate([[campaign.id], True, 0, -1, 'abc', 999]):
        resp = auth_client.post('/sessions/inline', json={'name': f'Odd {i}',
                                                          'campaign_id': raw})
        assert resp.status_code == 201
        assert db.session.get(GameSession, resp.get_json()['id']).campaign_id is None

    resp = auth_client.post('/sessions/inline', json={'name': 'Night Two',
                                                      'campaign_id': str(campaign.id)})
    assert resp.status_code == 201
    assert GameSession.query.filter_by(name='Night Two').one().campaign_id == campaign.id


def test_failed_edit_commit_removes_new_header(app, auth_client, monkeypatch):
    sess = make(GameSession, name='Session One')

    def fail_commit(self):
        raise SQLAlchemyError('database is locked')
    monkeypatch.setattr(Session, 'commit', fail_commit)

    with pytest.raises(SQLAlchemyError):
        auth_client.post(f'/sessions/{sess.id}/edit', data={
            'name': 'Session One', 'header_image': (io.BytesIO(b'img'), 'map.png'),
        }, content_type='multipart/form-data')
    assert os.listdir(app.config['UPLOAD_FOLDER']) == []
    assert sess.header_image_filename is None

def test_delete_session(auth_client):
    mira = make(Character, name='Mira')
    sess = make(GameSession, name='One')
    sess.characters = [mira]
    db.session.commit()
    auth_client.post(f'/sessions/{sess.id}/delete')
    assert GameSession.query.count() == 0
    assert Character.query.count() == 1
