import io
import os

import pytest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dnd_manager import db
from dnd_manager.models import Location, Campaign, Character


def make(model, **fields):
    obj = model(**fields)
    db.session.add(obj)
    db.session.commit()
    return obj


def test_create_location(auth_client):
    campaign = make(Campaign, name='Rime')
    resp = auth_client.post('/locations/new', data={
        'name': 'Bryn Shander', 'summary': 'Largest of the Ten-Towns',
        'primary_campaign_id': str(campaign.id),
        'map_image': (io.BytesIO(b'map'), 'town.webp'),
    }, content_type='multipart/form-data')
    assert resp.status_code == 302
    loc = Location.query.one()
    assert loc.primary_campaign.name == 'Rime'
    assert loc.map_filename.startswith('map-')


def test_summary_limit(auth_client):
    resp = auth_client.post('/locations/new', data={'name': 'Caer-Dineval', 'summary': 's' * 501})
    assert resp.status_code == 400
    assert Location.query.count() == 0


def test_duplicate_location(auth_client):
    make(Location, name='Bryn Shander')
    resp = auth_client.post('/locations/new', data={'name': 'BRYN SHANDER'})
    assert resp.status_code == 400
    assert b'Location name already exists' in resp.data


def test_detail_lists_characters_last_seen_there(auth_client):
    loc = make(Location, name='Bryn_Shander')
    make(Character, name='Mira', last_known_location='bryn_shander')
    make(Character, name='Bram', last_known_location='BrynXShander')
    body = auth_client.get(f'/locations/{loc.id}').get_data(as_text=True)
    assert '>Mira<' in body
    assert '>Bram<' not in body


def test_edit_and_delete_location(auth_client):
    loc = make(Location, name='Targos')
    resp = auth_client.post(f'/locations/{loc.id}/edit', data={'name': 'Targos',
                                                               'description': 'Walled town'})
    assert resp.status_code == 302
    db.session.refresh(loc)
    assert loc.description == 'Walled town'

    auth_client.post(f'/locations/{loc.id}/delete')
    assert Location.query.count() == 0


def test_description_renders_markdown(auth_client):
    loc = make(Location, name='Targos', description='**Walled** town')
    body = auth_client.get(f'/locations/{loc.id}').get_data(as_text=True)
    assert '<strong>Walled</strong> town' in body


def test_failed_edit_commit_removes_new_map(app, auth_client, monkeypatch):
    loc = make(Location, name='Targos')

    def fail_commit(self):
        raise SQLAlchemyError('database is locked')
    monkeypatch.setattr(Session, 'commit', fail_commit)

    with pytest.raises(SQLAlchemyError):
        auth_client.post(f'/locations/{loc.id}/edit', data={
            'name': 'Targos', 'map_image': (io.BytesIO(b'img'), 'targos.png'),
        }, content_type='multipart/form-data')
    assert os.listdir(app.config['UPLOAD_FOLDER']) == []
    assert loc.map_filename is None
