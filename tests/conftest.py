import pytest

from config import Config
from dnd_manager import create_app, db

PASSWORD = 'Mira Stormborn 42'


@pytest.fixture
def app(tmp_path):
    class TestConfig(Config):
        TESTING = True
        SECRET_KEY = 'test-secret'
        SQLALCHEMY_DATABASE_URI = 'sqlite://'
        WTF_CSRF_ENABLED = False
        RATELIMIT_ENABLED = False
        APP_PASSWORD = PASSWORD
        UPLOAD_FOLDER = str(tmp_path / 'uploads')

    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_client(client):
    resp = client.post('/login', data={'password': PASSWORD})
    assert resp.status_code == 302
    return client


@pytest.fixture
def request_ctx(app):
    """For helpers that call url_for outside a view."""
    with app.test_request_context():
        yield
