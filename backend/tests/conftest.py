import os
import sys
import pytest

# Ensure the backend root (containing the `skorbord` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from skorbord import create_app, db, socketio


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    MIN_SCORE = -999
    MAX_SCORE = 999
    MIN_PLAYERS_PER_GAME = 2
    MAX_PLAYERS_PER_GAME = 8
    CORS_ORIGINS = ['http://localhost:5173']
    LOG_LEVEL = 'DEBUG'


def _build(config_class):
    application = create_app(config_class)
    with application.app_context():
        from skorbord.models import seed_game_types
        db.create_all()
        seed_game_types(db.session)
        db.session.commit()
    return application


@pytest.fixture()
def flask_app():
    application = _build(TestConfig)
    with application.app_context():
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def file_app(tmp_path):
    """App on a file-backed SQLite database, for tests that use several threads."""
    class FileConfig(TestConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'skorbord-test.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {'connect_args': {'timeout': 30}}
        LOG_LEVEL = 'INFO'

    application = _build(FileConfig)
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def environment(client):
    res = client.post('/api/environments/table42', json={'name': 'Friday cards'})
    assert res.status_code == 201
    return res.get_json()['id']


@pytest.fixture()
def make_players(client, environment):
    def _make(*names):
        created = []
        for name in names:
            res = client.post(f'/api/{environment}/players', json={'name': name})
            assert res.status_code == 201, res.get_json()
            created.append(res.get_json())
        return created
    return _make


@pytest.fixture()
def start_game(client, environment):
    def _start(players, game_type_id='custom', **extra):
        body = {'game_type_id': game_type_id, 'player_ids': [p['id'] for p in players]}
        body.update(extra)
        res = client.post(f'/api/{environment}/games', json=body)
        assert res.status_code == 201, res.get_json()
        return res.get_json()
    return _start


@pytest.fixture()
def sio_client(flask_app, environment):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws',
        auth={'environment': environment},
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')
