import os
import sys
import pytest

# Ensure the backend root (containing the `progression_api` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from progression_api import create_app, db
from progression_api.models import ServerRegistration, seed_unknown_round


class TestConfig:
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}
    XP_MULT = 1.5
    XP_ANOMALY_THRESHOLD = 0
    CORS_ORIGINS = ['*']


SERVER_GUID = '0123456789abcdef0123456789abcdef'
SERVER_TOKEN = 'a' * 64
OTHER_GUID = 'fedcba9876543210fedcba9876543210'
OTHER_TOKEN = 'b' * 64


def _build_app(config_class):
    application = create_app(config_class)
    # Each request pushes its own app context, so sessions and the
    # Flask-Login user never leak between requests.
    with application.app_context():
        import progression_api.models  # noqa: F401
        db.create_all()
        seed_unknown_round()
    return application


@pytest.fixture()
def flask_app():
    application = _build_app(TestConfig)
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def add_server(application, guid, token, owner_name='Owner', authorized=True, last_ip=None):
    with application.app_context():
        server = ServerRegistration(
            owner_name=owner_name,
            server_guid=guid,
            token=token,
            authorized=authorized,
            last_ip=last_ip,
        )
        db.session.add(server)
        db.session.commit()
        return server.id


@pytest.fixture()
def server_id(flask_app):
    return add_server(flask_app, SERVER_GUID, SERVER_TOKEN, owner_name='Alice')


@pytest.fixture()
def other_server_id(flask_app):
    return add_server(flask_app, OTHER_GUID, OTHER_TOKEN, owner_name='Bob')


@pytest.fixture()
def auth_headers(server_id):
    return {'X-API-TOKEN': SERVER_TOKEN, 'X-SERVER-GUID': SERVER_GUID}


@pytest.fixture()
def other_headers(other_server_id):
    return {'X-API-TOKEN': OTHER_TOKEN, 'X-SERVER-GUID': OTHER_GUID}


def progression_payload(total_xp, **overrides):
    payload = {
        'name': 'Soldier',
        'team_id': 1,
        'squad_id': 2,
        'kills': 10,
        'deaths': 5,
        'total_level': 3,
        'total_xp': total_xp,
        'assault_level': 1,
        'assault_xp': 100,
        'engineer_level': 1,
        'engineer_xp': 50,
        'support_level': 0,
        'support_xp': 0,
        'recon_level': 1,
        'recon_xp': 25,
        'weapon_progression': '{"m4":2}',
        'vehicle_progression': '{"tank":1}',
    }
    payload.update(overrides)
    return payload
