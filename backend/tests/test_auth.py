import logging

from conftest import OTHER_GUID, SERVER_GUID, SERVER_TOKEN, add_server, progression_payload
from progression_api import db
from progression_api.auth import normalize_guid
from progression_api.models import Player, ServerRegistration


def _server(flask_app, server_id):
    with flask_app.app_context():
        server = db.session.get(ServerRegistration, server_id)
        return server.last_ip, server.last_auth_check


def test_normalize_guid():
    assert normalize_guid('0123ABCD-4567-89EF-0123-456789ABCDEF') == '0123abcd456789ef0123456789abcdef'
    assert normalize_guid(None) == ''


def test_check_accepts_registered_server(client, auth_headers):
    res = client.get('/auth/check', headers=auth_headers)
    assert res.status_code == 200
    assert res.get_json() == {'success': True}


def test_check_accepts_dashed_uppercase_guid(client, server_id):
    dashed = '01234567-89AB-CDEF-0123-456789ABCDEF'
    res = client.get('/auth/check', headers={'X-API-TOKEN': SERVER_TOKEN, 'X-SERVER-GUID': dashed})
    assert res.status_code == 200


def test_missing_token_header(client, server_id):
    res = client.get('/auth/check', headers={'X-SERVER-GUID': SERVER_GUID})
    assert res.status_code == 401
    assert res.get_json()['error'] == 'Missing required auth headers'


def test_missing_guid_header(client, server_id):
    res = client.get('/auth/check', headers={'X-API-TOKEN': SERVER_TOKEN})
    assert res.status_code == 401


def test_unknown_token(client, server_id, caplog):
    with caplog.at_level(logging.WARNING):
        res = client.get('/auth/check', headers={'X-API-TOKEN': 'c' * 64, 'X-SERVER-GUID': SERVER_GUID})
    assert res.status_code == 403
    assert res.get_json()['error'] == 'Invalid API token'
    assert any('[auth-reject]' in r.getMessage() for r in caplog.records)


def test_disabled_token(flask_app, client):
    add_server(flask_app, SERVER_GUID, SERVER_TOKEN, authorized=False)
    res = client.get('/auth/check', headers={'X-API-TOKEN': SERVER_TOKEN, 'X-SERVER-GUID': SERVER_GUID})
    assert res.status_code == 403
    assert res.get_json()['error'] == 'Disabled API token'


def test_disabled_checked_before_guid_mismatch(flask_app, client):
    add_server(flask_app, SERVER_GUID, SERVER_TOKEN, authorized=False)
    res = client.get('/auth/check', headers={'X-API-TOKEN': SERVER_TOKEN, 'X-SERVER-GUID': OTHER_GUID})
    assert res.get_json()['error'] == 'Disabled API token'


def test_guid_mismatch(client, server_id):
    res = client.get('/auth/check', headers={'X-API-TOKEN': SERVER_TOKEN, 'X-SERVER-GUID': OTHER_GUID})
    assert res.status_code == 403
    assert res.get_json()['error'] == 'API token not authorized for use with this server'


def test_records_caller_ip_and_auth_time(flask_app, client, server_id, auth_headers):
    assert _server(flask_app, server_id) == (None, None)
    res = client.get('/auth/check', headers=auth_headers, environ_base={'REMOTE_ADDR': '10.0.0.7'})
    assert res.status_code == 200
    last_ip, last_auth_check = _server(flask_app, server_id)
    assert last_ip == '10.0.0.7'
    assert last_auth_check is not None


def test_ip_recorded_on_any_authenticated_route(flask_app, client, server_id, auth_headers):
    client.get('/players/unknown', headers=auth_headers, environ_base={'REMOTE_ADDR': '10.0.0.8'})
    assert _server(flask_app, server_id)[0] == '10.0.0.8'


def test_rejected_request_does_not_touch_registration(flask_app, client, server_id):
    client.get(
        '/auth/check',
        headers={'X-API-TOKEN': SERVER_TOKEN, 'X-SERVER-GUID': OTHER_GUID},
        environ_base={'REMOTE_ADDR': '10.0.0.9'},
    )
    assert _server(flask_app, server_id) == (None, None)


def test_every_request_authenticates_independently(client, auth_headers):
    assert client.get('/auth/check', headers=auth_headers).status_code == 200
    assert client.get('/auth/check').status_code == 401


def _fail_first_commit(monkeypatch):
    from sqlalchemy.exc import OperationalError
    from sqlalchemy.orm import Session

    original = Session.commit
    calls = []

    def commit(self):
        calls.append(self)
        if len(calls) == 1:
            raise OperationalError('UPDATE server ...', {}, Exception('database is locked'))
        return original(self)

    monkeypatch.setattr(Session, 'commit', commit)
    return calls


def test_failed_ip_update_does_not_fail_request(flask_app, client, server_id, auth_headers, monkeypatch, caplog):
    calls = _fail_first_commit(monkeypatch)
    with caplog.at_level(logging.ERROR):
        res = client.post(
            '/players/player-guid-1', json=progression_payload(500), headers=auth_headers,
            environ_base={'REMOTE_ADDR': '10.0.0.10'},
        )
    assert res.status_code == 200
    assert res.get_json() == {'success': True, 'newPlayer': True}
    assert len(calls) == 2
    assert any(
        r.levelno == logging.ERROR and '[auth-ip]' in r.getMessage() for r in caplog.records
    )
    assert _server(flask_app, server_id)[0] is None
    with flask_app.app_context():
        assert Player.query.filter_by(guid='player-guid-1').count() == 1


def test_failed_auth_time_update_does_not_fail_check(flask_app, client, monkeypatch, caplog):
    # Known IP, so the auth-time write is the only commit of the request
    new_id = add_server(flask_app, SERVER_GUID, SERVER_TOKEN, last_ip='10.0.0.11')
    _fail_first_commit(monkeypatch)
    with caplog.at_level(logging.ERROR):
        res = client.get(
            '/auth/check', headers={'X-API-TOKEN': SERVER_TOKEN, 'X-SERVER-GUID': SERVER_GUID},
            environ_base={'REMOTE_ADDR': '10.0.0.11'},
        )
    assert res.status_code == 200
    assert res.get_json() == {'success': True}
    assert any(
        r.levelno == logging.ERROR and '[auth-check]' in r.getMessage() for r in caplog.records
    )
    assert _server(flask_app, new_id) == ('10.0.0.11', None)
