"""Auth Gate for game-server callers.

Game servers authenticate every request with two headers: a secret API
token and the server's GUID. The token alone selects the registration; the
GUID is only cross-checked so a leaked token cannot be replayed under a
different server identity. The gate is installed as the Flask-Login request
loader, so ``@login_required`` views receive the registration as
``current_user``. Rejections are raised as ``ApiError`` subclasses instead of
returning ``None`` so each failure keeps its own status and message.
"""

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from progression_api import db
from progression_api.errors import IdentityMismatch, InvalidToken, MissingCredentials, TokenDisabled
from progression_api.models import ServerRegistration, utcnow

TOKEN_HEADER = 'X-API-TOKEN'
GUID_HEADER = 'X-SERVER-GUID'


def normalize_guid(guid):
    return (guid or '').replace('-', '').strip().lower()


def authenticate_request(request):
    token = request.headers.get(TOKEN_HEADER)
    claimed_guid = normalize_guid(request.headers.get(GUID_HEADER))
    ip = request.remote_addr
    if not token or not claimed_guid:
        current_app.logger.warning(f"[auth-reject] missing headers from {ip}")
        raise MissingCredentials()

    server = ServerRegistration.query.filter_by(token=token).first()
    if server is None:
        current_app.logger.warning(f"[auth-reject] unknown token from {ip}")
        raise InvalidToken()
    if not server.authorized:
        current_app.logger.warning(
            f"[auth-reject] disabled token for {server.owner_name} ({server.id}) from {ip}"
        )
        raise TokenDisabled()
    if server.server_guid != claimed_guid:
        current_app.logger.warning(
            f"[auth-reject] guid {claimed_guid} does not match token of server {server.id} from {ip}"
        )
        raise IdentityMismatch()

    if ip and server.last_ip != ip:
        record_server_ip(server, ip)
    return server


def record_server_ip(server, ip):
    """Best-effort bookkeeping; a failure here never fails the request."""
    server_id = server.id
    try:
        server.last_ip = ip
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[auth-ip] could not record ip for server {server_id}: {exc}")


def touch_last_auth_check(server):
    server_id = server.id
    try:
        server.last_auth_check = utcnow()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[auth-check] could not update last_auth_check for server {server_id}: {exc}")


def init_auth(login_manager):
    login_manager.session_protection = None
    login_manager.request_loader(authenticate_request)
