from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required

from progression_api import __description__, __project__, __version__
from progression_api.auth import touch_last_auth_check
from progression_api.services.queries import count_servers

# Oldest game-server mod release that speaks this API
MIN_MOD_VERSION = {'Major': 3, 'Minor': 0, 'Patch': 0}

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({
        'name': __project__,
        'description': __description__,
        'version': __version__,
        'github': current_app.config.get('REPOSITORY_URL'),
        'minModVerSupported': MIN_MOD_VERSION,
        'xpMultiplier': current_app.config.get('XP_MULT', 1.0),
    })


@main.route('/auth/check')
@login_required
def auth_check():
    server = current_user._get_current_object()
    current_app.logger.info(f"[auth-check] {server.owner_name} ({server.id}) authenticated with the API")
    touch_last_auth_check(server)
    return jsonify({'success': True})


@main.route('/servers')
def get_server_count():
    return jsonify({'count': count_servers()})
