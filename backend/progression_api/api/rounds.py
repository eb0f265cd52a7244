from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from progression_api.schemas import RoundCreate, parse_body
from progression_api.services.rounds import create_round, finalize_round, get_round

rounds = Blueprint('rounds', __name__)


@rounds.route('', methods=['POST'])
@login_required
def post_round():
    """Open a new round for the calling server and return its API id."""
    data = parse_body(RoundCreate, request.get_json(silent=True))
    new_round = create_round(current_user, data)
    return jsonify({'id': new_round.id}), 201


@rounds.route('/<int(signed=True):round_id>', methods=['PATCH'])
@login_required
def patch_round(round_id):
    """Finalize a round. Only its creator may do so, and only once."""
    finalize_round(current_user, round_id, request.get_json(silent=True))
    return jsonify({'success': True})


@rounds.route('/<int(signed=True):round_id>', methods=['GET'])
@login_required
def get_round_info(round_id):
    return jsonify(get_round(round_id).to_dict())
