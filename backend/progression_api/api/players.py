from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from progression_api.schemas import ProgressionSubmission, int_arg, parse_body
from progression_api.services.progression import submit_progression
from progression_api.services.queries import count_players, get_player_snapshot, get_round_history

players = Blueprint('players', __name__)


@players.route('', methods=['GET'])
def get_player_count():
    return jsonify({'count': count_players()})


@players.route('/<string:guid>', methods=['GET'])
@login_required
def get_player(guid):
    snapshot = get_player_snapshot(guid)
    if snapshot is None:
        current_app.logger.info(
            f"[players] {current_user.owner_name} ({current_user.id}) requested non-existent player guid={guid}"
        )
        return '', 204
    return jsonify(snapshot)


@players.route('/<string:guid>', methods=['POST'])
@login_required
def post_player(guid):
    """Insert or update a player's progression.

    Responds 400 when the body is incomplete or ``total_xp`` is lower than the
    stored value, 404 for an unknown round id.
    """
    submission = parse_body(ProgressionSubmission, request.get_json(silent=True))
    is_new = submit_progression(current_user, guid, submission)
    return jsonify({'success': True, 'newPlayer': is_new})


@players.route('/<string:guid>/rounds', methods=['GET'])
@login_required
def get_player_rounds(guid):
    limit = int_arg(request.args, 'limit', default=10, minimum=1, maximum=100)
    offset = int_arg(request.args, 'offset', default=0, minimum=0)
    history = get_round_history(guid, limit, offset)
    if history is None:
        return '', 204
    return jsonify(history)
