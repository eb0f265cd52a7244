"""Progression synchronization.

A game server submits the absolute progression of one player. The submission
is applied as a single transaction:

    lock snapshot row -> check total_xp -> overwrite snapshot -> append save log

``total_xp`` must never go backwards. Lagging or replayed submissions carry a
lower ``total_xp`` than what is stored and are rejected without side effects.
Other fields are not guarded; their deltas may be zero or negative.
"""

from flask import current_app
from sqlalchemy.exc import IntegrityError

from progression_api import db
from progression_api.errors import MissingFields, NotFound, OutdatedData
from progression_api.models import (
    NUMERIC_FIELDS,
    PROGRESS_LIST_FIELDS,
    UNKNOWN_ROUND_ID,
    Player,
    Progression,
    Round,
    SaveLogEntry,
)


def compute_deltas(submission, baseline) -> dict:
    """Per-field difference between a submission and the stored snapshot.

    ``baseline`` of ``None`` is the implicit all-zero state of a new player.
    """
    if baseline is None:
        return {f: getattr(submission, f) for f in NUMERIC_FIELDS}
    return {f: getattr(submission, f) - getattr(baseline, f) for f in NUMERIC_FIELDS}


def submit_progression(server, player_guid: str, submission) -> bool:
    """Apply ``submission`` for ``player_guid``. Returns True if the player was new."""
    _check_round(submission.round_id)

    player = Player.query.filter_by(guid=player_guid).first()
    if player is None:
        player = _insert_player(server, player_guid, submission)
        if player is not None:
            _append_log(player, submission, compute_deltas(submission, None))
            db.session.commit()
            current_app.logger.info(
                f"[progression] server={server.id} added player {player.name} guid={player_guid} "
                f"total_xp={submission.total_xp}"
            )
            return True
        # Another submission created the player first
        player = Player.query.filter_by(guid=player_guid).one()

    _update_player(server, player, submission)
    return False


def _check_round(round_id):
    if round_id == UNKNOWN_ROUND_ID:
        return
    if db.session.get(Round, round_id) is None:
        raise NotFound('Round not found')


def _insert_player(server, player_guid, submission):
    if not submission.name:
        raise MissingFields(missing=['name'])
    player = Player(guid=player_guid, name=submission.name, last_server_id=server.id)
    player.progression = Progression(**_absolute_values(submission))
    try:
        with db.session.begin_nested():
            db.session.add(player)
    except IntegrityError:
        current_app.logger.info(f"[progression] concurrent insert for guid={player_guid}, updating instead")
        return None
    return player


def _update_player(server, player, submission):
    progression = (
        Progression.query.filter_by(player_id=player.id).with_for_update().populate_existing().first()
    )
    if progression is None:
        # Player row without a snapshot; treat the stored state as all-zero
        progression = Progression(player_id=player.id, **{f: 0 for f in NUMERIC_FIELDS})
        db.session.add(progression)
        deltas = compute_deltas(submission, None)
    else:
        if submission.total_xp < progression.total_xp:
            current_app.logger.warning(
                f"[progression] server={server.id} sent outdated data for {player.name} guid={player.guid} "
                f"total_xp {submission.total_xp} < {progression.total_xp}. Skipping."
            )
            raise OutdatedData('total_xp')
        deltas = compute_deltas(submission, progression)

    threshold = current_app.config.get('XP_ANOMALY_THRESHOLD', 0)
    if threshold and deltas['total_xp'] > threshold:
        current_app.logger.warning(
            f"[progression-anomaly] server={server.id} player guid={player.guid} gained "
            f"{deltas['total_xp']} xp in one submission (threshold {threshold})"
        )

    if submission.name:
        player.name = submission.name
    player.last_server_id = server.id
    for field, value in _absolute_values(submission).items():
        setattr(progression, field, value)
    _append_log(player, submission, deltas)
    db.session.commit()
    current_app.logger.info(
        f"[progression] server={server.id} updated player {player.name} guid={player.guid} "
        f"total_xp +{deltas['total_xp']}"
    )


def _absolute_values(submission) -> dict:
    return {f: getattr(submission, f) for f in NUMERIC_FIELDS + PROGRESS_LIST_FIELDS}


def _append_log(player, submission, deltas):
    entry = SaveLogEntry(
        player_id=player.id,
        round_id=submission.round_id,
        team_id=submission.team_id,
        squad_id=submission.squad_id,
        weapon_progression=submission.weapon_progression,
        vehicle_progression=submission.vehicle_progression,
        **deltas,
    )
    db.session.add(entry)
    return entry
