from flask import current_app

from progression_api import db
from progression_api.errors import Forbidden, Locked, NotFound
from progression_api.models import Round
from progression_api.schemas import RoundFinalization, parse_body


def create_round(server, data) -> Round:
    """Open a new round owned by ``server``. ``data`` is a ``RoundCreate``."""
    new_round = Round(
        server_id=server.id,
        server_name=data.server_name,
        gamemode=data.gamemode,
        map=data.map,
    )
    db.session.add(new_round)
    db.session.commit()
    current_app.logger.info(
        f"[round-create] round={new_round.id} server={server.id} map={data.map} gamemode={data.gamemode}"
    )
    return new_round


def get_round(round_id: int, lock: bool = False) -> Round:
    query = Round.query.filter_by(id=round_id)
    if lock:
        query = query.with_for_update()
    found = query.first()
    if found is None:
        current_app.logger.debug(f"[round] non-existent round requested id={round_id}")
        raise NotFound('Round not found')
    return found


def finalize_round(server, round_id: int, body) -> Round:
    """Write the final fields of an open round exactly once.

    The round row stays locked from the owner/open checks until commit, so of
    two concurrent finalize calls only the first sees ``saved_at`` unset.
    The body is validated after the lifecycle checks: a finalized round
    answers ``Locked`` whatever the payload.
    """
    rnd = get_round(round_id, lock=True)
    if rnd.server_id != server.id:
        current_app.logger.warning(
            f"[round-finalize] server={server.id} tried to finalize round={rnd.id} owned by server={rnd.server_id}"
        )
        raise Forbidden()
    if rnd.is_finalized:
        raise Locked()
    data = parse_body(RoundFinalization, body)

    rnd.num_players = data.num_players
    rnd.winning_team_id = data.winning_team_id
    rnd.duration = data.duration
    db.session.commit()
    current_app.logger.info(
        f"[round-finalize] round={rnd.id} server={server.id} players={data.num_players} "
        f"winner={data.winning_team_id} duration={data.duration}s"
    )
    return rnd
