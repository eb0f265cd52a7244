from progression_api import db
from progression_api.models import Player, Progression, Round, SaveLogEntry, ServerRegistration

ROUND_HISTORY_FIELDS = ('server_name', 'gamemode', 'map', 'num_players', 'winning_team_id', 'duration')


def count_servers() -> int:
    return ServerRegistration.query.filter_by(authorized=True).count()


def count_players() -> int:
    return db.session.query(Progression).count()


def get_player_snapshot(guid: str):
    """Player record merged with its progression, or None for an unknown GUID."""
    player = Player.query.filter_by(guid=guid).first()
    if player is None:
        return None
    data = player.to_dict()
    if player.progression is not None:
        snapshot = player.progression.to_dict()
        snapshot.pop('player_id')
        data.update(snapshot)
    return data


def get_round_history(guid: str, limit: int, offset: int):
    """Newest-first save-log rows of a player with the descriptive round fields.

    Returns None for an unknown GUID. Rows whose round reference was nulled
    are still listed, with the round fields left empty.
    """
    player = Player.query.filter_by(guid=guid).first()
    if player is None:
        return None
    rows = (
        db.session.query(SaveLogEntry, Round)
        .outerjoin(Round, SaveLogEntry.round_id == Round.id)
        .filter(SaveLogEntry.player_id == player.id)
        .order_by(SaveLogEntry.saved_at.desc(), SaveLogEntry.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    history = []
    for entry, rnd in rows:
        item = entry.to_dict()
        for field in ROUND_HISTORY_FIELDS:
            item[field] = getattr(rnd, field) if rnd is not None else None
        item['round_started_at'] = rnd.created_at.isoformat() if rnd is not None and rnd.created_at else None
        item['round_finalized_at'] = rnd.saved_at.isoformat() if rnd is not None and rnd.saved_at else None
        history.append(item)
    return history
