from datetime import datetime, timezone

from flask_login import UserMixin

from progression_api import db

# Round id used for history rows that cannot be tied to a reported round
UNKNOWN_ROUND_ID = -1

NUMERIC_FIELDS = (
    'kills',
    'deaths',
    'total_level',
    'total_xp',
    'assault_level',
    'assault_xp',
    'engineer_level',
    'engineer_xp',
    'support_level',
    'support_xp',
    'recon_level',
    'recon_xp',
)
PROGRESS_LIST_FIELDS = ('weapon_progression', 'vehicle_progression')


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _isoformat(value):
    return value.isoformat() if value else None


class ServerRegistration(UserMixin, db.Model):
    __tablename__ = 'server'
    id = db.Column(db.Integer, primary_key=True)
    owner_name = db.Column(db.String(255), nullable=False)
    owner_contact = db.Column(db.String(255), nullable=True)
    created_on = db.Column(db.DateTime, default=utcnow, nullable=False)
    last_auth_check = db.Column(db.DateTime, nullable=True)
    last_ip = db.Column(db.String(45), nullable=True)
    server_guid = db.Column(db.String(32), unique=True, nullable=False, index=True)
    token = db.Column(db.String(64), unique=True, nullable=False, index=True)
    authorized = db.Column(db.Boolean, default=True, nullable=False)

    def to_dict(self):
        # Token is never serialized
        return {
            'id': self.id,
            'owner_name': self.owner_name,
            'owner_contact': self.owner_contact,
            'server_guid': self.server_guid,
            'authorized': self.authorized,
            'last_ip': self.last_ip,
            'last_auth_check': _isoformat(self.last_auth_check),
        }


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    guid = db.Column(db.String(64), unique=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    last_server_id = db.Column(
        db.Integer, db.ForeignKey('server.id', ondelete='SET NULL'), nullable=True
    )
    progression = db.relationship(
        'Progression', back_populates='player', uselist=False,
        cascade='all, delete-orphan', passive_deletes=True,
    )

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'guid': self.guid,
            'created_at': _isoformat(self.created_at),
            'last_server_id': self.last_server_id,
        }


class ProgressionFields:
    """Counter, level and XP columns shared by the snapshot and the save log."""
    kills = db.Column(db.Integer, nullable=False, default=0)
    deaths = db.Column(db.Integer, nullable=False, default=0)
    total_level = db.Column(db.Integer, nullable=False, default=0)
    total_xp = db.Column(db.Integer, nullable=False, default=0)
    assault_level = db.Column(db.Integer, nullable=False, default=0)
    assault_xp = db.Column(db.Integer, nullable=False, default=0)
    engineer_level = db.Column(db.Integer, nullable=False, default=0)
    engineer_xp = db.Column(db.Integer, nullable=False, default=0)
    support_level = db.Column(db.Integer, nullable=False, default=0)
    support_xp = db.Column(db.Integer, nullable=False, default=0)
    recon_level = db.Column(db.Integer, nullable=False, default=0)
    recon_xp = db.Column(db.Integer, nullable=False, default=0)
    weapon_progression = db.Column(db.Text, nullable=False, default='')
    vehicle_progression = db.Column(db.Text, nullable=False, default='')

    def fields_dict(self):
        return {f: getattr(self, f) for f in NUMERIC_FIELDS + PROGRESS_LIST_FIELDS}


class Progression(ProgressionFields, db.Model):
    __tablename__ = 'progression'
    player_id = db.Column(
        db.Integer, db.ForeignKey('player.id', ondelete='CASCADE'), primary_key=True
    )
    last_updated = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    player = db.relationship('Player', back_populates='progression')

    def to_dict(self):
        data = {
            'player_id': self.player_id,
            'last_updated': _isoformat(self.last_updated),
        }
        data.update(self.fields_dict())
        return data


class Round(db.Model):
    __tablename__ = 'round'
    id = db.Column(db.Integer, primary_key=True)
    server_id = db.Column(
        db.Integer, db.ForeignKey('server.id', ondelete='SET NULL'), nullable=True
    )
    created_at = db.Column(db.DateTime, default=utcnow, nullable=True)
    # Assigned by the database on the finalizing UPDATE; NULL while the round is open
    saved_at = db.Column(db.DateTime, nullable=True, onupdate=db.func.now())
    server_name = db.Column(db.String(255))
    gamemode = db.Column(db.String(255))
    map = db.Column(db.String(255))
    num_players = db.Column(db.Integer, nullable=True)
    winning_team_id = db.Column(db.Integer, nullable=True)
    duration = db.Column(db.Float, nullable=True)

    @property
    def is_finalized(self):
        return self.saved_at is not None

    def to_dict(self):
        return {
            'id': self.id,
            'server_id': self.server_id,
            'created_at': _isoformat(self.created_at),
            'saved_at': _isoformat(self.saved_at),
            'server_name': self.server_name,
            'gamemode': self.gamemode,
            'map': self.map,
            'num_players': self.num_players,
            'winning_team_id': self.winning_team_id,
            'duration': self.duration,
        }


class SaveLogEntry(ProgressionFields, db.Model):
    """One accepted submission: numeric fields hold deltas, progress lists are absolute."""
    __tablename__ = 'save_log'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(
        db.Integer, db.ForeignKey('player.id', ondelete='CASCADE'), nullable=False, index=True
    )
    round_id = db.Column(
        db.Integer, db.ForeignKey('round.id', ondelete='SET NULL'), nullable=True
    )
    team_id = db.Column(db.Integer, nullable=False)
    squad_id = db.Column(db.Integer, nullable=False)
    saved_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)

    def to_dict(self):
        data = {
            'id': self.id,
            'player_id': self.player_id,
            'round_id': self.round_id,
            'team_id': self.team_id,
            'squad_id': self.squad_id,
            'saved_at': _isoformat(self.saved_at),
        }
        data.update(self.fields_dict())
        return data


def seed_unknown_round():
    """Insert the sentinel round if it is missing."""
    if db.session.get(Round, UNKNOWN_ROUND_ID) is None:
        db.session.add(Round(
            id=UNKNOWN_ROUND_ID,
            server_id=None,
            server_name='Unknown',
            gamemode='Unknown',
            map='Unknown',
        ))
        db.session.commit()
