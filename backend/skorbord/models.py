from skorbord import db
from datetime import datetime, timezone
import uuid

REACH_TARGET = 'reach-target'
FALL_BELOW_FLOOR = 'fall-below-floor'
CONDITION_KINDS = (REACH_TARGET, FALL_BELOW_FLOOR)

# Display colors handed out to players, in assignment order
PLAYER_COLORS = [
    'primary', 'secondary', 'accent', 'info', 'success', 'warning', 'error', 'neutral',
]

DEFAULT_GAME_TYPES = [
    {'id': 'hearts', 'name': 'Hearts', 'description': 'Traditional Hearts card game',
     'condition_kind': FALL_BELOW_FLOOR, 'threshold': 100},
    {'id': 'spades', 'name': 'Spades', 'description': 'Traditional Spades card game',
     'condition_kind': REACH_TARGET, 'threshold': 500},
    {'id': 'euchre', 'name': 'Euchre', 'description': 'Traditional Euchre card game',
     'condition_kind': REACH_TARGET, 'threshold': 10},
    {'id': 'golf', 'name': 'Golf', 'description': 'Golf card game, lowest total wins',
     'condition_kind': FALL_BELOW_FLOOR, 'threshold': 100},
    {'id': 'custom', 'name': 'Custom', 'description': 'Custom scoring game',
     'condition_kind': REACH_TARGET, 'threshold': 100},
]


def generate_uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; SQLite drops tzinfo so we never store it."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


rivalry_players = db.Table(
    'rivalry_players',
    db.Column('rivalry_id', db.String(36), db.ForeignKey('rivalries.id'), primary_key=True),
    db.Column('player_id', db.String(36), db.ForeignKey('players.id'), primary_key=True),
)

rivalry_game_types = db.Table(
    'rivalry_game_types',
    db.Column('rivalry_id', db.String(36), db.ForeignKey('rivalries.id'), primary_key=True),
    db.Column('game_type_id', db.String(36), db.ForeignKey('game_types.id'), primary_key=True),
)


class Environment(db.Model):
    __tablename__ = 'environments'
    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    players = db.relationship('Player', back_populates='environment', cascade='all, delete-orphan')
    games = db.relationship('Game', back_populates='environment', cascade='all, delete-orphan')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'created_at': _iso(self.created_at),
        }


class Player(db.Model):
    __tablename__ = 'players'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    environment_id = db.Column(db.String(36), db.ForeignKey('environments.id'), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    color = db.Column(db.String(16), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    environment = db.relationship('Environment', back_populates='players')

    def to_dict(self):
        return {
            'id': self.id,
            'environment_id': self.environment_id,
            'name': self.name,
            'color': self.color,
            'created_at': _iso(self.created_at),
        }


class GameType(db.Model):
    __tablename__ = 'game_types'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    name = db.Column(db.String(64), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    condition_kind = db.Column(db.String(32), nullable=False, default=REACH_TARGET)
    threshold = db.Column(db.Integer, nullable=False, default=100)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'condition_kind': self.condition_kind,
            'threshold': self.threshold,
            'created_at': _iso(self.created_at),
        }


class Favorite(db.Model):
    __tablename__ = 'favorites'
    environment_id = db.Column(db.String(36), db.ForeignKey('environments.id'), primary_key=True)
    game_type_id = db.Column(db.String(36), db.ForeignKey('game_types.id'), primary_key=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)


class Game(db.Model):
    __tablename__ = 'games'
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    environment_id = db.Column(db.String(36), db.ForeignKey('environments.id'), nullable=False, index=True)
    game_type_id = db.Column(db.String(36), db.ForeignKey('game_types.id'), nullable=False, index=True)
    win_condition_kind = db.Column(db.String(32), nullable=False)
    win_condition_value = db.Column(db.Integer, nullable=False)
    started_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    ended_at = db.Column(db.DateTime, nullable=True)
    finalized = db.Column(db.Boolean, nullable=False, default=False)
    winner_id = db.Column(db.String(36), db.ForeignKey('players.id'), nullable=True)
    rivalry_id = db.Column(db.String(36), db.ForeignKey('rivalries.id'), nullable=True, index=True)

    environment = db.relationship('Environment', back_populates='games')
    game_type = db.relationship('GameType')
    winner = db.relationship('Player', foreign_keys=[winner_id])
    rivalry = db.relationship('Rivalry', back_populates='games')
    scores = db.relationship('PlayerGameScore', back_populates='game', cascade='all, delete-orphan')

    def to_dict(self, include_scores=False):
        data = {
            'id': self.id,
            'environment_id': self.environment_id,
            'game_type_id': self.game_type_id,
            'game_type_name': self.game_type.name if self.game_type else None,
            'win_condition_type': self.win_condition_kind,
            'win_condition_value': self.win_condition_value,
            'started_at': _iso(self.started_at),
            'ended_at': _iso(self.ended_at),
            'finalized': bool(self.finalized),
            'winner_id': self.winner_id,
            'winner_name': self.winner.name if self.winner else None,
            'rivalry_id': self.rivalry_id,
        }
        if include_scores:
            data['players'] = [s.to_dict() for s in sorted(self.scores, key=PlayerGameScore.sort_key)]
        return data


class PlayerGameScore(db.Model):
    __tablename__ = 'player_game_scores'
    __table_args__ = (db.UniqueConstraint('game_id', 'player_id', name='uq_score_game_player'),)
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    game_id = db.Column(db.String(36), db.ForeignKey('games.id'), nullable=False, index=True)
    player_id = db.Column(db.String(36), db.ForeignKey('players.id'), nullable=False, index=True)
    score = db.Column(db.Integer, nullable=False, default=0)
    player_order = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    game = db.relationship('Game', back_populates='scores')
    player = db.relationship('Player')

    @staticmethod
    def sort_key(row):
        # Unordered rows go last, then creation order
        order = row.player_order if row.player_order is not None else 999
        return (order, row.created_at or datetime.min, row.player_id)

    def to_dict(self):
        return {
            'id': self.id,
            'game_id': self.game_id,
            'player_id': self.player_id,
            'player_name': self.player.name if self.player else None,
            'color': self.player.color if self.player else None,
            'score': self.score,
            'player_order': self.player_order,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Rivalry(db.Model):
    __tablename__ = 'rivalries'
    __table_args__ = (db.UniqueConstraint('environment_id', 'member_key', name='uq_rivalry_members'),)
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    environment_id = db.Column(db.String(36), db.ForeignKey('environments.id'), nullable=False, index=True)
    # Sorted, comma-joined player ids; identifies the exact player set
    member_key = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    players = db.relationship('Player', secondary=rivalry_players, order_by='Player.name')
    game_types = db.relationship('GameType', secondary=rivalry_game_types, order_by='GameType.name')
    games = db.relationship('Game', back_populates='rivalry')

    def to_dict(self):
        return {
            'id': self.id,
            'environment_id': self.environment_id,
            'created_at': _iso(self.created_at),
            'players': [{'id': p.id, 'name': p.name, 'color': p.color} for p in self.players],
            'player_names': [p.name for p in self.players],
            'game_types': [{'id': gt.id, 'name': gt.name} for gt in self.game_types],
        }


class RivalryPlayerStats(db.Model):
    __tablename__ = 'rivalry_player_stats'
    __table_args__ = (
        db.UniqueConstraint('rivalry_id', 'player_id', 'game_type_id', name='uq_rivalry_player_game_type'),
    )
    id = db.Column(db.String(36), primary_key=True, default=generate_uuid)
    rivalry_id = db.Column(db.String(36), db.ForeignKey('rivalries.id'), nullable=False, index=True)
    player_id = db.Column(db.String(36), db.ForeignKey('players.id'), nullable=False)
    game_type_id = db.Column(db.String(36), db.ForeignKey('game_types.id'), nullable=False)
    total_games = db.Column(db.Integer, nullable=False, default=0)
    wins = db.Column(db.Integer, nullable=False, default=0)
    losses = db.Column(db.Integer, nullable=False, default=0)
    min_win_margin = db.Column(db.Integer, nullable=True)
    max_win_margin = db.Column(db.Integer, nullable=True)
    min_loss_margin = db.Column(db.Integer, nullable=True)
    max_loss_margin = db.Column(db.Integer, nullable=True)
    last_10_results = db.Column(db.String(10), nullable=False, default='')
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    @staticmethod
    def empty():
        return {
            'total_games': 0,
            'wins': 0,
            'losses': 0,
            'min_win_margin': None,
            'max_win_margin': None,
            'min_loss_margin': None,
            'max_loss_margin': None,
            'last_10_results': '',
            'updated_at': None,
        }

    def to_dict(self):
        return {
            'total_games': self.total_games,
            'wins': self.wins,
            'losses': self.losses,
            'min_win_margin': self.min_win_margin,
            'max_win_margin': self.max_win_margin,
            'min_loss_margin': self.min_loss_margin,
            'max_loss_margin': self.max_loss_margin,
            'last_10_results': self.last_10_results,
            'updated_at': _iso(self.updated_at),
        }


def seed_game_types(session) -> int:
    """Insert any missing default game types. Returns how many were added."""
    added = 0
    for entry in DEFAULT_GAME_TYPES:
        if session.get(GameType, entry['id']) is None:
            session.add(GameType(**entry))
            added += 1
    return added
