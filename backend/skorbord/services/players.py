import logging

from sqlalchemy import func

from skorbord.errors import ConflictError, NotFoundError
from skorbord.models import PLAYER_COLORS, Game, Player, PlayerGameScore, rivalry_players
from skorbord.validation import sanitize_name

logger = logging.getLogger(__name__)


def get_player(repo, environment_id: str, player_id: str) -> Player:
    player = repo.query(Player).filter_by(id=player_id, environment_id=environment_id).first()
    if player is None:
        raise NotFoundError('Player not found')
    return player


def list_players(repo, environment_id: str):
    return (
        repo.query(Player)
        .filter_by(environment_id=environment_id)
        .order_by(Player.created_at.asc(), Player.name.asc())
        .all()
    )


def find_by_name(repo, environment_id: str, name: str):
    return repo.query(Player).filter(
        Player.environment_id == environment_id,
        func.lower(func.trim(Player.name)) == name.strip().lower(),
    ).first()


def next_color(repo, environment_id: str) -> str:
    """First palette color nobody in the environment has, else round-robin."""
    used = [c for (c,) in repo.query(Player.color).filter(Player.environment_id == environment_id).all()]
    for color in PLAYER_COLORS:
        if color not in used:
            return color
    return PLAYER_COLORS[len(used) % len(PLAYER_COLORS)]


def create_player(repo, environment_id: str, name) -> Player:
    trimmed = sanitize_name(name, 'Player name')
    with repo.transaction(('environment', environment_id)):
        if find_by_name(repo, environment_id, trimmed):
            raise ConflictError('Player name already exists in this environment')
        player = repo.add(Player(
            environment_id=environment_id,
            name=trimmed,
            color=next_color(repo, environment_id),
        ))
        repo.flush()
        repo.publish(environment_id, 'player_updated', {'action': 'player_created', 'player': player.to_dict()})
    logger.info(f"[player-new] env={environment_id} player={player.id} color={player.color}")
    return player


def rename_player(repo, environment_id: str, player_id: str, name) -> Player:
    trimmed = sanitize_name(name, 'Player name')
    with repo.transaction(('environment', environment_id)):
        player = get_player(repo, environment_id, player_id)
        clash = find_by_name(repo, environment_id, trimmed)
        if clash is not None and clash.id != player.id:
            raise ConflictError('Player name already exists in this environment')
        player.name = trimmed
        repo.flush()
        repo.publish(environment_id, 'player_updated', {'action': 'player_updated', 'player': player.to_dict()})
    return player


def delete_player(repo, environment_id: str, player_id: str) -> None:
    """Players with game history or rivalry membership are kept for the record."""
    with repo.transaction(('environment', environment_id)):
        player = get_player(repo, environment_id, player_id)
        if repo.query(PlayerGameScore).filter_by(player_id=player.id).first() is not None:
            raise ConflictError('Cannot delete player with game history')
        in_rivalry = repo.session.execute(
            rivalry_players.select().where(rivalry_players.c.player_id == player.id)
        ).first()
        if in_rivalry is not None:
            raise ConflictError('Cannot delete player who belongs to a rivalry')
        repo.delete(player)
        repo.publish(environment_id, 'player_updated', {'action': 'player_deleted', 'player_id': player_id})
    logger.info(f"[player-delete] env={environment_id} player={player_id}")


def player_summary(repo, player: Player, recent: int = 10) -> dict:
    """Player with lifetime totals across finalized games."""
    rows = (
        repo.query(PlayerGameScore)
        .join(Game, Game.id == PlayerGameScore.game_id)
        .filter(PlayerGameScore.player_id == player.id, Game.finalized.is_(True))
        .order_by(Game.ended_at.desc(), Game.started_at.desc())
        .all()
    )
    data = player.to_dict()
    data['games_played'] = len(rows)
    data['wins'] = sum(1 for row in rows if row.game.winner_id == player.id)
    data['recent_games'] = [
        {
            'game_id': row.game_id,
            'game_type_id': row.game.game_type_id,
            'score': row.score,
            'is_winner': row.game.winner_id == player.id,
            'ended_at': row.game.ended_at.isoformat() if row.game.ended_at else None,
        }
        for row in rows[:recent]
    ]
    return data
