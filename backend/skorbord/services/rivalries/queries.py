from sqlalchemy import and_, func

from skorbord.errors import NotFoundError
from skorbord.models import Game, Rivalry
from .resolver import find_rivalry
from .stats import stats_for_rivalry


def list_rivalries(repo, environment_id: str):
    """Rivalries with their finalized game count, most played first."""
    played = func.count(Game.id)
    rows = (
        repo.query(Rivalry, played)
        .outerjoin(Game, and_(Game.rivalry_id == Rivalry.id, Game.finalized.is_(True)))
        .filter(Rivalry.environment_id == environment_id)
        .group_by(Rivalry.id)
        .order_by(played.desc(), Rivalry.created_at.desc())
        .all()
    )
    result = []
    for rivalry, total in rows:
        data = rivalry.to_dict()
        data['total_games'] = total
        result.append(data)
    return result


def get_rivalry(repo, environment_id: str, rivalry_id: str) -> Rivalry:
    rivalry = repo.query(Rivalry).filter_by(id=rivalry_id, environment_id=environment_id).first()
    if rivalry is None:
        raise NotFoundError('Rivalry not found')
    return rivalry


def rivalry_games(repo, rivalry: Rivalry, limit=50, offset=0, finalized_only=False):
    query = repo.query(Game).filter(Game.rivalry_id == rivalry.id)
    if finalized_only:
        query = query.filter(Game.finalized.is_(True))
    games = query.order_by(Game.started_at.desc()).limit(limit).offset(offset).all()
    result = []
    for game in games:
        data = game.to_dict()
        scores = sorted(game.scores, key=lambda row: row.score, reverse=True)
        data['player_scores'] = [
            {
                'player_id': row.player_id,
                'player_name': row.player.name if row.player else None,
                'score': row.score,
                'is_winner': row.player_id == game.winner_id,
            }
            for row in scores
        ]
        result.append(data)
    return result


def describe_rivalry(repo, rivalry: Rivalry) -> dict:
    data = rivalry.to_dict()
    data['game_type_stats'] = [
        {
            'game_type_id': gt.id,
            'game_type_name': gt.name,
            'condition_kind': gt.condition_kind,
        }
        for gt in rivalry.game_types
    ]
    data['player_stats'] = stats_for_rivalry(repo, rivalry)
    data['recent_games'] = rivalry_games(repo, rivalry, limit=10, finalized_only=True)
    return data


def describe_by_players(repo, environment_id: str, player_ids, game_type_id=None):
    """Details for the rivalry of exactly ``player_ids``, or None."""
    rivalry = find_rivalry(repo, environment_id, player_ids)
    if rivalry is None:
        return None
    if game_type_id and game_type_id not in {gt.id for gt in rivalry.game_types}:
        return None
    return describe_rivalry(repo, rivalry)
