import logging
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError

from skorbord.errors import ConflictError, ValidationError
from skorbord.models import GameType, Player, Rivalry, rivalry_game_types

logger = logging.getLogger(__name__)


def normalize_player_ids(player_ids: Iterable[str]) -> List[str]:
    return sorted(set(player_ids))


def member_key(player_ids: Iterable[str]) -> str:
    return ','.join(normalize_player_ids(player_ids))


def find_rivalry(repo, environment_id: str, player_ids: Iterable[str]) -> Optional[Rivalry]:
    """Rivalry whose player set is exactly ``player_ids``, if one exists."""
    key = member_key(player_ids)
    return repo.query(Rivalry).filter_by(environment_id=environment_id, member_key=key).first()


def _link_game_type(repo, rivalry: Rivalry, game_type_id: str) -> None:
    linked = repo.session.execute(
        rivalry_game_types.select().where(
            rivalry_game_types.c.rivalry_id == rivalry.id,
            rivalry_game_types.c.game_type_id == game_type_id,
        )
    ).first()
    if linked is None:
        rivalry.game_types.append(repo.get(GameType, game_type_id))


def _insert_rivalry(repo, environment_id: str, ids: List[str]) -> Rivalry:
    players = repo.query(Player).filter(
        Player.environment_id == environment_id, Player.id.in_(ids)
    ).all()
    if len(players) != len(ids):
        raise ValidationError('One or more players not found in this environment')
    rivalry = Rivalry(environment_id=environment_id, member_key=','.join(ids))
    rivalry.players = players
    repo.add(rivalry)
    try:
        repo.flush()
    except IntegrityError:
        raise ConflictError('Rivalry for this player group was created concurrently, retry')
    logger.info(f"[rivalry-new] env={environment_id} rivalry={rivalry.id} players={len(ids)}")
    return rivalry


def resolve_rivalry(repo, environment_id: str, game_type_id: str, player_ids: Iterable[str]) -> Optional[str]:
    """Find or create the rivalry for this player set and link the game type.

    Returns the rivalry id, or None when fewer than two distinct players are
    given. Lookup and insert happen in one transaction under the environment
    lock, and the unique member key rejects a duplicate written by another
    process; that surfaces as a ConflictError and nothing is committed.
    """
    ids = normalize_player_ids(player_ids)
    if len(ids) < 2:
        return None

    with repo.transaction(('environment', environment_id)):
        rivalry = find_rivalry(repo, environment_id, ids)
        if rivalry is None:
            rivalry = _insert_rivalry(repo, environment_id, ids)
        _link_game_type(repo, rivalry, game_type_id)
        repo.flush()
        return rivalry.id


def create_rivalry(repo, environment_id: str, player_ids, game_type_ids=None) -> Rivalry:
    """Explicitly register a player group; an existing group is a conflict."""
    if not isinstance(player_ids, list) or not all(isinstance(pid, str) and pid for pid in player_ids):
        raise ValidationError('player_ids must be a list of player ids')
    ids = normalize_player_ids(player_ids)
    if len(ids) < 2:
        raise ValidationError('At least 2 distinct player_ids required')
    if game_type_ids is None:
        game_type_ids = []
    if not isinstance(game_type_ids, list) or not all(isinstance(gt, str) for gt in game_type_ids):
        raise ValidationError('game_type_ids must be a list of game type ids')

    with repo.transaction(('environment', environment_id), *[('game_type', gt) for gt in game_type_ids]):
        if find_rivalry(repo, environment_id, ids) is not None:
            raise ConflictError('Rivalry already exists for this player group')
        for game_type_id in game_type_ids:
            if repo.get(GameType, game_type_id) is None:
                raise ValidationError(f'Game type {game_type_id} not found')
        rivalry = _insert_rivalry(repo, environment_id, ids)
        for game_type_id in dict.fromkeys(game_type_ids):
            _link_game_type(repo, rivalry, game_type_id)
        repo.flush()
    return rivalry
