import logging
from typing import List, Optional, Sequence, Tuple

from skorbord.errors import ConflictError, NotFoundError, ValidationError
from skorbord.models import Game, GameType, Player, PlayerGameScore, utcnow
from skorbord.services.players import create_player, find_by_name
from skorbord.services.rivalries.resolver import resolve_rivalry
from skorbord.services.rivalries.stats import recompute_for_game
from skorbord.validation import normalize_condition_kind, parse_timestamp, require_int, sanitize_name
from .scoring import list_scores
from .winner import determine_winner

logger = logging.getLogger(__name__)

_UNSET = object()


def get_game(repo, environment_id: str, game_id: str) -> Game:
    game = repo.query(Game).filter_by(id=game_id, environment_id=environment_id).first()
    if game is None:
        raise NotFoundError('Game not found')
    return game


def get_active_game(repo, environment_id: str) -> Optional[Game]:
    return (
        repo.query(Game)
        .filter_by(environment_id=environment_id, finalized=False)
        .order_by(Game.started_at.desc())
        .first()
    )


def list_games(repo, environment_id: str, limit: int = 50, offset: int = 0, finalized=None) -> List[Game]:
    query = repo.query(Game).filter_by(environment_id=environment_id)
    if finalized is not None:
        query = query.filter(Game.finalized.is_(bool(finalized)))
    return query.order_by(Game.started_at.desc()).limit(limit).offset(offset).all()


def _resolve_players(repo, environment_id: str, player_ids, player_names) -> List[Player]:
    if isinstance(player_ids, list):
        if not all(isinstance(pid, str) and pid for pid in player_ids):
            raise ValidationError('player_ids must be a list of player ids')
        if len(set(player_ids)) != len(player_ids):
            raise ValidationError('player_ids must not contain duplicates')
        found = {
            p.id: p for p in repo.query(Player).filter(
                Player.environment_id == environment_id, Player.id.in_(player_ids)
            ).all()
        }
        if len(found) != len(player_ids):
            raise ValidationError('One or more players not found in this environment')
        return [found[pid] for pid in player_ids]

    if isinstance(player_names, list):
        players = []
        for name in player_names:
            trimmed = sanitize_name(name, 'Player name')
            player = find_by_name(repo, environment_id, trimmed) or create_player(repo, environment_id, trimmed)
            if any(p.id == player.id for p in players):
                raise ValidationError('player_names must not contain duplicates')
            players.append(player)
        return players

    raise ValidationError('player_ids or player_names required')


def _replace_unfinalized(repo, environment_id: str) -> List[Game]:
    """Delete the environment's unfinalized games, each under its own game lock.

    Only ``create_game`` adds unfinalized games and it holds the environment
    lock, so the candidate list cannot grow. A candidate can still be
    finalized or deleted concurrently; it is re-read once its lock is held
    and skipped unless it is still open.
    """
    candidates = [
        gid for (gid,) in repo.query(Game.id).filter_by(environment_id=environment_id, finalized=False).all()
    ]
    if not candidates:
        return []
    replaced = []
    with repo.transaction(*[('game', gid) for gid in candidates]):
        for gid in candidates:
            game = (
                repo.query(Game)
                .filter_by(id=gid)
                .populate_existing()
                .with_for_update()
                .first()
            )
            if game is None or game.finalized:
                logger.info(f"[game-replace-skip] env={environment_id} game={gid}")
                continue
            repo.delete(game)
            replaced.append(game)
        repo.flush()
    return replaced


def create_game(repo, environment_id: str, game_type_id, player_ids=None, player_names=None,
                win_condition_type=None, win_condition_value=None,
                player_limits: Tuple[int, int] = (2, 8)) -> Game:
    """Start a game, replacing whatever unfinalized game the environment had.

    Creates the score rows at 0 in the given order and resolves the
    rivalry for the player set, all in one transaction.
    """
    if not isinstance(game_type_id, str) or not game_type_id:
        raise ValidationError('game_type_id is required')
    game_type = repo.get(GameType, game_type_id)
    if game_type is None:
        raise ValidationError('Game type not found')
    kind = normalize_condition_kind(win_condition_type) if win_condition_type is not None else game_type.condition_kind
    value = require_int(win_condition_value, 'win_condition_value') if win_condition_value is not None else game_type.threshold

    with repo.transaction(('environment', environment_id), ('game_type', game_type_id)):
        if repo.get(GameType, game_type_id) is None:
            raise ValidationError('Game type not found')
        # Replace before writing anything else, so no write lock is held while waiting on a game
        replaced = _replace_unfinalized(repo, environment_id)

        players = _resolve_players(repo, environment_id, player_ids, player_names)
        lo, hi = player_limits
        if not lo <= len(players) <= hi:
            raise ValidationError(f'A game needs between {lo} and {hi} players')

        now = utcnow()
        game = repo.add(Game(
            environment_id=environment_id,
            game_type_id=game_type.id,
            win_condition_kind=kind,
            win_condition_value=value,
            started_at=now,
            finalized=False,
        ))
        repo.flush()
        for index, player in enumerate(players, start=1):
            repo.add(PlayerGameScore(
                game_id=game.id, player_id=player.id, score=0,
                player_order=index, created_at=now, updated_at=now,
            ))
        game.rivalry_id = resolve_rivalry(repo, environment_id, game_type.id, [p.id for p in players])
        repo.flush()

        replaced_ids = [old.id for old in replaced]
        repo.publish(environment_id, 'game_started', {
            'game_id': game.id,
            'game': game.to_dict(include_scores=True),
            'replaced_game_ids': replaced_ids,
        })

    logger.info(f"[game-start] env={environment_id} game={game.id} type={game_type.id} players={len(players)} replaced={len(replaced_ids)}")
    return game


def update_game(repo, environment_id: str, game_id: str, ended_at=_UNSET, finalized=None, winner_id=_UNSET) -> Game:
    """End, finalize or set the winner of a game.

    Finalization is one-way. On the unfinalized -> finalized transition the
    rivalry stats are rebuilt in the same transaction, so the stats and the
    flag commit together.
    """
    if finalized is not None and not isinstance(finalized, bool):
        raise ValidationError('finalized must be a boolean')
    parsed_end = _UNSET
    if ended_at is not _UNSET and ended_at is not None:
        parsed_end = parse_timestamp(ended_at, 'ended_at')
    elif ended_at is None:
        parsed_end = None

    with repo.transaction(('game', game_id)):
        game = (
            repo.query(Game)
            .filter_by(id=game_id, environment_id=environment_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if game is None:
            raise NotFoundError('Game not found')
        if game.finalized and finalized is False:
            raise ConflictError('Cannot un-finalize a game')

        changed = False
        if winner_id is not _UNSET:
            if game.finalized and winner_id != game.winner_id:
                raise ConflictError('Cannot change the winner of a finalized game')
            if winner_id is not None:
                in_game = repo.query(PlayerGameScore).filter_by(game_id=game.id, player_id=winner_id).first()
                if in_game is None:
                    raise ValidationError('Winner must be a player in this game')
            changed = changed or game.winner_id != winner_id
            game.winner_id = winner_id
        if parsed_end is not _UNSET:
            if game.finalized and parsed_end != game.ended_at:
                raise ConflictError('Cannot change the end time of a finalized game')
            changed = changed or game.ended_at != parsed_end
            game.ended_at = parsed_end

        finalizing = finalized is True and not game.finalized
        if finalizing:
            game.finalized = True
            if game.ended_at is None:
                game.ended_at = utcnow()
            if not game.winner_id:
                game.winner_id = determine_winner(
                    game.win_condition_kind,
                    game.win_condition_value,
                    [(row.player_id, row.score) for row in list_scores(repo, game)],
                )
            recompute_for_game(repo, game)
            changed = True

        if changed:
            repo.flush()
            repo.publish(environment_id, 'game_updated', {
                'game_id': game.id,
                'finalized': bool(game.finalized),
                'winner_id': game.winner_id,
                'game': game.to_dict(),
            })

    if finalizing:
        logger.info(f"[game-final] env={environment_id} game={game_id} winner={game.winner_id} rivalry={game.rivalry_id}")
    return game


def delete_game(repo, environment_id: str, game_id: str) -> None:
    with repo.transaction(('game', game_id)):
        game = get_game(repo, environment_id, game_id)
        if game.finalized:
            raise ConflictError('Cannot delete finalized games')
        repo.delete(game)
        repo.publish(environment_id, 'game_deleted', {'game_id': game_id})
    logger.info(f"[game-delete] env={environment_id} game={game_id}")
