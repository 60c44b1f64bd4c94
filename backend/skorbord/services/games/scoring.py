import logging
from typing import Iterable, List, Sequence, Tuple

from skorbord.errors import ConflictError, NotFoundError, RangeViolation, ValidationError
from skorbord.models import Game, PlayerGameScore, utcnow
from skorbord.validation import require_int
from .winner import determine_winner

logger = logging.getLogger(__name__)

DEFAULT_MIN_SCORE = -999
DEFAULT_MAX_SCORE = 999


def _locked_game(repo, environment_id: str, game_id: str) -> Game:
    """Re-read the game inside the current transaction, row-locked where supported."""
    game = (
        repo.query(Game)
        .filter_by(id=game_id, environment_id=environment_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if game is None:
        raise NotFoundError('Game not found')
    return game


def list_scores(repo, game: Game) -> List[PlayerGameScore]:
    rows = repo.query(PlayerGameScore).filter_by(game_id=game.id).populate_existing().all()
    return sorted(rows, key=PlayerGameScore.sort_key)


def _rows_by_player(repo, game: Game):
    return {row.player_id: row for row in list_scores(repo, game)}


def _check_bounds(value: int, bounds: Tuple[int, int], player_id: str) -> None:
    lo, hi = bounds
    if value < lo or value > hi:
        raise RangeViolation(value, lo, hi, player_id=player_id)


def _record_winner(game: Game, rows) -> str:
    """Set the winner if the game has none yet; finalizing is left to the caller."""
    winner_id = determine_winner(
        game.win_condition_kind,
        game.win_condition_value,
        [(row.player_id, row.score) for row in rows],
    )
    if winner_id and not game.winner_id:
        game.winner_id = winner_id
        logger.info(f"[winner] game={game.id} winner={winner_id}")
    return game.winner_id


def apply_score_deltas(repo, environment_id: str, game_id: str, deltas: Sequence[Tuple[str, int]],
                       bounds: Tuple[int, int] = (DEFAULT_MIN_SCORE, DEFAULT_MAX_SCORE)) -> List[PlayerGameScore]:
    """Apply a batch of ``(player_id, delta)`` pairs atomically.

    The game row is locked for the whole read-compute-write sequence, so
    concurrent batches on one game serialize instead of losing updates. If
    any resulting score is out of bounds nothing is written.
    """
    if not deltas:
        raise ValidationError('stats must be a non-empty list')
    for player_id, delta in deltas:
        if not isinstance(player_id, str) or not player_id:
            raise ValidationError('player_id is required for every stat')
        require_int(delta, 'Score delta')

    with repo.transaction(('game', game_id)):
        game = _locked_game(repo, environment_id, game_id)
        if game.finalized:
            raise ConflictError('Cannot update stats for finalized games')

        rows = _rows_by_player(repo, game)
        pending = {pid: row.score for pid, row in rows.items()}
        for player_id, delta in deltas:
            if player_id not in pending:
                raise ValidationError('Player not found in this game')
            pending[player_id] += delta
            _check_bounds(pending[player_id], bounds, player_id)

        now = utcnow()
        for player_id, _ in deltas:
            row = rows[player_id]
            row.score = pending[player_id]
            row.updated_at = now

        ordered = sorted(rows.values(), key=PlayerGameScore.sort_key)
        winner_id = _record_winner(game, ordered)
        repo.flush()

        payload = {
            'game_id': game.id,
            'stats': [row.to_dict() for row in ordered],
            'winner_id': winner_id,
            'player_id': None,
            'score_change': None,
        }
        # Tally indicators need the cause, not just the new totals
        if len(deltas) == 1:
            payload['player_id'], payload['score_change'] = deltas[0]
        repo.publish(environment_id, 'score_update', payload)

    logger.info(f"[score] game={game_id} entries={len(deltas)} winner={winner_id}")
    return ordered


def set_player_score(repo, environment_id: str, game_id: str, player_id: str, score: int,
                     bounds: Tuple[int, int] = (DEFAULT_MIN_SCORE, DEFAULT_MAX_SCORE)) -> PlayerGameScore:
    """Absolute set of one player's score, bypassing delta arithmetic."""
    require_int(score, 'Score')
    with repo.transaction(('game', game_id)):
        game = _locked_game(repo, environment_id, game_id)
        if game.finalized:
            raise ConflictError('Cannot update stats for finalized games')
        rows = _rows_by_player(repo, game)
        row = rows.get(player_id)
        if row is None:
            raise ValidationError('Player not found in this game')
        _check_bounds(score, bounds, player_id)

        change = score - row.score
        row.score = score
        row.updated_at = utcnow()
        winner_id = _record_winner(game, rows.values())
        repo.flush()

        repo.publish(environment_id, 'score_update', {
            'game_id': game.id,
            'player_id': player_id,
            'score': score,
            'score_change': change,
            'winner_id': winner_id,
            'stats': [r.to_dict() for r in sorted(rows.values(), key=PlayerGameScore.sort_key)],
        })
    logger.info(f"[score-set] game={game_id} player={player_id} score={score}")
    return row


def set_player_order(repo, environment_id: str, game_id: str, player_ids: Iterable[str]) -> List[PlayerGameScore]:
    """Persist a 1-based display order; ``player_ids`` must be a permutation of the game's players."""
    if not isinstance(player_ids, (list, tuple)) or not player_ids:
        raise ValidationError('playerOrder must be a non-empty array of player IDs')
    order = list(player_ids)

    with repo.transaction(('game', game_id)):
        game = _locked_game(repo, environment_id, game_id)
        if game.finalized:
            raise ConflictError('Cannot update player order for finalized games')
        rows = _rows_by_player(repo, game)
        for player_id in order:
            if player_id not in rows:
                raise ValidationError(f'Player {player_id} not found in this game')
        if len(order) != len(rows) or len(set(order)) != len(order):
            raise ValidationError('All players in the game must be included in the new order')

        for index, player_id in enumerate(order, start=1):
            rows[player_id].player_order = index
        ordered = sorted(rows.values(), key=PlayerGameScore.sort_key)
        repo.flush()
        repo.publish(environment_id, 'player_order_updated', {
            'game_id': game.id,
            'player_ids': order,
            'stats': [row.to_dict() for row in ordered],
        })
    return ordered
