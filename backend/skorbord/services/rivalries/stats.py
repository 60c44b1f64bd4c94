"""Rivalry statistics, recomputed from the finalized-game history.

Stats are never patched incrementally: every finalization rebuilds the rows
for the affected (rivalry, game type) from all finalized games, so a skipped
or failed update cannot leave them drifting.
"""
import logging
from typing import Dict, Iterable, List, Optional

from skorbord.models import Game, PlayerGameScore, Rivalry, RivalryPlayerStats, utcnow
from skorbord.services.games.winner import best_score

logger = logging.getLogger(__name__)

RECENT_RESULTS_LENGTH = 10


def _extremes(margins: List[int], total_games: int):
    if margins:
        return min(margins), max(margins)
    if total_games:
        return 0, 0
    return None, None


def summarize(player_id: str, history: Iterable[dict]) -> Dict:
    """Aggregate one player's results.

    ``history`` holds one dict per finalized game in chronological order
    with keys ``kind`` (win condition kind), ``winner_id`` and ``scores``
    (player id -> score).
    """
    wins = losses = 0
    win_margins: List[int] = []
    loss_margins: List[int] = []
    results = ''
    for game in history:
        kind = game['kind']
        scores = game['scores']
        player_score = scores.get(player_id, 0)
        winner_id = game['winner_id']
        if winner_id == player_id:
            wins += 1
            others = [s for pid, s in scores.items() if pid != player_id]
            best_other = best_score(kind, others)
            win_margins.append(abs(player_score - best_other) if best_other is not None else 0)
            results += 'W'
        else:
            losses += 1
            if winner_id in scores:
                winner_score = scores[winner_id]
            else:
                # Finalized without a winner: measure against the leader
                winner_score = best_score(kind, scores.values())
            loss_margins.append(abs(winner_score - player_score))
            results += 'L'

    total = wins + losses
    min_win, max_win = _extremes(win_margins, total)
    min_loss, max_loss = _extremes(loss_margins, total)
    return {
        'total_games': total,
        'wins': wins,
        'losses': losses,
        'min_win_margin': min_win,
        'max_win_margin': max_win,
        'min_loss_margin': min_loss,
        'max_loss_margin': max_loss,
        'last_10_results': results[-RECENT_RESULTS_LENGTH:],
    }


def load_history(repo, rivalry_id: str, game_type_id: str, player_id: str) -> List[dict]:
    games = (
        repo.query(Game)
        .join(PlayerGameScore, PlayerGameScore.game_id == Game.id)
        .filter(
            Game.rivalry_id == rivalry_id,
            Game.game_type_id == game_type_id,
            Game.finalized.is_(True),
            PlayerGameScore.player_id == player_id,
        )
        .order_by(Game.started_at.asc(), Game.id.asc())
        .all()
    )
    return [
        {
            'kind': game.win_condition_kind,
            'winner_id': game.winner_id,
            'scores': {row.player_id: row.score for row in game.scores},
        }
        for game in games
    ]


def recompute_player_stats(repo, rivalry_id: str, game_type_id: str, player_id: str) -> RivalryPlayerStats:
    values = summarize(player_id, load_history(repo, rivalry_id, game_type_id, player_id))
    row = repo.query(RivalryPlayerStats).filter_by(
        rivalry_id=rivalry_id, player_id=player_id, game_type_id=game_type_id
    ).first()
    if row is None:
        row = repo.add(RivalryPlayerStats(rivalry_id=rivalry_id, player_id=player_id, game_type_id=game_type_id))
    for key, value in values.items():
        setattr(row, key, value)
    row.updated_at = utcnow()
    return row


def recompute_for_game(repo, game: Game) -> List[RivalryPlayerStats]:
    """Rebuild the stats touched by ``game``; a game without a rivalry is a no-op."""
    if not game.rivalry_id:
        return []
    with repo.transaction(('rivalry', game.rivalry_id)):
        # Make pending changes (e.g. the finalized flag) visible to the queries
        repo.flush()
        rivalry = repo.get(Rivalry, game.rivalry_id)
        if rivalry is None:
            return []
        rows = [
            recompute_player_stats(repo, rivalry.id, game.game_type_id, player.id)
            for player in rivalry.players
        ]
        logger.info(f"[rivalry-stats] rivalry={rivalry.id} game_type={game.game_type_id} players={len(rows)}")
        return rows


def regenerate_all(repo) -> int:
    """Drop and rebuild every rivalry stats row. Returns the number of rows written."""
    written = 0
    with repo.transaction():
        repo.query(RivalryPlayerStats).delete()
        for rivalry in repo.query(Rivalry).all():
            for game_type in rivalry.game_types:
                for player in rivalry.players:
                    recompute_player_stats(repo, rivalry.id, game_type.id, player.id)
                    written += 1
    return written


def stats_for_rivalry(repo, rivalry: Rivalry) -> Dict[str, Dict[str, Optional[dict]]]:
    """player id -> game type id -> stats dict, zeroed where nothing is recorded yet."""
    rows = repo.query(RivalryPlayerStats).filter_by(rivalry_id=rivalry.id).all()
    by_key = {(r.player_id, r.game_type_id): r for r in rows}
    result: Dict[str, Dict[str, Optional[dict]]] = {}
    for player in rivalry.players:
        result[player.id] = {}
        for game_type in rivalry.game_types:
            row = by_key.get((player.id, game_type.id))
            result[player.id][game_type.id] = row.to_dict() if row else RivalryPlayerStats.empty()
    return result
