from typing import Iterable, Optional, Tuple

from skorbord.models import REACH_TARGET
from skorbord.validation import normalize_condition_kind


def qualifies(kind: str, threshold: int, score: int) -> bool:
    if kind == REACH_TARGET:
        return score >= threshold
    return score <= threshold


def best_score(kind: str, scores: Iterable[int]) -> Optional[int]:
    """Highest score for reach-target games, lowest for fall-below-floor."""
    values = list(scores)
    if not values:
        return None
    return max(values) if kind == REACH_TARGET else min(values)


def determine_winner(kind: str, threshold: int, scores: Iterable[Tuple[str, int]]) -> Optional[str]:
    """Return the winning player id, or None if nobody has won yet.

    ``scores`` is an iterable of ``(player_id, score)`` pairs. Players that
    meet the threshold qualify; the best qualifying score wins. When two or
    more qualifiers share the best score the game is unresolved and None is
    returned, so play continues until the tie is broken.
    """
    kind = normalize_condition_kind(kind)
    qualified = [(pid, score) for pid, score in scores if qualifies(kind, threshold, score)]
    if not qualified:
        return None
    top = best_score(kind, (score for _, score in qualified))
    leaders = [pid for pid, score in qualified if score == top]
    if len(leaders) > 1:
        return None
    return leaders[0]
