from flask import current_app, request

from skorbord.errors import ValidationError


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def int_arg(name: str, default: int, minimum: int = 0, maximum: int = 500) -> int:
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')
    if value < minimum or value > maximum:
        raise ValidationError(f'{name} must be between {minimum} and {maximum}')
    return value


def score_bounds():
    cfg = current_app.config
    return int(cfg.get('MIN_SCORE', -999)), int(cfg.get('MAX_SCORE', 999))


def player_limits():
    cfg = current_app.config
    return int(cfg.get('MIN_PLAYERS_PER_GAME', 2)), int(cfg.get('MAX_PLAYERS_PER_GAME', 8))
