from sqlalchemy import func

from skorbord.errors import ConflictError, NotFoundError, ValidationError
from skorbord.models import Favorite, Game, GameType, RivalryPlayerStats, rivalry_game_types
from skorbord.validation import normalize_condition_kind, require_int, sanitize_name


def list_game_types(repo, environment_id=None):
    rows = (
        repo.query(GameType, func.count(Game.id))
        .outerjoin(Game, Game.game_type_id == GameType.id)
        .group_by(GameType.id)
        .order_by(GameType.name.asc())
        .all()
    )
    favorites = set()
    if environment_id is not None:
        favorites = {
            f.game_type_id for f in repo.query(Favorite).filter_by(environment_id=environment_id).all()
        }
    result = []
    for game_type, played in rows:
        data = game_type.to_dict()
        data['games_played'] = played
        if environment_id is not None:
            data['is_favorite'] = game_type.id in favorites
        result.append(data)
    return result


def get_game_type(repo, game_type_id: str) -> GameType:
    game_type = repo.get(GameType, game_type_id)
    if game_type is None:
        raise NotFoundError('Game type not found')
    return game_type


def create_game_type(repo, name, description='', condition_kind='reach-target', threshold=100) -> GameType:
    name = sanitize_name(name, 'Game type name')
    kind = normalize_condition_kind(condition_kind)
    threshold = require_int(threshold, 'threshold')
    if description is not None and not isinstance(description, str):
        raise ValidationError('description must be a string')
    with repo.transaction(('game_type', name.lower())):
        if repo.query(GameType).filter(func.lower(GameType.name) == name.lower()).first():
            raise ConflictError('Game type name already exists')
        game_type = repo.add(GameType(
            name=name, description=description or '', condition_kind=kind, threshold=threshold,
        ))
    return game_type


def update_game_type(repo, game_type_id: str, **changes) -> GameType:
    with repo.transaction(('game_type', game_type_id)):
        game_type = get_game_type(repo, game_type_id)
        if changes.get('name') is not None:
            name = sanitize_name(changes['name'], 'Game type name')
            clash = repo.query(GameType).filter(func.lower(GameType.name) == name.lower()).first()
            if clash is not None and clash.id != game_type.id:
                raise ConflictError('Game type name already exists')
            game_type.name = name
        if 'description' in changes:
            game_type.description = changes['description'] or ''
        if changes.get('condition_kind') is not None:
            game_type.condition_kind = normalize_condition_kind(changes['condition_kind'])
        if changes.get('threshold') is not None:
            game_type.threshold = require_int(changes['threshold'], 'threshold')
    return game_type


def delete_game_type(repo, game_type_id: str) -> None:
    """Remove a game type no game has ever used, with its favorites and rivalry links."""
    with repo.transaction(('game_type', game_type_id)):
        game_type = get_game_type(repo, game_type_id)
        if repo.query(Game).filter_by(game_type_id=game_type.id).first() is not None:
            raise ConflictError('Cannot delete game type that is being used in games')
        repo.query(Favorite).filter_by(game_type_id=game_type.id).delete()
        repo.query(RivalryPlayerStats).filter_by(game_type_id=game_type.id).delete()
        repo.session.execute(
            rivalry_game_types.delete().where(rivalry_game_types.c.game_type_id == game_type.id)
        )
        repo.delete(game_type)


def set_favorite(repo, environment_id: str, game_type_id: str, favorite: bool) -> bool:
    with repo.transaction(('environment', environment_id), ('game_type', game_type_id)):
        get_game_type(repo, game_type_id)
        existing = repo.get(Favorite, (environment_id, game_type_id))
        if favorite and existing is None:
            repo.add(Favorite(environment_id=environment_id, game_type_id=game_type_id))
        elif not favorite and existing is not None:
            repo.delete(existing)
    return favorite


def list_favorites(repo, environment_id: str):
    return (
        repo.query(GameType)
        .join(Favorite, Favorite.game_type_id == GameType.id)
        .filter(Favorite.environment_id == environment_id)
        .order_by(GameType.name.asc())
        .all()
    )
