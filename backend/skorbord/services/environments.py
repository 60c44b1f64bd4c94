from skorbord.errors import ConflictError, NotFoundError, ValidationError
from skorbord.models import Environment, Game, Player
from skorbord.validation import is_valid_id


def get_environment(repo, environment_id) -> Environment:
    if not is_valid_id(environment_id):
        raise ValidationError('Invalid environment id')
    environment = repo.get(Environment, environment_id)
    if environment is None:
        raise NotFoundError('Environment not found')
    return environment


def create_environment(repo, environment_id, name=None) -> Environment:
    if not is_valid_id(environment_id):
        raise ValidationError('Invalid environment id')
    if name is not None and (not isinstance(name, str) or len(name.strip()) > 128):
        raise ValidationError('Environment name must be a string of 128 characters or less')
    with repo.transaction(('environment', environment_id)):
        if repo.get(Environment, environment_id) is not None:
            raise ConflictError('Environment already exists')
        environment = repo.add(Environment(
            id=environment_id,
            name=(name or '').strip() or f'Game {environment_id}',
        ))
    return environment


def describe(repo, environment: Environment) -> dict:
    data = environment.to_dict()
    data['player_count'] = repo.query(Player).filter_by(environment_id=environment.id).count()
    data['game_count'] = repo.query(Game).filter_by(environment_id=environment.id).count()
    return data
