from flask import Blueprint, jsonify, request

from skorbord.api import int_arg, json_body
from skorbord.errors import ValidationError
from skorbord.repository import get_repository
from skorbord.services.environments import get_environment
from skorbord.services.rivalries.queries import (
    describe_by_players, describe_rivalry, get_rivalry, list_rivalries, rivalry_games,
)
from skorbord.services.rivalries.resolver import create_rivalry

rivalries = Blueprint('rivalries', __name__)


def _player_ids_arg():
    # Accept ?player_ids=a&player_ids=b as well as ?player_ids=a,b
    ids = []
    for raw in request.args.getlist('player_ids'):
        ids.extend(part.strip() for part in raw.split(',') if part.strip())
    if len(ids) < 2:
        raise ValidationError('At least 2 player_ids are required')
    return ids


@rivalries.route('', methods=['GET'])
def get_rivalries(environment_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    return jsonify(list_rivalries(repo, environment_id))


@rivalries.route('', methods=['POST'])
def add_rivalry(environment_id):
    data = json_body()
    repo = get_repository()
    get_environment(repo, environment_id)
    rivalry = create_rivalry(repo, environment_id, data.get('player_ids'), game_type_ids=data.get('game_type_ids'))
    return jsonify(describe_rivalry(repo, rivalry)), 201


@rivalries.route('/by-players', methods=['GET'])
def get_by_players(environment_id):
    """Rivalry for an exact player set, or ``null`` when those players never met."""
    repo = get_repository()
    get_environment(repo, environment_id)
    data = describe_by_players(
        repo, environment_id, _player_ids_arg(), game_type_id=request.args.get('game_type_id'),
    )
    return jsonify(data)


@rivalries.route('/<string:rivalry_id>', methods=['GET'])
def get_one(environment_id, rivalry_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    return jsonify(describe_rivalry(repo, get_rivalry(repo, environment_id, rivalry_id)))


@rivalries.route('/<string:rivalry_id>/games', methods=['GET'])
def get_games(environment_id, rivalry_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    rivalry = get_rivalry(repo, environment_id, rivalry_id)
    return jsonify(rivalry_games(
        repo, rivalry,
        limit=int_arg('limit', 50, minimum=1),
        offset=int_arg('offset', 0, maximum=1_000_000),
        finalized_only=request.args.get('finalized') == 'true',
    ))
