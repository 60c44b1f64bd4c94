from flask import Blueprint, jsonify, request

from skorbord.api import json_body
from skorbord.errors import ValidationError
from skorbord.repository import get_repository
from skorbord.services.environments import get_environment
from skorbord.services.game_types import (
    create_game_type, delete_game_type, get_game_type, list_favorites, list_game_types, set_favorite,
    update_game_type,
)

game_types = Blueprint('game_types', __name__)
favorites = Blueprint('favorites', __name__)


@game_types.route('', methods=['GET'])
def get_game_types():
    repo = get_repository()
    environment_id = request.args.get('environment_id')
    if environment_id:
        get_environment(repo, environment_id)
    return jsonify(list_game_types(repo, environment_id or None))


@game_types.route('/<string:game_type_id>', methods=['GET'])
def get_one(game_type_id):
    return jsonify(get_game_type(get_repository(), game_type_id).to_dict())


@game_types.route('', methods=['POST'])
def add_game_type():
    data = json_body()
    game_type = create_game_type(
        get_repository(),
        data.get('name'),
        description=data.get('description', ''),
        condition_kind=data.get('condition_kind', data.get('win_condition_type', 'reach-target')),
        threshold=data.get('threshold', data.get('win_condition_value', 100)),
    )
    return jsonify(game_type.to_dict()), 201


@game_types.route('/<string:game_type_id>', methods=['PUT'])
def update_one(game_type_id):
    data = json_body()
    allowed = ('name', 'description', 'condition_kind', 'threshold')
    changes = {key: data[key] for key in allowed if key in data}
    if not changes:
        raise ValidationError('No updatable fields supplied')
    return jsonify(update_game_type(get_repository(), game_type_id, **changes).to_dict())


@game_types.route('/<string:game_type_id>', methods=['DELETE'])
def remove_one(game_type_id):
    delete_game_type(get_repository(), game_type_id)
    return jsonify({'message': 'Game type deleted successfully'})


# ---- per-environment favorites ----

@favorites.route('/api/<environment_id>/favorites', methods=['GET'])
def get_favorites(environment_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    return jsonify([gt.to_dict() for gt in list_favorites(repo, environment_id)])


@favorites.route('/api/<environment_id>/game_types/<string:game_type_id>/favorite', methods=['POST', 'DELETE'])
def toggle_favorite(environment_id, game_type_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    is_favorite = set_favorite(repo, environment_id, game_type_id, request.method == 'POST')
    return jsonify({'game_type_id': game_type_id, 'is_favorite': is_favorite})
