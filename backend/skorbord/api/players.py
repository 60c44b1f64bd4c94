from flask import Blueprint, current_app, jsonify

from skorbord.api import json_body
from skorbord.repository import get_repository
from skorbord.services.environments import get_environment
from skorbord.services.players import (
    create_player, delete_player, get_player, list_players, player_summary, rename_player,
)

players = Blueprint('players', __name__)


@players.route('', methods=['GET'])
def get_players(environment_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    return jsonify([p.to_dict() for p in list_players(repo, environment_id)])


@players.route('', methods=['POST'])
def add_player(environment_id):
    data = json_body()
    repo = get_repository()
    get_environment(repo, environment_id)
    player = create_player(repo, environment_id, data.get('name'))
    return jsonify(player.to_dict()), 201


@players.route('/<string:player_id>', methods=['GET'])
def get_one(environment_id, player_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    return jsonify(player_summary(repo, get_player(repo, environment_id, player_id)))


@players.route('/<string:player_id>', methods=['PUT'])
def update_player(environment_id, player_id):
    data = json_body()
    repo = get_repository()
    get_environment(repo, environment_id)
    player = rename_player(repo, environment_id, player_id, data.get('name'))
    return jsonify(player.to_dict())


@players.route('/<string:player_id>', methods=['DELETE'])
def remove_player(environment_id, player_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    delete_player(repo, environment_id, player_id)
    current_app.logger.info(f"[api] deleted player {player_id} from {environment_id}")
    return jsonify({'message': 'Player deleted successfully'})
