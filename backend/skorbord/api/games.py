from flask import Blueprint, jsonify, request

from skorbord.api import int_arg, json_body, player_limits, score_bounds
from skorbord.errors import NotFoundError, ValidationError
from skorbord.repository import get_repository
from skorbord.services.environments import get_environment
from skorbord.services.games.lifecycle import (
    create_game, delete_game, get_active_game, get_game, list_games, update_game,
)
from skorbord.services.games.scoring import (
    apply_score_deltas, list_scores, set_player_order, set_player_score,
)

games = Blueprint('games', __name__)


def _finalized_filter():
    raw = request.args.get('finalized')
    if raw is None:
        return None
    if raw not in ('true', 'false'):
        raise ValidationError('finalized must be true or false')
    return raw == 'true'


@games.route('', methods=['GET'])
def get_games(environment_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    rows = list_games(
        repo, environment_id,
        limit=int_arg('limit', 50, minimum=1),
        offset=int_arg('offset', 0, maximum=1_000_000),
        finalized=_finalized_filter(),
    )
    return jsonify([game.to_dict(include_scores=True) for game in rows])


@games.route('/active', methods=['GET'])
def get_active(environment_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    game = get_active_game(repo, environment_id)
    if game is None:
        return jsonify({'error': 'No active game found'}), 404
    return jsonify(game.to_dict(include_scores=True))


@games.route('', methods=['POST'])
def start_game(environment_id):
    data = json_body()
    repo = get_repository()
    get_environment(repo, environment_id)
    game = create_game(
        repo, environment_id,
        game_type_id=data.get('game_type_id'),
        player_ids=data.get('player_ids'),
        player_names=data.get('player_names'),
        win_condition_type=data.get('win_condition_type'),
        win_condition_value=data.get('win_condition_value'),
        player_limits=player_limits(),
    )
    return jsonify(game.to_dict(include_scores=True)), 201


@games.route('/<string:game_id>', methods=['GET'])
def get_game_state(environment_id, game_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    return jsonify(get_game(repo, environment_id, game_id).to_dict(include_scores=True))


@games.route('/<string:game_id>', methods=['PUT'])
def update(environment_id, game_id):
    data = json_body()
    repo = get_repository()
    get_environment(repo, environment_id)
    # Only keys the client sent are applied; an explicit null clears the field
    changes = {key: data[key] for key in ('ended_at', 'winner_id') if key in data}
    game = update_game(repo, environment_id, game_id, finalized=data.get('finalized'), **changes)
    return jsonify(game.to_dict(include_scores=True))


@games.route('/<string:game_id>', methods=['DELETE'])
def remove(environment_id, game_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    delete_game(repo, environment_id, game_id)
    return jsonify({'message': 'Game deleted successfully'})


@games.route('/<string:game_id>/stats', methods=['GET'])
def get_stats(environment_id, game_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    game = get_game(repo, environment_id, game_id)
    return jsonify([row.to_dict() for row in list_scores(repo, game)])


@games.route('/<string:game_id>/stats', methods=['POST'])
def post_stats(environment_id, game_id):
    """Apply a batch of signed score deltas: ``{"stats": [{"player_id", "score"}]}``."""
    data = json_body()
    stats = data.get('stats')
    if not isinstance(stats, list) or not stats:
        raise ValidationError('stats must be a non-empty list')
    deltas = []
    for entry in stats:
        if not isinstance(entry, dict):
            raise ValidationError('Each stat must be an object')
        deltas.append((entry.get('player_id'), entry.get('score')))
    repo = get_repository()
    get_environment(repo, environment_id)
    rows = apply_score_deltas(repo, environment_id, game_id, deltas, bounds=score_bounds())
    return jsonify([row.to_dict() for row in rows])


@games.route('/<string:game_id>/stats/order', methods=['PUT'])
def put_order(environment_id, game_id):
    data = json_body()
    order = data.get('playerOrder', data.get('player_ids'))
    repo = get_repository()
    get_environment(repo, environment_id)
    rows = set_player_order(repo, environment_id, game_id, order)
    return jsonify([row.to_dict() for row in rows])


@games.route('/<string:game_id>/stats/<string:player_id>', methods=['PUT'])
def put_player_score(environment_id, game_id, player_id):
    data = json_body()
    repo = get_repository()
    get_environment(repo, environment_id)
    row = set_player_score(repo, environment_id, game_id, player_id, data.get('score'), bounds=score_bounds())
    return jsonify(row.to_dict())


@games.route('/<string:game_id>/stats/<string:player_id>', methods=['GET'])
def get_player_score(environment_id, game_id, player_id):
    repo = get_repository()
    get_environment(repo, environment_id)
    game = get_game(repo, environment_id, game_id)
    for row in list_scores(repo, game):
        if row.player_id == player_id:
            return jsonify(row.to_dict())
    raise NotFoundError('Player not found in this game')
