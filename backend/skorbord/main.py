from flask import Blueprint, jsonify

from skorbord.api import json_body
from skorbord.repository import get_repository
from skorbord.services.environments import create_environment, describe, get_environment

main = Blueprint('main', __name__)


@main.route('/health')
def health():
    return jsonify({'status': 'ok'})


@main.route('/api/environments/<environment_id>', methods=['POST'])
def add_environment(environment_id):
    data = json_body()
    repo = get_repository()
    environment = create_environment(repo, environment_id, name=data.get('name'))
    return jsonify(describe(repo, environment)), 201


@main.route('/api/<environment_id>')
def get_environment_details(environment_id):
    repo = get_repository()
    return jsonify(describe(repo, get_environment(repo, environment_id)))
