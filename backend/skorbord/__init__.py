from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException
import logging
import click
from config import Config

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(async_mode=None)


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    level = getattr(logging, str(flask_app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    flask_app.logger.setLevel(level)
    logging.getLogger('skorbord').setLevel(level)

    origins = flask_app.config.get('CORS_ORIGINS') or []
    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, origins=origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=origins)

    from skorbord.broadcast import BroadcastRelay
    from skorbord.repository import KeyedLocks
    flask_app.extensions['skorbord'] = {
        'locks': KeyedLocks(),
        'relay': BroadcastRelay(socketio),
    }

    # Import and register blueprints here
    from skorbord.main import main
    flask_app.register_blueprint(main)

    from skorbord.api.games import games
    flask_app.register_blueprint(games, url_prefix='/api/<environment_id>/games')

    from skorbord.api.players import players
    flask_app.register_blueprint(players, url_prefix='/api/<environment_id>/players')

    from skorbord.api.rivalries import rivalries
    flask_app.register_blueprint(rivalries, url_prefix='/api/<environment_id>/rivalries')

    from skorbord.api.game_types import game_types, favorites
    flask_app.register_blueprint(game_types, url_prefix='/api/game_types')
    flask_app.register_blueprint(favorites)

    from skorbord.errors import SkorbordError

    @flask_app.errorhandler(SkorbordError)
    def handle_skorbord_error(exc):
        return jsonify(exc.to_dict()), exc.status_code

    @flask_app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        # Unknown routes and methods keep their own status
        if isinstance(exc, HTTPException):
            return jsonify({'error': exc.description}), exc.code
        flask_app.logger.exception(f"[error] unhandled {type(exc).__name__}: {exc}")
        return jsonify({'error': 'Internal server error'}), 500

    # Register Socket.IO event handlers
    from skorbord.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from skorbord.models import seed_game_types
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            added = seed_game_types(db.session)
            db.session.commit()
            print(f'Database has been reset and seeded with {added} game types!')

    @click.command('regenerate-rivalry-stats')
    def regenerate_rivalry_stats_command():
        """Rebuilds every rivalry stats row from finalized game history."""
        from skorbord.repository import get_repository
        from skorbord.services.rivalries.stats import regenerate_all
        with flask_app.app_context():
            written = regenerate_all(get_repository())
            print(f'Regenerated {written} rivalry stats rows.')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(regenerate_rivalry_stats_command)

    return flask_app
