import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///skorbord.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Inclusive score bounds for a single player in a game
    MIN_SCORE = int(os.environ.get('MIN_SCORE', '-999'))
    MAX_SCORE = int(os.environ.get('MAX_SCORE', '999'))
    # Players allowed per game
    MIN_PLAYERS_PER_GAME = int(os.environ.get('MIN_PLAYERS_PER_GAME', '2'))
    MAX_PLAYERS_PER_GAME = int(os.environ.get('MAX_PLAYERS_PER_GAME', '8'))
    # Comma-separated list of browser origins allowed for REST and Socket.IO
    CORS_ORIGINS = [o.strip() for o in os.environ.get(
        'CORS_ORIGINS',
        'http://localhost:3000,http://localhost:2424,http://localhost:5173,http://127.0.0.1:5173',
    ).split(',') if o.strip()]
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
