import os

class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'you-will-never-guess'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or 'sqlite:///perfect_pitch.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Match shape
    TOTAL_ROUNDS = int(os.environ.get('TOTAL_ROUNDS', '9'))
    INITIAL_RATING = int(os.environ.get('INITIAL_RATING', '1000'))
    # Session timers (seconds)
    GAME_START_DELAY_SEC = float(os.environ.get('GAME_START_DELAY_SEC', '3'))
    ROUND_TIMEOUT_SEC = float(os.environ.get('ROUND_TIMEOUT_SEC', '10'))
    NEXT_ROUND_DELAY_SEC = float(os.environ.get('NEXT_ROUND_DELAY_SEC', '2'))
    # Keep finished sessions around so clients can show results
    CLEANUP_DELAY_SEC = float(os.environ.get('CLEANUP_DELAY_SEC', '10'))
    # Matchmaking
    MATCHMAKING_INTERVAL_SEC = float(os.environ.get('MATCHMAKING_INTERVAL_SEC', '3'))
    WAIT_DECAY_SEC = float(os.environ.get('WAIT_DECAY_SEC', '30'))
    WAIT_FACTOR_FLOOR = float(os.environ.get('WAIT_FACTOR_FLOOR', '0.2'))
    # Periodic pairing pass. Disabled automatically when TESTING.
    ENABLE_MATCHMAKER = os.environ.get('ENABLE_MATCHMAKER', '1') == '1'
    # Extra attempts at recording a finished match before giving up
    PERSIST_RETRIES = int(os.environ.get('PERSIST_RETRIES', '2'))
