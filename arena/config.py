import os
from dotenv import load_dotenv

load_dotenv()


def _env_list(name: str, default: str) -> list:
    return [item.strip().lower() for item in os.getenv(name, default).split(',') if item.strip()]


class Config:
    """Arena configuration settings"""

    # Database settings
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///arena.db')

    # Runtime settings
    DEBUG = os.getenv('DEBUG', 'False').lower() == 'true'
    LOG_DIR = os.getenv('LOG_DIR', 'logs')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    LOG_TO_FILE = os.getenv('LOG_TO_FILE', 'True').lower() == 'true'

    # Rating ladder settings
    STARTING_RATING = int(os.getenv('STARTING_RATING', 1200))
    RATING_FLOOR = int(os.getenv('RATING_FLOOR', 800))
    K_FACTOR_BASE = int(os.getenv('K_FACTOR_BASE', 32))
    SCORE_FACTOR_DIVISOR = float(os.getenv('SCORE_FACTOR_DIVISOR', 10))
    MAX_SCORE_FACTOR = float(os.getenv('MAX_SCORE_FACTOR', 3))
    RATED_BATTLE_TYPES = _env_list('RATED_BATTLE_TYPES', 'ladder')

    # Matchmaking settings
    MATCHMAKING_INTERVAL_SECONDS = float(os.getenv('MATCHMAKING_INTERVAL_SECONDS', 10))
    MATCHMAKING_RATING_TOLERANCE = int(os.getenv('MATCHMAKING_RATING_TOLERANCE', 200))

    # Battle settings
    ROUND_CHECK_INTERVAL_SECONDS = float(os.getenv('ROUND_CHECK_INTERVAL_SECONDS', 60))
    ROUND_DURATION_HOURS = float(os.getenv('ROUND_DURATION_HOURS', 7 * 24))
    DEFAULT_SALARY_CAP = int(os.getenv('DEFAULT_SALARY_CAP', 0)) or None
    DEFAULT_SWAPS_PER_ROUND = int(os.getenv('DEFAULT_SWAPS_PER_ROUND', 1))
    UPSET_RATING_GAP = int(os.getenv('UPSET_RATING_GAP', 100))

    # Tournament settings
    TOURNAMENT_REGISTRATION_DAYS = int(os.getenv('TOURNAMENT_REGISTRATION_DAYS', 7))
    TOURNAMENT_ROUND_DAYS = int(os.getenv('TOURNAMENT_ROUND_DAYS', 7))
    TOURNAMENT_ROUND_GAP_DAYS = int(os.getenv('TOURNAMENT_ROUND_GAP_DAYS', 1))
    TOURNAMENT_SEEDING = os.getenv('TOURNAMENT_SEEDING', 'rating').lower()

    # External collaborators
    PLAYER_POOL_CSV = os.getenv('PLAYER_POOL_CSV', 'data/player_pool.csv')
    SCORING_FEED_URL = os.getenv('SCORING_FEED_URL', '')
    DISCORD_WEBHOOK_URL = os.getenv('DISCORD_WEBHOOK_URL', '')

    @classmethod
    def is_rated_type(cls, battle_type: str) -> bool:
        """Whether battles of this type feed the rating ladder"""
        return battle_type.lower() in cls.RATED_BATTLE_TYPES

    @classmethod
    def validate(cls):
        """Validate that configuration values are usable"""
        if cls.RATING_FLOOR >= cls.STARTING_RATING:
            raise ValueError("RATING_FLOOR must be below STARTING_RATING")
        if cls.MATCHMAKING_INTERVAL_SECONDS <= 0:
            raise ValueError("MATCHMAKING_INTERVAL_SECONDS must be positive")
        if cls.ROUND_DURATION_HOURS <= 0:
            raise ValueError("ROUND_DURATION_HOURS must be positive")
        if cls.TOURNAMENT_SEEDING not in ('rating', 'registration'):
            raise ValueError("TOURNAMENT_SEEDING must be 'rating' or 'registration'")
        if not cls.SCORING_FEED_URL:
            raise ValueError("SCORING_FEED_URL is required")
