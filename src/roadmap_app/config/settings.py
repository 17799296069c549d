"""
Application Configuration
========================

Configuration settings for different environments.
"""

import os
from pathlib import Path

from ..constants import (
    DEFAULT_DOWNVOTE_THRESHOLD,
    DEFAULT_MAX_TREE_DEPTH,
    DEFAULT_MAX_TREE_NODES,
    DEFAULT_REUSE_THRESHOLD,
    DEFAULT_SEARCH_THRESHOLD,
)


def _env_bool(name: str, default: str = 'false') -> bool:
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class Config:
    """Base configuration class."""

    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'

    # Database settings
    BASE_DIR = Path(__file__).resolve().parent.parent.parent  # src/
    DATABASE_PATH = BASE_DIR / 'data' / 'roadmaps.db'
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or f'sqlite:///{DATABASE_PATH}'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = Path(os.environ.get('LOG_DIR') or BASE_DIR.parent / 'logs')
    LOG_TO_FILE = _env_bool('LOG_TO_FILE', 'true')

    # Text-generation oracle (OpenRouter chat completions)
    OPENROUTER_API_KEY = os.environ.get('OPENROUTER_API_KEY', '')
    OPENROUTER_MODEL = os.environ.get('OPENROUTER_MODEL', 'openai/gpt-4-turbo-preview')
    OPENROUTER_TIMEOUT = int(os.environ.get('OPENROUTER_TIMEOUT', '120'))
    OPENROUTER_TEMPERATURE = float(os.environ.get('OPENROUTER_TEMPERATURE', '0.7'))
    OPENROUTER_MAX_TOKENS = int(os.environ.get('OPENROUTER_MAX_TOKENS', '8000'))
    OPENROUTER_SITE_URL = os.environ.get('OPENROUTER_SITE_URL', 'https://roadmaps.local')
    OPENROUTER_SITE_NAME = os.environ.get('OPENROUTER_SITE_NAME', 'Roadmap Generator')

    # Cache lookup
    SIMILARITY_SEARCH_THRESHOLD = float(os.environ.get('SIMILARITY_SEARCH_THRESHOLD', str(DEFAULT_SEARCH_THRESHOLD)))
    SIMILARITY_REUSE_THRESHOLD = float(os.environ.get('SIMILARITY_REUSE_THRESHOLD', str(DEFAULT_REUSE_THRESHOLD)))

    # Quality / regeneration policy
    REGENERATION_DOWNVOTE_THRESHOLD = int(os.environ.get('REGENERATION_DOWNVOTE_THRESHOLD', str(DEFAULT_DOWNVOTE_THRESHOLD)))
    REGENERATION_LOCK_TTL = int(os.environ.get('REGENERATION_LOCK_TTL', '900'))  # 15 minutes
    VOTE_MAX_RETRIES = int(os.environ.get('VOTE_MAX_RETRIES', '5'))

    # Generation dedup
    SINGLE_FLIGHT_WAIT_TIMEOUT = float(os.environ.get('SINGLE_FLIGHT_WAIT_TIMEOUT', '120'))
    REDIS_URL = os.environ.get('REDIS_URL')  # optional, enables cross-process generation locks
    # must outlast an oracle call plus persistence, or a waiting worker gives up early
    GENERATION_LOCK_TTL = int(os.environ.get('GENERATION_LOCK_TTL', '300'))
    GENERATION_LOCK_WAIT = float(os.environ.get('GENERATION_LOCK_WAIT', '180'))

    # Tree limits for generator output
    MAX_TREE_DEPTH = int(os.environ.get('MAX_TREE_DEPTH', str(DEFAULT_MAX_TREE_DEPTH)))
    MAX_TREE_NODES = int(os.environ.get('MAX_TREE_NODES', str(DEFAULT_MAX_TREE_NODES)))

    # Pagination
    ITEMS_PER_PAGE = 10

    # Seed popular roadmaps on startup
    SEED_ON_STARTUP = _env_bool('SEED_ON_STARTUP')


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    """Testing configuration."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    OPENROUTER_API_KEY = 'test-key'
    SINGLE_FLIGHT_WAIT_TIMEOUT = 5.0
    REDIS_URL = None
    SEED_ON_STARTUP = False
    LOG_TO_FILE = False


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig,
}
