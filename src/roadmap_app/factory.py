"""
Flask Application Factory
=========================

Factory pattern for creating Flask application instances with the roadmap
engine wired in: store, oracle client, progress notifier, generation
pipeline and the voting / regeneration / read services built on them.
"""

import atexit
import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from flask import Flask

# Settings read os.environ at import time, so .env is loaded before them
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_PATH = _PROJECT_ROOT / '.env'
if _ENV_PATH.exists():
    load_dotenv(_ENV_PATH, override=False)

from .config import config  # noqa: E402
from .extensions import AppComponents, db, init_extensions, socketio  # noqa: E402
from .realtime import ProgressNotifier  # noqa: E402
from .services.generation import GenerationPipeline  # noqa: E402
from .services.oracle_client import OpenRouterOracle  # noqa: E402
from .services.quality import RegenerationService, VotingService  # noqa: E402
from .services.roadmap_search import RoadmapSearchService  # noqa: E402
from .services.roadmap_service import RoadmapService  # noqa: E402
from .services.seeding import seed_popular_roadmaps  # noqa: E402
from .services.single_flight import SingleFlight  # noqa: E402
from .services.store import RoadmapStore  # noqa: E402
from .utils.distributed_lock import GenerationLockFactory  # noqa: E402
from .utils.logging_config import get_logger, setup_application_logging  # noqa: E402

logger = get_logger('factory')


def _ensure_sqlite_directory(uri: str) -> None:
    """Create the parent folder of a file-backed sqlite database."""
    prefix = 'sqlite:///'
    if not uri.startswith(prefix) or uri.endswith(':memory:'):
        return
    Path(uri[len(prefix):]).parent.mkdir(parents=True, exist_ok=True)


def build_components(app: Flask, components: AppComponents) -> AppComponents:
    """Construct the engine objects from app.config and attach them to ``components``."""
    cfg = app.config

    components.store = RoadmapStore()
    components.oracle = OpenRouterOracle.from_config(cfg)
    components.progress = ProgressNotifier(socketio)
    components.search = RoadmapSearchService(components.store)
    components.pipeline = GenerationPipeline(
        store=components.store,
        oracle=components.oracle,
        search=components.search,
        progress=components.progress,
        single_flight=SingleFlight(wait_timeout=cfg['SINGLE_FLIGHT_WAIT_TIMEOUT']),
        lock_factory=GenerationLockFactory(
            cfg.get('REDIS_URL'),
            timeout=cfg['GENERATION_LOCK_TTL'],
            blocking_timeout=cfg['GENERATION_LOCK_WAIT'],
        ),
        search_threshold=cfg['SIMILARITY_SEARCH_THRESHOLD'],
        reuse_threshold=cfg['SIMILARITY_REUSE_THRESHOLD'],
        max_depth=cfg['MAX_TREE_DEPTH'],
        max_nodes=cfg['MAX_TREE_NODES'],
    )
    components.voting = VotingService(
        components.store,
        downvote_threshold=cfg['REGENERATION_DOWNVOTE_THRESHOLD'],
        max_retries=cfg['VOTE_MAX_RETRIES'],
    )
    components.regeneration = RegenerationService(
        components.store,
        components.pipeline,
        downvote_threshold=cfg['REGENERATION_DOWNVOTE_THRESHOLD'],
        lock_ttl=cfg['REGENERATION_LOCK_TTL'],
    )
    components.roadmaps = RoadmapService(
        components.store,
        search=components.search,
        items_per_page=cfg['ITEMS_PER_PAGE'],
    )
    return components


def create_app(config_name: str = 'default', **overrides: Any) -> Flask:
    """
    Create and configure Flask application.

    Args:
        config_name: Configuration environment name
        **overrides: Config keys applied on top of the selected configuration

    Returns:
        Configured Flask application
    """
    config_name = config_name or os.environ.get('FLASK_CONFIG', 'default')
    if config_name not in config:
        raise ValueError(f"Unknown configuration '{config_name}'")

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.config.update(overrides)

    setup_application_logging(
        log_level=app.config.get('LOG_LEVEL'),
        log_dir=app.config.get('LOG_DIR'),
        log_to_file=app.config.get('LOG_TO_FILE', True),
    )
    _ensure_sqlite_directory(app.config['SQLALCHEMY_DATABASE_URI'])

    components = init_extensions(app)
    build_components(app, components)
    atexit.register(components.shutdown)

    # Socket handlers register on import
    from .realtime import socket_handlers  # noqa: F401
    from .cli import register_cli_commands
    register_cli_commands(app)

    with app.app_context():
        db.create_all()
        if app.config.get('SEED_ON_STARTUP'):
            try:
                seed_popular_roadmaps(components.store)
            except Exception as e:
                logger.error(f"Seeding popular roadmaps failed: {e}")

    logger.info(f"Roadmap application created (config: {config_name})")
    return app
