"""
Flask Extensions

Extension singletons are created here and bound to the app in the factory.

The roadmap engine objects (store, oracle, progress notifier, pipeline and
the services built on them) are built once per app by the factory and kept
on ``AppComponents`` under ``app.extensions['app_components']``.
"""

from typing import Optional

from flask import Flask, current_app
from flask_migrate import Migrate
from flask_socketio import SocketIO
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
migrate = Migrate()
socketio = SocketIO(cors_allowed_origins="*", async_mode='threading', logger=False, engineio_logger=False)

COMPONENTS_KEY = 'app_components'


class AppComponents:
    """Per-app container for the roadmap engine objects."""

    store = None
    oracle = None
    progress = None
    search = None
    pipeline = None
    voting = None
    regeneration = None
    roadmaps = None

    def init_app(self, app: Flask) -> None:
        app.extensions[COMPONENTS_KEY] = self

    def shutdown(self) -> None:
        """Release waiters still blocked on in-flight generations and drop progress state."""
        if self.pipeline is not None:
            self.pipeline.single_flight.clear()
        if self.progress is not None:
            self.progress.clear()


def get_components() -> Optional[AppComponents]:
    """Components of the current app, or None outside an app built by the factory."""
    return current_app.extensions.get(COMPONENTS_KEY)


def get_progress_notifier():
    components = get_components()
    return components.progress if components else None


def init_extensions(app: Flask) -> AppComponents:
    """Bind the database, migrations and Socket.IO to `app` and attach an empty component container."""
    db.init_app(app)
    migrate.init_app(app, db)
    socketio.init_app(app)

    components = AppComponents()
    components.init_app(app)
    app.logger.debug("Extensions initialized")
    return components
