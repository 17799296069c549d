import sys
from pathlib import Path

# Ensure the application package under src/ is importable when running tests
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = PROJECT_ROOT / 'src'
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import json
import os
import threading
import time

import pytest

from roadmap_app.factory import create_app
from roadmap_app.extensions import db as _db


class FakeOracle:
    """Scripted stand-in for the OpenRouter client.

    Each call pops the next scripted response and the last one repeats; a
    response that is an exception instance is raised instead of returned.
    """

    def __init__(self, responses=None, delay=0.0):
        self.responses = list(responses or [])
        self.delay = delay
        self.calls = []
        self._lock = threading.Lock()

    def queue(self, *responses):
        self.responses.extend(responses)

    @property
    def call_count(self):
        return len(self.calls)

    def complete(self, system_prompt, user_prompt):
        with self._lock:
            self.calls.append(user_prompt)
            if not self.responses:
                raise AssertionError("FakeOracle called with no scripted response left")
            response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if self.delay:
            threading.Event().wait(self.delay)
        if isinstance(response, BaseException):
            raise response
        return response


def roadmap_payload(title="Quantum Chemistry Simulation", category="other", nodes=None, **extra):
    """Oracle JSON text for a small two-level roadmap."""
    if nodes is None:
        nodes = [
            {
                'title': "Quantum Mechanics Basics",
                'description': "Wave functions and operators",
                'nodeType': 'milestone',
                'estimatedDuration': {'value': 2, 'unit': 'weeks'},
                'importance': 'high',
                'difficulty': 'intermediate',
                'resources': [
                    {'title': "QM Lecture Notes", 'url': "https://example.com/qm", 'resourceType': 'article'},
                ],
                'children': [
                    {'title': "Schrodinger Equation", 'nodeType': 'topic', 'resources': [
                        {'title': "Schrodinger Video", 'url': "https://example.com/se", 'resourceType': 'video'},
                    ]},
                    {'title': "Hartree-Fock Method", 'nodeType': 'skill', 'importance': 'low'},
                ],
            },
            {
                'title': "Molecular Dynamics",
                'nodeType': 'project',
                'children': [{'title': "Run a Simulation", 'nodeType': 'checkpoint'}],
            },
        ]
    data = {
        'title': title,
        'description': f"Learn {title.lower()}",
        'category': category,
        'difficulty': 'advanced',
        'nodes': nodes,
    }
    data.update(extra)
    return json.dumps(data)


def wait_for_followers(flight, key, count, timeout=5.0):
    """Block until `count` callers are waiting on the in-flight call for `key`."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        call = flight._calls.get(key)
        if call is not None and call.followers >= count:
            return
        time.sleep(0.01)
    raise AssertionError(f"{count} follower(s) never joined '{key}'")


@pytest.fixture
def app():
    """Fresh application with an in-memory database per test."""
    os.environ['FLASK_ENV'] = 'testing'
    app = create_app('testing')
    with app.app_context():
        yield app
        app.extensions['app_components'].shutdown()
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def components(app):
    return app.extensions['app_components']


@pytest.fixture
def store(components):
    return components.store


@pytest.fixture
def oracle(components):
    """Install a FakeOracle on the pipeline; tests script its responses."""
    fake = FakeOracle()
    components.oracle = fake
    components.pipeline.oracle = fake
    return fake


@pytest.fixture
def pipeline(components, oracle):
    return components.pipeline


@pytest.fixture
def progress(components):
    return components.progress


@pytest.fixture
def make_user(store):
    def _make(username, role='user'):
        from roadmap_app.models import User
        with store.transaction():
            user = store.create(User(username=username, email=f"{username}@example.com", role=role))
        return user
    return _make


@pytest.fixture
def make_roadmap(store):
    """Persist a published roadmap row with optional tags and keywords."""
    def _make(title, tags=(), keywords=None, description='', category='frontend', **fields):
        from roadmap_app.models import Roadmap
        from roadmap_app.services.keywords import extract_keywords, merge_keywords
        from roadmap_app.utils.slug_utils import slugify
        from roadmap_app.utils.time import utc_now

        with store.transaction():
            roadmap = Roadmap(
                title=title,
                slug=slugify(title),
                description=description,
                category=category,
                difficulty=fields.pop('difficulty', 'beginner'),
                is_published=fields.pop('is_published', True),
                published_at=utc_now(),
                **fields,
            )
            roadmap.set_tags(list(tags))
            roadmap.set_search_keywords(
                keywords if keywords is not None else merge_keywords(extract_keywords(title), tags)
            )
            roadmap.set_votes([], [])
            store.create(roadmap)
        return roadmap
    return _make
