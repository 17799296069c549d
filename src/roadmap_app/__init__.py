"""
Roadmap Generation Service
==========================

Flask application that serves AI-generated learning roadmaps from a
deduplicating cache: exact and similar matches are reused, concurrent
requests for the same topic share one generation, and poorly rated
roadmaps are regenerated in place.
"""

from .factory import create_app

__all__ = ['create_app']
