"""
Roadmap Management CLI
======================

Flask CLI commands for operating the roadmap cache.

Usage:
    flask --app roadmap_app roadmaps seed                 # Seed popular roadmaps
    flask --app roadmap_app roadmaps clear-seeded         # Remove pre-generated roadmaps
    flask --app roadmap_app roadmaps search "react hooks" --threshold 0.3
    flask --app roadmap_app roadmaps generate "learn kubernetes"
    flask --app roadmap_app roadmaps regenerate 12 --actor-id 1 --role admin
    flask --app roadmap_app roadmaps stats 12
"""

import json

import click
from flask import Flask
from flask.cli import AppGroup

from ..extensions import get_components
from ..services.seeding import clear_pregenerated_roadmaps, seed_popular_roadmaps
from ..services.service_base import ServiceError

roadmaps_cli = AppGroup('roadmaps', help="Manage cached learning roadmaps.")


def _fail(error: ServiceError):
    raise click.ClickException(f"{type(error).__name__}: {error}")


@roadmaps_cli.command('seed')
def seed_command():
    """Seed the popular pre-generated roadmaps."""
    result = seed_popular_roadmaps(get_components().store)
    click.echo(f"Created {result['created']} roadmap(s), skipped {result['skipped']}")


@roadmaps_cli.command('clear-seeded')
@click.confirmation_option(prompt="Delete all pre-generated roadmaps?")
def clear_seeded_command():
    """Delete every pre-generated roadmap and its nodes."""
    removed = clear_pregenerated_roadmaps(get_components().store)
    click.echo(f"Removed {removed} pre-generated roadmap(s)")


@roadmaps_cli.command('search')
@click.argument('prompt')
@click.option('--threshold', type=float, default=None, help="Minimum similarity (default: configured search threshold)")
def search_command(prompt, threshold):
    """Rank cached roadmaps by similarity to PROMPT."""
    components = get_components()
    if threshold is None:
        threshold = components.pipeline.search_threshold
    exact = components.search.find_exact(prompt)
    if exact is not None:
        click.echo(f"exact   1.0000  #{exact.id} {exact.title}")
    for result in components.search.find_similar(prompt, threshold):
        click.echo(f"similar {result.similarity:.4f}  #{result.roadmap.id} {result.roadmap.title}")


@roadmaps_cli.command('generate')
@click.argument('prompt')
@click.option('--user-id', type=int, default=None, help="Requester user id")
@click.option('--community', is_flag=True, help="Mark as community contributed")
def generate_command(prompt, user_id, community):
    """Return a roadmap for PROMPT, generating it on a cache miss."""
    try:
        outcome = get_components().pipeline.generate(prompt, requester_id=user_id, community_contributed=community)
    except ServiceError as e:
        _fail(e)
    roadmap = outcome.roadmap
    click.echo(f"[{outcome.source.value}] #{roadmap.id} {roadmap.title} (v{roadmap.version}, {len(roadmap.nodes)} nodes)")


@roadmaps_cli.command('regenerate')
@click.argument('roadmap_id', type=int)
@click.option('--actor-id', type=int, default=None)
@click.option('--role', default=None, help="Actor role, e.g. admin")
def regenerate_command(roadmap_id, actor_id, role):
    """Regenerate ROADMAP_ID in place."""
    try:
        roadmap = get_components().regeneration.regenerate(roadmap_id, actor_id=actor_id, actor_role=role)
    except ServiceError as e:
        _fail(e)
    click.echo(f"Regenerated #{roadmap.id} {roadmap.title} -> v{roadmap.version}")


@roadmaps_cli.command('stats')
@click.argument('roadmap_id', type=int)
def stats_command(roadmap_id):
    """Print vote, quality and structure statistics for ROADMAP_ID."""
    try:
        stats = get_components().roadmaps.get_roadmap_stats(roadmap_id)
    except ServiceError as e:
        _fail(e)
    click.echo(json.dumps(stats, indent=2, default=str))


def register_cli_commands(app: Flask) -> None:
    app.cli.add_command(roadmaps_cli)
