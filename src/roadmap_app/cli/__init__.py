from .commands import register_cli_commands, roadmaps_cli

__all__ = ['register_cli_commands', 'roadmaps_cli']
