# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
glwatch CLI - Main entry point
"""

import click

from glwatch import __version__
from glwatch.cli.config_commands import config_group
from glwatch.cli.watch_commands import register_commands


class AliasGroup(click.Group):
    """Click Group that supports command aliases without duplicate help entries."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._aliases = {}  # alias -> canonical name

    def add_alias(self, name, alias):
        """Register an alias for an existing command."""
        self._aliases[alias] = name

    def get_command(self, ctx, cmd_name):
        # Resolve alias to canonical name
        canonical = self._aliases.get(cmd_name, cmd_name)
        return super().get_command(ctx, canonical)

    def format_commands(self, ctx, formatter):
        """Write the help text, appending aliases to command descriptions."""
        alias_map = {}
        for alias, canonical in self._aliases.items():
            alias_map.setdefault(canonical, []).append(alias)

        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.commands.get(subcommand)
            if cmd is None or cmd.hidden:
                continue
            help_text = cmd.get_short_help_str(limit=150)
            aliases = alias_map.get(subcommand)
            if aliases:
                subcommand = f'{subcommand}, {", ".join(sorted(aliases))}'
            commands.append((subcommand, help_text))

        if commands:
            with formatter.section('Commands'):
                formatter.write_dl(commands)


@click.group(cls=AliasGroup)
@click.version_option(version=__version__, prog_name='glwatch')
def cli():
    """glwatch - Watch GitLab merge requests, pipelines and todos by polling"""
    pass


cli.add_command(config_group)
register_commands(cli)


def main():
    """Main entry point for the CLI"""
    cli()


if __name__ == '__main__':
    main()
