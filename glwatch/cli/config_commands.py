# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
CLI commands for managing glwatch configuration.

Users can configure:
- GitLab API endpoint
- Personal access token
- Poll interval
"""

import click
from rich.console import Console
from rich.table import Table

from glwatch import config as glwatch_config
from glwatch.utils.utils import mask_secret

console = Console()


@click.group(name='config', invoke_without_command=True)
@click.pass_context
def config_group(ctx):
    """Manage CLI configuration.

    Show current configuration (default) or set config values.

    \b
    Examples:
        glwatch config                                         # Show current config
        glwatch config set endpoint https://gitlab.example.com/api/v4
        glwatch config set token glpat-xxxx
        glwatch config set poll_interval_ms 10000
    """
    # If no subcommand, show current config
    if ctx.invoked_subcommand is None:
        show_config()


def show_config():
    """Display current configuration."""
    config = glwatch_config.load_config_file(glwatch_config.CONFIG_FILE)

    if not config:
        console.print('\n[yellow]No configuration set.[/yellow]')
        console.print('[dim]Use "glwatch config set <key> <value>" to set values.[/dim]')
        console.print(f'\n[dim]Available keys: {", ".join(glwatch_config.CONFIG_KEYS)}[/dim]')
        return

    console.print('\n[bold cyan]glwatch Configuration[/bold cyan]\n')

    table = Table(show_header=True, header_style='bold magenta')
    table.add_column('Setting', style='cyan')
    table.add_column('Value', style='green')

    for key, value in sorted(config.items()):
        if key == 'token' and value:
            value = mask_secret(value)
        table.add_row(key, str(value))

    console.print(table)
    console.print(f'\n[dim]Config file: {glwatch_config.CONFIG_FILE}[/dim]')


@config_group.command('set')
@click.argument('key', type=click.Choice(glwatch_config.CONFIG_KEYS))
@click.argument('value', type=str)
def config_set(key: str, value: str):
    """Set a configuration value.

    \b
    Keys:
        endpoint            GitLab API root (https://gitlab.com/api/v4)
        token               Personal access token (read_api scope)
        poll_interval_ms    Poll interval in milliseconds (default 5000)
        strict              Fail loudly on watch tree invariant violations
        request_timeout     HTTP timeout in seconds
    """
    config = glwatch_config.load_config_file(glwatch_config.CONFIG_FILE)

    old_value = config.get(key)
    config[key] = value

    try:
        glwatch_config.save_config_file(config, glwatch_config.CONFIG_FILE)
    except IOError as e:
        console.print(f'[red]Failed to save config: {e}[/red]')
        raise SystemExit(1)

    shown = mask_secret(value) if key == 'token' else value
    if old_value is not None:
        console.print(f'[green]Updated {key}:[/green] {shown}')
    else:
        console.print(f'[green]Set {key}:[/green] {shown}')
