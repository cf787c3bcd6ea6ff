# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
glwatch CLI - watch, todo and merge commands

Usage:
    glwatch watch -u alice -u bob          # Stream merge request, pipeline and todo events
    glwatch todos list                     # Show pending todos
    glwatch todos done 42                  # Mark a todo as done
    glwatch todos done --all               # Mark every todo as done
    glwatch merge 7 13                     # Merge !13 in project 7
"""

import threading
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from glwatch.config import WatchConfig, resolve_config
from glwatch.events import EventBus, EventKind
from glwatch.exceptions import ConfigurationError, TransientFetchError
from glwatch.utils.gitlab_api_tools import GitLabClient
from glwatch.utils.logging import EventRecorder, describe_event, setup_events_logger, setup_logging
from glwatch.watch.supervisor import Supervisor

console = Console()

EVENT_STYLES = {
    EventKind.NEW_MERGE_REQUEST: ('NEW', 'bold green'),
    EventKind.UPDATED_MERGE_REQUEST: ('MR', 'cyan'),
    EventKind.MERGED_MERGE_REQUEST: ('DONE', 'bold magenta'),
    EventKind.UPDATED_PIPELINE: ('CI', 'yellow'),
    EventKind.NEW_TODO: ('TODO', 'bold blue'),
    EventKind.TODO_COUNT: ('TODOS', 'dim'),
}

PIPELINE_STATUS_COLORS = {
    'success': 'green',
    'failed': 'red',
    'running': 'blue',
    'pending': 'yellow',
    'canceled': 'dim',
    'skipped': 'dim',
}


class EventPrinter:
    """Prints bus events to the console, one line per event."""

    def __init__(self, out: Console = console, show_updates: bool = False):
        self.out = out
        self.show_updates = show_updates
        self._last_todo_count: Optional[int] = None

    def attach(self, bus: EventBus) -> 'EventPrinter':
        for kind in EventKind:
            bus.subscribe(kind, lambda payload, kind=kind: self.print_event(kind, payload))
        return self

    def print_event(self, kind: EventKind, payload) -> None:
        # updated events repeat every tick; only show them when asked
        if kind == EventKind.UPDATED_MERGE_REQUEST and not self.show_updates:
            return
        if kind == EventKind.TODO_COUNT:
            if payload == self._last_todo_count:
                return
            self._last_todo_count = payload

        label, style = EVENT_STYLES[kind]
        text = escape(describe_event(kind, payload))
        if kind == EventKind.UPDATED_PIPELINE:
            color = PIPELINE_STATUS_COLORS.get(payload.pipeline.status, 'white')
            text = f'[{color}]{text}[/{color}]'
        self.out.print(f'[{style}]{label:<5}[/{style}] {text}')


def load_watch_config(endpoint: Optional[str], token: Optional[str], interval: Optional[int] = None) -> WatchConfig:
    """Resolve and validate config, exiting with a message when it is unusable."""
    try:
        return resolve_config(
            overrides={'endpoint': endpoint, 'token': token, 'poll_interval_ms': interval}
        ).validate()
    except ConfigurationError as e:
        console.print(f'[red]Configuration error: {e}[/red]')
        console.print('[dim]Run "glwatch config set <key> <value>" or set GITLAB_ENDPOINT / GITLAB_TOKEN.[/dim]')
        raise SystemExit(1)


def build_client(config: WatchConfig) -> GitLabClient:
    return GitLabClient(config.endpoint, config.token, timeout=config.request_timeout)


def wait_for_interrupt(duration: Optional[float]) -> None:
    """Block until Ctrl-C, or for duration seconds when given."""
    threading.Event().wait(duration)


endpoint_option = click.option('--endpoint', type=str, default=None, help='GitLab API root (overrides config)')
token_option = click.option('--token', type=str, default=None, help='GitLab access token (overrides config)')


@click.command('watch')
@click.option('--user', '-u', 'usernames', multiple=True, help='GitLab username to watch (repeatable)')
@click.option('--user-id', 'user_ids', multiple=True, type=int, help='GitLab numeric user id to watch (repeatable)')
@click.option('--todos/--no-todos', default=True, help='Also watch your todos')
@click.option('--interval', type=int, default=None, help='Poll interval in milliseconds')
@click.option('--show-updates', is_flag=True, help='Print every merge request refresh, not only changes of lifecycle')
@click.option('--events-log', type=click.Path(file_okay=False), default=None, help='Directory for a rotating events.log')
@click.option('--duration', type=float, default=None, help='Stop after this many seconds (default: until Ctrl-C)')
@click.option(
    '--log-level', type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']), default='WARNING', help='Logging level'
)
@endpoint_option
@token_option
def watch(
    usernames: Tuple[str, ...],
    user_ids: Tuple[int, ...],
    todos: bool,
    interval: Optional[int],
    show_updates: bool,
    events_log: Optional[str],
    duration: Optional[float],
    log_level: str,
    endpoint: Optional[str],
    token: Optional[str],
):
    """Watch merge requests of users and your todos.

    \b
    Examples:
        glwatch watch -u alice -u bob
        glwatch watch --user-id 42 --no-todos --interval 10000
    """
    setup_logging(log_level)
    config = load_watch_config(endpoint, token, interval)
    supervisor = Supervisor.from_config(config)

    ids = list(user_ids)
    if usernames:
        try:
            users = supervisor.client.fetch_users(usernames)
        except TransientFetchError as e:
            console.print(f'[red]Could not resolve users: {e}[/red]')
            raise SystemExit(1)
        for username in sorted(set(usernames) - {user.username for user in users}):
            console.print(f'[yellow]Unknown GitLab user: {username}[/yellow]')
        ids.extend(user.id for user in users)

    if not ids and not todos:
        console.print('[red]Nothing to watch: pass --user/--user-id or --todos[/red]')
        raise SystemExit(1)

    EventPrinter(show_updates=show_updates).attach(supervisor.bus)
    if events_log:
        EventRecorder(setup_events_logger(events_log)).attach(supervisor.bus)

    def on_fetch_failed(loop_name: str, error: Exception):
        console.print(f'[dim]{loop_name}: {error} (retrying)[/dim]')

    supervisor.on_fetch_failed = on_fetch_failed

    supervisor.watch_users(ids)
    if todos:
        supervisor.watch_todos()

    watching = ', '.join(str(i) for i in ids) or 'nobody'
    console.print(f'[bold]Watching users {watching}{" and todos" if todos else ""}. Ctrl-C to stop.[/bold]')

    try:
        wait_for_interrupt(duration)
    except KeyboardInterrupt:
        pass
    finally:
        supervisor.shutdown()
        console.print('[dim]Stopped all watchers[/dim]')


@click.group('todos')
def todos_group():
    """List todos or mark them as done."""
    pass


@todos_group.command('list')
@endpoint_option
@token_option
def todos_list(endpoint: Optional[str], token: Optional[str]):
    """Show pending todos, newest first."""
    client = build_client(load_watch_config(endpoint, token))
    try:
        page = client.list_todos()
    except TransientFetchError as e:
        console.print(f'[red]Could not fetch todos: {e}[/red]')
        raise SystemExit(1)

    table = Table(show_header=True, header_style='bold magenta', title=f'Todos ({page.total_count})')
    table.add_column('ID', style='cyan', justify='right')
    table.add_column('Created', style='dim')
    table.add_column('Action')
    table.add_column('Target', style='green')

    for todo in sorted(page.items, key=lambda t: t.created_at, reverse=True):
        table.add_row(str(todo.id), todo.created_at, todo.action_name or '', todo.target_url or '')

    console.print(table)


@todos_group.command('done')
@click.argument('todo_id', type=int, required=False)
@click.option('--all', 'all_todos', is_flag=True, help='Mark every pending todo as done')
@endpoint_option
@token_option
def todos_done(todo_id: Optional[int], all_todos: bool, endpoint: Optional[str], token: Optional[str]):
    """Mark a todo (or all todos) as done."""
    if (todo_id is None) == (not all_todos):
        console.print('[red]Pass either a TODO_ID or --all[/red]')
        raise SystemExit(1)

    client = build_client(load_watch_config(endpoint, token))
    try:
        if all_todos:
            client.mark_all_todos_as_done()
            console.print('[green]All todos marked as done[/green]')
        else:
            client.mark_todo_as_done(todo_id)
            console.print(f'[green]Todo {todo_id} marked as done[/green]')
    except TransientFetchError as e:
        console.print(f'[red]Request failed: {e}[/red]')
        raise SystemExit(1)


@click.command('merge')
@click.argument('project_id', type=int)
@click.argument('iid', type=int)
@endpoint_option
@token_option
def merge(project_id: int, iid: int, endpoint: Optional[str], token: Optional[str]):
    """Merge merge request IID of PROJECT_ID."""
    client = build_client(load_watch_config(endpoint, token))
    try:
        project = client.fetch_project(project_id)
        mr = client.merge(project_id, iid)
    except TransientFetchError as e:
        console.print(f'[red]Merge failed: {e}[/red]')
        raise SystemExit(1)
    console.print(f'[green]{project.path_with_namespace}!{mr.iid} is now {mr.state}[/green]')


def register_commands(cli: click.Group) -> None:
    cli.add_command(watch)
    cli.add_command(todos_group)
    cli.add_command(merge)
    cli.add_alias('watch', 'w')
    cli.add_alias('todos', 't')
