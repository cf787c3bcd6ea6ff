# The MIT License (MIT)
# Copyright © 2025 Entrius

"""
Pytest fixtures shared by all glwatch tests.

Usage:
    def test_something(fake_client, scheduler, supervisor, recorder, mr_factory):
        fake_client.script_merge_requests(1, [[mr_factory(101)]])
        supervisor.watch_user(1)
        scheduler.tick('supervisor/user:1')
        assert recorder.kinds() == [EventKind.NEW_MERGE_REQUEST]
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from glwatch.classes import MergeRequest, Pipeline, Todo, TodoPage, User
from glwatch.events import EventBus, EventKind
from glwatch.watch.loop import PollingLoop
from glwatch.watch.supervisor import Supervisor

# ============================================================================
# Fakes
# ============================================================================


def _next(queue: List[Any]) -> Any:
    """Pop the next scripted result, repeating the last one forever."""
    item = queue.pop(0) if len(queue) > 1 else queue[0]
    if isinstance(item, Exception):
        raise item
    return item


class FakeGitLabClient:
    """Scripted stand-in for GitLabClient.

    Each query returns the next scripted result for its key; the final result
    repeats. Exceptions in a script are raised instead of returned.
    """

    def __init__(self):
        self.merge_request_pages: Dict[int, List[Any]] = {}
        self.details: Dict[Tuple[int, int], List[Any]] = {}
        self.pipelines: Dict[Tuple[int, str], List[Any]] = {}
        self.todo_pages: List[Any] = []
        self.known: Dict[Tuple[int, int], MergeRequest] = {}
        self.calls: List[Tuple] = []
        self.before_return: Optional[Callable[[str], None]] = None

    def script_merge_requests(self, author_id: int, pages: List[Any]) -> None:
        self.merge_request_pages[author_id] = list(pages)

    def script_detail(self, mr: MergeRequest, snapshots: List[Any]) -> None:
        self.details[(mr.project_id, mr.iid)] = list(snapshots)

    def script_pipeline(self, mr: MergeRequest, pipelines: List[Any]) -> None:
        self.pipelines[(mr.source_project_id, mr.source_branch)] = list(pipelines)

    def script_todos(self, pages: List[Any]) -> None:
        self.todo_pages = list(pages)

    def _hook(self, name: str) -> None:
        if self.before_return:
            self.before_return(name)

    def list_merge_requests(self, author_id: int, state: str = 'opened') -> List[MergeRequest]:
        self.calls.append(('list_merge_requests', author_id, state))
        page = _next(self.merge_request_pages.get(author_id, [[]]))
        for mr in page:
            self.known[(mr.project_id, mr.iid)] = mr
        self._hook('list_merge_requests')
        return list(page)

    def get_merge_request(self, project_id: int, iid: int) -> MergeRequest:
        self.calls.append(('get_merge_request', project_id, iid))
        script = self.details.get((project_id, iid))
        result = _next(script) if script else self.known[(project_id, iid)]
        self._hook('get_merge_request')
        return result

    def get_latest_pipeline(self, project_id: int, branch: str) -> Optional[Pipeline]:
        self.calls.append(('get_latest_pipeline', project_id, branch))
        result = _next(self.pipelines.get((project_id, branch), [None]))
        self._hook('get_latest_pipeline')
        return result

    def list_todos(self) -> TodoPage:
        self.calls.append(('list_todos',))
        result = _next(self.todo_pages or [TodoPage()])
        self._hook('list_todos')
        return result

    def fetch_users(self, usernames) -> List[User]:
        return [User(id=1000 + i, username=name) for i, name in enumerate(usernames)]


class ManualScheduler:
    """Records loops instead of starting threads; tests drive ticks explicitly."""

    def __init__(self):
        self.loops: List[PollingLoop] = []

    def start(self, loop: PollingLoop) -> None:
        self.loops.append(loop)

    def loop(self, path: str) -> PollingLoop:
        for loop in reversed(self.loops):
            if loop.name == path:
                return loop
        raise KeyError(path)

    def tick(self, path: str) -> bool:
        return self.loop(path).run_once()

    def live_loops(self) -> List[PollingLoop]:
        return [loop for loop in self.loops if not loop.handle.cancelled]

    def live_paths(self) -> List[str]:
        return [loop.name for loop in self.live_loops()]

    def tick_all(self) -> None:
        for loop in self.live_loops():
            loop.run_once()


class EventRecorderStub:
    """Collects (kind, payload) pairs for every event kind."""

    def __init__(self, bus: EventBus):
        self.events: List[Tuple[EventKind, Any]] = []
        for kind in EventKind:
            bus.subscribe(kind, lambda payload, kind=kind: self.events.append((kind, payload)))

    def kinds(self) -> List[EventKind]:
        return [kind for kind, _ in self.events]

    def of(self, kind: EventKind) -> List[Any]:
        return [payload for k, payload in self.events if k == kind]

    def ids(self, kind: EventKind) -> List[int]:
        return [payload.id for payload in self.of(kind)]

    def clear(self) -> None:
        self.events.clear()


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def mr_factory() -> Callable[..., MergeRequest]:
    """Build merge request snapshots with sensible defaults."""

    def _make(
        mr_id: int,
        state: str = 'opened',
        project_id: int = 7,
        iid: Optional[int] = None,
        source_branch: Optional[str] = None,
        author_id: int = 1,
    ) -> MergeRequest:
        return MergeRequest(
            id=mr_id,
            project_id=project_id,
            iid=iid if iid is not None else mr_id,
            source_project_id=project_id,
            source_branch=source_branch or f'feature-{mr_id}',
            author=User(id=author_id, username=f'user{author_id}'),
            state=state,
            title=f'MR {mr_id}',
        )

    return _make


@pytest.fixture
def todo_factory() -> Callable[..., Todo]:
    def _make(todo_id: int, created_at: str = '2025-01-01T10:00:00Z') -> Todo:
        return Todo(id=todo_id, created_at=created_at, action_name='assigned')

    return _make


@pytest.fixture
def pipeline_factory() -> Callable[..., Pipeline]:
    def _make(pipeline_id: int, status: str = 'running') -> Pipeline:
        return Pipeline(id=pipeline_id, status=status, ref='feature')

    return _make


# ============================================================================
# Engine Fixtures
# ============================================================================


@pytest.fixture
def fake_client() -> FakeGitLabClient:
    return FakeGitLabClient()


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus) -> EventRecorderStub:
    return EventRecorderStub(bus)


@pytest.fixture
def supervisor(fake_client, bus, scheduler) -> Supervisor:
    return Supervisor(fake_client, bus=bus, interval_seconds=5.0, scheduler=scheduler)


@pytest.fixture
def strict_supervisor(fake_client, bus, scheduler) -> Supervisor:
    return Supervisor(fake_client, bus=bus, interval_seconds=5.0, scheduler=scheduler, strict=True)
