import logging
from functools import partial
from typing import Callable, Dict, FrozenSet, List, Optional, Set

from glwatch.classes import MergeRequestState
from glwatch.constants import DEFAULT_POLL_INTERVAL_MS
from glwatch.events import EventBus, EventKind
from glwatch.exceptions import InvariantViolation
from glwatch.watch.entity import EntityWatcher
from glwatch.watch.handles import WatchHandle
from glwatch.watch.loop import FailureCallback, PollingLoop, ThreadScheduler

logger = logging.getLogger(__name__)

TODOS_LOOP = 'todos'


def user_loop_name(user_id: int) -> str:
    return f'user:{user_id}'


class WatchEngine:
    """Creates discovery loops and the EntityWatchers they find.

    Each discovery loop owns a SeenSet: ids it has already announced. The set
    only grows while the loop lives, so an id that disappears and later
    reappears (a reopened merge request) is not announced again.
    """

    def __init__(
        self,
        client,
        bus: EventBus,
        root: WatchHandle,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_MS / 1000,
        scheduler=None,
        strict: bool = False,
    ):
        self.client = client
        self.bus = bus
        self.root = root
        self.interval_seconds = interval_seconds
        self.scheduler = scheduler or ThreadScheduler()
        self.strict = strict
        self.on_fetch_failed: Optional[FailureCallback] = None

        self._seen_sets: Dict[str, Set[int]] = {}
        self._entities: Dict[int, EntityWatcher] = {}

    # -------------------------------------------------------------------------
    # Loop creation
    # -------------------------------------------------------------------------

    def _report_failure(self, loop_name: str, error: Exception) -> None:
        if self.on_fetch_failed:
            self.on_fetch_failed(loop_name, error)

    def schedule(self, handle: WatchHandle, tick: Callable[[], None]) -> PollingLoop:
        loop = PollingLoop(
            handle,
            self.interval_seconds,
            tick,
            strict=self.strict,
            on_failure=self._report_failure,
        )
        self.scheduler.start(loop)
        return loop

    def start_user_loop(self, user_id: int) -> WatchHandle:
        """Start the merge request discovery loop for a user, unless one is live."""
        name = user_loop_name(user_id)
        with self.root.lock:
            existing = self.root.child(name)
            if existing is not None:
                logger.info(f'Already watching merge requests of user {user_id}')
                return existing

            handle = self.root.spawn(name)
            seen: Set[int] = set()
            self._seen_sets[name] = seen
            self.schedule(handle, partial(self._discover_merge_requests, handle, user_id, seen))

        logger.info(f'Watching merge requests of user {user_id} every {self.interval_seconds}s')
        return handle

    def start_todos_loop(self) -> WatchHandle:
        with self.root.lock:
            existing = self.root.child(TODOS_LOOP)
            if existing is not None:
                logger.info('Already watching todos')
                return existing

            handle = self.root.spawn(TODOS_LOOP)
            seen: Set[int] = set()
            self._seen_sets[TODOS_LOOP] = seen
            self.schedule(handle, partial(self._poll_todos, handle, seen))

        logger.info(f'Watching todos every {self.interval_seconds}s')
        return handle

    def forget_loop(self, name: str) -> None:
        """Drop bookkeeping of a cancelled discovery loop."""
        with self.root.lock:
            self._seen_sets.pop(name, None)
            self._prune_entities()

    # -------------------------------------------------------------------------
    # Ticks
    # -------------------------------------------------------------------------

    def _discover_merge_requests(self, handle: WatchHandle, user_id: int, seen: Set[int]) -> None:
        merge_requests = self.client.list_merge_requests(author_id=user_id, state=MergeRequestState.OPENED.value)

        with handle.lock:
            if handle.cancelled:
                return

            for mr in merge_requests:
                if mr.id in seen:
                    continue
                seen.add(mr.id)
                logger.info(f'New merge request {mr} by user {user_id}')
                self.bus.publish(EventKind.NEW_MERGE_REQUEST, mr)

                # a handler may have stopped this loop
                if handle.cancelled:
                    return
                self._spawn_entity(handle, mr)

    def _spawn_entity(self, parent: WatchHandle, mr) -> EntityWatcher:
        current = self._entities.get(mr.id)
        if current is not None and current.is_live:
            raise InvariantViolation(f'Merge request {mr.id} already has a live watcher at {current.handle.path}')

        entity = EntityWatcher(mr, parent.spawn(f'mr:{mr.id}'), self.client, self.bus, on_terminal=self._forget_entity)
        self._entities[mr.id] = entity
        entity.start(self.schedule)
        return entity

    def _forget_entity(self, entity: EntityWatcher) -> None:
        if self._entities.get(entity.id) is entity:
            del self._entities[entity.id]

    def _prune_entities(self) -> None:
        for mr_id in [mr_id for mr_id, entity in self._entities.items() if not entity.is_live]:
            del self._entities[mr_id]

    def _poll_todos(self, handle: WatchHandle, seen: Set[int]) -> None:
        page = self.client.list_todos()

        with handle.lock:
            if handle.cancelled:
                return

            for todo in page.items:
                if todo.id in seen:
                    continue
                seen.add(todo.id)
                self.bus.publish(EventKind.NEW_TODO, todo)
                if handle.cancelled:
                    return

            self.bus.publish(EventKind.TODO_COUNT, page.total_count)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def seen_ids(self, name: str) -> FrozenSet[int]:
        with self.root.lock:
            return frozenset(self._seen_sets.get(name, ()))

    def entity(self, mr_id: int) -> Optional[EntityWatcher]:
        with self.root.lock:
            entity = self._entities.get(mr_id)
            return entity if entity is not None and entity.is_live else None

    def live_merge_requests(self) -> List[int]:
        with self.root.lock:
            self._prune_entities()
            return sorted(self._entities)
