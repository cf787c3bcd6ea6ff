import logging
import threading
from typing import Dict, Iterable, List, Optional

from glwatch.config import WatchConfig
from glwatch.constants import DEFAULT_POLL_INTERVAL_MS, THREAD_JOIN_TIMEOUT
from glwatch.events import EventBus
from glwatch.utils.gitlab_api_tools import GitLabClient
from glwatch.watch.engine import TODOS_LOOP, WatchEngine, user_loop_name
from glwatch.watch.handles import WatchHandle
from glwatch.watch.loop import FailureCallback

logger = logging.getLogger(__name__)


class Supervisor:
    """Owns the watch handle tree and exposes the watch/unwatch operations.

    One Supervisor is the context object shared by everything that starts
    loops or consumes their events.
    """

    def __init__(
        self,
        client,
        bus: Optional[EventBus] = None,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_MS / 1000,
        scheduler=None,
        strict: bool = False,
    ):
        self.client = client
        self.bus = bus or EventBus()
        self.root = WatchHandle('supervisor')
        self.engine = WatchEngine(
            client,
            self.bus,
            self.root,
            interval_seconds=interval_seconds,
            scheduler=scheduler,
            strict=strict,
        )

    @classmethod
    def from_config(cls, config: WatchConfig, bus: Optional[EventBus] = None, scheduler=None) -> 'Supervisor':
        """Validate config and build a Supervisor with a GitLab client."""
        config.validate()
        logger.info(f'Starting supervisor with config: {config.describe()}')
        client = GitLabClient(config.endpoint, config.token, timeout=config.request_timeout)
        return cls(client, bus=bus, interval_seconds=config.poll_interval_seconds, scheduler=scheduler, strict=config.strict)

    @property
    def on_fetch_failed(self) -> Optional[FailureCallback]:
        return self.engine.on_fetch_failed

    @on_fetch_failed.setter
    def on_fetch_failed(self, callback: Optional[FailureCallback]) -> None:
        self.engine.on_fetch_failed = callback

    # -------------------------------------------------------------------------
    # Watch
    # -------------------------------------------------------------------------

    def watch_users(self, user_ids: Iterable[int]) -> Dict[int, Optional[WatchHandle]]:
        """Start a discovery loop per user. One user failing to start does not stop the rest."""
        results = {}
        for user_id in user_ids:
            try:
                results[user_id] = self.watch_user(user_id)
            except Exception as e:
                logger.error(f'Could not start watching user {user_id}: {e}')
                results[user_id] = None
        return results

    def watch_user(self, user_id: int) -> WatchHandle:
        return self.engine.start_user_loop(user_id)

    def watch_todos(self) -> WatchHandle:
        return self.engine.start_todos_loop()

    # -------------------------------------------------------------------------
    # Unwatch
    # -------------------------------------------------------------------------

    def _cancel_loop(self, name: str) -> bool:
        with self.root.lock:
            handle = self.root.child(name)
            if handle is None:
                return False
            handle.cancel()
            self.engine.forget_loop(name)
        logger.info(f'Stopped {name} loop')
        return True

    def unwatch_user(self, user_id: int) -> bool:
        """Stop a user's discovery loop and its merge request watchers. No-op if not watching."""
        return self._cancel_loop(user_loop_name(user_id))

    def unwatch_todos(self) -> bool:
        return self._cancel_loop(TODOS_LOOP)

    def unwatch_merge_requests(self) -> None:
        """Stop every user discovery loop, leaving the todos loop running."""
        with self.root.lock:
            for user_id in self.watched_users():
                self.unwatch_user(user_id)

    def unwatch_all(self) -> None:
        """Stop every loop. The supervisor can start new loops afterwards."""
        with self.root.lock:
            for name in list(self.root.children):
                self._cancel_loop(name)

    def shutdown(self, timeout: float = THREAD_JOIN_TIMEOUT) -> None:
        """Stop every loop and wait up to timeout seconds per loop thread to exit.

        Called from an event handler, the calling loop thread still holds the
        tree lock that the other loop threads need to finish, so loops are
        stopped without waiting for them.
        """
        with self.root.lock:
            handles = list(self.root.walk())[1:]
            self.unwatch_all()

        current = threading.current_thread()
        if any(handle.thread is current for handle in handles):
            logger.info('Shutdown requested from a loop thread; not waiting for loop threads to exit')
            return

        for handle in handles:
            handle.join(timeout)

    # -------------------------------------------------------------------------
    # Introspection
    # -------------------------------------------------------------------------

    def watched_users(self) -> List[int]:
        with self.root.lock:
            return sorted(int(name.split(':', 1)[1]) for name in self.root.children if name.startswith('user:'))

    def is_watching_todos(self) -> bool:
        return self.root.child(TODOS_LOOP) is not None

    def live_merge_requests(self) -> List[int]:
        return self.engine.live_merge_requests()

    def get_status(self) -> Dict:
        """Get current status of the supervisor."""
        with self.root.lock:
            return {
                'interval_seconds': self.engine.interval_seconds,
                'strict': self.engine.strict,
                'watched_users': self.watched_users(),
                'watching_todos': self.is_watching_todos(),
                'live_merge_requests': self.live_merge_requests(),
                'handles': [handle.path for handle in self.root.walk()],
            }
