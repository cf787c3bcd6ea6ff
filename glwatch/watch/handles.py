"""Cancellation tree for polling loops."""

import threading
from typing import Dict, Iterator, Optional

from glwatch.exceptions import InvariantViolation


class WatchHandle:
    """Cancellable reference to a running loop.

    Handles form a tree with one parent per node. Every handle of a tree shares
    the root's re-entrant lock: spawning, cancelling and event emission all
    happen while holding it, so once cancel() returns no descendant can emit.
    """

    def __init__(self, name: str, parent: Optional['WatchHandle'] = None):
        self.name = name
        self.parent = parent
        self.lock = parent.lock if parent is not None else threading.RLock()
        self.children: Dict[str, 'WatchHandle'] = {}
        self.thread: Optional[threading.Thread] = None
        self._cancelled = threading.Event()

    @property
    def path(self) -> str:
        if self.parent is None:
            return self.name
        return f'{self.parent.path}/{self.name}'

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def spawn(self, name: str) -> 'WatchHandle':
        """Create and attach a child handle."""
        with self.lock:
            if self.cancelled:
                raise InvariantViolation(f'Cannot spawn {name} under cancelled handle {self.path}')
            if name in self.children:
                raise InvariantViolation(f'Handle {self.path} already owns a child named {name}')
            child = WatchHandle(name, parent=self)
            self.children[name] = child
            return child

    def child(self, name: str) -> Optional['WatchHandle']:
        with self.lock:
            return self.children.get(name)

    def cancel(self) -> None:
        """Cancel this handle and its whole subtree.

        A handle is cancelled exactly once; cancelling it again (directly or
        after an ancestor was cancelled) raises InvariantViolation.
        """
        with self.lock:
            if self.cancelled:
                raise InvariantViolation(f'Handle {self.path} is already cancelled')
            self._cancel_subtree()
            if self.parent is not None:
                self.parent._detach(self)

    def _cancel_subtree(self) -> None:
        self._cancelled.set()
        for child in list(self.children.values()):
            child._cancel_subtree()
        self.children.clear()

    def _detach(self, child: 'WatchHandle') -> None:
        if self.children.get(child.name) is not child:
            raise InvariantViolation(f'Handle {self.path} does not own {child.path}')
        del self.children[child.name]

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout seconds; returns True as soon as the handle is cancelled."""
        return self._cancelled.wait(timeout)

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for this handle's loop thread to exit, if it has one."""
        thread = self.thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def walk(self) -> Iterator['WatchHandle']:
        """Yield this handle and every live descendant, depth first."""
        with self.lock:
            children = list(self.children.values())
        yield self
        for child in children:
            yield from child.walk()

    def __repr__(self) -> str:
        state = 'cancelled' if self.cancelled else 'live'
        return f'WatchHandle({self.path}, {state})'
