import logging
import threading
import time
from typing import Callable, Optional

from glwatch.exceptions import InvariantViolation, TransientFetchError
from glwatch.watch.handles import WatchHandle

logger = logging.getLogger(__name__)

FailureCallback = Callable[[str, Exception], None]


class PollingLoop:
    """Fixed-interval tick runner bound to a WatchHandle."""

    def __init__(
        self,
        handle: WatchHandle,
        interval_seconds: float,
        tick: Callable[[], None],
        strict: bool = False,
        on_failure: Optional[FailureCallback] = None,
    ):
        self.handle = handle
        self.interval_seconds = interval_seconds
        self.tick = tick
        self.strict = strict
        self.on_failure = on_failure
        self.tick_count = 0
        self.failure_count = 0

    @property
    def name(self) -> str:
        return self.handle.path

    def _report_failure(self, error: Exception) -> None:
        self.failure_count += 1
        if self.on_failure:
            try:
                self.on_failure(self.name, error)
            except Exception as e:
                logger.exception(f'Failure callback raised for {self.name}: {e}')

    def run_once(self) -> bool:
        """Run a single tick. Returns False once the loop should stop."""
        if self.handle.cancelled:
            return False

        try:
            self.tick()
        except TransientFetchError as e:
            logger.warning(f'{self.name}: fetch failed, retrying in {self.interval_seconds}s: {e}')
            self._report_failure(e)
        except InvariantViolation as e:
            logger.error(f'{self.name}: invariant violation: {e}', exc_info=True)
            if self.strict:
                raise
        except Exception as e:
            logger.exception(f'{self.name}: unexpected error during tick: {e}')
            self._report_failure(e)

        self.tick_count += 1
        return not self.handle.cancelled

    def run(self) -> None:
        """Tick until cancelled, sleeping for the remainder of each interval."""
        logger.debug(f'{self.name}: loop started')

        while True:
            started = time.monotonic()
            if not self.run_once():
                break
            remaining = self.interval_seconds - (time.monotonic() - started)
            if self.handle.wait(max(0.0, remaining)):
                break

        logger.debug(f'{self.name}: loop stopped after {self.tick_count} ticks')


class ThreadScheduler:
    """Runs each polling loop on its own daemon thread."""

    def start(self, loop: PollingLoop) -> None:
        thread = threading.Thread(target=loop.run, name=f'glwatch:{loop.name}', daemon=True)
        loop.handle.thread = thread
        thread.start()
