import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import TYPE_CHECKING, Any, Optional

from glwatch.constants import DEFAULT_EVENTS_RETENTION_SIZE, DEFAULT_LOG_BACKUP_COUNT, EVENTS_LEVEL_NUM

if TYPE_CHECKING:
    from glwatch.events import EventBus, EventKind


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """Setup logging configuration."""
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )
    # requests/urllib3 log every connection at DEBUG
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def setup_events_logger(full_path, events_retention_size=DEFAULT_EVENTS_RETENTION_SIZE):
    logging.addLevelName(EVENTS_LEVEL_NUM, 'EVENT')

    logger = logging.getLogger('event')
    logger.setLevel(EVENTS_LEVEL_NUM)
    logger.propagate = False

    def event(self, message, *args, **kws):
        if self.isEnabledFor(EVENTS_LEVEL_NUM):
            self._log(EVENTS_LEVEL_NUM, message, args, **kws)

    logging.Logger.event = event

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)s | %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )

    os.makedirs(full_path, exist_ok=True)
    file_handler = RotatingFileHandler(
        os.path.join(full_path, 'events.log'),
        maxBytes=events_retention_size,
        backupCount=DEFAULT_LOG_BACKUP_COUNT,
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(EVENTS_LEVEL_NUM)
    logger.addHandler(file_handler)

    return logger


def describe_event(kind: 'EventKind', payload: Any) -> str:
    """One-line summary of an event payload."""
    from glwatch.events import EventKind

    if kind == EventKind.UPDATED_PIPELINE:
        return f'{payload.merge_request.reference} pipeline #{payload.pipeline.id} {payload.pipeline.status}'
    if kind in (EventKind.NEW_MERGE_REQUEST, EventKind.UPDATED_MERGE_REQUEST, EventKind.MERGED_MERGE_REQUEST):
        return f'{payload.reference} [{payload.state}] {payload.title} (@{payload.author.username})'
    if kind == EventKind.NEW_TODO:
        return f'todo #{payload.id} {payload.action_name or ""} {payload.target_url or ""}'.strip()
    return str(payload)


class EventRecorder:
    """Writes every emitted event to the EVENT-level logger."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def attach(self, bus: 'EventBus') -> 'EventRecorder':
        from glwatch.events import EventKind

        for kind in EventKind:
            bus.subscribe(kind, lambda payload, kind=kind: self.record(kind, payload))
        return self

    def record(self, kind: 'EventKind', payload: Any) -> None:
        self.logger.log(EVENTS_LEVEL_NUM, f'{kind.value} | {describe_event(kind, payload)}')
