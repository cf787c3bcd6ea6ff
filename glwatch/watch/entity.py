import logging
from enum import Enum
from typing import Callable, Optional

from glwatch.classes import MergeRequest, PipelineUpdate
from glwatch.events import EventBus, EventKind
from glwatch.watch.handles import WatchHandle

logger = logging.getLogger(__name__)

ScheduleFn = Callable[[WatchHandle, Callable[[], None]], None]


class EntityState(Enum):
    ACTIVE = "active"
    TERMINAL = "terminal"


class EntityWatcher:
    """Watches one merge request until it is merged or closed.

    Runs two independent sub-loops under its own handle: a detail loop that
    re-fetches the merge request and a pipeline loop that fetches the latest
    pipeline of its source branch. The first merged/closed detail snapshot
    ends both.
    """

    def __init__(
        self,
        merge_request: MergeRequest,
        handle: WatchHandle,
        client,
        bus: EventBus,
        on_terminal: Optional[Callable[['EntityWatcher'], None]] = None,
    ):
        self.merge_request = merge_request
        self.handle = handle
        self.client = client
        self.bus = bus
        self.on_terminal = on_terminal
        self.state = EntityState.ACTIVE
        self.detail_handle: Optional[WatchHandle] = None
        self.pipeline_handle: Optional[WatchHandle] = None

    @property
    def id(self) -> int:
        return self.merge_request.id

    @property
    def is_live(self) -> bool:
        return not self.handle.cancelled

    def start(self, schedule: ScheduleFn) -> None:
        """Spawn the detail and pipeline sub-loops."""
        with self.handle.lock:
            self.detail_handle = self.handle.spawn('detail')
            self.pipeline_handle = self.handle.spawn('pipeline')
        schedule(self.detail_handle, self.poll_detail)
        schedule(self.pipeline_handle, self.poll_pipeline)

    def poll_detail(self) -> None:
        mr = self.client.get_merge_request(self.merge_request.project_id, self.merge_request.iid)

        with self.handle.lock:
            if self.detail_handle.cancelled:
                return

            if mr.is_terminal:
                logger.info(f'{mr} reached terminal state {mr.state}, stopping its watchers')
                self.state = EntityState.TERMINAL
                self.bus.publish(EventKind.MERGED_MERGE_REQUEST, mr)
                # a handler may already have unwatched the owning user
                if not self.handle.cancelled:
                    self.handle.cancel()
                if self.on_terminal:
                    self.on_terminal(self)
                return

            self.bus.publish(EventKind.UPDATED_MERGE_REQUEST, mr)

    def poll_pipeline(self) -> None:
        mr = self.merge_request
        pipeline = self.client.get_latest_pipeline(mr.source_project_id, mr.source_branch)
        if pipeline is None:
            return

        with self.handle.lock:
            if self.pipeline_handle.cancelled:
                return
            # TODO: emit only when the pipeline status changes
            self.bus.publish(EventKind.UPDATED_PIPELINE, PipelineUpdate(merge_request=mr, pipeline=pipeline))
