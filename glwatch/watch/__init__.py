from .entity import EntityState, EntityWatcher
from .engine import WatchEngine
from .handles import WatchHandle
from .loop import PollingLoop, ThreadScheduler
from .supervisor import Supervisor

__all__ = ["EntityState", "EntityWatcher", "WatchEngine", "WatchHandle", "PollingLoop", "ThreadScheduler", "Supervisor"]
