from .keepalive import KeepAlive, KeepAliveScheduler
from .lifecycle import ClaimChannelNotFoundError, ThreadLifecycleController
from .locks import CreationLockManager

__all__ = [
    "ClaimChannelNotFoundError",
    "CreationLockManager",
    "KeepAlive",
    "KeepAliveScheduler",
    "ThreadLifecycleController",
]
