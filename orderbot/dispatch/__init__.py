"""Entry points for order events and staff interactions."""

from .commands import (
    COMMAND_DEFINITIONS,
    CommandDispatcher,
    CommandInvocation,
    CommandReply,
)
from .events import OrderEventHandler

__all__ = [
    "COMMAND_DEFINITIONS",
    "CommandDispatcher",
    "CommandInvocation",
    "CommandReply",
    "OrderEventHandler",
]
