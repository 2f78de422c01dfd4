"""Job dispatch and lifecycle."""

from .dispatcher import CompletionEvent, ProcessDispatcher, UNKNOWN_EXIT_CODE
from .orchestrator import JobOutput, Orchestrator
from .registry import LiveHandleRegistry
from .terminator import Terminator, pid_exists
from .waiter import JobWaiter

__all__ = [
    "CompletionEvent",
    "JobOutput",
    "JobWaiter",
    "LiveHandleRegistry",
    "Orchestrator",
    "ProcessDispatcher",
    "Terminator",
    "UNKNOWN_EXIT_CODE",
    "pid_exists",
]
