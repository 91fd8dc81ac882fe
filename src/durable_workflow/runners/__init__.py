"""Thin wrappers around Engine: blocking, enqueue-and-poll, and event streaming."""

from .async_runner import Adapter, AsyncRunner, InlineAdapter, Job, QueueAdapter
from .stream import EVENTS, Event, StreamingEngine, StreamRunner
from .sync import SyncRunner

__all__ = [
    "EVENTS",
    "Adapter",
    "AsyncRunner",
    "Event",
    "InlineAdapter",
    "Job",
    "QueueAdapter",
    "StreamRunner",
    "StreamingEngine",
    "SyncRunner",
]
