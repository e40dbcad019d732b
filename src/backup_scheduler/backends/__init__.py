from .base import BaseBackend, WorkItem
from .in_memory import InMemoryBackend

__all__ = ["BaseBackend", "WorkItem", "InMemoryBackend"]
