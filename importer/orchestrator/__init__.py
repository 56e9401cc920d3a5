"""Orchestrator package - coordinates import workflows."""
from .core import ImportOrchestrator
from .pipeline import ImportPipeline
from .poller import PollRegistry
from .queue import ImportQueue, INTERRUPTED_MESSAGE

__all__ = ["ImportOrchestrator", "ImportPipeline", "PollRegistry", "ImportQueue", "INTERRUPTED_MESSAGE"]
