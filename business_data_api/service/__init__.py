"""Request-scoped retrieval."""

from .orchestrator import RetrievalOrchestrator

__all__ = ["RetrievalOrchestrator"]
