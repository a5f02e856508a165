"""Worker process infrastructure.

Signal handling and graceful shutdown for worker processes.
"""

from .context import WorkerProcessContext

__all__ = ["WorkerProcessContext"]
