"""
Logging across the leader/worker process boundary.

Worker processes attach an MPQueueHandler to their root logger; the leader
runs a LogQueueListener that replays the records through its own handlers,
so a whole distributed run logs to one place.

Usage:
    # Leader
    log_queue = ctx.Queue()
    listener = LogQueueListener(log_queue, lg)
    listener.start()
    ...  # spawn workers with log_queue
    listener.stop()

    # Worker process
    lg = LoggerFactory.create_root(LogConfig.from_dict(log_config))
    lg.handlers.clear()
    lg.addHandler(MPQueueHandler(log_queue))
"""

from .queue_handler import MPQueueHandler
from .queue_listener import LogQueueListener

__all__ = [
    "MPQueueHandler",
    "LogQueueListener",
]
