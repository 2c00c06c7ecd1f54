"""
Workers Package
Background workers for the dispatch queue
"""
from dialer.workers.reaper_worker import ReaperWorker

__all__ = [
    "ReaperWorker",
]
