"""
Queue transport for analysis jobs.
"""

from .base import Delivery, JobQueue, JobQueueError
from .redis_queue import RedisJobQueue, analysis_queue

__all__ = ["Delivery", "JobQueue", "JobQueueError", "RedisJobQueue", "analysis_queue"]
