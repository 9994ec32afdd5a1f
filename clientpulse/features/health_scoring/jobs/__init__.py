"""
Job runners for the health scoring feature.
"""

from .recalculation_job import start_health_recalculation_scheduler

__all__ = ["start_health_recalculation_scheduler"]
