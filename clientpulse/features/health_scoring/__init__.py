"""
Client health scoring feature.

The engine is a pure function of resolved inputs; the service reads those
inputs, persists scores and snapshots, and is what the rest of the system
calls.
"""

from .engine import classify_score, compute_trend, score_client  # noqa: F401
from .service import HealthScoringService, health_scoring_service  # noqa: F401
