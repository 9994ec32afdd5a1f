"""
Relationship radar: read-only dashboard over stored client health.
"""

from .service import RadarService, build_radar, radar_service  # noqa: F401
