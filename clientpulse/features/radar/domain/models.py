"""
Read models for the relationship radar dashboard.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field

from clientpulse.features.health_scoring.domain.models import HealthStatus, Signal, Trend


class RadarClient(BaseModel):
    id: str
    name: str
    company: str | None = None
    health_score: int
    health_status: HealthStatus
    health_trend: Trend = Trend.STABLE
    health_signals: list[Signal] = Field(default_factory=list)
    health_updated_at: datetime | None = None
    last_contact_at: datetime | None = None
    open_commitments: int = 0
    overdue_count: int = 0
    latest_snapshot_at: datetime | None = None


class OverdueAction(BaseModel):
    id: str
    client_id: str
    client_name: str
    description: str
    due_date: date
    days_overdue: int


class RadarStats(BaseModel):
    total_clients: int
    needs_attention: int
    overdue_actions: int
    healthy_percent: int


class RadarData(BaseModel):
    attention: list[RadarClient] = Field(default_factory=list)
    watch: list[RadarClient] = Field(default_factory=list)
    healthy: list[RadarClient] = Field(default_factory=list)
    overdue_actions: list[OverdueAction] = Field(default_factory=list)
    stats: RadarStats
