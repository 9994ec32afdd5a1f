from .models import OverdueAction, RadarClient, RadarData, RadarStats

__all__ = ["OverdueAction", "RadarClient", "RadarData", "RadarStats"]
