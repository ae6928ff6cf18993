from datetime import datetime
from typing import Optional

from pedibus.domain.enums.badge_criteria import BadgeCriteria
from pedibus.domain.enums.people import PersonRole
from pedibus.domain.models.base import DomainModel


class ClientStat(DomainModel):
    person_id: str
    role: PersonRole
    activity_session_id: str
    distance_meters: int
    calories_burned: int
    co2_saved: int
    activity_date: datetime


class Badge(DomainModel):
    id: str
    name: str
    criteria: BadgeCriteria
    value_needed: int


class AggregatedStat(DomainModel):
    """Lifetime totals used to evaluate badge criteria."""
    person_id: str
    role: PersonRole
    total_distance_meters: int = 0
    total_calories_burned: int = 0
    total_participations: int = 0
    total_different_weather_types: int = 0


class ClientBadge(DomainModel):
    badge_id: str
    person_id: str
    role: PersonRole
    awarded_at: Optional[datetime] = None
