from typing import Dict, List, Set

from pedibus.core.logger import logger
from pedibus.domain.enums.badge_criteria import BadgeCriteria
from pedibus.domain.enums.people import PersonRole
from pedibus.domain.models.stats import AggregatedStat, Badge, ClientBadge
from pedibus.infrastructure.database.repositories.stats_repository import BadgeRepository, StatsRepository


class BadgeService:

    def __init__(self, stats_repository: StatsRepository, badge_repository: BadgeRepository):
        self.stats = stats_repository
        self.badges = badge_repository
        self.logger = logger.getChild(self.__class__.__name__)

    @staticmethod
    def has_enough_for_badge(stat: AggregatedStat, badge: Badge) -> bool:
        """Streak, leaderboard, points and special badges are granted by hand, never here."""
        if badge.criteria == BadgeCriteria.DISTANCE:
            return stat.total_distance_meters >= badge.value_needed * 1000
        if badge.criteria == BadgeCriteria.CALORIES:
            return stat.total_calories_burned >= badge.value_needed
        if badge.criteria == BadgeCriteria.WEATHER:
            return stat.total_different_weather_types >= badge.value_needed
        if badge.criteria == BadgeCriteria.PARTICIPATION:
            return stat.total_participations >= badge.value_needed
        return False

    async def aggregate(self, person_id: str, role: PersonRole) -> AggregatedStat:
        rows = await self.stats.get_with_weather_for_person(person_id)
        weather_types: Set[str] = {w.value for _, w in rows if w is not None}
        return AggregatedStat(
            person_id=person_id,
            role=role,
            total_distance_meters=sum(s.distance_meters for s, _ in rows),
            total_calories_burned=sum(s.calories_burned for s, _ in rows),
            total_participations=len(rows),
            total_different_weather_types=len(weather_types),
        )

    async def award_badges_after_activity(self, session_id: str) -> List[ClientBadge]:
        participants: Dict[str, PersonRole] = {
            s.person_id: s.role for s in await self.stats.get_for_session(session_id)
        }
        if not participants:
            return []

        badges = await self.badges.get_all()
        awards = []
        for person_id, role in participants.items():
            stat = await self.aggregate(person_id, role)
            held = {b.badge_id for b in await self.badges.get_for_person(person_id)}
            for badge in badges:
                if badge.id not in held and self.has_enough_for_badge(stat, badge):
                    awards.append(ClientBadge(badge_id=badge.id, person_id=person_id, role=role))

        if awards:
            async with self.badges.transaction() as db:
                await self.badges.award(db, awards)
            self.logger.info(f"🏅 Awarded {len(awards)} badge(s) after session {session_id}")
        return awards
