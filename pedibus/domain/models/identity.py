from pedibus.domain.enums.people import UserRole
from pedibus.domain.models.base import DomainModel


class Caller(DomainModel):
    """The authenticated user behind a request."""
    person_id: str
    role: UserRole

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN
